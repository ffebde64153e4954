"""
Count products API and their follow-up notes.
"""
from flask import Blueprint, request, g

from yarn_erp.extensions import db
from yarn_erp.models.count_product import CountProduct, CountProductFollowUp, QUALITY_GRADES
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, validate_required, not_found
)
from yarn_erp.utils.request_utils import get_json_body, get_str, pick, has_any, parse_bool, parse_date, parse_datetime, parse_number

count_products_bp = Blueprint('count_products', __name__, url_prefix='/api/count-products')

# request key -> (attribute, kind)
FIELDS = {
    'partyName': ('party_name', 'str'),
    'dyeingFirm': ('dyeing_firm', 'str'),
    'yarnType': ('yarn_type', 'str'),
    'count': ('count', 'str'),
    'shade': ('shade', 'str'),
    'quantity': ('quantity', 'qty'),
    'completedDate': ('completed_date', 'date'),
    'qualityGrade': ('quality_grade', 'grade'),
    'remarks': ('remarks', 'str'),
    'lotNumber': ('lot_number', 'str'),
    'processedBy': ('processed_by', 'str'),
    'customerName': ('customer_name', 'str'),
    'sentToDye': ('sent_to_dye', 'bool'),
    'sentDate': ('sent_date', 'date'),
    'received': ('received', 'bool'),
    'receivedDate': ('received_date', 'date'),
    'receivedQuantity': ('received_quantity', 'qty'),
    'dispatch': ('dispatch', 'bool'),
    'dispatchDate': ('dispatch_date', 'date'),
    'dispatchQuantity': ('dispatch_quantity', 'qty'),
    'middleman': ('middleman', 'str'),
}

REQUIRED = ['partyName', 'dyeingFirm', 'yarnType', 'count', 'shade', 'quantity', 'completedDate']


def _convert(key, kind, value):
    if kind == 'qty':
        return parse_number(value, key, minimum=0)
    if kind == 'date':
        return parse_date(value, key)
    if kind == 'bool':
        return parse_bool(value)
    if kind == 'grade':
        grade = str(value).upper() if value else 'A'
        if grade not in QUALITY_GRADES:
            raise APIError(f"qualityGrade must be one of {', '.join(QUALITY_GRADES)}", 400)
        return grade
    if value is None:
        return None
    # Blank strings are stored as NULL
    return str(value).strip() or None


def _apply(product, data):
    for key, (attr, kind) in FIELDS.items():
        if has_any(data, key, attr):
            setattr(product, attr, _convert(key, kind, pick(data, key, attr)))


def _check_lot_number(lot_number, exclude_id=None):
    lot_number = _convert('lotNumber', 'str', lot_number)
    if not lot_number:
        return
    query = CountProduct.query.filter(CountProduct.lot_number == lot_number)
    if exclude_id is not None:
        query = query.filter(CountProduct.id != exclude_id)
    if query.first():
        raise APIError(f'Lot number {lot_number} already exists', 409, code=ErrorCodes.DUPLICATE[0])


def _get_product(product_id):
    product = db.session.get(CountProduct, product_id)
    if not product:
        raise not_found('Count product', product_id)
    return product


@count_products_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_count_products():
    """Query params: partyName, dyeingFirm, qualityGrade"""
    query = CountProduct.query
    if request.args.get('partyName'):
        query = query.filter(CountProduct.party_name.ilike(f"%{request.args['partyName']}%"))
    if request.args.get('dyeingFirm'):
        query = query.filter(CountProduct.dyeing_firm == request.args['dyeingFirm'])
    if request.args.get('qualityGrade'):
        query = query.filter(CountProduct.quality_grade == request.args['qualityGrade'].upper())

    products = query.order_by(CountProduct.completed_date.desc(), CountProduct.id.desc()).all()
    return success_response(data=[p.to_dict() for p in products])


@count_products_bp.route('/<int:product_id>', methods=['GET'])
@handle_errors
@token_required
def get_count_product(product_id):
    return success_response(data=_get_product(product_id).to_dict())


@count_products_bp.route('/dyeing-firm/<path:firm>', methods=['GET'])
@handle_errors
@token_required
def list_by_dyeing_firm(firm):
    products = CountProduct.query.filter(
        db.func.lower(CountProduct.dyeing_firm) == firm.strip().lower()
    ).order_by(CountProduct.completed_date.desc()).all()
    return success_response(data=[p.to_dict() for p in products])


@count_products_bp.route('', methods=['POST'])
@handle_errors
@token_required
def create_count_product():
    data = get_json_body()
    validate_required(data, REQUIRED)
    _check_lot_number(pick(data, 'lotNumber', 'lot_number'))

    product = CountProduct(processed_by=g.current_user.name)
    _apply(product, data)
    if not product.quality_grade:
        product.quality_grade = 'A'

    db.session.add(product)
    db.session.commit()
    return success_response(data=product.to_dict(), message='Count product created', status_code=201)


@count_products_bp.route('/<int:product_id>', methods=['PUT'])
@handle_errors
@token_required
def update_count_product(product_id):
    product = _get_product(product_id)
    data = get_json_body()
    if has_any(data, 'lotNumber', 'lot_number'):
        _check_lot_number(pick(data, 'lotNumber', 'lot_number'), exclude_id=product.id)

    _apply(product, data)
    db.session.commit()
    return success_response(data=product.to_dict())


@count_products_bp.route('/<int:product_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_count_product(product_id):
    product = _get_product(product_id)
    db.session.delete(product)
    db.session.commit()
    return success_response(message='Count product deleted')


# =============================================================================
# FOLLOW-UPS
# =============================================================================

@count_products_bp.route('/<int:product_id>/follow-ups', methods=['GET'])
@handle_errors
@token_required
def list_follow_ups(product_id):
    product = _get_product(product_id)
    return success_response(data=[f.to_dict() for f in product.follow_ups])


@count_products_bp.route('/<int:product_id>/follow-ups', methods=['POST'])
@handle_errors
@token_required
def create_follow_up(product_id):
    product = _get_product(product_id)
    data = get_json_body()

    follow_up_date = pick(data, 'followUpDate', 'follow_up_date')
    if not follow_up_date:
        raise APIError('Follow-up date is required', 400)
    remarks = get_str(data, 'remarks', default='')
    if not remarks:
        raise APIError('Remarks are required', 400)

    when = parse_datetime(follow_up_date, 'followUpDate')

    follow_up = CountProductFollowUp(
        count_product_id=product.id,
        follow_up_date=when,
        remarks=remarks,
        added_by=g.current_user.id,
        added_by_name=g.current_user.name
    )
    db.session.add(follow_up)
    db.session.commit()
    return success_response(data=follow_up.to_dict(), status_code=201)


@count_products_bp.route('/follow-ups/<int:follow_up_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_follow_up(follow_up_id):
    """Admins, managers and the author may delete a follow-up."""
    follow_up = db.session.get(CountProductFollowUp, follow_up_id)
    if not follow_up:
        raise not_found('Follow-up', follow_up_id)

    user = g.current_user
    if user.role not in ('superadmin', 'admin', 'manager') and follow_up.added_by != user.id:
        raise APIError('You can only delete your own follow-ups', 403, code=ErrorCodes.FORBIDDEN[0])

    db.session.delete(follow_up)
    db.session.commit()
    return success_response(message='Follow-up deleted')
