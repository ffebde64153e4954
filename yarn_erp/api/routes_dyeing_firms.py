"""
Dyeing firms API. Deleting a firm only deactivates it.
"""
from flask import Blueprint

from yarn_erp.extensions import db
from yarn_erp.models.dyeing import DyeingFirm
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import get_json_body, pick, has_any, parse_bool

dyeing_firms_bp = Blueprint('dyeing_firms', __name__, url_prefix='/api/dyeing-firms')

FIELDS = {
    'contactPerson': 'contact_person',
    'phoneNumber': 'phone_number',
    'email': 'email',
    'address': 'address',
    'notes': 'notes',
}


def _apply(firm, data):
    for key, attr in FIELDS.items():
        if has_any(data, key, attr):
            setattr(firm, attr, pick(data, key, attr))


def _get_firm(firm_id):
    firm = db.session.get(DyeingFirm, firm_id)
    if not firm:
        raise not_found('Dyeing firm', firm_id)
    return firm


@dyeing_firms_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_firms():
    """Active firms, alphabetical."""
    firms = DyeingFirm.query.filter_by(is_active=True).order_by(DyeingFirm.name).all()
    return success_response(data=[f.to_dict() for f in firms])


@dyeing_firms_bp.route('/<int:firm_id>', methods=['GET'])
@handle_errors
@token_required
def get_firm(firm_id):
    return success_response(data=_get_firm(firm_id).to_dict())


@dyeing_firms_bp.route('', methods=['POST'])
@handle_errors
@token_required
def create_firm():
    data = get_json_body()
    validate_required(data, ['name'])
    name = str(data['name']).strip()

    if DyeingFirm.find_by_name(name):
        raise APIError(f'Dyeing firm "{name}" already exists', 409, code=ErrorCodes.DUPLICATE[0])

    firm = DyeingFirm(name=name, is_active=True)
    _apply(firm, data)
    db.session.add(firm)
    db.session.commit()

    log_operation('create_dyeing_firm', firm=name)
    return success_response(data=firm.to_dict(), message='Dyeing firm created', status_code=201)


@dyeing_firms_bp.route('/<int:firm_id>', methods=['PUT'])
@handle_errors
@token_required
def update_firm(firm_id):
    firm = _get_firm(firm_id)
    data = get_json_body()

    if 'name' in data:
        name = str(data['name'] or '').strip()
        if not name:
            raise APIError('name cannot be empty', 400)
        if DyeingFirm.find_by_name(name, exclude_id=firm.id):
            raise APIError(f'Dyeing firm "{name}" already exists', 409, code=ErrorCodes.DUPLICATE[0])
        firm.name = name

    _apply(firm, data)
    if has_any(data, 'isActive', 'is_active'):
        firm.is_active = parse_bool(pick(data, 'isActive', 'is_active'))

    db.session.commit()
    return success_response(data=firm.to_dict())


@dyeing_firms_bp.route('/<int:firm_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_firm(firm_id):
    firm = _get_firm(firm_id)
    firm.is_active = False
    db.session.commit()
    return success_response(message='Dyeing firm deactivated')


@dyeing_firms_bp.route('/find-or-create', methods=['POST'])
@handle_errors
@token_required
def find_or_create_firm():
    """
    Returns the firm with that name, reactivating it if it was deactivated,
    or creates it (201).
    """
    data = get_json_body()
    validate_required(data, ['name'])
    name = str(data['name']).strip()

    firm = DyeingFirm.find_by_name(name)
    if firm:
        if not firm.is_active:
            firm.is_active = True
            db.session.commit()
        return success_response(data=firm.to_dict(), created=False)

    firm = DyeingFirm(name=name, is_active=True)
    _apply(firm, data)
    db.session.add(firm)
    db.session.commit()
    return success_response(data=firm.to_dict(), status_code=201, created=True)
