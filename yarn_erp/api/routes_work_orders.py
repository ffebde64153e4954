"""
Bills of materials, work orders and their costing.
"""
from flask import Blueprint

from yarn_erp.extensions import db
from yarn_erp.models.work_order import BillOfMaterials, BOMItem, WorkOrder, Costing, WORK_ORDER_STATUSES
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import get_json_body, get_str, pick, has_any, parse_number

bom_bp = Blueprint('bom', __name__, url_prefix='/api/bom')
work_orders_bp = Blueprint('work_orders', __name__, url_prefix='/api/workorders')
costings_bp = Blueprint('costings', __name__, url_prefix='/api/costings')


def _positive(value, field):
    number = parse_number(value, field, allow_none=False)
    if number <= 0:
        raise APIError(f'{field} must be greater than 0', 400)
    return number


def _get_bom(bom_id):
    bom = db.session.get(BillOfMaterials, bom_id)
    if not bom:
        raise not_found('BOM', bom_id)
    return bom


def _get_work_order(work_order_id):
    work_order = db.session.get(WorkOrder, work_order_id)
    if not work_order:
        raise not_found('Work order', work_order_id)
    return work_order


def _validate_status(status):
    if status not in WORK_ORDER_STATUSES:
        raise APIError(f"status must be one of {', '.join(WORK_ORDER_STATUSES)}", 400)
    return status


# =============================================================================
# BOM
# =============================================================================

@bom_bp.route('', methods=['POST'])
@handle_errors
@token_required
def create_bom():
    """
    Body: {productId, materials: [{name, quantity, unit?}]}
    """
    data = get_json_body()
    validate_required(data, ['productId'])

    materials = data.get('materials') or []
    if not isinstance(materials, list) or not materials:
        raise APIError('At least one material is required', 400)

    bom = BillOfMaterials(product_id=str(data['productId']).strip())
    for i, material in enumerate(materials, start=1):
        name = get_str(material, 'name', default='') if isinstance(material, dict) else ''
        if not name:
            raise APIError(f'Material {i}: name is required', 400)
        bom.materials.append(BOMItem(
            name=name,
            quantity=_positive(material.get('quantity'), f'materials[{i}].quantity'),
            unit=material.get('unit') or 'kg'
        ))

    db.session.add(bom)
    db.session.commit()

    log_operation('create_bom', bom=bom.id, product=bom.product_id, materials=len(bom.materials))
    return success_response(data=bom.to_dict(), message='BOM created', status_code=201)


@bom_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_boms():
    boms = BillOfMaterials.query.order_by(BillOfMaterials.created_at.desc()).all()
    return success_response(data=[b.to_dict() for b in boms])


@bom_bp.route('/<int:bom_id>', methods=['GET'])
@handle_errors
@token_required
def get_bom(bom_id):
    return success_response(data=_get_bom(bom_id).to_dict())


@bom_bp.route('/<int:bom_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_bom(bom_id):
    bom = _get_bom(bom_id)
    if bom.work_orders:
        raise APIError('BOM is used by existing work orders', 409)
    db.session.delete(bom)
    db.session.commit()
    return success_response(message='BOM deleted')


# =============================================================================
# WORK ORDERS
# =============================================================================

@work_orders_bp.route('', methods=['POST'])
@handle_errors
@token_required
def create_work_order():
    data = get_json_body()
    validate_required(data, ['bomId', 'quantity'])

    bom = _get_bom(int(data['bomId']))
    work_order = WorkOrder(
        bom_id=bom.id,
        quantity=_positive(data['quantity'], 'quantity'),
        status=_validate_status(data.get('status') or 'pending')
    )
    db.session.add(work_order)
    db.session.commit()

    log_operation('create_work_order', work_order=work_order.id, bom=bom.id)
    return success_response(data=work_order.to_dict(), message='Work order created', status_code=201)


@work_orders_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_work_orders():
    work_orders = WorkOrder.query.order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).all()
    return success_response(data=[w.to_dict() for w in work_orders])


@work_orders_bp.route('/<int:work_order_id>', methods=['GET'])
@handle_errors
@token_required
def get_work_order(work_order_id):
    return success_response(data=_get_work_order(work_order_id).to_dict())


@work_orders_bp.route('/<int:work_order_id>', methods=['PUT'])
@handle_errors
@token_required
def update_work_order(work_order_id):
    work_order = _get_work_order(work_order_id)
    data = get_json_body()

    if 'status' in data:
        work_order.status = _validate_status(data['status'])
    if 'quantity' in data:
        work_order.quantity = _positive(data['quantity'], 'quantity')
    if has_any(data, 'bomId', 'bom_id'):
        work_order.bom_id = _get_bom(int(pick(data, 'bomId', 'bom_id'))).id

    db.session.commit()
    return success_response(data=work_order.to_dict())


@work_orders_bp.route('/<int:work_order_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_work_order(work_order_id):
    work_order = _get_work_order(work_order_id)
    db.session.delete(work_order)
    db.session.commit()
    return success_response(message='Work order deleted')


@work_orders_bp.route('/<int:work_order_id>/materials', methods=['GET'])
@handle_errors
@token_required
def work_order_materials(work_order_id):
    work_order = _get_work_order(work_order_id)
    return success_response(data={
        'workOrderId': work_order.id,
        'productId': work_order.bom.product_id,
        'quantity': work_order.quantity,
        'materials': work_order.material_requirements
    })


# =============================================================================
# COSTING
# =============================================================================

@costings_bp.route('', methods=['POST'])
@handle_errors
@token_required
def save_costing():
    """Creates the costing of a work order, or updates it if it already exists."""
    data = get_json_body()
    validate_required(data, ['workOrderId'])

    work_order = _get_work_order(int(data['workOrderId']))
    material_cost = parse_number(pick(data, 'materialCost', 'material_cost', default=0), 'materialCost', minimum=0)
    labor_cost = parse_number(pick(data, 'laborCost', 'labor_cost', default=0), 'laborCost', minimum=0)

    costing = work_order.costing
    created = costing is None
    if created:
        costing = Costing(work_order_id=work_order.id)
        db.session.add(costing)

    costing.material_cost = material_cost or 0.0
    costing.labor_cost = labor_cost or 0.0
    costing.recalculate()
    db.session.commit()

    log_operation('save_costing', work_order=work_order.id, total=costing.total_cost)
    return success_response(data=costing.to_dict(), status_code=201 if created else 200)


@costings_bp.route('/<int:work_order_id>', methods=['GET'])
@handle_errors
@token_required
def get_costing(work_order_id):
    costing = Costing.query.filter_by(work_order_id=work_order_id).first()
    if not costing:
        raise not_found('Costing for work order', work_order_id)
    return success_response(data=costing.to_dict())
