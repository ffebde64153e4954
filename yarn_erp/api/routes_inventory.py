"""
Inventory API: items, stock movements, stock logs and Excel/CSV import.
Managers have read-only access.
"""
from flask import Blueprint, request, g
from sqlalchemy import func, or_

from yarn_erp.extensions import db
from yarn_erp.models.inventory import InventoryItem, StockLog, INVENTORY_STATUSES
from yarn_erp.models.audit_log import record_audit
from yarn_erp.services.import_service import InventoryImportService
from yarn_erp.utils.auth import read_only_for_managers
from yarn_erp.utils.error_utils import (
    APIError, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import get_json_body, pick, has_any, parse_bool, parse_date, parse_number

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/inventory')

REQUIRED = ['productName', 'rawMaterial', 'effectiveYarn', 'count', 'initialQuantity']

# request key -> (attribute, kind)
FIELDS = {
    'productName': ('product_name', 'str'),
    'rawMaterial': ('raw_material', 'str'),
    'category': ('category', 'str'),
    'effectiveYarn': ('effective_yarn', 'num'),
    'count': ('count', 'str'),
    'unitsProduced': ('units_produced', 'int'),
    'initialQuantity': ('initial_quantity', 'num'),
    'currentQuantity': ('current_quantity', 'num'),
    'gsm': ('gsm', 'num'),
    'costPerKg': ('cost_per_kg', 'num'),
    'location': ('location', 'str'),
    'warehouseLocation': ('warehouse_location', 'str'),
    'batchNumber': ('batch_number', 'str'),
    'supplierName': ('supplier_name', 'str'),
    'manualQuantity': ('manual_quantity', 'bool'),
    'manualValue': ('manual_value', 'bool'),
    'manualYarn': ('manual_yarn', 'bool'),
    'remarks': ('remarks', 'str'),
}

AUDITED = ('product_name', 'count', 'current_quantity', 'cost_per_kg', 'status', 'location')


def _apply(item, data):
    for key, (attr, kind) in FIELDS.items():
        if not has_any(data, key, attr):
            continue
        value = pick(data, key, attr)
        if kind == 'num':
            value = parse_number(value, key, minimum=0)
        elif kind == 'int':
            value = parse_number(value, key, minimum=0, cast=int)
        elif kind == 'bool':
            value = parse_bool(value)
        elif value is not None:
            value = str(value).strip()
        setattr(item, attr, value)

    if 'status' in data:
        if data['status'] not in INVENTORY_STATUSES:
            raise APIError(f"status must be one of {', '.join(INVENTORY_STATUSES)}", 400)
        item.status = data['status']


def _get_item(item_id):
    item = db.session.get(InventoryItem, item_id)
    if not item:
        raise not_found('Inventory item', item_id)
    return item


def _ref(item):
    return f'inventory:{item.id}'


@inventory_bp.route('', methods=['GET'])
@handle_errors
@read_only_for_managers
def list_items():
    """Query params: category, status, search (product, raw material, batch)"""
    query = InventoryItem.query
    if request.args.get('category'):
        query = query.filter(InventoryItem.category == request.args['category'])
    if request.args.get('status'):
        query = query.filter(InventoryItem.status == request.args['status'])

    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            InventoryItem.product_name.ilike(pattern),
            InventoryItem.raw_material.ilike(pattern),
            InventoryItem.batch_number.ilike(pattern)
        ))

    items = query.order_by(InventoryItem.created_at.desc()).all()
    return success_response(data=[i.to_dict() for i in items])


@inventory_bp.route('/metrics/balance', methods=['GET'])
@handle_errors
@read_only_for_managers
def yarn_balance():
    """Current stock per effective yarn."""
    rows = db.session.query(
        InventoryItem.effective_yarn,
        func.sum(InventoryItem.current_quantity),
        func.sum(InventoryItem.total_value),
        func.count(InventoryItem.id)
    ).group_by(InventoryItem.effective_yarn).order_by(InventoryItem.effective_yarn).all()

    return success_response(data=[{
        'effectiveYarn': yarn,
        'currentQuantity': round(float(qty or 0), 2),
        'totalValue': round(float(value or 0), 2),
        'items': items
    } for yarn, qty, value, items in rows])


@inventory_bp.route('/<int:item_id>', methods=['GET'])
@handle_errors
@read_only_for_managers
def get_item(item_id):
    return success_response(data=_get_item(item_id).to_dict())


@inventory_bp.route('', methods=['POST'])
@handle_errors
@read_only_for_managers
def create_item():
    data = get_json_body()
    validate_required(data, REQUIRED)

    item = InventoryItem()
    _apply(item, data)
    if item.current_quantity is None:
        item.current_quantity = item.initial_quantity
    if not item.status:
        item.status = 'Available'
    item.recalculate()

    db.session.add(item)
    db.session.flush()
    record_audit('create', _ref(item), user=g.current_user, yarn_type=item.raw_material,
                 remarks=f'Created {item.product_name} with {item.current_quantity} kg')
    db.session.commit()

    log_operation('create_inventory_item', item=item.id, product=item.product_name)
    return success_response(data=item.to_dict(), message='Inventory item created successfully', status_code=201)


@inventory_bp.route('/<int:item_id>', methods=['PUT'])
@handle_errors
@read_only_for_managers
def update_item(item_id):
    item = _get_item(item_id)
    data = get_json_body()
    if has_any(data, 'currentQuantity', 'current_quantity'):
        raise APIError('Use stock-in, stock-out or spoilage to change the quantity', 400)
    before = {attr: getattr(item, attr) for attr in AUDITED}

    _apply(item, data)
    item.recalculate()

    record_audit('update', _ref(item), user=g.current_user, yarn_type=item.raw_material,
                 changes={attr: (before[attr], getattr(item, attr)) for attr in AUDITED})
    db.session.commit()
    return success_response(data=item.to_dict(), message='Inventory item updated successfully')


@inventory_bp.route('/<int:item_id>', methods=['DELETE'])
@handle_errors
@read_only_for_managers
def delete_item(item_id):
    item = _get_item(item_id)
    record_audit('delete', _ref(item), user=g.current_user, yarn_type=item.raw_material,
                 remarks=f'Deleted {item.product_name}')
    db.session.delete(item)
    db.session.commit()
    return success_response(message='Inventory item deleted successfully')


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================

def _movement(item_id, movement_type):
    item = _get_item(item_id)
    data = get_json_body()
    quantity = parse_number(data.get('quantity'), 'quantity', allow_none=False)
    before = item.current_quantity

    log = item.apply_movement(
        movement_type,
        quantity,
        date=parse_date(data.get('date'), 'date'),
        remarks=data.get('remarks'),
        source=data.get('source'),
        usage_purpose=pick(data, 'usagePurpose', 'usage_purpose'),
        reason=data.get('reason')
    )
    record_audit('update', _ref(item), user=g.current_user, yarn_type=item.raw_material,
                 changes={'current_quantity': (before, item.current_quantity)},
                 remarks=f'Stock {movement_type}: {quantity}')
    db.session.commit()

    log_operation(f'stock_{movement_type}', item=item.id, quantity=quantity, balance=item.current_quantity)
    return success_response(data={'item': item.to_dict(), 'log': log.to_dict()}, status_code=201)


@inventory_bp.route('/<int:item_id>/stock-in', methods=['POST'])
@handle_errors
@read_only_for_managers
def stock_in(item_id):
    return _movement(item_id, 'in')


@inventory_bp.route('/<int:item_id>/stock-out', methods=['POST'])
@handle_errors
@read_only_for_managers
def stock_out(item_id):
    return _movement(item_id, 'out')


@inventory_bp.route('/<int:item_id>/spoilage', methods=['POST'])
@handle_errors
@read_only_for_managers
def spoilage(item_id):
    return _movement(item_id, 'spoilage')


@inventory_bp.route('/<int:item_id>/logs', methods=['GET'])
@handle_errors
@read_only_for_managers
def stock_logs(item_id):
    item = _get_item(item_id)
    logs = StockLog.query.filter_by(inventory_id=item.id).order_by(
        StockLog.date.desc(), StockLog.id.desc()
    ).all()
    return success_response(data=[log.to_dict() for log in logs])


# =============================================================================
# IMPORT
# =============================================================================

@inventory_bp.route('/import', methods=['POST'])
@handle_errors
@read_only_for_managers
def import_items():
    """
    Imports inventory from an uploaded .xlsx/.xls/.csv file (field 'file').
    ?dryRun=true only validates and returns the preview.
    """
    upload = request.files.get('file')
    if not upload or not upload.filename:
        raise APIError('A file is required (multipart field "file")', 400)

    dry_run = parse_bool(request.args.get('dryRun'), default=False)
    service = InventoryImportService()

    df, result = service.parse_file(upload.read(), upload.filename)
    if df is None or result.missing_columns:
        raise APIError('The file could not be imported', 422, payload={'validation': result.to_dict()})

    valid_rows, result = service.validate(df, result)
    if dry_run:
        return success_response(data={'validation': result.to_dict(), 'imported': None})

    summary = service.execute(valid_rows)
    record_audit('create', 'inventory:import', user=g.current_user,
                 remarks=f"Import {upload.filename}: {summary['created']} created, {summary['updated']} updated")
    db.session.commit()

    log_operation('import_inventory', file=upload.filename, **summary)
    return success_response(data={'validation': result.to_dict(), 'imported': summary})
