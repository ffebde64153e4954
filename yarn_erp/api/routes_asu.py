"""
ASU unit API: machines, machine configurations, production entries and statistics.

The same blueprint is registered once per unit (/api/asu-unit1, /api/asu-unit2);
the unit number reaches every view through url_defaults.
"""
from datetime import date, datetime, timezone

from flask import Blueprint, request, g, send_file

from yarn_erp.extensions import db
from yarn_erp.models.asu_machine import ASUMachine
from yarn_erp.models.machine_configuration import MachineConfiguration, open_configuration
from yarn_erp.models.production_entry import ASUProductionEntry
from yarn_erp.models.audit_log import record_audit
from yarn_erp.services import production_service
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, not_found, log_operation
)
from yarn_erp.utils.request_utils import (
    get_json_body, get_str, pick, has_any, parse_bool, parse_date, parse_number,
    get_pagination, paginated, get_date_range
)

asu_bp = Blueprint('asu', __name__)


def _get_machine(unit, machine_id):
    machine = db.session.get(ASUMachine, machine_id)
    if not machine or machine.unit != unit:
        raise not_found('Machine', machine_id)
    return machine


def _machine_ref(machine):
    return f'asu_machine:{machine.id}'


def _snapshot_fields(machine):
    return {
        'machineNo': machine.machine_no,
        'machineName': machine.machine_name,
        'count': machine.count,
        'yarnType': machine.yarn_type,
        'spindles': machine.spindles,
        'speed': machine.speed,
        'productionAt100': machine.production_at_100,
        'isActive': machine.is_active
    }


def _machine_number_filter():
    value = pick(request.args, 'machineNumber', 'machine_number')
    if value in (None, ''):
        return None
    return int(parse_number(value, 'machineNumber', cast=int))


# =============================================================================
# MACHINES
# =============================================================================

@asu_bp.route('/machines', methods=['GET'])
@handle_errors
@token_required
def list_machines(unit):
    """Lists the unit's machines. ?active=true returns only active ones."""
    query = ASUMachine.query.filter_by(unit=unit)
    if parse_bool(request.args.get('active')):
        query = query.filter_by(is_active=True)
    machines = query.order_by(ASUMachine.machine_no).all()
    return success_response(data=[m.to_dict() for m in machines])


@asu_bp.route('/machines', methods=['POST'])
@handle_errors
@token_required
def create_machine(unit):
    data = get_json_body()

    machine_no = pick(data, 'machineNo', 'machine_no', 'machineNumber', 'machine_number')
    count = pick(data, 'count')
    if machine_no in (None, '') or count in (None, ''):
        raise APIError('Machine number and count are required', 400)

    machine_no = parse_number(machine_no, 'machineNo', minimum=1, cast=int)

    if ASUMachine.query.filter_by(unit=unit, machine_no=machine_no).first():
        raise APIError(f'Machine {machine_no} already exists in unit {unit}', 409, code=ErrorCodes.DUPLICATE[0])

    yarn_type = get_str(data, 'yarnType', 'yarn_type') or 'Cotton'

    machine = ASUMachine(
        unit=unit,
        machine_no=machine_no,
        machine_name=pick(data, 'machineName', 'machine_name') or f'Machine {machine_no}',
        count=parse_number(count, 'count', minimum=0),
        yarn_type=yarn_type,
        spindles=parse_number(pick(data, 'spindles'), 'spindles', minimum=0, cast=int),
        speed=parse_number(pick(data, 'speed'), 'speed', minimum=0),
        production_at_100=parse_number(pick(data, 'productionAt100', 'production_at_100'),
                                       'productionAt100', minimum=0) or 0.0,
        is_active=parse_bool(pick(data, 'isActive', 'is_active'), default=True)
    )
    db.session.add(machine)
    db.session.flush()

    open_configuration(machine, date.today())
    record_audit('create', _machine_ref(machine), user=g.current_user, yarn_type=machine.yarn_type,
                 remarks=f'Machine {machine_no} created in unit {unit}')
    db.session.commit()

    log_operation('create_machine', unit=unit, machine=machine_no)
    return success_response(data=machine.to_dict(), message='Machine created', status_code=201)


@asu_bp.route('/machines/<int:machine_id>', methods=['PUT'])
@handle_errors
@token_required
def update_machine(unit, machine_id):
    machine = _get_machine(unit, machine_id)
    data = get_json_body()
    before = _snapshot_fields(machine)

    if has_any(data, 'machineNo', 'machine_no', 'machineNumber', 'machine_number'):
        new_no = parse_number(pick(data, 'machineNo', 'machine_no', 'machineNumber', 'machine_number'),
                              'machineNo', minimum=1, cast=int, allow_none=False)
        if new_no != machine.machine_no:
            if ASUMachine.query.filter_by(unit=unit, machine_no=new_no).first():
                raise APIError(f'Machine {new_no} already exists in unit {unit}', 409, code=ErrorCodes.DUPLICATE[0])
            # Keep existing entries attached to the renumbered machine
            ASUProductionEntry.query.filter_by(unit=unit, machine_number=machine.machine_no).update(
                {'machine_number': new_no}, synchronize_session=False
            )
            machine.machine_no = new_no

    if has_any(data, 'machineName', 'machine_name'):
        machine.machine_name = pick(data, 'machineName', 'machine_name')
    if 'count' in data:
        machine.count = parse_number(data['count'], 'count', minimum=0, allow_none=False)
    if has_any(data, 'yarnType', 'yarn_type'):
        yarn_type = pick(data, 'yarnType', 'yarn_type')
        if not isinstance(yarn_type, str) or not yarn_type.strip():
            raise APIError('yarnType must be a non-empty string', 400)
        machine.yarn_type = yarn_type.strip()
    if 'spindles' in data:
        machine.spindles = parse_number(data['spindles'], 'spindles', minimum=0, cast=int)
    if 'speed' in data:
        machine.speed = parse_number(data['speed'], 'speed', minimum=0)
    if has_any(data, 'productionAt100', 'production_at_100'):
        machine.production_at_100 = parse_number(pick(data, 'productionAt100', 'production_at_100'),
                                                  'productionAt100', minimum=0) or 0.0
    if has_any(data, 'isActive', 'is_active'):
        machine.is_active = parse_bool(pick(data, 'isActive', 'is_active'))
    elif 'status' in data:
        machine.is_active = str(data['status']).lower() == 'active'

    if machine.is_active:
        machine.archived_at = None

    after = _snapshot_fields(machine)
    record_audit('update', _machine_ref(machine), user=g.current_user, yarn_type=machine.yarn_type,
                 changes={k: (before[k], after[k]) for k in before})
    db.session.commit()
    return success_response(data=machine.to_dict())


@asu_bp.route('/machines/<int:machine_id>/yarn-config', methods=['PUT'])
@handle_errors
@token_required
def update_yarn_config(unit, machine_id):
    """
    Changes what a machine is spinning (yarn type, count, target).
    Opens a new configuration period starting today when anything changed.
    """
    machine = _get_machine(unit, machine_id)
    data = get_json_body()

    if not has_any(data, 'yarnType', 'yarn_type', 'count', 'productionAt100', 'production_at_100'):
        raise APIError('At least one of yarnType, count or productionAt100 is required', 400)

    before = _snapshot_fields(machine)

    if has_any(data, 'yarnType', 'yarn_type'):
        yarn_type = pick(data, 'yarnType', 'yarn_type')
        if not isinstance(yarn_type, str) or not yarn_type.strip():
            raise APIError('yarnType must be a non-empty string', 400)
        machine.yarn_type = yarn_type.strip()
    if 'count' in data:
        machine.count = parse_number(data['count'], 'count', minimum=0, allow_none=False)
    if has_any(data, 'productionAt100', 'production_at_100'):
        machine.production_at_100 = parse_number(pick(data, 'productionAt100', 'production_at_100'),
                                                  'productionAt100', minimum=0, allow_none=False)

    after = _snapshot_fields(machine)
    changes = {k: (before[k], after[k]) for k in ('yarnType', 'count', 'productionAt100')}
    if any(old != new for old, new in changes.values()):
        open_configuration(machine, date.today())
        record_audit('update', _machine_ref(machine), user=g.current_user, yarn_type=machine.yarn_type,
                     changes=changes)

    db.session.commit()
    return success_response(data=machine.to_dict(), message='Machine yarn configuration updated')


@asu_bp.route('/machines/<int:machine_id>/archive', methods=['POST'])
@handle_errors
@token_required
def archive_machine(unit, machine_id):
    machine = _get_machine(unit, machine_id)
    machine.is_active = False
    machine.archived_at = datetime.now(timezone.utc)
    record_audit('update', _machine_ref(machine), user=g.current_user,
                 changes={'isActive': (True, False)}, remarks='Archived')
    db.session.commit()
    return success_response(data=machine.to_dict(), message='Machine archived')


@asu_bp.route('/machines/<int:machine_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_machine(unit, machine_id):
    """
    Deletes a machine. Refuses when it has production entries unless ?force=true,
    in which case those entries are deleted as well.
    """
    machine = _get_machine(unit, machine_id)
    entries = ASUProductionEntry.query.filter_by(unit=unit, machine_number=machine.machine_no)
    entry_count = entries.count()

    if entry_count and not parse_bool(request.args.get('force')):
        raise APIError(
            f'Machine {machine.machine_no} has {entry_count} production entries. '
            f'Archive it instead or delete with force=true.',
            409,
            payload={'entryCount': entry_count},
            code=ErrorCodes.CONFLICT[0]
        )

    if entry_count:
        entries.delete(synchronize_session=False)

    record_audit('delete', _machine_ref(machine), user=g.current_user, yarn_type=machine.yarn_type,
                 remarks=f'Machine {machine.machine_no} deleted with {entry_count} entries')
    db.session.delete(machine)
    db.session.commit()

    log_operation('delete_machine', unit=unit, machine=machine.machine_no, entries_deleted=entry_count)
    return success_response(message='Machine deleted', deletedEntries=entry_count)


# =============================================================================
# MACHINE CONFIGURATIONS
# =============================================================================

@asu_bp.route('/machines/<int:machine_id>/configurations', methods=['GET'])
@handle_errors
@token_required
def list_configurations(unit, machine_id):
    machine = _get_machine(unit, machine_id)
    configs = MachineConfiguration.query.filter_by(machine_id=machine.id).order_by(
        MachineConfiguration.start_date.desc(), MachineConfiguration.id.desc()
    ).all()
    return success_response(data=[c.to_dict() for c in configs])


@asu_bp.route('/machines/<int:machine_id>/configurations', methods=['POST'])
@handle_errors
@token_required
def create_configuration(unit, machine_id):
    """New configuration period; its values also become the machine's current settings."""
    machine = _get_machine(unit, machine_id)
    data = get_json_body()

    start_date = parse_date(pick(data, 'startDate', 'start_date'), 'startDate') or date.today()
    overrides = {}
    if 'count' in data:
        overrides['count'] = parse_number(data['count'], 'count', minimum=0)
    if has_any(data, 'spindleCount', 'spindle_count', 'spindles'):
        overrides['spindle_count'] = parse_number(pick(data, 'spindleCount', 'spindle_count', 'spindles'),
                                                  'spindleCount', minimum=0, cast=int)
    if has_any(data, 'yarnType', 'yarn_type'):
        overrides['yarn_type'] = get_str(data, 'yarnType', 'yarn_type') or 'Cotton'
    if 'speed' in data:
        overrides['speed'] = parse_number(data['speed'], 'speed', minimum=0)
    if has_any(data, 'productionAt100', 'production_at_100'):
        overrides['production_at_100'] = parse_number(pick(data, 'productionAt100', 'production_at_100'),
                                                      'productionAt100', minimum=0)

    config = open_configuration(machine, start_date, **overrides)

    machine.count = config.count
    machine.spindles = config.spindle_count
    machine.yarn_type = config.yarn_type
    machine.speed = config.speed
    machine.production_at_100 = config.production_at_100

    db.session.commit()
    return success_response(data=config.to_dict(), status_code=201)


def _get_configuration(unit, config_id):
    config = db.session.get(MachineConfiguration, config_id)
    if not config or config.machine.unit != unit:
        raise not_found('Machine configuration', config_id)
    return config


@asu_bp.route('/machine-configurations/<int:config_id>', methods=['PUT'])
@handle_errors
@token_required
def update_configuration(unit, config_id):
    config = _get_configuration(unit, config_id)
    data = get_json_body()

    if 'count' in data:
        config.count = parse_number(data['count'], 'count', minimum=0)
    if has_any(data, 'spindleCount', 'spindle_count'):
        config.spindle_count = parse_number(pick(data, 'spindleCount', 'spindle_count'),
                                            'spindleCount', minimum=0, cast=int)
    if has_any(data, 'yarnType', 'yarn_type'):
        config.yarn_type = pick(data, 'yarnType', 'yarn_type')
    if 'speed' in data:
        config.speed = parse_number(data['speed'], 'speed', minimum=0)
    if has_any(data, 'productionAt100', 'production_at_100'):
        config.production_at_100 = parse_number(pick(data, 'productionAt100', 'production_at_100'),
                                                'productionAt100', minimum=0)
    if has_any(data, 'startDate', 'start_date'):
        config.start_date = parse_date(pick(data, 'startDate', 'start_date'), 'startDate', required=True)
    if has_any(data, 'endDate', 'end_date'):
        config.end_date = parse_date(pick(data, 'endDate', 'end_date'), 'endDate')

    if config.end_date and config.end_date < config.start_date:
        raise APIError('endDate cannot be before startDate', 400)

    db.session.commit()
    return success_response(data=config.to_dict())


@asu_bp.route('/machine-configurations/<int:config_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_configuration(unit, config_id):
    config = _get_configuration(unit, config_id)
    db.session.delete(config)
    db.session.commit()
    return success_response(message='Machine configuration deleted')


# =============================================================================
# PRODUCTION ENTRIES
# =============================================================================

@asu_bp.route('/production-entries', methods=['GET'])
@handle_errors
@token_required
def list_entries(unit):
    """
    Paginated shift entries.
    Query params: machineNumber, dateFrom, dateTo, page, limit
    """
    date_from, date_to = get_date_range()
    page, limit = get_pagination()

    query = production_service.entries_query(unit, _machine_number_filter(), date_from, date_to)
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()

    return success_response(data=paginated([e.to_dict() for e in items], total, page, limit))


@asu_bp.route('/production-entries/daily', methods=['GET'])
@handle_errors
@token_required
def list_daily_rows(unit):
    """
    Entries grouped per machine-day (day + night shift on one row),
    paginated by group.
    """
    date_from, date_to = get_date_range()
    page, limit = get_pagination()

    entries = production_service.entries_query(unit, _machine_number_filter(), date_from, date_to).all()
    rows = production_service.group_daily_rows(entries, production_service.machines_by_number(unit))

    start = (page - 1) * limit
    return success_response(data=paginated(rows[start:start + limit], len(rows), page, limit))


@asu_bp.route('/production-entries', methods=['POST'])
@handle_errors
@token_required
def create_entry(unit):
    entry = production_service.create_entry(unit, get_json_body(), user=g.current_user)
    return success_response(data=entry.to_dict(), message='Production entry created', status_code=201)


@asu_bp.route('/production-entries/batch', methods=['PUT'])
@handle_errors
@token_required
def batch_update_entries(unit):
    """Writes day and night shift of a machine-day in one call."""
    row = production_service.upsert_shifts(unit, get_json_body(), user=g.current_user)
    return success_response(data=row)


@asu_bp.route('/production-entries/<int:entry_id>', methods=['PUT'])
@handle_errors
@token_required
def update_entry(unit, entry_id):
    entry = production_service.update_entry(unit, entry_id, get_json_body(), user=g.current_user)
    return success_response(data=entry.to_dict())


@asu_bp.route('/production-entries/<int:entry_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_entry(unit, entry_id):
    production_service.delete_entry(unit, entry_id, user=g.current_user)
    return success_response(message='Production entry deleted')


@asu_bp.route('/production-entries/export', methods=['GET'])
@handle_errors
@token_required
def export_entries(unit):
    """Downloads the unit's production for a date range as .xlsx"""
    from yarn_erp.services.excel_service import generate_production_excel

    date_from, date_to = get_date_range(default_days=30)
    entries = production_service.entries_query(unit, _machine_number_filter(), date_from, date_to).all()
    rows = production_service.group_daily_rows(entries, production_service.machines_by_number(unit))
    yarn_rows = production_service.yarn_summary(unit, date_from, date_to)

    buffer = generate_production_excel(unit, rows, yarn_rows, date_from, date_to)
    filename = f'asu-unit{unit}-production-{date_from.isoformat()}-{date_to.isoformat()}.xlsx'
    return send_file(
        buffer,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name=filename
    )


# =============================================================================
# STATISTICS
# =============================================================================

@asu_bp.route('/stats', methods=['GET'])
@handle_errors
@token_required
def stats(unit):
    date_from, date_to = get_date_range(default_days=30)
    return success_response(data=production_service.compute_stats(unit, date_from, date_to))


@asu_bp.route('/yarn-summary', methods=['GET'])
@handle_errors
@token_required
def yarn_summary(unit):
    date_from, date_to = get_date_range()
    return success_response(data=production_service.yarn_summary(unit, date_from, date_to))
