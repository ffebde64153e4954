"""
ASU production entries: efficiency calculation, machine configuration
snapshots, day/night shift grouping and unit statistics.

Routes only parse the request; everything that touches more than one table
lives here so both ASU units share the same rules.
"""
from collections import OrderedDict, defaultdict
from datetime import date

from flask import current_app
from sqlalchemy import case, func

from yarn_erp.extensions import db
from yarn_erp.models.asu_machine import ASUMachine
from yarn_erp.models.production_entry import ASUProductionEntry, SHIFTS
from yarn_erp.models.machine_configuration import snapshot_configuration
from yarn_erp.models.audit_log import record_audit
from yarn_erp.utils.error_utils import APIError, ErrorCodes, not_found, log_operation
from yarn_erp.utils.request_utils import pick, has_any, parse_date, parse_number


def calculate_efficiency(actual, target):
    """actual / target * 100 rounded to 2 decimals; 0 when there is no target."""
    if not target:
        return 0.0
    return round((actual or 0.0) / target * 100, 2)


def get_machine(unit, machine_number):
    machine = ASUMachine.query.filter_by(unit=unit, machine_no=int(machine_number)).first()
    if not machine:
        raise not_found('Machine', machine_number)
    return machine


def _audit_ref(entry):
    return f'asu_entry:{entry.id}'


def _find_entry(unit, machine_number, entry_date, shift):
    return ASUProductionEntry.query.filter_by(
        unit=unit, machine_number=machine_number, date=entry_date, shift=shift
    ).first()


def _duplicate_error(machine_number, entry_date, shift):
    return APIError(
        f'Production entry for machine {machine_number} on {entry_date.isoformat()} '
        f'({shift} shift) already exists. Please edit the existing entry instead.',
        409,
        code=ErrorCodes.DUPLICATE[0]
    )


def create_entry(unit, data, user=None):
    """
    Creates a production entry for one machine shift.

    Args:
        unit: ASU unit (1 or 2)
        data: Request payload (machineNumber, date, shift, actualProduction, ...)
        user: User writing the entry, for the audit trail

    Returns:
        ASUProductionEntry (committed)
    """
    machine_number = pick(data, 'machineNumber', 'machine_number')
    entry_date = parse_date(pick(data, 'date'), 'date')
    shift = pick(data, 'shift')

    if machine_number in (None, '') or entry_date is None or not shift:
        raise APIError('Machine number, date and shift are required', 400)

    shift = str(shift).lower()
    if shift not in SHIFTS:
        raise APIError("Shift must be either 'day' or 'night'", 400)

    machine_number = int(parse_number(machine_number, 'machineNumber', minimum=1, cast=int))
    machine = get_machine(unit, machine_number)

    if _find_entry(unit, machine_number, entry_date, shift):
        raise _duplicate_error(machine_number, entry_date, shift)

    actual = parse_number(pick(data, 'actualProduction', 'actual_production'), 'actualProduction', minimum=0) or 0.0
    target = machine.production_at_100 or 0.0
    theoretical = parse_number(pick(data, 'theoreticalProduction', 'theoretical_production'),
                               'theoreticalProduction', minimum=0)

    entry = ASUProductionEntry(
        unit=unit,
        machine_number=machine_number,
        date=entry_date,
        shift=shift,
        yarn_type=pick(data, 'yarnType', 'yarn_type') or machine.yarn_type,
        actual_production=actual,
        theoretical_production=theoretical if theoretical is not None else target,
        production_at_100=target,
        remarks=pick(data, 'remarks')
    )
    entry.update_efficiency(target or entry.theoretical_production)

    db.session.add(entry)

    if actual > 0:
        snapshot_configuration(machine, entry_date)

    db.session.flush()
    record_audit('create', _audit_ref(entry), user=user, yarn_type=entry.yarn_type,
                 remarks=f'Unit {unit} machine {machine_number} {shift} shift {entry_date.isoformat()}')
    db.session.commit()

    log_operation('create_production_entry', unit=unit, machine=machine_number,
                  date=entry_date.isoformat(), shift=shift, efficiency=entry.efficiency)
    return entry


def update_entry(unit, entry_id, data, user=None):
    """
    Partial update of a production entry.
    Efficiency is recomputed against the entry's own snapshot so that machine
    changes made after the entry was written do not alter it.
    """
    entry = db.session.get(ASUProductionEntry, entry_id)
    if not entry or entry.unit != unit:
        raise not_found('Production entry', entry_id)

    machine = ASUMachine.query.filter_by(unit=unit, machine_no=entry.machine_number).first()
    previous_actual = entry.actual_production or 0.0
    before = {
        'actualProduction': entry.actual_production,
        'theoreticalProduction': entry.theoretical_production,
        'date': entry.date,
        'yarnType': entry.yarn_type,
        'remarks': entry.remarks
    }

    if has_any(data, 'actualProduction', 'actual_production'):
        entry.actual_production = parse_number(
            pick(data, 'actualProduction', 'actual_production'), 'actualProduction', minimum=0
        ) or 0.0
    if has_any(data, 'theoreticalProduction', 'theoretical_production'):
        entry.theoretical_production = parse_number(
            pick(data, 'theoreticalProduction', 'theoretical_production'), 'theoreticalProduction', minimum=0
        ) or 0.0
    if 'remarks' in data:
        entry.remarks = data.get('remarks')
    if 'date' in data:
        new_date = parse_date(data.get('date'), 'date', required=True)
        if new_date != entry.date:
            clash = _find_entry(unit, entry.machine_number, new_date, entry.shift)
            if clash and clash.id != entry.id:
                raise _duplicate_error(entry.machine_number, new_date, entry.shift)
            entry.date = new_date
    if has_any(data, 'yarnType', 'yarn_type'):
        entry.yarn_type = pick(data, 'yarnType', 'yarn_type')

    if not entry.yarn_type and machine:
        entry.yarn_type = machine.yarn_type

    target = entry.production_at_100 or entry.theoretical_production
    if not target and machine:
        target = machine.production_at_100
    entry.update_efficiency(target)

    if machine and previous_actual <= 0 < (entry.actual_production or 0.0):
        snapshot_configuration(machine, entry.date)

    after = {
        'actualProduction': entry.actual_production,
        'theoreticalProduction': entry.theoretical_production,
        'date': entry.date,
        'yarnType': entry.yarn_type,
        'remarks': entry.remarks
    }
    record_audit('update', _audit_ref(entry), user=user, yarn_type=entry.yarn_type,
                 changes={k: (before[k], after[k]) for k in before})
    db.session.commit()
    return entry


def upsert_shifts(unit, data, user=None):
    """
    Writes both shifts of a machine-day in one call.
    Existing rows are updated; a missing row is only created when its value is > 0.

    Returns:
        The grouped daily row for that machine and date
    """
    machine_number = pick(data, 'machineNumber', 'machine_number')
    entry_date = parse_date(pick(data, 'date'), 'date')
    if machine_number in (None, '') or entry_date is None:
        raise APIError('machineNumber and date are required', 400)

    machine_number = int(parse_number(machine_number, 'machineNumber', minimum=1, cast=int))
    machine = get_machine(unit, machine_number)

    values = {
        'day': parse_number(pick(data, 'dayShift', 'day_shift'), 'dayShift', minimum=0) or 0.0,
        'night': parse_number(pick(data, 'nightShift', 'night_shift'), 'nightShift', minimum=0) or 0.0
    }
    yarn_type = pick(data, 'yarnType', 'yarn_type')

    existing = {e.shift: e for e in ASUProductionEntry.query.filter_by(
        unit=unit, machine_number=machine_number, date=entry_date
    ).all()}

    target = None
    for shift in SHIFTS:
        if shift in existing and existing[shift].production_at_100:
            target = existing[shift].production_at_100
            break
    if not target:
        target = machine.production_at_100 or current_app.config.get('DEFAULT_PRODUCTION_AT_100', 400.0)

    for shift in SHIFTS:
        value = values[shift]
        entry = existing.get(shift)
        if entry:
            before = entry.actual_production
            entry.actual_production = value
            if yarn_type:
                entry.yarn_type = yarn_type
            if 'remarks' in data:
                entry.remarks = data.get('remarks')
            entry.update_efficiency(entry.production_at_100 or target)
            record_audit('update', _audit_ref(entry), user=user, yarn_type=entry.yarn_type,
                         changes={'actualProduction': (before, value)})
        elif value > 0:
            entry = ASUProductionEntry(
                unit=unit,
                machine_number=machine_number,
                date=entry_date,
                shift=shift,
                yarn_type=yarn_type or machine.yarn_type,
                actual_production=value,
                theoretical_production=target,
                production_at_100=target,
                remarks=data.get('remarks')
            )
            entry.update_efficiency(target)
            db.session.add(entry)
            existing[shift] = entry

    if any(values[s] > 0 for s in SHIFTS):
        snapshot_configuration(machine, entry_date)

    db.session.commit()
    log_operation('batch_update_production', unit=unit, machine=machine_number,
                  date=entry_date.isoformat(), day=values['day'], night=values['night'])

    rows = group_daily_rows(existing.values(), {machine.machine_no: machine})
    return rows[0] if rows else None


def delete_entry(unit, entry_id, user=None):
    entry = db.session.get(ASUProductionEntry, entry_id)
    if not entry or entry.unit != unit:
        raise not_found('Production entry', entry_id)

    record_audit('delete', _audit_ref(entry), user=user, yarn_type=entry.yarn_type,
                 remarks=f'Machine {entry.machine_number} {entry.shift} shift {entry.date.isoformat()}')
    db.session.delete(entry)
    db.session.commit()


def entries_query(unit, machine_number=None, date_from=None, date_to=None):
    """Entries of a unit ordered by date desc, machine asc, shift asc."""
    query = ASUProductionEntry.query.filter(ASUProductionEntry.unit == unit)
    if machine_number is not None:
        query = query.filter(ASUProductionEntry.machine_number == machine_number)
    if date_from:
        query = query.filter(ASUProductionEntry.date >= date_from)
    if date_to:
        query = query.filter(ASUProductionEntry.date <= date_to)
    return query.order_by(
        ASUProductionEntry.date.desc(),
        ASUProductionEntry.machine_number.asc(),
        ASUProductionEntry.shift.asc()
    )


def group_daily_rows(entries, machines_by_no=None):
    """
    Merges day and night entries into one row per (date, machine).

    The percentage is measured against a single shift target, so two full
    shifts read as 200 %. The target comes from the entries' snapshot first,
    then from the current machine settings.

    Args:
        entries: Iterable of ASUProductionEntry
        machines_by_no: Optional {machine_no: ASUMachine} for fallbacks

    Returns:
        List of dicts sorted by date desc, machine asc
    """
    machines_by_no = machines_by_no or {}
    groups = OrderedDict()

    for entry in entries:
        key = (entry.date, entry.machine_number)
        row = groups.get(key)
        if row is None:
            row = groups[key] = {
                'date': entry.date.isoformat(),
                'machineNumber': entry.machine_number,
                'dayShift': 0.0,
                'nightShift': 0.0,
                'dayShiftId': None,
                'nightShiftId': None,
                'total': 0.0,
                'percentage': 0.0,
                'productionAt100': None,
                'yarnType': None,
                'remarks': None
            }

        value = entry.actual_production or 0.0
        if entry.shift == 'day':
            row['dayShift'] = value
            row['dayShiftId'] = entry.id
        else:
            row['nightShift'] = value
            row['nightShiftId'] = entry.id

        if not row['productionAt100'] and entry.production_at_100:
            row['productionAt100'] = entry.production_at_100
        if not row['yarnType'] and entry.yarn_type:
            row['yarnType'] = entry.yarn_type
        if entry.remarks:
            row['remarks'] = entry.remarks if not row['remarks'] else f"{row['remarks']}; {entry.remarks}"

    for (_, machine_no), row in groups.items():
        machine = machines_by_no.get(machine_no)
        if not row['productionAt100'] and machine is not None:
            row['productionAt100'] = machine.production_at_100
        if not row['yarnType'] and machine is not None:
            row['yarnType'] = machine.yarn_type

        row['total'] = round(row['dayShift'] + row['nightShift'], 2)
        row['percentage'] = calculate_efficiency(row['total'], row['productionAt100'])

    return sorted(groups.values(), key=lambda r: (-date.fromisoformat(r['date']).toordinal(), r['machineNumber']))


def machines_by_number(unit):
    return {m.machine_no: m for m in ASUMachine.query.filter_by(unit=unit).all()}


def compute_stats(unit, date_from, date_to):
    """
    Aggregated production figures of a unit for a date range.
    """
    total_machines = ASUMachine.query.filter_by(unit=unit).count()
    active_machines = ASUMachine.query.filter_by(unit=unit, is_active=True).count()
    today_entries = ASUProductionEntry.query.filter_by(unit=unit, date=date.today()).count()

    in_range = [
        ASUProductionEntry.unit == unit,
        ASUProductionEntry.date >= date_from,
        ASUProductionEntry.date <= date_to
    ]

    # Idle shifts (no production) count towards totals but not towards averages
    producing = ASUProductionEntry.actual_production > 0

    total_entries, avg_efficiency, total_actual, total_theoretical = db.session.query(
        func.count(ASUProductionEntry.id),
        func.avg(case((producing, ASUProductionEntry.efficiency))),
        func.sum(ASUProductionEntry.actual_production),
        func.sum(ASUProductionEntry.theoretical_production)
    ).filter(*in_range).one()

    total_actual = float(total_actual or 0.0)
    total_theoretical = float(total_theoretical or 0.0)

    top = db.session.query(
        ASUProductionEntry.machine_number,
        func.avg(ASUProductionEntry.efficiency).label('avg_efficiency'),
        func.count(ASUProductionEntry.id).label('entry_count')
    ).filter(*in_range, producing).group_by(
        ASUProductionEntry.machine_number
    ).order_by(
        func.avg(ASUProductionEntry.efficiency).desc(),
        ASUProductionEntry.machine_number.asc()
    ).first()

    return {
        'totalMachines': total_machines,
        'activeMachines': active_machines,
        'todayEntries': today_entries,
        'averageEfficiency': round(float(avg_efficiency or 0.0), 2),
        'overallEfficiency': calculate_efficiency(total_actual, total_theoretical),
        'totalActualProduction': round(total_actual, 2),
        'totalTheoreticalProduction': round(total_theoretical, 2),
        'totalEntries': total_entries or 0,
        'topPerformingMachine': {
            'machineNumber': top.machine_number,
            'avgEfficiency': round(float(top.avg_efficiency or 0.0), 2),
            'entryCount': top.entry_count
        } if top else None,
        'dateFrom': date_from.isoformat() if date_from else None,
        'dateTo': date_to.isoformat() if date_to else None
    }


def yarn_summary(unit, date_from=None, date_to=None):
    """
    Production per date broken down by yarn type.
    """
    by_date = defaultdict(lambda: {
        'yarnBreakdown': defaultdict(float),
        'totalProduction': 0.0,
        'machines': set(),
        'efficiencies': []
    })

    for entry in entries_query(unit, date_from=date_from, date_to=date_to):
        bucket = by_date[entry.date]
        value = entry.actual_production or 0.0
        bucket['yarnBreakdown'][entry.yarn_type or 'Unknown'] += value
        bucket['totalProduction'] += value
        bucket['machines'].add(entry.machine_number)
        if value > 0:
            bucket['efficiencies'].append(entry.efficiency or 0.0)

    summary = []
    for day in sorted(by_date, reverse=True):
        bucket = by_date[day]
        efficiencies = bucket['efficiencies']
        summary.append({
            'date': day.isoformat(),
            'yarnBreakdown': {k: round(v, 2) for k, v in sorted(bucket['yarnBreakdown'].items())},
            'totalProduction': round(bucket['totalProduction'], 2),
            'machines': len(bucket['machines']),
            'avgEfficiency': round(sum(efficiencies) / len(efficiencies), 2) if efficiencies else 0.0
        })
    return summary
