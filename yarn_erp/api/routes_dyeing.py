"""
Dyeing records API: orders sent to dyeing firms, arrivals, alerts and follow-ups.
"""
from datetime import date, timedelta

from flask import Blueprint, request, g
from sqlalchemy import case, func

from yarn_erp.extensions import db
from yarn_erp.models.dyeing import DyeingRecord, DyeingFollowUp
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import (
    get_json_body, pick, has_any, parse_bool, parse_date, parse_datetime, parse_number
)

dyeing_bp = Blueprint('dyeing', __name__, url_prefix='/api/dyeing')

DUE_SOON_DAYS = 3
RECENT_ARRIVAL_DAYS = 7

REQUIRED = ['yarnType', 'sentDate', 'expectedArrivalDate', 'partyName', 'dyeingFirm', 'quantity']

TEXT_FIELDS = {
    'yarnType': 'yarn_type',
    'partyName': 'party_name',
    'dyeingFirm': 'dyeing_firm',
    'shade': 'shade',
    'count': 'count',
    'lot': 'lot',
    'remarks': 'remarks',
}


def _get_record(record_id):
    record = db.session.get(DyeingRecord, record_id)
    if not record:
        raise not_found('Dyeing record', record_id)
    return record


def _validate_dates(record):
    if record.sent_date and record.expected_arrival_date and record.expected_arrival_date <= record.sent_date:
        raise APIError('Expected arrival date must be after sent date', 400)


def _apply(record, data):
    for key, attr in TEXT_FIELDS.items():
        if has_any(data, key, attr):
            value = pick(data, key, attr)
            setattr(record, attr, value.strip() if isinstance(value, str) else value)
    if 'quantity' in data:
        record.quantity = parse_number(data['quantity'], 'quantity', minimum=0, allow_none=False)
    if has_any(data, 'sentDate', 'sent_date'):
        record.sent_date = parse_date(pick(data, 'sentDate', 'sent_date'), 'sentDate', required=True)
    if has_any(data, 'expectedArrivalDate', 'expected_arrival_date'):
        record.expected_arrival_date = parse_date(
            pick(data, 'expectedArrivalDate', 'expected_arrival_date'), 'expectedArrivalDate', required=True
        )
    if has_any(data, 'arrivalDate', 'arrival_date'):
        record.arrival_date = parse_date(pick(data, 'arrivalDate', 'arrival_date'), 'arrivalDate')
    if has_any(data, 'isReprocessing', 'is_reprocessing'):
        record.is_reprocessing = parse_bool(pick(data, 'isReprocessing', 'is_reprocessing'))
    _validate_dates(record)


@dyeing_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_records():
    """Query params: partyName, dyeingFirm, status (Arrived|Pending|Overdue)"""
    query = DyeingRecord.query
    if request.args.get('partyName'):
        query = query.filter(DyeingRecord.party_name == request.args['partyName'])
    if request.args.get('dyeingFirm'):
        query = query.filter(DyeingRecord.dyeing_firm == request.args['dyeingFirm'])

    status = (request.args.get('status') or '').lower()
    if status == 'arrived':
        query = query.filter(DyeingRecord.arrival_date.isnot(None))
    elif status == 'pending':
        query = query.filter(DyeingRecord.arrival_date.is_(None))
    elif status == 'overdue':
        query = query.filter(DyeingRecord.arrival_date.is_(None), DyeingRecord.expected_arrival_date < date.today())

    records = query.order_by(DyeingRecord.sent_date.desc(), DyeingRecord.id.desc()).all()
    return success_response(data=[r.to_dict() for r in records])


@dyeing_bp.route('/summary', methods=['GET'])
@handle_errors
@token_required
def summary():
    total, arrived, reprocessing, total_quantity = db.session.query(
        func.count(DyeingRecord.id),
        func.count(DyeingRecord.arrival_date),
        func.sum(case((DyeingRecord.is_reprocessing == True, 1), else_=0)),
        func.sum(DyeingRecord.quantity)
    ).one()

    overdue = DyeingRecord.query.filter(
        DyeingRecord.arrival_date.is_(None),
        DyeingRecord.expected_arrival_date < date.today()
    ).count()

    return success_response(data={
        'total': total or 0,
        'arrived': arrived or 0,
        'pending': (total or 0) - (arrived or 0),
        'overdue': overdue,
        'reprocessing': int(reprocessing or 0),
        'totalQuantity': round(float(total_quantity or 0.0), 2)
    })


@dyeing_bp.route('/alerts', methods=['GET'])
@handle_errors
@token_required
def alerts():
    """
    Orders needing attention:
        - dueSoon: pending and expected within the next DUE_SOON_DAYS days
        - overdue: pending and past the expected date
        - arrived: arrived in the last RECENT_ARRIVAL_DAYS days
    """
    today = date.today()

    due_soon = DyeingRecord.query.filter(
        DyeingRecord.arrival_date.is_(None),
        DyeingRecord.expected_arrival_date >= today,
        DyeingRecord.expected_arrival_date <= today + timedelta(days=DUE_SOON_DAYS)
    ).order_by(DyeingRecord.expected_arrival_date).all()

    overdue = DyeingRecord.query.filter(
        DyeingRecord.arrival_date.is_(None),
        DyeingRecord.expected_arrival_date < today
    ).order_by(DyeingRecord.expected_arrival_date).all()

    arrived = DyeingRecord.query.filter(
        DyeingRecord.arrival_date >= today - timedelta(days=RECENT_ARRIVAL_DAYS)
    ).order_by(DyeingRecord.arrival_date.desc()).all()

    return success_response(data={
        'dueSoon': [r.to_dict() for r in due_soon],
        'overdue': [r.to_dict() for r in overdue],
        'arrived': [r.to_dict() for r in arrived]
    })


@dyeing_bp.route('/<int:record_id>', methods=['GET'])
@handle_errors
@token_required
def get_record(record_id):
    return success_response(data=_get_record(record_id).to_dict())


@dyeing_bp.route('', methods=['POST'])
@handle_errors
@token_required
def create_record():
    data = get_json_body()
    validate_required(data, REQUIRED)

    record = DyeingRecord()
    _apply(record, data)
    db.session.add(record)
    db.session.commit()

    log_operation('create_dyeing_record', record=record.id, party=record.party_name, firm=record.dyeing_firm)
    return success_response(data=record.to_dict(), message='Dyeing record created', status_code=201)


@dyeing_bp.route('/<int:record_id>', methods=['PUT'])
@handle_errors
@token_required
def update_record(record_id):
    record = _get_record(record_id)
    _apply(record, get_json_body())
    db.session.commit()
    return success_response(data=record.to_dict())


@dyeing_bp.route('/<int:record_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_record(record_id):
    record = _get_record(record_id)
    db.session.delete(record)
    db.session.commit()
    return success_response(message='Dyeing record deleted')


@dyeing_bp.route('/<int:record_id>/arrival', methods=['PATCH'])
@handle_errors
@token_required
def mark_arrival(record_id):
    """Sets (or clears, with null) the arrival date."""
    record = _get_record(record_id)
    data = get_json_body()
    record.arrival_date = parse_date(pick(data, 'arrivalDate', 'arrival_date'), 'arrivalDate')
    if record.arrival_date and record.sent_date and record.arrival_date < record.sent_date:
        raise APIError('Arrival date cannot be before sent date', 400)
    db.session.commit()
    return success_response(data=record.to_dict())


@dyeing_bp.route('/<int:record_id>/expected-arrival', methods=['PATCH'])
@handle_errors
@token_required
def update_expected_arrival(record_id):
    record = _get_record(record_id)
    data = get_json_body()
    record.expected_arrival_date = parse_date(
        pick(data, 'expectedArrivalDate', 'expected_arrival_date'), 'expectedArrivalDate', required=True
    )
    _validate_dates(record)
    db.session.commit()
    return success_response(data=record.to_dict())


# =============================================================================
# FOLLOW-UPS
# =============================================================================

@dyeing_bp.route('/<int:record_id>/follow-ups', methods=['GET'])
@handle_errors
@token_required
def list_follow_ups(record_id):
    record = _get_record(record_id)
    return success_response(data=[f.to_dict() for f in record.follow_ups])


@dyeing_bp.route('/<int:record_id>/follow-ups', methods=['POST'])
@handle_errors
@token_required
def create_follow_up(record_id):
    record = _get_record(record_id)
    data = get_json_body()

    follow_up = DyeingFollowUp(
        dyeing_record_id=record.id,
        follow_up_date=parse_datetime(pick(data, 'followUpDate', 'follow_up_date'), 'followUpDate', required=True),
        remarks=data.get('remarks'),
        added_by=g.current_user.id,
        added_by_name=g.current_user.name
    )
    db.session.add(follow_up)
    db.session.commit()
    return success_response(data=follow_up.to_dict(), status_code=201)


@dyeing_bp.route('/follow-ups/<int:follow_up_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_follow_up(follow_up_id):
    follow_up = db.session.get(DyeingFollowUp, follow_up_id)
    if not follow_up:
        raise not_found('Follow-up', follow_up_id)
    db.session.delete(follow_up)
    db.session.commit()
    return success_response(message='Follow-up deleted')
