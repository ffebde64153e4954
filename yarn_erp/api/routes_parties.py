"""
Parties API. Order figures are aggregated from dyeing records by party name.
"""
from datetime import date

import pandas as pd
from flask import Blueprint, Response, jsonify, request
from sqlalchemy import case, func

from yarn_erp.extensions import db
from yarn_erp.models.party import Party
from yarn_erp.models.dyeing import DyeingRecord
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import get_json_body, get_str, pick, has_any, get_date_range

parties_bp = Blueprint('parties', __name__, url_prefix='/api/parties')

EXPORT_COLUMNS = [
    'partyName', 'totalOrders', 'pendingOrders', 'totalYarn', 'pendingYarn',
    'reprocessingYarn', 'arrivedYarn', 'firstOrder', 'lastOrder'
]


def party_summaries(date_from=None, date_to=None, party_name=None):
    """
    Per-party aggregation of dyeing records, optionally limited to a sent-date range.

    Returns:
        List of dicts sorted by party name
    """
    pending = DyeingRecord.arrival_date.is_(None)
    reprocessing = DyeingRecord.is_reprocessing == True

    query = db.session.query(
        DyeingRecord.party_name,
        func.count(DyeingRecord.id).label('total_orders'),
        func.sum(case((pending, 1), else_=0)).label('pending_orders'),
        func.sum(DyeingRecord.quantity).label('total_yarn'),
        func.sum(case((pending, DyeingRecord.quantity), else_=0)).label('pending_yarn'),
        func.sum(case((reprocessing, DyeingRecord.quantity), else_=0)).label('reprocessing_yarn'),
        func.sum(case((DyeingRecord.arrival_date.isnot(None), DyeingRecord.quantity), else_=0)).label('arrived_yarn'),
        func.min(DyeingRecord.sent_date).label('first_order'),
        func.max(DyeingRecord.sent_date).label('last_order')
    )
    if date_from:
        query = query.filter(DyeingRecord.sent_date >= date_from)
    if date_to:
        query = query.filter(DyeingRecord.sent_date <= date_to)
    if party_name:
        query = query.filter(DyeingRecord.party_name == party_name)

    rows = query.group_by(DyeingRecord.party_name).order_by(DyeingRecord.party_name).all()

    def _iso(value):
        # SQLite returns min/max of dates as strings
        if isinstance(value, date):
            return value.isoformat()
        return value

    return [{
        'partyName': r.party_name,
        'totalOrders': r.total_orders or 0,
        'pendingOrders': int(r.pending_orders or 0),
        'totalYarn': round(float(r.total_yarn or 0), 2),
        'pendingYarn': round(float(r.pending_yarn or 0), 2),
        'reprocessingYarn': round(float(r.reprocessing_yarn or 0), 2),
        'arrivedYarn': round(float(r.arrived_yarn or 0), 2),
        'firstOrder': _iso(r.first_order),
        'lastOrder': _iso(r.last_order)
    } for r in rows]


def _get_party(party_id):
    party = db.session.get(Party, party_id)
    if not party:
        raise not_found('Party', party_id)
    return party


def _apply(party, data):
    if 'name' in data:
        name = get_str(data, 'name', default='')
        if not name:
            raise APIError('name cannot be empty', 400)
        query = Party.query.filter(Party.name == name)
        if party.id is not None:
            query = query.filter(Party.id != party.id)
        if query.first():
            raise APIError(f'Party "{name}" already exists', 409, code=ErrorCodes.DUPLICATE[0])
        party.name = name
    if 'address' in data:
        party.address = data['address']
    if 'contact' in data:
        contact = get_str(data, 'contact') or None
        if not Party.is_valid_contact(contact):
            raise APIError('Contact must be a valid phone number', 400)
        party.contact = contact
    if has_any(data, 'dyeingFirm', 'dyeing_firm'):
        party.dyeing_firm = pick(data, 'dyeingFirm', 'dyeing_firm')


@parties_bp.route('/summary', methods=['GET'])
@handle_errors
@token_required
def summary():
    """Query params: startDate, endDate"""
    date_from, date_to = get_date_range()
    return success_response(data=party_summaries(date_from, date_to))


@parties_bp.route('/names', methods=['GET'])
@handle_errors
@token_required
def names():
    registered = {p.name for p in Party.query.filter_by(is_archived=False)}
    archived = {p.name for p in Party.query.filter_by(is_archived=True)}
    from_orders = {n for (n,) in db.session.query(DyeingRecord.party_name).distinct() if n}
    return success_response(data=sorted(registered | (from_orders - archived)))


@parties_bp.route('/statistics', methods=['GET'])
@handle_errors
@token_required
def statistics():
    summaries = party_summaries()
    return success_response(data={
        'totalParties': Party.query.filter_by(is_archived=False).count(),
        'archivedParties': Party.query.filter_by(is_archived=True).count(),
        'totalOrders': sum(s['totalOrders'] for s in summaries),
        'totalYarn': round(sum(s['totalYarn'] for s in summaries), 2),
        'pendingYarn': round(sum(s['pendingYarn'] for s in summaries), 2)
    })


@parties_bp.route('/archived', methods=['GET'])
@handle_errors
@token_required
def archived():
    parties = Party.query.filter_by(is_archived=True).order_by(Party.archived_at.desc()).all()
    return success_response(data=[p.to_dict() for p in parties])


@parties_bp.route('/export', methods=['GET'])
@handle_errors
@token_required
def export():
    """?format=json (default) or csv"""
    fmt = request.args.get('format', 'json').lower()
    date_from, date_to = get_date_range()
    summaries = party_summaries(date_from, date_to)

    if fmt == 'csv':
        df = pd.DataFrame(summaries, columns=EXPORT_COLUMNS)
        return Response(
            df.to_csv(index=False),
            mimetype='text/csv',
            headers={'Content-Disposition': 'attachment; filename=parties.csv'}
        )
    if fmt != 'json':
        raise APIError("format must be 'json' or 'csv'", 400)

    response = jsonify(summaries)
    response.headers['Content-Disposition'] = 'attachment; filename=parties.json'
    return response


@parties_bp.route('/<path:name>/details', methods=['GET'])
@handle_errors
@token_required
def details(name):
    party = Party.query.filter_by(name=name).first()
    records = DyeingRecord.query.filter_by(party_name=name).order_by(DyeingRecord.sent_date.desc()).all()
    if not party and not records:
        raise not_found('Party', name)

    summaries = party_summaries(party_name=name)
    return success_response(data={
        'party': party.to_dict() if party else None,
        'summary': summaries[0] if summaries else None,
        'orders': [r.to_dict() for r in records]
    })


@parties_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_parties():
    include_archived = request.args.get('includeArchived', 'false').lower() == 'true'
    query = Party.query
    if not include_archived:
        query = query.filter_by(is_archived=False)
    return success_response(data=[p.to_dict() for p in query.order_by(Party.name).all()])


@parties_bp.route('', methods=['POST'])
@handle_errors
@token_required
def create_party():
    data = get_json_body()
    validate_required(data, ['name'])

    party = Party()
    _apply(party, data)
    db.session.add(party)
    db.session.commit()

    log_operation('create_party', party=party.name)
    return success_response(data=party.to_dict(), message='Party created', status_code=201)


@parties_bp.route('/<int:party_id>', methods=['PUT'])
@handle_errors
@token_required
def update_party(party_id):
    party = _get_party(party_id)
    _apply(party, get_json_body())
    db.session.commit()
    return success_response(data=party.to_dict())


@parties_bp.route('/<int:party_id>', methods=['DELETE'])
@handle_errors
@token_required
def delete_party(party_id):
    party = _get_party(party_id)
    db.session.delete(party)
    db.session.commit()
    return success_response(message='Party deleted')


@parties_bp.route('/<int:party_id>/archive', methods=['POST'])
@handle_errors
@token_required
def archive_party(party_id):
    party = _get_party(party_id)
    party.archive()
    db.session.commit()
    return success_response(data=party.to_dict(), message='Party archived')


@parties_bp.route('/<int:party_id>/restore', methods=['POST'])
@handle_errors
@token_required
def restore_party(party_id):
    party = _get_party(party_id)
    party.restore()
    db.session.commit()
    return success_response(data=party.to_dict(), message='Party restored')
