"""
Dashboard aggregates across inventory, parties, dyeing and production,
plus the health check.
"""
from datetime import date, timedelta

from flask import Blueprint, request
from sqlalchemy import func

from yarn_erp.extensions import db
from yarn_erp.models.asu_machine import UNITS
from yarn_erp.models.dyeing import DyeingRecord
from yarn_erp.models.inventory import InventoryItem
from yarn_erp.models.party import Party
from yarn_erp.models.production_job import ProductionJob, JOB_STATUSES
from yarn_erp.services.production_service import compute_stats
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import handle_errors, success_response

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')
health_bp = Blueprint('health', __name__, url_prefix='/api')

PRODUCTION_WINDOW_DAYS = 30


def _inventory_metrics(category=None):
    query = InventoryItem.query
    if category:
        query = query.filter(InventoryItem.category == category)
    items = query.all()

    by_category = {}
    for item in items:
        key = item.category or 'Uncategorized'
        bucket = by_category.setdefault(key, {'items': 0, 'quantity': 0.0, 'value': 0.0})
        bucket['items'] += 1
        bucket['quantity'] += item.current_quantity or 0.0
        bucket['value'] += item.total_value or 0.0

    return {
        'totalItems': len(items),
        'lowStockItems': sum(1 for item in items if item.is_low_stock),
        'inventoryValue': round(sum(item.total_value or 0.0 for item in items), 2),
        'inventoryByCategory': [{
            'category': key,
            'items': bucket['items'],
            'quantity': round(bucket['quantity'], 2),
            'value': round(bucket['value'], 2)
        } for key, bucket in sorted(by_category.items())]
    }


def _dyeing_metrics():
    today = date.today()
    total, arrived, total_quantity = db.session.query(
        func.count(DyeingRecord.id),
        func.count(DyeingRecord.arrival_date),
        func.sum(DyeingRecord.quantity)
    ).one()
    pending_quantity = db.session.query(func.sum(DyeingRecord.quantity)) \
        .filter(DyeingRecord.arrival_date.is_(None)).scalar()
    overdue = DyeingRecord.query.filter(
        DyeingRecord.arrival_date.is_(None),
        DyeingRecord.expected_arrival_date < today
    ).count()

    return {
        'totalParties': Party.query.filter_by(is_archived=False).count(),
        'totalDyeingOrders': total or 0,
        'arrivedDyeingOrders': arrived or 0,
        'pendingDyeingOrders': (total or 0) - (arrived or 0),
        'overdueDyeingOrders': overdue,
        'totalDyeingQuantity': round(float(total_quantity or 0.0), 2),
        'pendingDyeingQuantity': round(float(pending_quantity or 0.0), 2)
    }


def _job_metrics():
    counts = dict(db.session.query(ProductionJob.status, func.count(ProductionJob.id))
                  .group_by(ProductionJob.status).all())
    return {
        'totalJobs': sum(counts.values()),
        'jobsByStatus': {status: counts.get(status, 0) for status in JOB_STATUSES}
    }


@dashboard_bp.route('/stats', methods=['GET'])
@handle_errors
@token_required
def stats():
    """Query params: category (limits the inventory metrics)"""
    date_to = date.today()
    date_from = date_to - timedelta(days=PRODUCTION_WINDOW_DAYS)

    data = _inventory_metrics(request.args.get('category') or None)
    data.update(_dyeing_metrics())
    data['production'] = {f'unit{unit}': compute_stats(unit, date_from, date_to) for unit in UNITS}
    data.update(_job_metrics())
    return success_response(data=data)


@health_bp.route('/health', methods=['GET'])
def health():
    return {'status': 'ok'}, 200
