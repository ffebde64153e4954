"""
Audit log API (read only).
"""
from flask import Blueprint, request

from yarn_erp.models.audit_log import AuditLog, AUDIT_ACTIONS
from yarn_erp.utils.auth import token_required
from yarn_erp.utils.error_utils import APIError, handle_errors, success_response

audit_bp = Blueprint('audit', __name__, url_prefix='/api/audit-logs')

MAX_ROWS = 200


@audit_bp.route('', methods=['GET'])
@handle_errors
@token_required
def list_audit_logs():
    """
    Newest first, at most MAX_ROWS rows.
    Query params: action, userId, productId, field
    """
    query = AuditLog.query

    action = request.args.get('action')
    if action:
        if action not in AUDIT_ACTIONS:
            raise APIError(f"action must be one of {', '.join(AUDIT_ACTIONS)}", 400)
        query = query.filter(AuditLog.action == action)
    if request.args.get('userId'):
        query = query.filter(AuditLog.user_id == request.args.get('userId', type=int))
    if request.args.get('productId'):
        query = query.filter(AuditLog.product_id == request.args['productId'])
    if request.args.get('field'):
        query = query.filter(AuditLog.field == request.args['field'])

    logs = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(MAX_ROWS).all()
    return success_response(data=[log.to_dict() for log in logs])
