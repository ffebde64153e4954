"""
User administration API (admin and superadmin only).
"""
from flask import Blueprint, request, g
from sqlalchemy import or_

from yarn_erp.extensions import db
from yarn_erp.models.user import User, ROLES, STATUSES
from yarn_erp.utils.auth import roles_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, validate_required, not_found, log_operation
)
from yarn_erp.utils.request_utils import get_json_body, get_str, parse_bool

users_bp = Blueprint('users', __name__, url_prefix='/api/users')

DEFAULT_TEMP_PASSWORD = 'temp1234'
MIN_PASSWORD_LENGTH = 6


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise not_found('User', user_id)
    return user


def _check_can_modify(target):
    if target.role == 'superadmin' and g.current_user.role != 'superadmin':
        raise APIError('Only a superadmin can modify a superadmin', 403, code=ErrorCodes.FORBIDDEN[0])


@users_bp.route('', methods=['GET'])
@handle_errors
@roles_required('admin')
def list_users():
    """
    Lists users.
    Query params:
        - search: matches name or email
        - role, status: exact filters
    """
    query = User.query

    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    role = request.args.get('role')
    if role:
        query = query.filter(User.role == role)

    status = request.args.get('status')
    if status:
        query = query.filter(User.status == status)

    users = query.order_by(User.created_at.desc()).all()
    return success_response(data=[u.to_dict() for u in users])


@users_bp.route('', methods=['POST'])
@handle_errors
@roles_required('admin')
def create_user():
    data = get_json_body()
    validate_required(data, ['name', 'email'])

    email = get_str(data, 'email').lower()
    if not User.is_valid_email(email):
        raise APIError('Please provide a valid email address', 400)
    if User.query.filter_by(email=email).first():
        raise APIError('User with this email already exists', 400)

    role = get_str(data, 'role') or 'manager'
    if role not in ROLES:
        raise APIError(f"Invalid role. Use: {', '.join(ROLES)}", 400)
    if role == 'superadmin' and g.current_user.role != 'superadmin':
        raise APIError('Only a superadmin can create a superadmin', 403, code=ErrorCodes.FORBIDDEN[0])

    user = User(name=get_str(data, 'name'), email=email, role=role, status='pending')
    user.set_password(get_str(data, 'password', strip=False) or DEFAULT_TEMP_PASSWORD)
    db.session.add(user)
    db.session.commit()

    log_operation('create_user', user_id=user.id, by=g.current_user.id)
    return success_response(data=user.to_dict(), message='User created', status_code=201)


@users_bp.route('/<int:user_id>', methods=['PATCH'])
@handle_errors
@roles_required('admin')
def update_user(user_id):
    """Updates role and/or status."""
    user = _get_user(user_id)
    _check_can_modify(user)
    data = get_json_body()

    if 'role' in data:
        if data['role'] not in ROLES:
            raise APIError(f"Invalid role. Use: {', '.join(ROLES)}", 400)
        if data['role'] == 'superadmin' and g.current_user.role != 'superadmin':
            raise APIError('Only a superadmin can grant superadmin', 403, code=ErrorCodes.FORBIDDEN[0])
        user.role = data['role']

    if 'status' in data:
        if data['status'] not in STATUSES:
            raise APIError(f"Invalid status. Use: {', '.join(STATUSES)}", 400)
        user.status = data['status']

    db.session.commit()
    log_operation('update_user', user_id=user.id, role=user.role, status=user.status)
    return success_response(data=user.to_dict())


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@handle_errors
@roles_required('admin')
def delete_user(user_id):
    user = _get_user(user_id)
    if user.id == g.current_user.id:
        raise APIError('You cannot delete your own account', 400)
    _check_can_modify(user)

    db.session.delete(user)
    db.session.commit()
    log_operation('delete_user', user_id=user_id, by=g.current_user.id)
    return success_response(message='User deleted')


@users_bp.route('/<int:user_id>/reset-password', methods=['POST'])
@handle_errors
@roles_required('admin')
def reset_password(user_id):
    user = _get_user(user_id)
    _check_can_modify(user)
    data = request.get_json(silent=True) or {}

    password = get_str(data, 'password', strip=False) or DEFAULT_TEMP_PASSWORD
    if len(password) < MIN_PASSWORD_LENGTH:
        raise APIError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)

    user.set_password(password)
    db.session.commit()
    return success_response(message='Password reset successfully')


@users_bp.route('/<int:user_id>/approve', methods=['PATCH'])
@handle_errors
@roles_required('admin')
def approve_user(user_id):
    user = _get_user(user_id)
    data = get_json_body()
    if 'approved' not in data:
        raise APIError('approved is required', 400)

    user.status = 'active' if parse_bool(data['approved']) else 'inactive'
    db.session.commit()
    log_operation('approve_user', user_id=user.id, status=user.status)
    return success_response(data=user.to_dict())


@users_bp.route('/invite', methods=['POST'])
@handle_errors
@roles_required('admin')
def invite_user():
    """Creates a pending account named after the email's local part."""
    data = get_json_body()
    validate_required(data, ['email'])

    email = get_str(data, 'email').lower()
    if not User.is_valid_email(email):
        raise APIError('Please provide a valid email address', 400)
    if User.query.filter_by(email=email).first():
        raise APIError('User with this email already exists', 400)

    role = get_str(data, 'role') or 'manager'
    if role not in ROLES or role == 'superadmin':
        raise APIError('Invalid role', 400)

    user = User(name=email.split('@')[0], email=email, role=role, status='pending')
    user.set_password(DEFAULT_TEMP_PASSWORD)
    db.session.add(user)
    db.session.commit()

    log_operation('invite_user', user_id=user.id, by=g.current_user.id)
    return success_response(data=user.to_dict(), message='Invitation created', status_code=201)


@users_bp.route('/<int:user_id>/logs', methods=['GET'])
@handle_errors
@roles_required('admin')
def login_logs(user_id):
    user = _get_user(user_id)
    history = sorted(user.login_history or [], key=lambda h: h.get('timestamp') or '', reverse=True)
    return success_response(data=history)
