"""
Authentication API: register, login, logout and current user.
"""
from flask import Blueprint, request, g

from yarn_erp.extensions import db
from yarn_erp.models.user import User, ROLES
from yarn_erp.utils.auth import generate_token, token_required
from yarn_erp.utils.error_utils import (
    APIError, ErrorCodes, handle_errors, success_response, validate_required, log_operation
)
from yarn_erp.utils.request_utils import get_json_body, get_str

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

MIN_PASSWORD_LENGTH = 6


@auth_bp.route('/register', methods=['POST'])
@handle_errors
def register():
    """Creates a pending account and returns a token for it."""
    data = get_json_body()
    validate_required(data, ['name', 'email', 'password'])

    email = get_str(data, 'email').lower()
    password = get_str(data, 'password', strip=False)
    if not User.is_valid_email(email):
        raise APIError('Please provide a valid email address', 400)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise APIError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)

    role = get_str(data, 'role') or 'manager'
    if role not in ROLES:
        raise APIError('Invalid role', 400)
    # Self-registration can never grant superadmin
    if role == 'superadmin':
        role = 'manager'

    if User.query.filter_by(email=email).first():
        raise APIError('User with this email already exists', 409, code=ErrorCodes.DUPLICATE[0])

    user = User(name=get_str(data, 'name'), email=email, role=role, status='pending')
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    log_operation('register', user_id=user.id, email=email)
    return success_response(
        message='Registration successful. Your account is pending approval.',
        status_code=201,
        token=generate_token(user),
        user=user.to_dict()
    )


@auth_bp.route('/login', methods=['POST'])
@handle_errors
def login():
    data = get_json_body()
    validate_required(data, ['email', 'password'])

    user = User.query.filter_by(email=get_str(data, 'email').lower()).first()
    if not user or not user.check_password(get_str(data, 'password', strip=False)):
        log_operation('login', status='warning', email=data['email'])
        raise APIError('Invalid email or password', 401, code=ErrorCodes.UNAUTHORIZED[0])

    if user.status == 'inactive':
        raise APIError('Account is inactive. Contact an administrator.', 403, code=ErrorCodes.FORBIDDEN[0])

    user.record_login(request.remote_addr)
    db.session.commit()

    log_operation('login', user_id=user.id)
    return success_response(token=generate_token(user), user=user.to_dict())


@auth_bp.route('/logout', methods=['POST'])
@handle_errors
@token_required
def logout():
    """Tokens are stateless; the client discards its copy."""
    log_operation('logout', user_id=g.current_user.id)
    return success_response(message='Logged out successfully')


@auth_bp.route('/me', methods=['GET'])
@handle_errors
@token_required
def me():
    return success_response(data=g.current_user.to_dict())
