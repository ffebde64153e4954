"""
JWT authentication and role checks for API routes.
"""
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, request

from yarn_erp.extensions import db
from .error_utils import APIError, ErrorCodes

ALGORITHM = 'HS256'


def generate_token(user):
    """Signs a JWT for the user with the configured lifetime."""
    hours = current_app.config.get('JWT_EXPIRES_HOURS', 24)
    payload = {
        'sub': str(user.id),
        'id': user.id,
        'role': user.role,
        'name': user.name,
        'email': user.email,
        'exp': datetime.now(timezone.utc) + timedelta(hours=hours)
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=ALGORITHM)


def decode_token(token):
    """
    Decodes a JWT.

    Raises:
        APIError: 401 when the token is expired or malformed
    """
    try:
        return jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise APIError('Invalid token', 401, code=ErrorCodes.UNAUTHORIZED[0])
    except jwt.InvalidTokenError:
        raise APIError('Invalid token', 401, code=ErrorCodes.UNAUTHORIZED[0])


def _bearer_token():
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip() or None
    return None


def token_required(f):
    """Loads the current user from the bearer token into flask.g."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from yarn_erp.models.user import User

        token = _bearer_token()
        if not token:
            raise APIError('Unauthorized', 401, code=ErrorCodes.UNAUTHORIZED[0])

        payload = decode_token(token)
        try:
            user_id = int(payload.get('sub') or payload.get('id'))
        except (TypeError, ValueError):
            raise APIError('Invalid token', 401, code=ErrorCodes.UNAUTHORIZED[0])

        user = db.session.get(User, user_id)
        if not user:
            raise APIError('User no longer exists', 401, code=ErrorCodes.UNAUTHORIZED[0])

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Restricts a route to the given roles. A superadmin passes every check."""
    def decorator(f):
        @wraps(f)
        @token_required
        def decorated_function(*args, **kwargs):
            role = g.current_user.role
            if role != 'superadmin' and role not in roles:
                raise APIError('Forbidden: insufficient permissions', 403, code=ErrorCodes.FORBIDDEN[0])
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def read_only_for_managers(f):
    """Managers may read but not modify."""
    @wraps(f)
    @token_required
    def decorated_function(*args, **kwargs):
        if g.current_user.role == 'manager' and request.method != 'GET':
            raise APIError('Managers have read-only access', 403, code=ErrorCodes.FORBIDDEN[0])
        return f(*args, **kwargs)
    return decorated_function


def current_user():
    return g.get('current_user')
