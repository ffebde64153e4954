"""
Centralised error handling and standard JSON responses.

Every error body carries ``success: false`` and ``error`` so clients can rely
on a single shape regardless of which blueprint answered.
"""
from flask import jsonify, current_app
from functools import wraps
from sqlalchemy.exc import IntegrityError
import traceback
import logging
from datetime import datetime

logger = logging.getLogger('yarn_erp')


class APIError(Exception):
    """
    API exception carrying an HTTP status and optional payload.
    """
    def __init__(self, message, status_code=400, payload=None, code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.code = code

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['success'] = False
        rv['error'] = self.message
        rv['status'] = self.status_code
        rv['timestamp'] = datetime.utcnow().isoformat()
        if self.code:
            rv['code'] = self.code
        return rv


class ErrorCodes:
    """Standard error codes"""
    VALIDATION_ERROR = ('VALIDATION_ERROR', 400)
    MISSING_FIELD = ('MISSING_FIELD', 400)
    NOT_FOUND = ('NOT_FOUND', 404)
    DUPLICATE = ('DUPLICATE', 409)
    CONFLICT = ('CONFLICT', 409)
    SERVER_ERROR = ('SERVER_ERROR', 500)
    UNAUTHORIZED = ('UNAUTHORIZED', 401)
    FORBIDDEN = ('FORBIDDEN', 403)


def not_found(entity, identifier=None):
    """Builds a 404 APIError for a missing entity."""
    message = f"{entity} not found" if identifier is None else f"{entity} {identifier} not found"
    return APIError(message, 404, code=ErrorCodes.NOT_FOUND[0])


def error_response(message, status_code=400, code=None, details=None):
    """
    Builds a standard error response.

    Args:
        message: Message shown to the user
        status_code: HTTP status (default 400)
        code: Internal error code (optional)
        details: Extra technical detail, only returned in debug mode

    Returns:
        tuple: (response, status_code)
    """
    response = {
        'success': False,
        'error': message,
        'status': status_code,
        'timestamp': datetime.utcnow().isoformat()
    }

    if code:
        response['code'] = code

    if details and current_app.debug:
        response['details'] = details

    return jsonify(response), status_code


def success_response(data=None, message=None, status_code=200, **extra):
    """
    Builds a standard success response.

    Args:
        data: Payload to return
        message: Optional message
        status_code: HTTP status (default 200)
        **extra: Additional top-level keys (token, created, ...)

    Returns:
        tuple: (response, status_code)
    """
    response = {'success': True}

    if data is not None:
        response['data'] = data

    if message:
        response['message'] = message

    response.update(extra)
    return jsonify(response), status_code


def handle_errors(f):
    """
    Decorator that turns exceptions raised inside a route into JSON responses.

    Usage:
        @bp.route('/api/example')
        @handle_errors
        def example_route():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Imported lazily to avoid a circular import with the app package
        from yarn_erp.extensions import db

        try:
            return f(*args, **kwargs)
        except APIError as e:
            db.session.rollback()
            logger.warning(f"APIError in {f.__name__}: {e.message}")
            return jsonify(e.to_dict()), e.status_code
        except IntegrityError as e:
            db.session.rollback()
            logger.warning(f"IntegrityError in {f.__name__}: {e.orig}")
            return error_response("Record already exists", 409, ErrorCodes.DUPLICATE[0])
        except ValueError as e:
            db.session.rollback()
            logger.warning(f"ValueError in {f.__name__}: {str(e)}")
            return error_response(str(e), 400, ErrorCodes.VALIDATION_ERROR[0])
        except KeyError as e:
            db.session.rollback()
            logger.warning(f"KeyError in {f.__name__}: Missing key {e}")
            return error_response(f"Missing required field: {e}", 400, ErrorCodes.MISSING_FIELD[0])
        except Exception as e:
            db.session.rollback()
            logger.error(f"Unhandled error in {f.__name__}: {str(e)}")
            logger.error(traceback.format_exc())

            return error_response(
                "Internal server error. Please try again later.",
                500,
                ErrorCodes.SERVER_ERROR[0],
                details=str(e) if current_app.debug else None
            )
    return decorated_function


def register_error_handlers(app):
    """Registers JSON handlers for errors raised outside @handle_errors."""

    @app.errorhandler(APIError)
    def _api_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def _not_found(e):
        return error_response("Resource not found", 404, ErrorCodes.NOT_FOUND[0])

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return error_response("Method not allowed", 405)


def log_operation(operation, status='success', **context):
    """
    Logs the outcome of an operation.

    Args:
        operation: Operation name (create_entry, stock_out, ...)
        status: 'success', 'warning' or 'error'
        **context: Extra data
    """
    log_data = {
        'operation': operation,
        'status': status,
        'timestamp': datetime.utcnow().isoformat(),
        **context
    }

    if status == 'error':
        logger.error(f"OPERATION: {log_data}")
    elif status == 'warning':
        logger.warning(f"OPERATION: {log_data}")
    else:
        logger.info(f"OPERATION: {log_data}")


def validate_required(data, required_fields):
    """
    Checks that every required field is present and not empty.

    Args:
        data: Dict to validate
        required_fields: List of required keys

    Raises:
        APIError: When a field is missing
    """
    missing = [f for f in required_fields if f not in data or data[f] is None or data[f] == '']
    if missing:
        raise APIError(
            f"Missing required fields: {', '.join(missing)}",
            400,
            code=ErrorCodes.MISSING_FIELD[0]
        )
