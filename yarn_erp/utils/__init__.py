"""Backend utilities"""
from .error_utils import (
    APIError,
    ErrorCodes,
    not_found,
    error_response,
    success_response,
    handle_errors,
    register_error_handlers,
    log_operation,
    validate_required
)

__all__ = [
    'APIError',
    'ErrorCodes',
    'not_found',
    'error_response',
    'success_response',
    'handle_errors',
    'register_error_handlers',
    'log_operation',
    'validate_required'
]
