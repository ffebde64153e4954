"""
Helpers to read request payloads and query strings.
Payloads arrive in camelCase from the web client; older clients send snake_case.
"""
from datetime import date, datetime, timedelta
from math import ceil

from flask import current_app, request

from .error_utils import APIError


def get_json_body():
    """Returns the JSON body or raises a 400 when it is missing."""
    data = request.get_json(silent=True)
    if data is None or not isinstance(data, dict):
        raise APIError('JSON payload required', 400)
    return data


def pick(data, *keys, default=None):
    """Returns the first present, non-None value among several aliases."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def has_any(data, *keys):
    return any(key in data for key in keys)


def get_str(data, *keys, default=None, strip=True):
    """
    Returns the first present value among the aliases, stripped unless strip=False.
    Raises a 400 when the value is not a string.
    """
    value = pick(data, *keys)
    if value is None:
        return default
    if not isinstance(value, str):
        raise APIError(f'{keys[0]} must be a string', 400)
    return value.strip() if strip else value


def parse_date(value, field='date', required=False):
    """
    Parses an ISO date (YYYY-MM-DD or full ISO datetime) into a date.

    Raises:
        APIError: When the value is required and missing, or malformed
    """
    if value in (None, ''):
        if required:
            raise APIError(f'{field} is required', 400)
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        raise APIError(f'{field} must be a valid date (YYYY-MM-DD)', 400)


def parse_number(value, field, minimum=None, allow_none=True, cast=float):
    """Parses a numeric value with an optional lower bound."""
    if value in (None, ''):
        if allow_none:
            return None
        raise APIError(f'{field} is required', 400)
    if isinstance(value, bool):
        raise APIError(f'{field} must be a number', 400)
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise APIError(f'{field} must be a number', 400)
    if minimum is not None and number < minimum:
        raise APIError(f'{field} must be greater than or equal to {minimum}', 400)
    return number


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'y', 'on')


def get_pagination():
    """
    Reads page/limit from the query string.

    Returns:
        tuple: (page, limit)
    """
    default_limit = current_app.config.get('DEFAULT_PAGE_SIZE', 50)
    max_limit = current_app.config.get('MAX_PAGE_SIZE', 500)

    page = request.args.get('page', 1, type=int) or 1
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginated(items, total, page, limit, items_key='items'):
    return {
        items_key: items,
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': ceil(total / limit) if limit else 0
    }


def get_date_range(default_days=None, from_keys=('dateFrom', 'startDate'), to_keys=('dateTo', 'endDate')):
    """
    Reads a date range from the query string.
    When default_days is given, missing bounds default to the last N days.
    """
    date_from = parse_date(pick(request.args, *from_keys), 'dateFrom')
    date_to = parse_date(pick(request.args, *to_keys), 'dateTo')

    if default_days is not None:
        if date_to is None:
            date_to = date.today()
        if date_from is None:
            date_from = date_to - timedelta(days=default_days)

    if date_from and date_to and date_from > date_to:
        raise APIError('dateFrom must be before dateTo', 400)
    return date_from, date_to


def parse_datetime(value, field='date', required=False):
    """Parses an ISO datetime; a bare date becomes midnight."""
    if value in (None, ''):
        if required:
            raise APIError(f'{field} is required', 400)
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise APIError(f'{field} must be a valid date', 400)
