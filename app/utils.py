"""
Ignyt - Request Utilities
Safe parsing helpers for request parameters and payloads
"""
from datetime import datetime, timezone


def safe_int(value, default=0, min_val=None, max_val=None):
    """
    Safely parse an integer from a request parameter.

    Args:
        value: The value to parse (string or None)
        default: Default value if parsing fails
        min_val: Minimum allowed value (optional)
        max_val: Maximum allowed value (optional)

    Returns:
        int: Parsed integer or default
    """
    try:
        result = int(value) if value is not None else default
    except (ValueError, TypeError):
        result = default

    if result is None:
        return result
    if min_val is not None:
        result = max(result, min_val)
    if max_val is not None:
        result = min(result, max_val)

    return result


def safe_bool(value, default=False):
    """
    Safely parse a boolean from a request parameter.
    Accepts: true, false, 1, 0, yes, no (case insensitive)
    """
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')

    return bool(value)


def parse_datetime(value):
    """
    Parse an ISO-8601 timestamp from a payload into a naive UTC datetime.

    Accepts a trailing 'Z' and explicit offsets. Returns None for empty
    values and raises ValueError for anything unparseable.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_id_list(values):
    """Turn a list of ids (ints or numeric strings) into a de-duplicated int list"""
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]
    ids = []
    for value in values:
        parsed = safe_int(value, None)
        if parsed is not None and parsed not in ids:
            ids.append(parsed)
    return ids
