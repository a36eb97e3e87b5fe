from typing import Any, Optional


def _to_positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number > 0 else None


def resolve_positive_number(*values: Any) -> Optional[int]:
    """Return the first value that reads as a positive integer, else None.

    Callers list values in priority order, e.g. a per-connection override
    followed by the application-wide default.
    """
    for value in values:
        number = _to_positive_int(value)
        if number is not None:
            return number
    return None
