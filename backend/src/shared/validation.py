"""
Request field validation helpers.
Every helper raises ValidationError with a one-sentence message.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from shared.errors import ValidationError
from shared.utils import format_timestamp


def require_fields(body: dict, *fields: str) -> None:
    """Fail on the first field that is absent, None or blank."""
    for field in fields:
        value = body.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required")


def require_id(value: Optional[str], name: str) -> str:
    if not value:
        raise ValidationError(f"Missing {name}")
    return value


def choice(value: Any, allowed: Iterable[str], field: str) -> str:
    allowed = set(allowed)
    if value not in allowed:
        raise ValidationError(f"Invalid {field}: must be one of {', '.join(sorted(allowed))}")
    return value


def text(value: Any, field: str, max_length: Optional[int] = None) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def amount(value: Any, field: str) -> Decimal:
    """Non-negative monetary amount as Decimal."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not parsed.is_finite() or parsed < 0:
        raise ValidationError(f"{field} must be zero or greater")
    return parsed


def integer(value: Any, field: str, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if not parsed.is_finite() or parsed % 1 != 0:
        raise ValidationError(f"{field} must be an integer")
    parsed = int(parsed)
    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return parsed


def timestamp(value: Any, field: str) -> str:
    """
    Parse an ISO-8601 date or datetime into the stored UTC timestamp format.
    Naive values are taken as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be an ISO-8601 date")
    raw = value.strip()
    if raw.endswith('Z'):
        raw = raw[:-1] + '+00:00'
    try:
        moment = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    return format_timestamp(moment)


def string_list(value: Any, field: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def boolean(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    raise ValidationError(f"{field} must be true or false")


def rating(value: Any, field: str = 'rating') -> int:
    """Whole-star rating between 1 and 5."""
    return integer(value, field, minimum=1, maximum=5)


def pick(body: dict, fields: Iterable[str]) -> dict:
    """Subset of body limited to whitelisted fields that were actually sent."""
    return {f: body[f] for f in fields if f in body and body[f] is not None}
