from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError
from .money import MAX_AMOUNT
from .time_utils import parse_iso_datetime


def require_fields(payload: Any, *fields: str) -> dict:
    """Reject non-object payloads and payloads missing any of ``fields``."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [f for f in fields if payload.get(f) is None]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"fields": missing},
        )
    return payload


def coerce_int(field: str, value: Any, *, minimum: int | None = None, allow_none: bool = False) -> int | None:
    """
    Strict integer coercion: rejects bools, floats, decimals and scientific
    notation ("1e3", "12.5").
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def coerce_decimal(
    field: str,
    value: Any,
    *,
    minimum: Decimal | int | None = None,
    maximum: Decimal | int | None = MAX_AMOUNT,
    allow_none: bool = False,
) -> Decimal | None:
    """
    Coerce JSON numbers and numeric strings to Decimal.

    Floats go through ``str`` first so 0.1 stays 0.1 instead of its binary
    expansion.
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return result


def coerce_str(field: str, value: Any, *, max_length: int | None = None, allow_none: bool = False) -> str | None:
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    result = str(value).strip()
    if not result:
        if allow_none:
            return None
        raise ValidationError(f"{field} cannot be blank")
    if max_length is not None and len(result) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return result


def coerce_datetime(field: str, value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
