from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping


# Maximum single amount: 9,999,999.99 in minor units.
# Prevents overflow and nonsensical tenders/floats.
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem (non-positive quantity, missing field)."""


class ConflictError(ValueError):
    """409-level business rule conflict (no active cart, shift already open)."""


class NotFoundError(ConflictError):
    """Referenced record does not exist in the local store."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals and
    scientific notation so that money never silently loses precision.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be positive")
    return number


def require_amount_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    amount = coerce_int(value, field)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'non-negative' if allow_zero else 'positive'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return amount


def require_tax_rate(value: Any, field: str = "tax_rate") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number between 0 and 1")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number between 0 and 1")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError(f"{field} must be a number between 0 and 1")
    return rate


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_choice(value: Any, field: str, choices) -> str:
    if value not in choices:
        raise ValidationError(f"Invalid {field}: {value}. Must be one of {sorted(choices)}")
    return value


def require_fields(data: Mapping[str, Any] | None, *fields: str) -> Mapping[str, Any]:
    """Ensure a JSON body is present and carries every required key."""
    if not isinstance(data, Mapping):
        raise ValidationError("JSON body required")
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")
    return data
