from __future__ import annotations

from decimal import Decimal
from typing import Any

from .money import decimal_places, to_decimal


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# Keeps each line amount inside a 32-bit integer column; order totals are BigInteger
MAX_AMOUNT = Decimal("9999999.99")
MAX_QUANTITY = Decimal("99999999.99")


class ValidationError(ValueError):
    """422-level input problem at the request boundary."""

    code = "ValidationError"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def ensure_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def reject_unknown_fields(payload: dict, allowed: set[str]) -> None:
    """Reject fields the client is not allowed to set (security boundary)."""
    unknown = sorted(k for k in payload.keys() if k not in allowed)
    if unknown:
        raise ValidationError(
            f"Field not allowed: {', '.join(unknown)}",
            details={"fields": unknown},
        )


def require_fields(payload: dict, required: set[str]) -> None:
    missing = sorted(f for f in required if payload.get(f) is None)
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"fields": missing},
        )


def parse_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_decimal(
    value: Any,
    field: str,
    *,
    places: int = 2,
    minimum: Decimal | None = None,
    maximum: Decimal | None = None,
    exclusive_minimum: bool = False,
) -> Decimal:
    """
    Coerce a JSON number or numeric string into a Decimal.

    Rejects more than `places` fractional digits instead of rounding them
    away; silently rounding money input would hide client bugs.
    """
    if isinstance(value, str) and 'e' in value.lower():
        raise ValidationError(f"{field} must be a plain number (scientific notation not allowed)")
    try:
        number = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")

    if decimal_places(number) > places:
        raise ValidationError(f"{field} allows at most {places} decimal places")

    if minimum is not None:
        if exclusive_minimum and number <= minimum:
            raise ValidationError(f"{field} must be > {minimum}")
        if not exclusive_minimum and number < minimum:
            raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return number


def parse_text(
    value: Any,
    field: str,
    *,
    max_length: int | None = None,
    allow_blank: bool = True,
) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not allow_blank and text == "":
        raise ValidationError(f"{field} cannot be blank")
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def parse_optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = parse_text(value, field, max_length=max_length)
    return text or None
