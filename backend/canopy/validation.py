from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

# Weights carry two decimals (grams)
WEIGHT_QUANT = Decimal("0.01")

# Stored as integer hundredths of the unit (centigrams for weighed material)
CENTIGRAMS_PER_GRAM = 100

# Sanity ceiling: 100 tonnes, expressed in grams
MAX_WEIGHT_GRAMS = Decimal("100000000")


class DomainError(Exception):
    """Base for errors the HTTP layer maps to a client-facing status code."""

    status_code = 400


class NotFoundError(DomainError):
    """404-level: entity missing or outside the caller's location."""

    status_code = 404


class ValidationError(DomainError, ValueError):
    """400-level input problem or business-rule violation."""

    status_code = 400


class ConflictError(DomainError):
    """409-level: a conditional update lost a race (or stock ran out)."""

    status_code = 409


def to_weight(value: Any, field: str, *, allow_zero: bool = False) -> Decimal:
    """
    Coerce a client value into a gram weight with two decimals.

    Rejects booleans, non-numeric strings, NaN/Infinity, negatives and
    (unless allow_zero) zero.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    try:
        if isinstance(value, float):
            # str() avoids carrying binary float noise into Decimal
            weight = Decimal(str(value))
        else:
            weight = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")

    if not weight.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    weight = weight.quantize(WEIGHT_QUANT, rounding=ROUND_HALF_UP)

    if weight < 0:
        raise ValidationError(f"{field} must be >= 0")
    if not allow_zero and weight == 0:
        raise ValidationError(f"{field} must be > 0")
    if weight > MAX_WEIGHT_GRAMS:
        raise ValidationError(f"{field} cannot exceed {MAX_WEIGHT_GRAMS} grams")

    return weight


def to_positive_int(value: Any, field: str) -> int:
    """Strict integer > 0 (no floats, no scientific notation)."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer")
        result = int(stripped)
    else:
        raise ValidationError(f"{field} must be an integer")

    if result <= 0:
        raise ValidationError(f"{field} must be > 0")
    return result


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def require_exactly_one(**candidates: Any) -> str:
    """
    Exactly one of the keyword arguments must be set; returns its name.

    Used for plant-or-inventory targets (room moves, destructions).
    """
    provided = [name for name, value in candidates.items() if value is not None]
    if len(provided) != 1:
        names = " or ".join(candidates.keys())
        raise ValidationError(f"Exactly one of {names} is required")
    return provided[0]


def clean_patch(payload: dict | None, writable_fields: set[str]) -> dict:
    """
    Reject unknown / non-writable fields and strip string values.

    Returns a new dict containing only the allowlisted keys.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for key in payload.keys():
        if key not in writable_fields:
            raise ValidationError(f"Field not allowed: {key}")

    patch: dict = {}
    for key, value in payload.items():
        patch[key] = value.strip() if isinstance(value, str) else value
    return patch


def weight_to_str(value: Decimal | None) -> str | None:
    """Serialize a stored weight without float rounding ("60.00")."""
    if value is None:
        return None
    return str(Decimal(value).quantize(WEIGHT_QUANT))


def to_centigrams(value: Decimal | int | None) -> int | None:
    """Two-decimal weight -> integer column value (0.30 g -> 30)."""
    if value is None:
        return None
    scaled = Decimal(value) * CENTIGRAMS_PER_GRAM
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def from_centigrams(value: int | None) -> Decimal | None:
    """Integer column value -> Decimal weight (30 -> Decimal("0.30"))."""
    if value is None:
        return None
    return (Decimal(int(value)) / CENTIGRAMS_PER_GRAM).quantize(WEIGHT_QUANT)
