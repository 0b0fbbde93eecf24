from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from matmx.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import BigInteger, Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ConflictError, ValidationError  # noqa: F401  (re-exported for routes)


# Maximum money value: 9,999,999,999.99 fits Numeric(12, 2)
MAX_MONEY = Decimal("9999999999.99")

# Signed ranges of SQL INTEGER and BIGINT columns
INT_RANGE = (-(2**31), 2**31 - 1)
BIGINT_RANGE = (-(2**63), 2**63 - 1)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - allow_null_fields: extra allowlist for setting null even if you want to special-case later
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    # Optional: keep for future; currently we just honor SQLAlchemy column.nullable
    allow_null_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_integer(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def check_integer_range(key: str, value: int, bounds: tuple[int, int] = INT_RANGE) -> int:
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(f"{key} must be between {low} and {high}")
    return value


def _coerce_decimal(key: str, value: Any, scale: int | None) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not dec.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    if scale is not None:
        try:
            quantized = dec.quantize(Decimal(1).scaleb(-scale))
        except InvalidOperation:
            raise ValidationError(f"{key} is out of range")
        # Amounts are carried as provided; more precision than the column holds is an input error
        if quantized != dec:
            raise ValidationError(f"{key} allows at most {scale} decimal places")
        dec = quantized
    return dec


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        bounds = BIGINT_RANGE if isinstance(coltype, BigInteger) else INT_RANGE
        return check_integer_range(col.key, _coerce_integer(col.key, value), bounds)

    if isinstance(coltype, Numeric):
        return _coerce_decimal(col.key, value, coltype.scale)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Calendar dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable and k not in (policy.allow_null_fields or set()):
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_money(patch: dict, key: str) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_MONEY:
        raise ValidationError(f"{key} cannot exceed {MAX_MONEY}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_money(patch, "unit_price")
    if "reorder_threshold" in patch and patch["reorder_threshold"] is not None:
        if patch["reorder_threshold"] < 0:
            raise ValidationError("reorder_threshold must be >= 0")


def enforce_rules_quote_item(patch: dict) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    _check_money(patch, "unit_price")
    _check_money(patch, "total_price")
    if patch.get("markup_percent") is not None and patch["markup_percent"] < 0:
        raise ValidationError("markup_percent must be >= 0")
    discount = patch.get("discount_percent")
    if discount is not None and not (0 <= discount <= 100):
        raise ValidationError("discount_percent must be between 0 and 100")


def enforce_rules_inventory_adjust(patch: dict) -> None:
    # ADJUST requires a non-zero signed delta
    if patch.get("change") is None or patch["change"] == 0:
        raise ValidationError("change must be a non-zero integer")


def enforce_rules_order(patch: dict) -> None:
    _check_money(patch, "shipping_cost")
