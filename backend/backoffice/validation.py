from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from backoffice.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .money import to_decimal
from .records import ORDER_STATUSES


# Maximum amount: 9,999,999,999.99 fits Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: the target row does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU, stale version)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
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
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_amount(key: str, value: Any) -> Decimal:
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{key} must be a number")
    try:
        amount = to_decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_amount(col.key, value)

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
            if not col.nullable:
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


def _require_non_negative(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None and patch[key] < 0:
        raise ValidationError(f"{key} must be >= 0")


def enforce_rules_product(patch: dict) -> None:
    _require_non_negative(patch, "price")


def enforce_rules_stock_entry(patch: dict) -> None:
    if "purchased_quantity" in patch:
        if patch["purchased_quantity"] is None or patch["purchased_quantity"] < 0:
            raise ValidationError("purchased_quantity must be >= 0")
    _require_non_negative(patch, "purchase_price")


def enforce_rules_order(patch: dict) -> None:
    _require_non_negative(patch, "discount")
    _require_non_negative(patch, "amount_received")
    if "status" in patch and patch["status"] not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")


def enforce_rules_line(line: dict) -> None:
    """Order and return lines: quantity > 0, sell_price >= 0."""
    if line["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    if line["sell_price"] < 0:
        raise ValidationError("sell_price must be >= 0")


def enforce_rules_expense(patch: dict) -> None:
    _require_non_negative(patch, "amount")


def validate_lines(lines: Any, *, extra_fields: frozenset[str] = frozenset()) -> list[dict]:
    """
    Validate the `products` array of an order or return payload.

    Each line needs product_id, quantity and sell_price; `extra_fields` lists
    optional integer references a caller accepts (e.g. order_id on returns).
    Duplicate product_ids are rejected since (parent, product) is the line key.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one product is required")

    allowed = {"product_id", "quantity", "sell_price"} | set(extra_fields)
    cleaned: list[dict] = []
    seen: set[tuple] = set()
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each product line must be an object")
        for k in raw.keys():
            if k not in allowed:
                raise ValidationError(f"Field not allowed in product line: {k}")
        missing = sorted(f for f in ("product_id", "quantity", "sell_price") if raw.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields in product line: {', '.join(missing)}")

        line = {
            "product_id": coerce_int("product_id", raw["product_id"]),
            "quantity": coerce_int("quantity", raw["quantity"]),
            "sell_price": coerce_amount("sell_price", raw["sell_price"]),
        }
        for k in extra_fields:
            line[k] = coerce_int(k, raw[k]) if raw.get(k) is not None else None
        enforce_rules_line(line)

        key = (line["product_id"],) + tuple(line[k] for k in sorted(extra_fields))
        if key in seen:
            raise ValidationError(f"Duplicate product line for product {line['product_id']}")
        seen.add(key)
        cleaned.append(line)
    return cleaned
