from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import PosError
from .models.sales import SaleItem


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000


class ValidationError(PosError, ValueError):
    """400-level input problem, raised before the store is touched."""
    status_code = 400


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


@dataclass(frozen=True)
class CatalogLineInput:
    """Cart line that references a catalog product (and optionally one of its sizes)."""
    product_uuid: str
    size: str | None
    quantity: int
    unit_price_cents: int | None  # None -> current catalog price
    discount_cents: int = 0
    final_price_cents: int | None = None  # client's figure, checked against ours


@dataclass(frozen=True)
class ManualLineInput:
    """Free-form cart line with no catalog linkage and no stock effect."""
    title: str
    code: str
    size: str | None
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0
    final_price_cents: int | None = None


LineItemInput = Union[CatalogLineInput, ManualLineInput]


@dataclass(frozen=True)
class SaleInput:
    items: list
    total_amount_cents: int
    payment_method: str
    notes: str = ""


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _coerce_value(col, value: Any):
    if value is None:
        return None

    coltype = col.type
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
    Returns a cleaned patch dict with only writable fields. Keys outside the
    allowlist are ignored rather than rejected, since POS clients send
    display-only fields alongside the ones we store.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for k in policy.writable_fields:
        if k not in payload:
            continue
        col = cols[k]
        raw = payload[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and k in required:
            if val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _optional_str(item: dict, key: str) -> str | None:
    value = item.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _bounded_str(item: dict, key: str, column: str, *, index: int) -> str | None:
    """Optional string field, capped at the length of the SaleItem column it is stored in."""
    value = _optional_str(item, key)
    max_length = SaleItem.__table__.c[column].type.length
    if value is not None and max_length and len(value) > max_length:
        raise ValidationError(f"items[{index}].{key} exceeds max length {max_length}")
    return value


def _money(name: str, value: Any, *, index: int) -> int:
    cents = coerce_int(f"items[{index}].{name}", value)
    if cents < 0:
        raise ValidationError(f"items[{index}].{name} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"items[{index}].{name} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def parse_line_item(item: Any, index: int) -> LineItemInput:
    """
    Turn one raw cart entry into a CatalogLineInput or ManualLineInput.

    The `is_manual` flag picks the variant; fields of the other variant are
    ignored.
    """
    if not isinstance(item, dict):
        raise ValidationError(f"items[{index}] must be an object")

    if "quantity" not in item or item["quantity"] is None:
        raise ValidationError(f"items[{index}].quantity is required")
    quantity = coerce_int(f"items[{index}].quantity", item["quantity"])
    if quantity <= 0:
        raise ValidationError(f"items[{index}].quantity must be > 0")
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationError(f"items[{index}].quantity cannot exceed {MAX_LINE_QUANTITY}")

    discount = 0
    if item.get("discount_cents") is not None:
        discount = _money("discount_cents", item["discount_cents"], index=index)

    final_price = None
    if item.get("final_price_cents") is not None:
        final_price = coerce_int(f"items[{index}].final_price_cents", item["final_price_cents"])

    size = _bounded_str(item, "size", "selected_size", index=index)

    if item.get("is_manual") is True:
        if item.get("unit_price_cents") is None:
            raise ValidationError(f"items[{index}].unit_price_cents is required for manual items")
        unit_price = _money("unit_price_cents", item["unit_price_cents"], index=index)
        title = _bounded_str(item, "title", "title", index=index)
        if not title:
            raise ValidationError(f"items[{index}].title is required for manual items")
        if discount > unit_price * quantity:
            raise ValidationError(f"items[{index}].discount_cents exceeds the line amount")
        return ManualLineInput(
            title=title,
            code=_bounded_str(item, "code", "code", index=index) or "",
            size=size,
            quantity=quantity,
            unit_price_cents=unit_price,
            discount_cents=discount,
            final_price_cents=final_price,
        )

    product_uuid = _bounded_str(item, "product_id", "product_uuid", index=index)
    if not product_uuid:
        raise ValidationError(f"items[{index}].product_id is required for catalog items")

    unit_price = None
    if item.get("unit_price_cents") is not None:
        unit_price = _money("unit_price_cents", item["unit_price_cents"], index=index)
        if discount > unit_price * quantity:
            raise ValidationError(f"items[{index}].discount_cents exceeds the line amount")

    return CatalogLineInput(
        product_uuid=product_uuid,
        size=size,
        quantity=quantity,
        unit_price_cents=unit_price,
        discount_cents=discount,
        final_price_cents=final_price,
    )


def parse_sale_payload(payload: Any, *, model: DeclarativeMeta, policy: ModelValidationPolicy) -> SaleInput:
    """Validate a commit/update sale body. Raises ValidationError; never touches the store."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Missing required fields for sale: items must be a non-empty list")

    header = dict(payload)
    if header.get("notes") is None:
        header.pop("notes", None)
    patch = validate_payload(model=model, payload=header, policy=policy, partial=False)

    if patch["total_amount_cents"] < 0:
        raise ValidationError("total_amount_cents must be >= 0")

    return SaleInput(
        items=[parse_line_item(item, i) for i, item in enumerate(items)],
        total_amount_cents=patch["total_amount_cents"],
        payment_method=patch["payment_method"],
        notes=patch.get("notes") or "",
    )
