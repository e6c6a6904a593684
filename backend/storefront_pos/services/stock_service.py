# Overview: Stock adjustment engine; the only code that writes ProductSize.stock.

# backend/storefront_pos/services/stock_service.py
"""
Stock Invariants (authoritative)

- Stock is stored per product size (ProductSize.stock) and is never negative.
- Total stock of a product = SUM(stock) over its size rows.
- A product with zero size rows is untracked: sells never block on it.

Modes:
- sell: decrement inside the caller's transaction. The row is re-read under
  lock; if stock < quantity the caller gets InsufficientStockError. Sell
  never clamps to zero.
- set_absolute: upsert one size to a given value (negatives clamp to 0).
- replace_all: drop every size row of the product and insert the given list
  (negatives clamp to 0). Calling it twice with the same list is a no-op the
  second time.

Transactions:
- sell/set_absolute/replace_all never commit; they run inside whatever
  unit of work the caller opened (a sale commit or adjust_stock below).
- adjust_stock opens its own unit of work holding the write lock and commits.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from flask import current_app

from ..errors import PosError
from ..extensions import db
from ..models import Product, ProductSize
from ..validation import ValidationError, coerce_int
from . import catalog_service
from .concurrency import begin_write_transaction, run_with_retry


class ProductNotFoundError(PosError):
    status_code = 404

    def __init__(self, product_uuid: str):
        super().__init__(
            f"Product with id {product_uuid} not found.",
            details={"product_id": product_uuid},
        )
        self.product_uuid = product_uuid


class InsufficientStockError(PosError):
    status_code = 409

    def __init__(self, *, product_uuid: str, title: str, size: str, available: int, requested: int):
        super().__init__(
            f"Not enough stock for {title} (Size: {size}). Available: {available}, Requested: {requested}.",
            details={
                "product_id": product_uuid,
                "title": title,
                "size": size,
                "available": available,
                "requested": requested,
            },
        )
        self.product_uuid = product_uuid
        self.size = size
        self.available = available
        self.requested = requested


class InvalidStockValueError(PosError):
    status_code = 400


@dataclass(frozen=True)
class SellAdjustment:
    size: str
    quantity: int


@dataclass(frozen=True)
class SetAbsoluteAdjustment:
    size: str
    new_stock: int


@dataclass(frozen=True)
class ReplaceAllAdjustment:
    sizes: tuple  # ((size_name, stock), ...)


StockAdjustment = Union[SellAdjustment, SetAbsoluteAdjustment, ReplaceAllAdjustment]


def _stock_int(name: str, value: Any) -> int:
    if value is None:
        raise InvalidStockValueError(f"{name} is required")
    try:
        return coerce_int(name, value)
    except ValidationError as exc:
        raise InvalidStockValueError(exc.message) from exc


def _size_label(value: Any) -> str:
    if value is None or not str(value).strip():
        raise InvalidStockValueError("size is required")
    label = str(value).strip()
    if len(label) > 100:
        raise InvalidStockValueError("size exceeds max length 100")
    return label


def _normalize_sizes(sizes: Any) -> tuple:
    if not isinstance(sizes, list):
        raise InvalidStockValueError("sizes must be a list of {size, stock}")

    seen: set[str] = set()
    normalized = []
    for i, entry in enumerate(sizes):
        if not isinstance(entry, dict):
            raise InvalidStockValueError(f"sizes[{i}] must be an object")
        label = _size_label(entry.get("size"))
        if label in seen:
            raise InvalidStockValueError(f'Duplicate size "{label}"')
        seen.add(label)
        normalized.append((label, max(0, _stock_int(f"sizes[{i}].stock", entry.get("stock")))))
    return tuple(normalized)


def parse_stock_adjustment(payload: Any) -> StockAdjustment:
    """
    Pick the adjustment mode from a request body.

    - {"sizes": [{"size": "M", "stock": 4}, ...]}      -> ReplaceAllAdjustment
    - {"action": "sell", "size": "M", "quantity_sold": 2} -> SellAdjustment
    - {"size": "M", "new_stock": 7}                     -> SetAbsoluteAdjustment
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if "sizes" in payload:
        return ReplaceAllAdjustment(sizes=_normalize_sizes(payload["sizes"]))

    if payload.get("action") == "sell":
        quantity = _stock_int("quantity_sold", payload.get("quantity_sold"))
        if quantity <= 0:
            raise InvalidStockValueError("quantity_sold must be a positive integer")
        return SellAdjustment(size=_size_label(payload.get("size")), quantity=quantity)

    if "size" in payload and "new_stock" in payload:
        return SetAbsoluteAdjustment(
            size=_size_label(payload["size"]),
            new_stock=max(0, _stock_int("new_stock", payload["new_stock"])),
        )

    raise ValidationError("Invalid stock update payload.")


def sell(product: Product, size_name: str, quantity: int) -> int | None:
    """
    Decrement one size of a product inside the caller's transaction.

    Returns the remaining stock, or None when the product has no sizes at all
    (untracked). Raises InvalidStockValueError for a bad quantity or a size
    the product does not have, InsufficientStockError when stock < quantity.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidStockValueError("quantity must be a positive integer")

    row = catalog_service.find_size_stock(product.id, size_name, lock=True)
    if row is None:
        if catalog_service.count_sizes(product.id) == 0:
            return None
        raise InvalidStockValueError(
            f'Size "{size_name}" not found for this product.',
            details={"product_id": product.uuid, "size": size_name},
        )

    if row.stock < quantity:
        raise InsufficientStockError(
            product_uuid=product.uuid,
            title=product.title,
            size=size_name,
            available=row.stock,
            requested=quantity,
        )

    # Guarded decrement: a writer that slipped past the lock cannot take stock below zero
    updated = (
        db.session.query(ProductSize)
        .filter(ProductSize.id == row.id, ProductSize.stock >= quantity)
        .update({ProductSize.stock: ProductSize.stock - quantity}, synchronize_session=False)
    )
    db.session.expire(row, ["stock"])
    if updated != 1:
        raise InsufficientStockError(
            product_uuid=product.uuid,
            title=product.title,
            size=size_name,
            available=row.stock,
            requested=quantity,
        )
    return row.stock


def set_absolute(product: Product, size_name: str, new_stock: int) -> ProductSize:
    """Upsert one size row to new_stock (clamped to >= 0) inside the caller's transaction."""
    value = max(0, new_stock)
    row = catalog_service.find_size_stock(product.id, size_name, lock=True)
    if row is None:
        row = ProductSize(product_id=product.id, size_name=size_name, stock=value)
        db.session.add(row)
    else:
        row.stock = value
    db.session.flush()
    db.session.expire(product, ["sizes"])
    return row


def replace_all(product: Product, sizes) -> list[ProductSize]:
    """
    Replace every size row of the product with `sizes` inside the caller's transaction.

    `sizes` is an iterable of (size_name, stock) pairs; stock is clamped to >= 0.
    """
    db.session.query(ProductSize).filter_by(product_id=product.id).delete(synchronize_session=False)
    db.session.expire(product, ["sizes"])

    rows = [ProductSize(product_id=product.id, size_name=name, stock=max(0, stock)) for name, stock in sizes]
    db.session.add_all(rows)
    db.session.flush()
    return rows


def apply_adjustment(product: Product, adjustment: StockAdjustment) -> None:
    if isinstance(adjustment, SellAdjustment):
        sell(product, adjustment.size, adjustment.quantity)
    elif isinstance(adjustment, SetAbsoluteAdjustment):
        set_absolute(product, adjustment.size, adjustment.new_stock)
    elif isinstance(adjustment, ReplaceAllAdjustment):
        replace_all(product, adjustment.sizes)
    else:
        raise TypeError(f"Unknown stock adjustment {adjustment!r}")


def adjust_stock(product_uuid: str, adjustment: StockAdjustment, *, actor_user_id: int | None = None) -> Product:
    """
    Standalone stock edit (inventory screen or a POS sell outside a sale).

    Runs in its own unit of work: take the write lock, lock the product row,
    apply the adjustment, commit. On any error nothing is written.
    """
    def _op():
        begin_write_transaction()
        product = catalog_service.require_product(product_uuid, lock=True)
        apply_adjustment(product, adjustment)
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Stock adjusted: product=%s mode=%s user=%s total_stock=%d",
        product_uuid, type(adjustment).__name__, actor_user_id, product.total_stock,
    )
    return product
