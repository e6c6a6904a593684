"""
Sales Service - one-shot sale submission

WHY: A POS cart is submitted as a whole. The sale header, every line item
and every stock decrement they cause are written in a single unit of work:
either the whole sale lands or nothing does.

Line items freeze a snapshot of the product (title, code, images, size,
unit price) at submission time; nothing reads the live catalog to display
a historical sale.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..errors import PosError
from ..extensions import db
from ..models import Product, Sale, SaleItem, User
from ..models.auth import PERM_VIEW_FULL_SALES_HISTORY
from ..time_utils import utcnow
from ..validation import (
    CatalogLineInput,
    ManualLineInput,
    ValidationError,
    MAX_PRICE_CENTS,
)
from . import catalog_service, stock_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


class SaleNotFoundError(PosError):
    status_code = 404

    def __init__(self, sale_uuid: str):
        super().__init__("Sale not found", details={"sale_id": sale_uuid})


class TransactionFailure(PosError):
    """Store-level failure during a sale write. The message shown to clients is opaque."""
    status_code = 500


@dataclass(frozen=True)
class ItemSnapshot:
    """Immutable copy of everything a sale line needs, taken at submission time."""
    is_manual: bool
    product_id: int | None
    product_uuid: str | None
    title: str
    code: str
    image: str | None
    full_size_image: str | None
    selected_size: str | None
    quantity: int
    unit_price_cents: int
    discount_cents: int
    final_price_cents: int

    def to_row(self) -> SaleItem:
        return SaleItem(**asdict(self))


def _final_price(index: int, unit_price_cents: int, quantity: int, discount_cents: int, claimed: int | None) -> int:
    gross = unit_price_cents * quantity
    if discount_cents > gross:
        raise ValidationError(f"items[{index}].discount_cents exceeds the line amount")
    final = gross - discount_cents
    if claimed is not None and claimed != final:
        raise ValidationError(
            f"items[{index}].final_price_cents does not match unit_price_cents * quantity - discount_cents",
            details={"index": index, "expected": final, "received": claimed},
        )
    return final


def freeze_manual_item(line: ManualLineInput, index: int) -> ItemSnapshot:
    return ItemSnapshot(
        is_manual=True,
        product_id=None,
        product_uuid=None,
        title=line.title,
        code=line.code,
        image=None,
        full_size_image=None,
        selected_size=line.size,
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        discount_cents=line.discount_cents,
        final_price_cents=_final_price(
            index, line.unit_price_cents, line.quantity, line.discount_cents, line.final_price_cents
        ),
    )


def freeze_catalog_item(product: Product, line: CatalogLineInput, index: int) -> ItemSnapshot:
    """Snapshot the product as it stands inside the current transaction."""
    unit_price = line.unit_price_cents if line.unit_price_cents is not None else product.price_cents
    return ItemSnapshot(
        is_manual=False,
        product_id=product.id,
        product_uuid=product.uuid,
        title=product.title,
        code=product.code,
        image=product.image,
        full_size_image=product.full_size_image,
        selected_size=line.size,
        quantity=line.quantity,
        unit_price_cents=unit_price,
        discount_cents=line.discount_cents,
        final_price_cents=_final_price(
            index, unit_price, line.quantity, line.discount_cents, line.final_price_cents
        ),
    )


def _check_header(items, total_amount_cents, payment_method) -> None:
    if not items:
        raise ValidationError("Missing required fields for sale: items must be a non-empty list")
    for i, line in enumerate(items):
        if not isinstance(line, (CatalogLineInput, ManualLineInput)):
            raise ValidationError(f"items[{i}] must be a catalog or manual line item")
    if isinstance(total_amount_cents, bool) or not isinstance(total_amount_cents, int):
        raise ValidationError("total_amount_cents must be an integer")
    if total_amount_cents < 0 or total_amount_cents > MAX_PRICE_CENTS * 1000:
        raise ValidationError("total_amount_cents is out of range")
    if not payment_method or not str(payment_method).strip():
        raise ValidationError("payment_method is required")


def _check_known_prices(items, total_amount_cents: int) -> None:
    """Reject price and total mismatches that are knowable without reading the catalog."""
    known = []
    for index, line in enumerate(items):
        if line.unit_price_cents is None:
            continue
        known.append(_final_price(
            index, line.unit_price_cents, line.quantity, line.discount_cents, line.final_price_cents
        ))
    if len(known) == len(items):
        _check_total(total_amount_cents, known)


def _check_total(total_amount_cents: int, final_prices: list[int]) -> None:
    if not current_app.config.get("VALIDATE_SALE_TOTALS", True):
        return
    expected = sum(final_prices)
    if expected != total_amount_cents:
        raise ValidationError(
            "total_amount_cents does not match the sum of line final prices",
            details={"expected": expected, "received": total_amount_cents},
        )


def _run_sale_unit(func, *, action: str, context: dict):
    """Run a sale write; typed errors pass through, store failures become TransactionFailure."""
    try:
        return run_with_retry(func)
    except PosError:
        raise
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to %s (%s)", action, context)
        raise TransactionFailure(f"Failed to {action}") from exc


def _load_sale(sale_id: int) -> Sale:
    return (
        db.session.query(Sale)
        .options(selectinload(Sale.items), selectinload(Sale.user))
        .filter(Sale.id == sale_id)
        .populate_existing()
        .one()
    )


def commit_sale(
    items: list,
    total_amount_cents: int,
    payment_method: str,
    user_id: int | None,
    notes: str | None = None,
) -> Sale:
    """
    Record a sale and take its stock, all or nothing.

    Items are handled in the order given:
    - ManualLineInput: stored as-is, no stock effect.
    - CatalogLineInput: product resolved by external id (ProductNotFoundError
      if gone); when a size is given the stock engine sells from it
      (InsufficientStockError / InvalidStockValueError abort the whole sale).

    The header is inserted first so items can reference its id. Returns the
    sale re-read after commit.
    """
    _check_header(items, total_amount_cents, payment_method)
    _check_known_prices(items, total_amount_cents)

    def _op():
        begin_write_transaction()

        sale = Sale(
            user_id=user_id,
            total_amount_cents=total_amount_cents,
            payment_method=str(payment_method).strip(),
            notes=(notes or "").strip(),
            submission_date=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        snapshots = []
        for index, line in enumerate(items):
            if isinstance(line, ManualLineInput):
                snapshot = freeze_manual_item(line, index)
            else:
                product = catalog_service.require_product(line.product_uuid)
                if line.size:
                    stock_service.sell(product, line.size, line.quantity)
                snapshot = freeze_catalog_item(product, line, index)

            sale.items.append(snapshot.to_row())
            snapshots.append(snapshot)

        _check_total(total_amount_cents, [s.final_price_cents for s in snapshots])

        db.session.flush()
        db.session.commit()
        return sale.id

    sale_id = _run_sale_unit(
        _op,
        action="submit sale",
        context={"user_id": user_id, "items": len(items), "total_amount_cents": total_amount_cents},
    )

    sale = _load_sale(sale_id)
    current_app.logger.info(
        "Sale %s committed: user=%s items=%d total_cents=%d",
        sale.uuid, user_id, len(sale.items), sale.total_amount_cents,
    )
    return sale


def update_sale(
    sale_uuid: str,
    items: list,
    total_amount_cents: int,
    payment_method: str,
    notes: str | None = None,
) -> Sale:
    """
    Admin correction of a committed sale: replace the header fields and the
    whole item set.

    Snapshots are re-frozen from the current catalog. Stock is not touched;
    inventory corrections go through the stock endpoint.
    """
    _check_header(items, total_amount_cents, payment_method)
    _check_known_prices(items, total_amount_cents)

    def _op():
        begin_write_transaction()
        sale = lock_for_update(db.session.query(Sale).filter_by(uuid=sale_uuid)).first()
        if sale is None:
            raise SaleNotFoundError(sale_uuid)

        sale.total_amount_cents = total_amount_cents
        sale.payment_method = str(payment_method).strip()
        sale.notes = (notes or "").strip()

        sale.items.clear()
        db.session.flush()

        snapshots = []
        for index, line in enumerate(items):
            if isinstance(line, ManualLineInput):
                snapshot = freeze_manual_item(line, index)
            else:
                product = catalog_service.require_product(line.product_uuid)
                snapshot = freeze_catalog_item(product, line, index)
            sale.items.append(snapshot.to_row())
            snapshots.append(snapshot)

        _check_total(total_amount_cents, [s.final_price_cents for s in snapshots])

        db.session.commit()
        return sale.id

    sale_id = _run_sale_unit(_op, action="update sale", context={"sale_id": sale_uuid})
    current_app.logger.info("Sale %s updated: items=%d", sale_uuid, len(items))
    return _load_sale(sale_id)


def delete_sales(sale_uuids: list[str]) -> int:
    """
    Delete sales and their items in one unit of work. Unknown ids are skipped.

    Stock is NOT restored: post-sale inventory corrections are made by hand
    and restoring here would count them twice.
    """
    if not isinstance(sale_uuids, list) or not sale_uuids:
        raise ValidationError("No sale IDs provided for deletion.")

    def _op():
        begin_write_transaction()
        deleted = 0
        for sale_uuid in sale_uuids:
            sale = db.session.query(Sale).filter_by(uuid=sale_uuid).first()
            if sale is None:
                current_app.logger.warning("Sale %s not found for deletion", sale_uuid)
                continue
            db.session.delete(sale)
            deleted += 1
        db.session.commit()
        return deleted

    deleted = _run_sale_unit(_op, action="delete sales", context={"sale_ids": sale_uuids})
    current_app.logger.warning("Deleted %d sale(s); stock was not restored", deleted)
    return deleted


def _visible_sales_query(viewer: User):
    query = db.session.query(Sale).options(selectinload(Sale.items), selectinload(Sale.user))
    if not viewer.has_permission(PERM_VIEW_FULL_SALES_HISTORY):
        query = query.filter(Sale.user_id == viewer.id)
    return query


def list_sales(
    viewer: User,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int | None = None,
) -> list[Sale]:
    """
    Sales newest first.

    Employees without viewFullSalesHistory only see sales they submitted.
    Date bounds are inclusive and compare against submission_date.
    """
    query = _visible_sales_query(viewer)
    if date_from is not None:
        query = query.filter(Sale.submission_date >= date_from)
    if date_to is not None:
        query = query.filter(Sale.submission_date <= date_to)
    query = query.order_by(Sale.submission_date.desc(), Sale.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_sale(sale_uuid: str, viewer: User) -> Sale:
    sale = _visible_sales_query(viewer).filter(Sale.uuid == sale_uuid).first()
    if sale is None:
        raise SaleNotFoundError(sale_uuid)
    return sale
