# backend/storefront_pos/services/catalog_service.py
"""
Catalog lookup.

Read-only view of products and their per-size stock for the sale
coordinator, the stock engine and the POS product grid. Nothing here writes
catalog rows.
"""
from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Category, Product, ProductSize
from .concurrency import lock_for_update


def find_product_by_external_id(product_uuid: str, *, lock: bool = False) -> Product | None:
    query = db.session.query(Product).filter_by(uuid=product_uuid).populate_existing()
    if lock:
        query = lock_for_update(query)
    return query.first()


def require_product(product_uuid: str, *, lock: bool = False) -> Product:
    """Like find_product_by_external_id but raises ProductNotFoundError."""
    from .stock_service import ProductNotFoundError

    product = find_product_by_external_id(product_uuid, lock=lock)
    if product is None:
        raise ProductNotFoundError(product_uuid)
    return product


def find_size_stock(product_id: int, size_name: str, *, lock: bool = False) -> ProductSize | None:
    """
    Current stock row for one product size.

    With lock=True the row is read with SELECT ... FOR UPDATE so the caller
    can decide on it and write it in the same transaction.
    """
    # populate_existing: another transaction may have changed the row since this session last loaded it
    query = db.session.query(ProductSize).filter_by(product_id=product_id, size_name=size_name).populate_existing()
    if lock:
        query = lock_for_update(query)
    return query.first()


def count_sizes(product_id: int) -> int:
    return db.session.query(ProductSize).filter_by(product_id=product_id).count()


def list_products(
    *,
    include_hidden: bool = False,
    search: str | None = None,
    category_uuid: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing for the POS grid and the inventory screen.

    Args:
        include_hidden: include products with is_visible=False
        search: case-insensitive match on title or code
        category_uuid: restrict to one category
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Product).options(
        selectinload(Product.sizes),
        selectinload(Product.category),
        selectinload(Product.manufacturer),
    )

    if not include_hidden:
        base_query = base_query.filter(Product.is_visible.is_(True))

    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(Product.title.ilike(pattern), Product.code.ilike(pattern)))

    if category_uuid:
        base_query = base_query.join(Category, Product.category_id == Category.id).filter(Category.uuid == category_uuid)

    base_query = base_query.order_by(Product.title.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
