# Overview: Flask API routes for product lookup and stock adjustment.

# backend/storefront_pos/routes/products.py
"""
Product routes used by the POS grid and the inventory screen.

- Listing and lookup require authentication; hidden products are only
  listed for users with accessInventory.
- Stock edits require accessInventory, except the "sell" action which any
  operator may perform.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, error_response
from ..models.auth import PERM_ACCESS_INVENTORY
from ..services import catalog_service, stock_service
from ..services.stock_service import ProductNotFoundError, SellAdjustment
from ..decorators import require_auth

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: str (optional) - match on title or code
    - category_id: str (optional) - category external id
    - include_hidden: bool (optional, inventory users only)
    - page / per_page: int (optional)
    """
    include_hidden = request.args.get("include_hidden", "false").lower() == "true"
    if include_hidden and not g.current_user.has_permission(PERM_ACCESS_INVENTORY):
        include_hidden = False

    result = catalog_service.list_products(
        include_hidden=include_hidden,
        search=request.args.get("search"),
        category_uuid=request.args.get("category_id"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/<product_uuid>")
@require_auth
def get_product_route(product_uuid: str):
    product = catalog_service.find_product_by_external_id(product_uuid)
    if product is None:
        return error_response(ProductNotFoundError(product_uuid))
    return jsonify(product.to_dict()), 200


@products_bp.put("/<product_uuid>/stock")
@require_auth
def adjust_stock_route(product_uuid: str):
    """
    Adjust stock for one product.

    Body (one of):
    - {"size": "M", "new_stock": 7}
    - {"sizes": [{"size": "M", "stock": 4}, ...]}
    - {"action": "sell", "size": "M", "quantity_sold": 2}

    Returns the product with recomputed total_stock.
    """
    payload = request.get_json(silent=True)
    try:
        adjustment = stock_service.parse_stock_adjustment(payload)
    except PosError as e:
        return error_response(e)

    if not isinstance(adjustment, SellAdjustment) and not g.current_user.has_permission(PERM_ACCESS_INVENTORY):
        return jsonify({
            "error": "Forbidden: Inventory access permission required to directly set stock.",
            "required_permission": PERM_ACCESS_INVENTORY,
        }), 403

    try:
        product = stock_service.adjust_stock(product_uuid, adjustment, actor_user_id=g.current_user.id)
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock for product %s", product_uuid)
        return jsonify({"error": "Failed to update product stock"}), 500

    return jsonify(product.to_dict()), 200
