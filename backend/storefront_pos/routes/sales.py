# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/storefront_pos/routes/sales.py
"""
Sales API routes.

- GET/POST require an authenticated operator.
- PUT and bulk delete are admin only.
- Employees without viewFullSalesHistory only see their own sales.
"""

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, error_response
from ..models import Sale
from ..services import sales_service
from ..time_utils import parse_iso_date
from ..validation import ModelValidationPolicy, parse_sale_payload
from ..decorators import require_auth, require_admin


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_POLICY = ModelValidationPolicy(
    writable_fields={"total_amount_cents", "payment_method", "notes"},
    required_on_create={"total_amount_cents", "payment_method"},
)


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - date_from / date_to: ISO date or datetime, inclusive
    - limit: int (optional)
    """
    try:
        date_from = parse_iso_date(request.args.get("date_from"))
        raw_to = request.args.get("date_to")
        date_to = parse_iso_date(raw_to)
        if date_to is not None and len(raw_to.strip()) == 10:
            # Date-only upper bound covers the whole day
            date_to = date_to + timedelta(days=1, microseconds=-1)
    except ValueError:
        return jsonify({"error": "date_from/date_to must be ISO-8601 dates"}), 400

    limit = None
    raw_limit = request.args.get("limit")
    if raw_limit is not None:
        limit = request.args.get("limit", type=int)
        if limit is None or limit < 1:
            return jsonify({"error": "limit must be a positive integer"}), 400
    sales = sales_service.list_sales(g.current_user, date_from=date_from, date_to=date_to, limit=limit)
    return jsonify([s.to_dict() for s in sales]), 200


@sales_bp.get("/<sale_uuid>")
@require_auth
def get_sale_route(sale_uuid: str):
    try:
        sale = sales_service.get_sale(sale_uuid, g.current_user)
    except PosError as e:
        return error_response(e)
    return jsonify(sale.to_dict()), 200


@sales_bp.post("")
@require_auth
def commit_sale_route():
    """
    Submit a cart as one sale.

    Body: {items: [...], total_amount_cents, payment_method, notes?}
    The submitting user is the authenticated operator.
    """
    payload = request.get_json(silent=True)
    try:
        sale_input = parse_sale_payload(payload, model=Sale, policy=SALE_POLICY)
        sale = sales_service.commit_sale(
            items=sale_input.items,
            total_amount_cents=sale_input.total_amount_cents,
            payment_method=sale_input.payment_method,
            user_id=g.current_user.id,
            notes=sale_input.notes,
        )
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(sale.to_dict()), 201


@sales_bp.put("/<sale_uuid>")
@require_auth
@require_admin
def update_sale_route(sale_uuid: str):
    payload = request.get_json(silent=True)
    try:
        sale_input = parse_sale_payload(payload, model=Sale, policy=SALE_POLICY)
        sale = sales_service.update_sale(
            sale_uuid,
            items=sale_input.items,
            total_amount_cents=sale_input.total_amount_cents,
            payment_method=sale_input.payment_method,
            notes=sale_input.notes,
        )
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale %s", sale_uuid)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(sale.to_dict()), 200


@sales_bp.delete("/bulk-delete")
@require_auth
@require_admin
def bulk_delete_sales_route():
    """Body: {sale_ids: [...]}. Stock is not restored."""
    payload = request.get_json(silent=True) or {}
    try:
        deleted = sales_service.delete_sales(payload.get("sale_ids"))
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk delete sales")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "deleted": deleted}), 200
