# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/retailpos/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import (
    SaleError,
    NotFoundError,
    InsufficientStockError,
    PersistenceError,
)
from ..validation import ValidationError, parse_sale_payload
from ..decorators import require_operator, require_role
from retailpos.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_error_response(e: SaleError):
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, InsufficientStockError):
        status = 409
    elif isinstance(e, PersistenceError):
        status = 503
    else:
        status = 400
    return jsonify({"error": str(e), "details": e.details}), status


@sales_bp.post("/")
@require_operator
@require_role("admin", "manager", "cashier")
def create_sale_route():
    """
    Finalize a cart into a sale.

    Available to: admin, manager, cashier
    """
    try:
        cart = parse_sale_payload(request.get_json(silent=True))
        sale = sales_service.process_sale(cart, g.operator_id)
        return jsonify({"sale": sale.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        current_app.logger.warning("Sale rolled back: %s (%s)", e, e.details)
        return _sale_error_response(e)
    except SaleError as e:
        return _sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_operator
@require_role("admin", "manager", "cashier")
def list_sales_route():
    """
    List sales, newest first.

    Query: filter=today|week|month|year|custom|all, startDate, endDate, page, limit
    """
    try:
        start = parse_iso_datetime(request.args.get("startDate"))
        end = parse_iso_datetime(request.args.get("endDate"))
    except ValueError:
        return jsonify({"error": "startDate and endDate must be ISO-8601 dates"}), 400

    try:
        result = sales_service.list_sales(
            period=request.args.get("filter"),
            start=start,
            end=end,
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
    except SaleError as e:
        return _sale_error_response(e)

    result["data"] = [sale.to_dict() for sale in result["data"]]
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@require_operator
@require_role("admin", "manager", "cashier")
def get_sale_route(sale_id: int):
    """Get sale with its line snapshots."""
    try:
        sale = sales_service.get_sale(sale_id)
    except NotFoundError as e:
        return _sale_error_response(e)
    return jsonify({"sale": sale.to_dict()}), 200
