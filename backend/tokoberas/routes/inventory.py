# Overview: Flask API routes for products and the stock ledger; parses input and returns JSON responses.

"""
Stock ledger routes.

Quantities only change through movements; there is no endpoint that writes
Product.stock directly. Manual changes go through /adjust with one of
adjustment, damage or correction.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..services import stock_service
from ..validation import coerce_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/products")
def list_products_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    low_stock_only = request.args.get("low_stock", "false").lower() == "true"
    products = stock_service.list_products(include_inactive=include_inactive, low_stock_only=low_stock_only)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@inventory_bp.post("/products")
def create_product_route():
    data = request.get_json(silent=True) or {}
    try:
        product = stock_service.create_product(
            code=data.get("code", ""),
            name=data.get("name", ""),
            category=data.get("category"),
            unit=data.get("unit") or "kg",
            purchase_price=data.get("purchase_price", 0),
            selling_price=data.get("selling_price", 0),
            stock=data.get("stock", 0),
            min_stock=data.get("min_stock", 0),
            user_id=data.get("user_id"),
        )
        return jsonify({"product": product.to_dict()}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = stock_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@inventory_bp.get("/products/<int:product_id>/movements")
def list_movements_route(product_id: int):
    limit = request.args.get("limit", type=int)
    try:
        stock_service.get_product(product_id)
        movements = stock_service.list_movements(product_id, limit=limit)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@inventory_bp.get("/products/<int:product_id>/chain")
def verify_chain_route(product_id: int):
    try:
        report = stock_service.verify_chain(product_id)
        return jsonify({"chain": report.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@inventory_bp.post("/adjust")
def adjust_stock_route():
    """
    Record a manual stock change.

    Body: {"product_id", "movement_type", "quantity", "description", "user_id"?}
    Damage may be sent with a positive quantity; it is booked as a removal.
    """
    data = request.get_json(silent=True) or {}
    try:
        movement = stock_service.adjust_stock(
            product_id=coerce_int(data.get("product_id"), "product_id", positive=True),
            movement_type=data.get("movement_type", ""),
            quantity=coerce_int(data.get("quantity"), "quantity"),
            description=data.get("description", ""),
            user_id=data.get("user_id"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
