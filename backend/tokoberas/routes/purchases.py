# Overview: Flask API routes for stock purchases.

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, ValidationError
from ..services import purchase_service
from ..time_utils import parse_date
from ..validation import parse_line_items


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _purchase_payload(purchase) -> dict:
    body = purchase.to_dict()
    body["lines"] = [line.to_dict() for line in purchase.lines]
    return body


@purchases_bp.get("/")
def list_purchases_route():
    purchases = purchase_service.list_purchases(
        status=request.args.get("status"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
        return jsonify({"purchase": _purchase_payload(purchase)}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@purchases_bp.post("/")
def create_purchase_route():
    """Body: {"supplier_name", "items": [{"product_id", "quantity", "unit_cost"?}], "payment_method"?}"""
    data = request.get_json(silent=True) or {}
    try:
        try:
            purchase_date = parse_date(data.get("purchase_date"))
        except ValueError:
            raise ValidationError("purchase_date must be an ISO date")
        purchase = purchase_service.create_purchase(
            supplier_name=data.get("supplier_name", ""),
            items=parse_line_items(data.get("items"), price_field="unit_cost"),
            payment_method=data.get("payment_method", "cash"),
            notes=data.get("notes"),
            user_id=data.get("user_id"),
            purchase_date=purchase_date,
        )
        return jsonify({"purchase": _purchase_payload(purchase)}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/receive")
def receive_purchase_route(purchase_id: int):
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.receive_purchase(
            purchase_id,
            user_id=data.get("user_id"),
            update_cost=bool(data.get("update_cost", True)),
        )
        return jsonify({"purchase": _purchase_payload(purchase)}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/cancel")
def cancel_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.cancel_purchase(purchase_id)
        return jsonify({"purchase": _purchase_payload(purchase)}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500
