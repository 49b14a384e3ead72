# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales routes (penjualan).

Every write here is one unit of work in sales_service: stock movements and
the financial transaction succeed or fail together.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, ValidationError
from ..services import sales_service, transaction_service
from ..time_utils import parse_date
from ..validation import parse_line_items


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_payload(sale) -> dict:
    body = sale.to_dict()
    body["lines"] = [line.to_dict() for line in sale.lines]
    tx = transaction_service.get_sale_transaction(sale.id)
    body["transaction"] = tx.to_dict() if tx else None
    return body


def _error(e: DomainError):
    return jsonify({"error": str(e), "details": e.details}), e.status_code


@sales_bp.get("/")
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            status=request.args.get("status"),
            channel=request.args.get("channel"),
            start=parse_date(request.args.get("start")),
            end=parse_date(request.args.get("end")),
            limit=request.args.get("limit", 100, type=int),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)


@sales_bp.post("/")
def create_sale_route():
    """
    Create a sale and book its stock and money.

    Body: {"items": [{"product_id", "quantity", "unit_price"?}], "payment_method",
    "channel"?, "customer_name"?, "notes"?, "user_id"?, "transaction_date"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        try:
            transaction_date = parse_date(data.get("transaction_date"))
        except ValueError:
            raise ValidationError("transaction_date must be an ISO date")
        sale = sales_service.create_sale(
            items=parse_line_items(data.get("items")),
            payment_method=data.get("payment_method", "cash"),
            channel=data.get("channel"),
            customer_name=data.get("customer_name"),
            notes=data.get("notes"),
            user_id=data.get("user_id"),
            transaction_date=transaction_date,
        )
        return jsonify({"sale": _sale_payload(sale)}), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>")
def edit_sale_route(sale_id: int):
    """Replace the lines of a sale. Completed sales cannot be edited."""
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.edit_sale(
            sale_id,
            items=parse_line_items(data.get("items")),
            user_id=data.get("user_id"),
            payment_method=data.get("payment_method"),
            customer_name=data.get("customer_name"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to edit sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sales_service.delete_sale(sale_id, user_id=data.get("user_id"))
        return jsonify({"deleted": True, "sale_id": sale_id}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.cancel_sale(sale_id, data.get("reason", ""), user_id=data.get("user_id"))
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/payment-proof")
def submit_payment_proof_route(sale_id: int):
    try:
        sale = sales_service.submit_payment_proof(sale_id)
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to submit payment proof")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/confirm-payment")
def confirm_payment_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.confirm_payment(sale_id, user_id=data.get("user_id"))
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to confirm payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/reject-payment")
def reject_payment_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.reject_payment(sale_id, data.get("reason", ""), user_id=data.get("user_id"))
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to reject payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/ready")
def ready_for_pickup_route(sale_id: int):
    try:
        sale = sales_service.mark_ready_for_pickup(sale_id)
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to mark sale ready for pickup")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/complete")
def complete_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.complete_sale(sale_id, user_id=data.get("user_id"))
        return jsonify({"sale": _sale_payload(sale)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500
