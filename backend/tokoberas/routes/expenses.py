# Overview: Flask API routes for manual operating expenses (pengeluaran).

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, ValidationError
from ..models.expenses import EXPENSE_KINDS
from ..services import expense_service
from ..time_utils import parse_date
from ..validation import coerce_int


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("/")
def list_expenses_route():
    try:
        start = parse_date(request.args.get("start"))
        end = parse_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO dates"}), 400
    expenses = expense_service.list_expenses(
        status=request.args.get("status"),
        kind=request.args.get("kind"),
        start=start,
        end=end,
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200


@expenses_bp.get("/kinds")
def list_kinds_route():
    return jsonify({"kinds": [{"value": k, "label": v} for k, v in EXPENSE_KINDS.items()]}), 200


@expenses_bp.get("/<int:expense_id>")
def get_expense_route(expense_id: int):
    try:
        expense = expense_service.get_expense(expense_id)
        return jsonify({"expense": expense.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@expenses_bp.post("/")
def create_expense_route():
    """Body: {"description", "amount", "kind", "account_id", "expense_date"?, "notes"?, "user_id"?}"""
    data = request.get_json(silent=True) or {}
    try:
        try:
            expense_date = parse_date(data.get("expense_date"))
        except ValueError:
            raise ValidationError("expense_date must be an ISO date")
        expense = expense_service.create_expense(
            description=data.get("description", ""),
            amount=data.get("amount"),
            kind=data.get("kind", ""),
            account_id=coerce_int(data.get("account_id"), "account_id", positive=True),
            expense_date=expense_date,
            notes=data.get("notes"),
            user_id=data.get("user_id"),
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("/<int:expense_id>/approve")
def approve_expense_route(expense_id: int):
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_service.approve_expense(expense_id, user_id=data.get("user_id"), notes=data.get("notes"))
        return jsonify({"expense": expense.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("/<int:expense_id>/pay")
def pay_expense_route(expense_id: int):
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_service.pay_expense(expense_id, user_id=data.get("user_id"))
        return jsonify({"expense": expense.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pay expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("/<int:expense_id>/cancel")
def cancel_expense_route(expense_id: int):
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_service.cancel_expense(expense_id, data.get("reason", ""), user_id=data.get("user_id"))
        return jsonify({"expense": expense.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel expense")
        return jsonify({"error": "Internal server error"}), 500
