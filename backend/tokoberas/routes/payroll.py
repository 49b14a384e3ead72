# Overview: Flask API routes for payroll (penggajian); generate, approve, pay and reverse.

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..services import payroll_service
from ..validation import coerce_int


payroll_bp = Blueprint("payroll", __name__, url_prefix="/api/payroll")


@payroll_bp.get("/")
def list_payrolls_route():
    payrolls = payroll_service.list_payrolls(
        period=request.args.get("period"),
        status=request.args.get("status"),
    )
    return jsonify({"payrolls": [p.to_dict() for p in payrolls]}), 200


@payroll_bp.get("/<int:payroll_id>")
def get_payroll_route(payroll_id: int):
    try:
        payroll = payroll_service.get_payroll(payroll_id)
        return jsonify({"payroll": payroll.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@payroll_bp.get("/calculate")
def calculate_route():
    """Preview a salary without saving: ?user_id=..&period=YYYY-MM"""
    try:
        user_id = coerce_int(request.args.get("user_id", ""), "user_id", positive=True)
        breakdown = payroll_service.preview(user_id, request.args.get("period", ""))
        return jsonify({"breakdown": breakdown.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@payroll_bp.post("/generate")
def generate_route():
    """Body: {"period": "YYYY-MM", "user_ids"?: [...]}"""
    data = request.get_json(silent=True) or {}
    try:
        created = payroll_service.generate(data.get("period", ""), user_ids=data.get("user_ids"))
        return jsonify({"created": [p.to_dict() for p in created], "count": len(created)}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate payroll")
        return jsonify({"error": "Internal server error"}), 500


@payroll_bp.post("/<int:payroll_id>/approve")
def approve_route(payroll_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payroll = payroll_service.approve(payroll_id, user_id=data.get("user_id"))
        return jsonify({"payroll": payroll.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve payroll")
        return jsonify({"error": "Internal server error"}), 500


@payroll_bp.post("/<int:payroll_id>/cancel")
def cancel_route(payroll_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payroll = payroll_service.cancel(payroll_id, reason=data.get("reason"))
        return jsonify({"payroll": payroll.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel payroll")
        return jsonify({"error": "Internal server error"}), 500


@payroll_bp.post("/<int:payroll_id>/pay")
def pay_route(payroll_id: int):
    """Body: {"account_id", "user_id"?, "notes"?}"""
    data = request.get_json(silent=True) or {}
    try:
        payroll = payroll_service.process_payment(
            payroll_id,
            coerce_int(data.get("account_id"), "account_id", positive=True),
            user_id=data.get("user_id"),
            notes=data.get("notes"),
        )
        return jsonify({"payroll": payroll.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pay payroll")
        return jsonify({"error": "Internal server error"}), 500


@payroll_bp.post("/<int:payroll_id>/reverse")
def reverse_route(payroll_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payroll = payroll_service.reverse_payment(
            payroll_id,
            user_id=data.get("user_id"),
            reason=data.get("reason"),
        )
        return jsonify({"payroll": payroll.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reverse payroll payment")
        return jsonify({"error": "Internal server error"}), 500
