# Overview: Flask API routes for accounts, transactions, statements and reconciliation.

"""
Finance routes (keuangan).

Read endpoints accept either ?period=<name> (see statement_service.PERIODS)
or explicit ?start=YYYY-MM-DD&end=YYYY-MM-DD; explicit dates win and must come
as a pair.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, ValidationError
from ..models import CashFlow
from ..services import (
    account_service,
    budget_service,
    ledger_service,
    reconciliation_service,
    statement_service,
    transaction_service,
)
from ..time_utils import parse_date


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _date_range(default_period: str = "current_month"):
    try:
        start = parse_date(request.args.get("start"))
        end = parse_date(request.args.get("end"))
    except ValueError:
        raise ValidationError("start and end must be ISO dates")
    if bool(start) != bool(end):
        raise ValidationError(
            "start and end must be given together",
            details={"start": request.args.get("start"), "end": request.args.get("end")},
        )
    if start and end:
        if start > end:
            raise ValidationError("start must not be after end", details={"start": str(start), "end": str(end)})
        return start, end
    return statement_service.date_range_for(request.args.get("period", default_period))


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@finance_bp.get("/accounts")
def list_accounts_route():
    accounts = account_service.list_accounts(include_inactive=_flag("include_inactive"))
    return jsonify({"accounts": [a.to_dict() for a in accounts]}), 200


@finance_bp.post("/accounts")
def create_account_route():
    data = request.get_json(silent=True) or {}
    try:
        account = account_service.create_account(
            code=data.get("code", ""),
            name=data.get("name", ""),
            account_type=data.get("account_type", ""),
            account_category=data.get("account_category"),
            opening_balance=data.get("opening_balance", 0),
            bank_name=data.get("bank_name"),
            account_number=data.get("account_number"),
            auto_update_balance=bool(data.get("auto_update_balance", True)),
            negative_balance_policy=data.get("negative_balance_policy", "allow"),
        )
        return jsonify({"account": account.to_dict()}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create account")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/accounts/<int:account_id>/cash-flows")
def account_cash_flows_route(account_id: int):
    try:
        account = account_service.get_account(account_id, require_active=False)
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    flows = account.cash_flows.order_by(CashFlow.id.asc()).all()
    return jsonify({"account": account.to_dict(), "cash_flows": [f.to_dict() for f in flows]}), 200


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

@finance_bp.get("/transactions")
def list_transactions_route():
    try:
        start = parse_date(request.args.get("start"))
        end = parse_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO dates"}), 400
    transactions = transaction_service.list_transactions(
        transaction_type=request.args.get("type"),
        category=request.args.get("category"),
        status=request.args.get("status"),
        start=start,
        end=end,
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200


@finance_bp.get("/transactions/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        tx = transaction_service.get_transaction(transaction_id)
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify({
        "transaction": tx.to_dict(),
        "cash_flows": [f.to_dict() for f in tx.cash_flows],
        "audit_events": [ev.to_dict() for ev in ledger_service.list_audit_events(tx.id)],
    }), 200


@finance_bp.post("/transactions/<int:transaction_id>/confirm")
def confirm_transaction_route(transaction_id: int):
    data = request.get_json(silent=True) or {}
    try:
        tx = transaction_service.confirm_transaction(transaction_id, actor_user_id=data.get("user_id"))
        return jsonify({"transaction": tx.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm transaction")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.post("/transactions/<int:transaction_id>/cancel")
def cancel_transaction_route(transaction_id: int):
    data = request.get_json(silent=True) or {}
    try:
        tx = transaction_service.cancel_transaction(
            transaction_id, data.get("reason", ""), actor_user_id=data.get("user_id")
        )
        return jsonify({"transaction": tx.to_dict()}), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@finance_bp.get("/cash-flow")
def cash_flow_statement_route():
    try:
        start, end = _date_range()
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify(statement_service.get_cash_flow_statement(start, end)), 200


@finance_bp.get("/cash-flow/analytics")
def cash_flow_analytics_route():
    period = request.args.get("period", "last_12_months")
    return jsonify(statement_service.get_cash_flow_analytics(period)), 200


@finance_bp.get("/cash-flow/projections")
def cash_flow_projections_route():
    months = request.args.get("months", 6, type=int)
    if months < 1 or months > 24:
        return jsonify({"error": "months must be between 1 and 24"}), 400
    return jsonify({"projections": statement_service.get_cash_flow_projections(months)}), 200


@finance_bp.get("/cash-summary")
def cash_summary_route():
    return jsonify(statement_service.get_cash_summary()), 200


@finance_bp.get("/profit")
def profit_summary_route():
    try:
        start, end = _date_range()
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify(statement_service.get_profit_summary(start, end)), 200


@finance_bp.get("/sales-summary")
def sales_summary_route():
    try:
        start, end = _date_range()
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify(statement_service.get_sales_financial_summary(start, end)), 200


@finance_bp.get("/dashboard")
def dashboard_route():
    period = request.args.get("period", "current_month")
    return jsonify(statement_service.get_dashboard_data(period)), 200


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

@finance_bp.get("/budgets")
def list_budgets_route():
    budgets = budget_service.list_budgets(
        period=request.args.get("period"),
        status=request.args.get("status"),
    )
    return jsonify({"budgets": [b.to_dict() for b in budgets]}), 200


@finance_bp.post("/budgets")
def create_budget_route():
    """Body: {"period": "YYYY-MM", "category", "planned_amount", "name"?, "description"?, "status"?}"""
    data = request.get_json(silent=True) or {}
    try:
        budget = budget_service.create_budget(
            period=data.get("period", ""),
            category=data.get("category", ""),
            planned_amount=data.get("planned_amount", 0),
            name=data.get("name"),
            description=data.get("description"),
            status=data.get("status", "active"),
            created_by=data.get("user_id"),
        )
        return jsonify({"budget": budget.to_dict()}), 201
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create budget")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/budgets/performance")
def budget_performance_route():
    try:
        start, _ = _date_range()
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify(statement_service.get_budget_performance(start)), 200


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

@finance_bp.get("/reconciliation/balances")
def balance_drift_route():
    drifts = reconciliation_service.find_balance_drift()
    return jsonify({"drifts": [d.to_dict() for d in drifts], "count": len(drifts)}), 200


@finance_bp.post("/reconciliation/balances")
def recalculate_balances_route():
    dry_run = _flag("dry_run")
    try:
        drifts = reconciliation_service.recalculate_balances(dry_run=dry_run)
        return jsonify({"dry_run": dry_run, "corrected": [d.to_dict() for d in drifts]}), 200
    except Exception:
        current_app.logger.exception("Failed to recalculate balances")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/reconciliation/stock")
def stock_audit_route():
    reports = reconciliation_service.audit_stock_chains()
    return jsonify({"inconsistent": [r.to_dict() for r in reports], "count": len(reports)}), 200


@finance_bp.post("/reconciliation/stock")
def reconcile_stock_route():
    dry_run = _flag("dry_run")
    try:
        repairs = reconciliation_service.reconcile_stock(dry_run=dry_run)
        return jsonify({"dry_run": dry_run, "repairs": [r.to_dict() for r in repairs]}), 200
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500
