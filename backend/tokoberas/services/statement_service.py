# Overview: Read-side financial statements; cash flow, profit, cash position, analytics and projections.

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Budget, CashFlow, FinancialAccount, FinancialTransaction, Payroll, Product
from ..models.expenses import BUDGET_ACTIVE
from ..models.ledger import FLOW_TYPES, INFLOW, OUTFLOW, TX_COMPLETED, TX_EXPENSE, TX_INCOME
from ..models.payroll import PAYROLL_APPROVED, PAYROLL_DRAFT, PAYROLL_PAID
from ..money import ZERO, format_rupiah, quantize, to_decimal, to_json_number
from ..time_utils import add_months, month_bounds, to_iso_date
from ..time_utils import today as utc_today
from .reconciliation_service import net_cash_flows
from .transaction_service import CATEGORY_COGS, CATEGORY_EXPENSE, CATEGORY_SALES, SUBCATEGORY_REVERSAL
"""
Statement Builder (authoritative)

- Pure reads: nothing in this module adds, flushes or commits.
- Only completed transactions count. Revenue is completed income in the
  "sales" category; expenses are completed expense transactions outside
  "cogs", net of compensating reversals in the same category.
- Cash-flow statements cover the liquid accounts (cash + bank):
    opening = SUM(opening_balance) + net flows before start
    closing = opening + net flows in [start, end]
- Every function that depends on "now" accepts `today` so results are
  deterministic under test.
"""

PERIODS = (
    "today",
    "yesterday",
    "current_week",
    "current_month",
    "last_month",
    "current_year",
    "last_3_months",
    "last_6_months",
    "last_12_months",
)

FLOW_TYPE_DISPLAY = {
    "operating": "Aktivitas Operasional",
    "investing": "Aktivitas Investasi",
    "financing": "Aktivitas Pendanaan",
}

LIQUID_ACCOUNT_TYPES = ("cash", "bank")

PROJECTION_GROWTH = Decimal("1.05")
PROJECTION_YEARS = 3


def date_range_for(period: str, today: date | None = None) -> tuple[date, date]:
    """Inclusive (start, end) dates for a named period. Unknown names mean current_month."""
    today = today or utc_today()
    if period == "today":
        return today, today
    if period == "yesterday":
        day = today - timedelta(days=1)
        return day, day
    if period == "current_week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == "last_month":
        first = add_months(today, -1)
        return month_bounds(first.year, first.month)
    if period == "current_year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if period in ("last_3_months", "last_6_months", "last_12_months"):
        months = int(period.split("_")[1])
        start = add_months(today, -months)
        return start, month_bounds(today.year, today.month)[1]
    return month_bounds(today.year, today.month)


def _num(value) -> float:
    return to_json_number(quantize(to_decimal(value)))


def _percentage(part: Decimal, whole: Decimal) -> float:
    if whole <= ZERO:
        return 0.0
    return round(float(part / whole * 100), 2)


def _completed(transaction_type: str, start: date, end: date):
    return db.session.query(FinancialTransaction).filter(
        FinancialTransaction.transaction_type == transaction_type,
        FinancialTransaction.status == TX_COMPLETED,
        FinancialTransaction.transaction_date >= start,
        FinancialTransaction.transaction_date <= end,
    )


# ---------------------------------------------------------------------------
# Revenue / expense / profit
# ---------------------------------------------------------------------------

def get_revenue_summary(start: date, end: date) -> dict:
    transactions = _completed(TX_INCOME, start, end).filter(
        FinancialTransaction.category == CATEGORY_SALES
    ).all()

    total = sum((to_decimal(tx.amount) for tx in transactions), ZERO)
    by_method: dict[str, list] = defaultdict(list)
    daily: dict[date, list] = defaultdict(list)
    for tx in transactions:
        by_method[tx.subcategory or "unknown"].append(tx)
        daily[tx.transaction_date].append(tx)

    count = len(transactions)
    return {
        "total": _num(total),
        "total_sales": _num(total),
        "total_transactions": count,
        "average_transaction": _num(total / count) if count else 0.0,
        "by_payment_method": {
            method: {
                "count": len(txs),
                "total": _num(sum((to_decimal(t.amount) for t in txs), ZERO)),
                "formatted_total": format_rupiah(sum((to_decimal(t.amount) for t in txs), ZERO)),
            }
            for method, txs in sorted(by_method.items())
        },
        "daily_breakdown": [
            {
                "date": to_iso_date(day),
                "total": _num(sum((to_decimal(t.amount) for t in txs), ZERO)),
                "transactions": len(txs),
            }
            for day, txs in sorted(daily.items())
        ],
    }


def _expense_totals(start: date, end: date) -> tuple[dict[str, Decimal], dict[str, int]]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)

    expenses = _completed(TX_EXPENSE, start, end).filter(FinancialTransaction.category != CATEGORY_COGS).all()
    for tx in expenses:
        totals[tx.category] += to_decimal(tx.amount)
        counts[tx.category] += 1

    # Compensating income (e.g. a reversed payroll payment) offsets its expense category
    refunds = _completed(TX_INCOME, start, end).filter(
        FinancialTransaction.subcategory == SUBCATEGORY_REVERSAL
    ).all()
    for tx in refunds:
        totals[tx.category] -= to_decimal(tx.amount)

    return dict(totals), dict(counts)


def get_expense_summary(start: date, end: date) -> dict:
    totals, counts = _expense_totals(start, end)
    total = sum(totals.values(), ZERO)
    return {
        "total": _num(total),
        "total_expenses": _num(total),
        "expense_categories": [
            {
                "category": category,
                "total": _num(amount),
                "count": counts.get(category, 0),
                "percentage": _percentage(amount, total),
            }
            for category, amount in sorted(totals.items())
        ],
    }


def get_cost_of_goods_sold(start: date, end: date) -> Decimal:
    value = (
        db.session.query(func.coalesce(func.sum(FinancialTransaction.amount), 0))
        .filter(
            FinancialTransaction.category == CATEGORY_COGS,
            FinancialTransaction.status == TX_COMPLETED,
            FinancialTransaction.transaction_date >= start,
            FinancialTransaction.transaction_date <= end,
        )
        .scalar()
    )
    return to_decimal(value or 0)


def get_profit_summary(start: date, end: date) -> dict:
    """net_profit = revenue - operating expenses; COGS is reported alongside."""
    revenue = to_decimal(get_revenue_summary(start, end)["total"])
    totals, _ = _expense_totals(start, end)
    expenses = sum(totals.values(), ZERO)
    cogs = get_cost_of_goods_sold(start, end)
    net_profit = revenue - expenses

    return {
        "gross_revenue": _num(revenue),
        "operating_expenses": _num(expenses),
        "cost_of_goods_sold": _num(cogs),
        "gross_margin_on_cost": _num(revenue - cogs),
        "net_profit": _num(net_profit),
        "net_margin": _percentage(net_profit, revenue) if revenue > ZERO else 0.0,
    }


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------

def _liquid_accounts() -> list[FinancialAccount]:
    return (
        db.session.query(FinancialAccount)
        .filter(FinancialAccount.account_type.in_(LIQUID_ACCOUNT_TYPES))
        .order_by(FinancialAccount.id.asc())
        .all()
    )


def _liquid_flows(start: date, end: date) -> list[CashFlow]:
    account_ids = [a.id for a in _liquid_accounts()]
    if not account_ids:
        return []
    return (
        db.session.query(CashFlow)
        .filter(
            CashFlow.account_id.in_(account_ids),
            CashFlow.flow_date >= start,
            CashFlow.flow_date <= end,
        )
        .order_by(CashFlow.flow_date.asc(), CashFlow.id.asc())
        .all()
    )


def opening_balance(on: date) -> Decimal:
    total = ZERO
    for account in _liquid_accounts():
        total += to_decimal(account.opening_balance) + net_cash_flows(account.id, before=on)
    return total


def get_cash_flow_statement(start: date, end: date) -> dict:
    statement = {
        "period": {"start": to_iso_date(start), "end": to_iso_date(end)},
    }
    nets = {flow_type: ZERO for flow_type in FLOW_TYPES}
    groups = {flow_type: {"inflows": [], "outflows": []} for flow_type in FLOW_TYPES}

    for flow in _liquid_flows(start, end):
        flow_type = flow.flow_type if flow.flow_type in groups else "operating"
        groups[flow_type][f"{flow.direction}s"].append({
            "date": to_iso_date(flow.flow_date),
            "category": flow.category,
            "description": flow.description,
            "amount": _num(flow.amount),
            "formatted_amount": format_rupiah(flow.amount),
            "account_id": flow.account_id,
        })
        nets[flow_type] += to_decimal(flow.signed_amount)

    for flow_type in FLOW_TYPES:
        statement[f"{flow_type}_activities"] = {
            "inflows": groups[flow_type]["inflows"],
            "outflows": groups[flow_type]["outflows"],
            f"net_{flow_type}": _num(nets[flow_type]),
        }

    net_cash_flow = sum(nets.values(), ZERO)
    opening = opening_balance(start)
    statement["net_cash_flow"] = _num(net_cash_flow)
    statement["opening_balance"] = _num(opening)
    statement["closing_balance"] = _num(opening + net_cash_flow)
    return statement


def get_cash_flow_summary(start: date, end: date) -> dict:
    summary = {flow_type: {"inflow": ZERO, "outflow": ZERO, "net": ZERO} for flow_type in FLOW_TYPES}
    for flow in _liquid_flows(start, end):
        bucket = summary.get(flow.flow_type, summary["operating"])
        bucket[flow.direction] += to_decimal(flow.amount)
        bucket["net"] += to_decimal(flow.signed_amount)
    return {
        flow_type: {key: _num(value) for key, value in values.items()}
        for flow_type, values in summary.items()
    }


def _breakdown(flows: list[CashFlow], key) -> dict:
    grouped: dict = defaultdict(lambda: {INFLOW: ZERO, OUTFLOW: ZERO})
    for flow in flows:
        grouped[key(flow)][flow.direction] += to_decimal(flow.amount)
    return grouped


def get_cash_flow_analytics(period: str = "last_12_months", today: date | None = None) -> dict:
    start, end = date_range_for(period, today)
    flows = _liquid_flows(start, end)

    total_in = sum((to_decimal(f.amount) for f in flows if f.direction == INFLOW), ZERO)
    total_out = sum((to_decimal(f.amount) for f in flows if f.direction == OUTFLOW), ZERO)

    monthly = _breakdown(flows, lambda f: f.flow_date.strftime("%Y-%m"))
    categories = _breakdown(flows, lambda f: f.category)
    flow_types = _breakdown(flows, lambda f: f.flow_type)

    return {
        "period": period,
        "start": to_iso_date(start),
        "end": to_iso_date(end),
        "total_inflows": _num(total_in),
        "total_outflows": _num(total_out),
        "net_flow": _num(total_in - total_out),
        "monthly_trends": [
            {
                "month": month,
                "inflows": _num(v[INFLOW]),
                "outflows": _num(v[OUTFLOW]),
                "net": _num(v[INFLOW] - v[OUTFLOW]),
            }
            for month, v in sorted(monthly.items())
        ],
        "category_breakdown": [
            {
                "category": category,
                "inflows": _num(v[INFLOW]),
                "outflows": _num(v[OUTFLOW]),
                "net": _num(v[INFLOW] - v[OUTFLOW]),
            }
            for category, v in sorted(categories.items())
        ],
        "flow_type_breakdown": [
            {
                "type": flow_type,
                "type_display": FLOW_TYPE_DISPLAY.get(flow_type, flow_type),
                "inflows": _num(v[INFLOW]),
                "outflows": _num(v[OUTFLOW]),
                "net": _num(v[INFLOW] - v[OUTFLOW]),
            }
            for flow_type, v in sorted(flow_types.items())
        ],
    }


def _historical_month(month: int, current_year: int) -> list[tuple[Decimal, Decimal]]:
    """(inflow, outflow) for the same calendar month in each of the previous years that has flows."""
    history = []
    for year in range(current_year - PROJECTION_YEARS, current_year):
        start, end = month_bounds(year, month)
        flows = _liquid_flows(start, end)
        if not flows:
            continue
        inflow = sum((to_decimal(f.amount) for f in flows if f.direction == INFLOW), ZERO)
        outflow = sum((to_decimal(f.amount) for f in flows if f.direction == OUTFLOW), ZERO)
        history.append((inflow, outflow))
    return history


def get_cash_flow_projections(months: int = 6, today: date | None = None) -> list[dict]:
    """
    Project the next `months` months from the same month of the previous
    three years: average x 1.05. Confidence is min(90, 30 per year of
    history), or 50 with no history at all.
    """
    today = today or utc_today()
    projections = []
    for offset in range(months):
        month_start = add_months(today, offset)
        history = _historical_month(month_start.month, today.year)

        if history:
            avg_in = sum((h[0] for h in history), ZERO) / len(history)
            avg_out = sum((h[1] for h in history), ZERO) / len(history)
            confidence = min(90, len(history) * 30)
        else:
            avg_in = avg_out = ZERO
            confidence = 50

        projected_in = avg_in * PROJECTION_GROWTH
        projected_out = avg_out * PROJECTION_GROWTH
        projections.append({
            "month": month_start.strftime("%Y-%m"),
            "month_name": month_start.strftime("%B %Y"),
            "projected_inflow": _num(projected_in),
            "projected_outflow": _num(projected_out),
            "projected_net": _num(projected_in - projected_out),
            "confidence_level": confidence,
            "history_years": len(history),
        })
    return projections


# ---------------------------------------------------------------------------
# Positions and summaries
# ---------------------------------------------------------------------------

def get_cash_summary() -> dict:
    accounts = (
        db.session.query(FinancialAccount)
        .filter(FinancialAccount.is_active.is_(True))
        .order_by(FinancialAccount.code.asc())
        .all()
    )
    total_cash = ZERO
    total_bank = ZERO
    breakdown = []
    for account in accounts:
        balance = to_decimal(account.current_balance)
        breakdown.append({
            "account_id": account.id,
            "account_code": account.code,
            "account_name": account.name,
            "account_type": account.account_type,
            "bank_name": account.bank_name,
            "balance": _num(balance),
            "formatted_balance": format_rupiah(balance),
        })
        if account.account_type == "cash":
            total_cash += balance
        elif account.account_type == "bank":
            total_bank += balance

    # Designated bank: where every electronic payment lands
    bank_code = current_app.config.get("PAYMENT_ACCOUNT_CODES", {}).get("transfer")
    designated = next((a for a in accounts if a.code == bank_code), None)
    designated_balance = to_decimal(designated.current_balance) if designated else ZERO

    total_liquid = total_cash + total_bank
    return {
        "total_cash": _num(total_cash),
        "total_bank": _num(total_bank),
        "total_liquid": _num(total_liquid),
        "formatted_total_liquid": format_rupiah(total_liquid),
        "accounts_breakdown": breakdown,
        "designated_bank_account": designated.name if designated else None,
        "designated_bank_balance": _num(designated_balance),
        "formatted_designated_bank_balance": format_rupiah(designated_balance),
    }


def get_stock_valuation_summary() -> dict:
    products = db.session.query(Product).filter(Product.is_active.is_(True)).all()
    in_stock = [p for p in products if (p.stock or 0) > 0]
    value = sum((to_decimal(p.purchase_price) * p.stock for p in in_stock), ZERO)
    return {
        "total_quantity": sum(p.stock for p in in_stock),
        "items_count": len(in_stock),
        "low_stock_items": sum(1 for p in in_stock if p.stock <= (p.min_stock or 0)),
        "out_of_stock_items": sum(1 for p in products if (p.stock or 0) == 0),
        "inventory_value": _num(value),
        "formatted_inventory_value": format_rupiah(value),
    }


def get_payroll_summary(start: date) -> dict:
    period = start.strftime("%Y-%m")
    payrolls = db.session.query(Payroll).filter(Payroll.period_month == period).all()
    return {
        "period": period,
        "total_gross_salary": _num(sum((to_decimal(p.gross_salary) for p in payrolls), ZERO)),
        "total_net_salary": _num(sum((to_decimal(p.net_salary) for p in payrolls), ZERO)),
        "total_deductions": _num(sum(
            (
                to_decimal(p.tax_amount) + to_decimal(p.insurance_amount)
                + to_decimal(p.other_deductions) + to_decimal(p.deduction_amount)
                for p in payrolls
            ),
            ZERO,
        )),
        "employees_count": len(payrolls),
        "paid_count": sum(1 for p in payrolls if p.status == PAYROLL_PAID),
        "pending_count": sum(1 for p in payrolls if p.status in (PAYROLL_DRAFT, PAYROLL_APPROVED)),
    }


def _budget_category(tx: FinancialTransaction) -> str:
    # Manual expenses are budgeted per kind, everything else per ledger category
    if tx.category == CATEGORY_EXPENSE:
        return tx.subcategory or CATEGORY_EXPENSE
    return tx.category


def _spending_by_budget_category(start: date, end: date) -> dict[str, Decimal]:
    spent: dict[str, Decimal] = defaultdict(lambda: ZERO)
    expenses = _completed(TX_EXPENSE, start, end).filter(FinancialTransaction.category != CATEGORY_COGS).all()
    for tx in expenses:
        spent[_budget_category(tx)] += to_decimal(tx.amount)
    refunds = _completed(TX_INCOME, start, end).filter(
        FinancialTransaction.subcategory == SUBCATEGORY_REVERSAL
    ).all()
    for tx in refunds:
        spent[tx.category] -= to_decimal(tx.amount)
    return spent


def _variance_status(variance: Decimal) -> str:
    if variance > ZERO:
        return "over"
    if variance < ZERO:
        return "under"
    return "on_target"


def get_budget_performance(start: date) -> dict:
    """
    Planned vs actual spending for the active budgets of start's month.

    actual comes from completed expense transactions inside each budget's
    own period; variance = actual - planned.
    """
    period = start.strftime("%Y-%m")
    budgets = (
        db.session.query(Budget)
        .filter(Budget.period == period, Budget.status == BUDGET_ACTIVE)
        .order_by(Budget.category.asc())
        .all()
    )

    spending_cache: dict[tuple[date, date], dict[str, Decimal]] = {}
    total_planned = total_actual = ZERO
    categories = []
    for budget in budgets:
        bounds = (budget.period_start, budget.period_end)
        if bounds not in spending_cache:
            spending_cache[bounds] = _spending_by_budget_category(*bounds)
        planned = to_decimal(budget.planned_amount)
        actual = spending_cache[bounds].get(budget.category, ZERO)
        variance = actual - planned
        total_planned += planned
        total_actual += actual
        categories.append({
            "budget_code": budget.budget_code,
            "category": budget.category,
            "planned": _num(planned),
            "actual": _num(actual),
            "variance": _num(variance),
            "variance_percentage": round(float(variance / planned * 100), 2) if planned > ZERO else 0.0,
            "status": _variance_status(variance),
        })

    return {
        "period": period,
        "total_planned": _num(total_planned),
        "total_actual": _num(total_actual),
        "total_variance": _num(total_actual - total_planned),
        "categories": categories,
    }


def get_recent_transactions(limit: int = 10) -> list[dict]:
    transactions = (
        db.session.query(FinancialTransaction)
        .order_by(FinancialTransaction.created_at.desc(), FinancialTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return [tx.to_dict() for tx in transactions]


def get_sales_financial_summary(start: date, end: date) -> dict:
    revenue = get_revenue_summary(start, end)
    return {
        "total_sales": revenue["total_sales"],
        "total_transactions": revenue["total_transactions"],
        "by_payment_method": {
            method: {
                "count": data["count"],
                "total_amount": data["total"],
                "formatted_amount": data["formatted_total"],
            }
            for method, data in revenue["by_payment_method"].items()
        },
        "formatted_total": format_rupiah(revenue["total_sales"]),
    }


def get_dashboard_data(period: str = "current_month", today: date | None = None) -> dict:
    start, end = date_range_for(period, today)
    revenue = get_revenue_summary(start, end)
    expenses = get_expense_summary(start, end)
    return {
        "period": period,
        "start": to_iso_date(start),
        "end": to_iso_date(end),
        "cash_summary": get_cash_summary(),
        "revenue_summary": revenue,
        "expense_summary": expenses,
        "profit_summary": get_profit_summary(start, end),
        "cash_flow_summary": get_cash_flow_summary(start, end),
        "stock_valuation_summary": get_stock_valuation_summary(),
        "payroll_summary": get_payroll_summary(start),
        "budget_performance": get_budget_performance(start),
        "recent_transactions": get_recent_transactions(10),
        "total_revenue": revenue["total"],
        "total_expenses": expenses["total"],
        "net_profit": _num(to_decimal(revenue["total"]) - to_decimal(expenses["total"])),
    }
