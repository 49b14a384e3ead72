# Overview: Pytest coverage for the read-side statements; periods, profit, cash flow and projections.

from datetime import date, timedelta
from decimal import Decimal

import pytest

from tokoberas.models import CashFlow
from tokoberas.services import budget_service, expense_service, purchase_service, sales_service, statement_service
from tokoberas.time_utils import today
from tokoberas.validation import LineItem

from conftest import set_balance


@pytest.fixture
def trading_day(db_session, accounts, product):
    """Cash 500.000, a cash sale of 2 units (30.000) and a received purchase of 5 units (50.000)."""
    set_balance(accounts["1101"], 500000)
    sales_service.create_sale(items=[LineItem(product.id, 2)], payment_method="cash")
    purchase = purchase_service.create_purchase(
        supplier_name="UD Sumber Padi",
        items=[LineItem(product_id=product.id, quantity=5, unit_price=Decimal("10000"))],
    )
    purchase_service.receive_purchase(purchase.id)
    return today()


class TestDateRanges:
    @pytest.mark.parametrize("period,expected", [
        ("today", (date(2024, 3, 13), date(2024, 3, 13))),
        ("yesterday", (date(2024, 3, 12), date(2024, 3, 12))),
        ("current_week", (date(2024, 3, 11), date(2024, 3, 17))),
        ("current_month", (date(2024, 3, 1), date(2024, 3, 31))),
        ("last_month", (date(2024, 2, 1), date(2024, 2, 29))),
        ("current_year", (date(2024, 1, 1), date(2024, 12, 31))),
        ("last_3_months", (date(2023, 12, 1), date(2024, 3, 31))),
        ("bogus", (date(2024, 3, 1), date(2024, 3, 31))),
    ])
    def test_named_periods(self, period, expected):
        assert statement_service.date_range_for(period, today=date(2024, 3, 13)) == expected

    def test_last_month_across_year_boundary(self):
        assert statement_service.date_range_for("last_month", today=date(2024, 1, 20)) == (
            date(2023, 12, 1), date(2023, 12, 31)
        )


class TestProfit:
    def test_profit_summary(self, trading_day):
        profit = statement_service.get_profit_summary(trading_day, trading_day)

        assert profit["gross_revenue"] == 30000.0
        assert profit["operating_expenses"] == 50000.0
        assert profit["cost_of_goods_sold"] == 20000.0
        assert profit["gross_margin_on_cost"] == 10000.0
        assert profit["net_profit"] == -20000.0
        assert profit["net_margin"] == -66.67

    def test_empty_period(self, db_session, accounts):
        profit = statement_service.get_profit_summary(date(2020, 1, 1), date(2020, 1, 31))
        assert profit["net_profit"] == 0.0
        assert profit["net_margin"] == 0.0

    def test_revenue_by_payment_method(self, trading_day):
        revenue = statement_service.get_revenue_summary(trading_day, trading_day)

        assert revenue["total_transactions"] == 1
        assert revenue["by_payment_method"]["cash"]["formatted_total"] == "Rp 30.000"
        assert revenue["daily_breakdown"] == [
            {"date": trading_day.isoformat(), "total": 30000.0, "transactions": 1}
        ]

    def test_expense_summary_excludes_cogs(self, trading_day):
        expenses = statement_service.get_expense_summary(trading_day, trading_day)

        assert [c["category"] for c in expenses["expense_categories"]] == ["inventory"]
        assert expenses["expense_categories"][0]["percentage"] == 100.0


class TestCashFlowStatement:
    def test_opening_and_closing(self, trading_day):
        statement = statement_service.get_cash_flow_statement(trading_day, trading_day)

        assert statement["opening_balance"] == 500000.0
        assert statement["net_cash_flow"] == -20000.0
        assert statement["closing_balance"] == 480000.0
        operating = statement["operating_activities"]
        assert [f["category"] for f in operating["inflows"]] == ["sales"]
        assert [f["category"] for f in operating["outflows"]] == ["purchases"]
        assert operating["net_operating"] == -20000.0

    def test_next_period_opens_at_previous_close(self, trading_day):
        tomorrow = trading_day + timedelta(days=1)
        statement = statement_service.get_cash_flow_statement(tomorrow, tomorrow)

        assert statement["opening_balance"] == 480000.0
        assert statement["closing_balance"] == 480000.0

    def test_analytics_totals(self, trading_day):
        analytics = statement_service.get_cash_flow_analytics("today", today=trading_day)

        assert analytics["total_inflows"] == 30000.0
        assert analytics["total_outflows"] == 50000.0
        assert analytics["net_flow"] == -20000.0
        assert analytics["flow_type_breakdown"][0]["type_display"] == "Aktivitas Operasional"


class TestProjections:
    def test_no_history(self, db_session, accounts):
        projections = statement_service.get_cash_flow_projections(3, today=date(2026, 3, 15))

        assert [p["month"] for p in projections] == ["2026-03", "2026-04", "2026-05"]
        assert all(p["confidence_level"] == 50 for p in projections)
        assert all(p["projected_net"] == 0.0 for p in projections)

    def test_same_month_history_with_growth(self, db_session, accounts):
        cash = accounts["1101"]
        for flow_date, amount in ((date(2025, 3, 10), "100000"), (date(2024, 3, 5), "200000")):
            db_session.add(CashFlow(
                flow_date=flow_date,
                direction="inflow",
                category="sales",
                amount=Decimal(amount),
                account_id=cash.id,
                running_balance=Decimal(amount),
            ))
        db_session.commit()

        march, april = statement_service.get_cash_flow_projections(2, today=date(2026, 3, 15))

        assert march["history_years"] == 2
        assert march["confidence_level"] == 60
        assert march["projected_inflow"] == 157500.0
        assert march["projected_outflow"] == 0.0
        assert april["confidence_level"] == 50


class TestPositions:
    def test_cash_summary(self, trading_day):
        summary = statement_service.get_cash_summary()

        assert summary["total_cash"] == 480000.0
        assert summary["total_bank"] == 0.0
        assert summary["formatted_total_liquid"] == "Rp 480.000"
        assert summary["designated_bank_account"] == "Bank BCA"

    def test_stock_valuation(self, trading_day):
        valuation = statement_service.get_stock_valuation_summary()

        assert valuation["total_quantity"] == 103
        assert valuation["inventory_value"] == 1030000.0

    def test_dashboard(self, trading_day):
        data = statement_service.get_dashboard_data("today", today=trading_day)

        assert data["total_revenue"] == 30000.0
        assert data["total_expenses"] == 50000.0
        assert data["net_profit"] == -20000.0
        assert len(data["recent_transactions"]) == 3


class TestBudgetPerformance:
    @pytest.fixture
    def budgets(self, trading_day, accounts):
        period = trading_day.strftime("%Y-%m")
        expense = expense_service.create_expense(
            description="Token listrik toko", amount=75000, kind="utilitas", account_id=accounts["1101"].id
        )
        expense_service.approve_expense(expense.id)
        expense_service.pay_expense(expense.id)

        budget_service.create_budget(period=period, category="inventory", planned_amount=40000)
        budget_service.create_budget(period=period, category="utilitas", planned_amount=100000)
        budget_service.create_budget(period=period, category="marketing", planned_amount=20000, status="draft")
        return trading_day

    def test_planned_actual_and_variance_per_category(self, budgets):
        performance = statement_service.get_budget_performance(budgets)

        by_category = {c["category"]: c for c in performance["categories"]}
        assert set(by_category) == {"inventory", "utilitas"}
        assert by_category["inventory"]["actual"] == 50000.0
        assert by_category["inventory"]["variance"] == 10000.0
        assert by_category["inventory"]["variance_percentage"] == 25.0
        assert by_category["inventory"]["status"] == "over"
        assert by_category["utilitas"]["actual"] == 75000.0
        assert by_category["utilitas"]["variance"] == -25000.0
        assert by_category["utilitas"]["status"] == "under"

        assert performance["total_planned"] == 140000.0
        assert performance["total_actual"] == 125000.0
        assert performance["total_variance"] == -15000.0

    def test_cancelled_expense_drops_out_of_actual(self, budgets):
        paid = expense_service.list_expenses(status="paid")[0]
        expense_service.cancel_expense(paid.id, "salah catat")

        performance = statement_service.get_budget_performance(budgets)
        by_category = {c["category"]: c for c in performance["categories"]}
        assert by_category["utilitas"]["actual"] == 0.0

    def test_other_month_has_no_budgets(self, budgets):
        performance = statement_service.get_budget_performance(date(2001, 1, 1))
        assert performance["categories"] == []
        assert performance["total_planned"] == 0.0

    def test_dashboard_includes_budget_performance(self, budgets):
        data = statement_service.get_dashboard_data("today", today=budgets)

        assert data["budget_performance"]["total_actual"] == 125000.0
        assert data["total_expenses"] == 125000.0
        assert {"category": "expense", "total": 75000.0, "count": 1, "percentage": 60.0} in (
            data["expense_summary"]["expense_categories"]
        )
