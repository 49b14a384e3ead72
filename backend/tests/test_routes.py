# Overview: Pytest coverage for the HTTP layer; status codes, error bodies and response shapes.

from tokoberas.extensions import db
from tokoberas.models import Product

from conftest import set_balance


class TestSystemRoutes:
    def test_health_degraded_without_accounts(self, client, db_session):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"

    def test_health_with_accounts(self, client, accounts):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["accounts"] == len(accounts)

    def test_version(self, client):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.get_json()["api_version"] == "1.0.0"


class TestSalesRoutes:
    """Sales endpoints map domain errors onto status codes."""

    def test_create_sale(self, client, accounts, product):
        resp = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 2}],
            "payment_method": "cash",
        })

        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["total"] == 30000.0
        assert sale["status"] == "completed"
        assert len(sale["lines"]) == 1
        assert sale["transaction"]["status"] == "completed"
        assert sale["transaction"]["amount"] == 30000.0

    def test_oversell_is_409(self, client, accounts, product):
        resp = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 500}],
            "payment_method": "cash",
        })

        assert resp.status_code == 409
        body = resp.get_json()
        assert "Insufficient stock" in body["error"]
        assert body["details"]["product_id"] == product.id
        assert db.session.get(Product, product.id).stock == 100

    def test_empty_items_is_400(self, client, accounts):
        resp = client.post("/api/sales/", json={"items": [], "payment_method": "cash"})
        assert resp.status_code == 400

    def test_fractional_quantity_is_400(self, client, accounts, product):
        resp = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 1.5}],
        })
        assert resp.status_code == 400

    def test_unknown_sale_is_404(self, client, db_session):
        resp = client.get("/api/sales/9999")

        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Sale not found"


class TestPayrollRoutes:
    def test_unapproved_payroll_cannot_be_paid(self, client, accounts, employees):
        resp = client.post("/api/payroll/generate", json={
            "period": "2024-01",
            "user_ids": [employees["citra"].id],
        })
        assert resp.status_code == 201
        payroll_id = resp.get_json()["created"][0]["id"]

        resp = client.post(f"/api/payroll/{payroll_id}/pay", json={"account_id": accounts["1101"].id})

        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Payroll must be approved first"

    def test_calculate_rejects_bad_period(self, client, employees):
        resp = client.get(f"/api/payroll/calculate?user_id={employees['andi'].id}&period=2024-1x")
        assert resp.status_code == 400


class TestFinanceRoutes:
    def test_dashboard_after_sale(self, client, accounts, product):
        client.post("/api/sales/", json={"items": [{"product_id": product.id, "quantity": 1}]})

        resp = client.get("/api/finance/dashboard?period=today")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["total_revenue"] == 15000.0
        assert body["cash_summary"]["total_cash"] == 15000.0

    def test_stock_audit_reports_missing_history(self, client, accounts, product):
        resp = client.get("/api/finance/reconciliation/stock")

        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_balance_recalculation_dry_run(self, client, accounts):
        resp = client.post("/api/finance/reconciliation/balances?dry_run=true")

        assert resp.status_code == 200
        assert resp.get_json() == {"dry_run": True, "corrected": []}

    def test_create_account(self, client, accounts):
        resp = client.post(
            "/api/finance/accounts",
            json={"code": "1103", "name": "Bank Mandiri", "account_type": "bank", "opening_balance": "250000"},
        )

        assert resp.status_code == 201
        assert resp.get_json()["account"]["code"] == "1103"

    def test_create_account_with_non_numeric_opening_balance_is_400(self, client, accounts):
        resp = client.post(
            "/api/finance/accounts",
            json={"code": "1104", "name": "Kas Cadangan", "account_type": "cash", "opening_balance": "abc"},
        )

        assert resp.status_code == 400
        assert "opening_balance" in resp.get_json()["error"]

    def test_create_account_without_code_or_name_is_400(self, client, accounts):
        resp = client.post("/api/finance/accounts", json={"account_type": "cash"})

        assert resp.status_code == 400

    def test_half_open_date_range_is_400(self, client, accounts):
        resp = client.get("/api/finance/cash-flow?start=2026-10-01")
        assert resp.status_code == 400

        resp = client.get("/api/finance/profit?end=2026-10-31")
        assert resp.status_code == 400

    def test_create_budget_and_read_performance(self, client, accounts):
        period = "2026-10"
        resp = client.post(
            "/api/finance/budgets",
            json={"period": period, "category": "utilitas", "planned_amount": 100000},
        )
        assert resp.status_code == 201

        resp = client.get("/api/finance/budgets/performance?start=2026-10-01&end=2026-10-31")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["period"] == period
        assert body["total_planned"] == 100000.0

    def test_budget_with_bad_period_is_400(self, client, accounts):
        resp = client.post("/api/finance/budgets", json={"period": "Oktober", "category": "utilitas"})
        assert resp.status_code == 400


class TestExpenseRoutes:
    def test_expense_lifecycle(self, client, db_session, accounts):
        set_balance(accounts["1101"], 100000)

        resp = client.post("/api/expenses/", json={
            "description": "Bensin pengiriman",
            "amount": 30000,
            "kind": "transportasi",
            "account_id": accounts["1101"].id,
        })
        assert resp.status_code == 201
        expense_id = resp.get_json()["expense"]["id"]

        resp = client.post(f"/api/expenses/{expense_id}/pay")
        assert resp.status_code == 409

        assert client.post(f"/api/expenses/{expense_id}/approve").status_code == 200
        resp = client.post(f"/api/expenses/{expense_id}/pay")
        assert resp.status_code == 200
        assert resp.get_json()["expense"]["status"] == "paid"

        resp = client.get(f"/api/finance/accounts/{accounts['1101'].id}/cash-flows")
        assert resp.get_json()["account"]["current_balance"] == 70000.0

    def test_missing_account_is_400(self, client, accounts):
        resp = client.post("/api/expenses/", json={"description": "Sewa ruko", "amount": 1000000, "kind": "operasional"})
        assert resp.status_code == 400

    def test_unknown_expense_is_404(self, client, db_session):
        assert client.get("/api/expenses/999").status_code == 404


class TestInventoryRoutes:
    def test_create_product_with_opening_stock(self, client, db_session):
        resp = client.post("/api/inventory/products", json={
            "code": "BR-010", "name": "Beras Setra Ramos 25kg", "stock": 12,
            "purchase_price": 280000, "selling_price": 320000,
        })
        assert resp.status_code == 201
        product_id = resp.get_json()["product"]["id"]

        chain = client.get(f"/api/inventory/products/{product_id}/chain").get_json()["chain"]
        assert chain["is_consistent"] is True
        assert chain["movement_count"] == 1

    def test_create_product_without_name_is_400(self, client, db_session):
        resp = client.post("/api/inventory/products", json={"code": "BR-011"})
        assert resp.status_code == 400
