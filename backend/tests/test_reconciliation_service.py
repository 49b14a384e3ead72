# Overview: Pytest coverage for balance recalculation and stock chain repair.

from decimal import Decimal

from tokoberas.models import StockMovement
from tokoberas.services import purchase_service, reconciliation_service, stock_service
from tokoberas.validation import LineItem

from conftest import set_balance


class TestRecalculateBalances:
    """Stored balances are rebuilt from opening balance + cash flows."""

    def test_clean_ledger_reports_nothing(self, db_session, accounts):
        set_balance(accounts["1101"], 250000)
        assert reconciliation_service.recalculate_balances() == []

    def test_drift_is_corrected(self, db_session, accounts):
        cash = accounts["1101"]
        set_balance(cash, 250000)
        cash.current_balance = Decimal("1")
        db_session.commit()

        drifts = reconciliation_service.recalculate_balances()

        assert [d.account_code for d in drifts] == ["1101"]
        assert drifts[0].stored_balance == Decimal("1")
        assert drifts[0].expected_balance == Decimal("250000")
        assert drifts[0].difference == Decimal("249999")
        db_session.refresh(cash)
        assert cash.current_balance == Decimal("250000")

    def test_second_run_changes_nothing(self, db_session, accounts):
        cash = accounts["1101"]
        set_balance(cash, 250000)
        cash.current_balance = Decimal("0")
        db_session.commit()

        reconciliation_service.recalculate_balances()
        assert reconciliation_service.recalculate_balances() == []

    def test_dry_run_leaves_balance_alone(self, db_session, accounts):
        cash = accounts["1101"]
        set_balance(cash, 250000)
        cash.current_balance = Decimal("7")
        db_session.commit()

        drifts = reconciliation_service.recalculate_balances(dry_run=True)

        assert len(drifts) == 1
        db_session.refresh(cash)
        assert cash.current_balance == Decimal("7")
        assert reconciliation_service.find_balance_drift()[0].expected_balance == Decimal("250000")

    def test_cash_flows_count_towards_expected(self, db_session, accounts, product):
        set_balance(accounts["1101"], 100000)
        purchase = purchase_service.create_purchase(
            supplier_name="UD Sumber Padi",
            items=[LineItem(product_id=product.id, quantity=2, unit_price=Decimal("10000"))],
        )
        purchase_service.receive_purchase(purchase.id)

        assert reconciliation_service.expected_balance(accounts["1101"]) == Decimal("80000")
        assert reconciliation_service.recalculate_balances() == []


class TestStockChains:
    def test_product_without_history_is_reported(self, db_session, product):
        reports = reconciliation_service.audit_stock_chains()

        assert len(reports) == 1
        assert reports[0].chain_tail is None
        assert reports[0].product_stock == 100

    def test_initial_movement_created(self, db_session, product):
        repairs = reconciliation_service.reconcile_stock()

        assert [(r.action, r.stock_before, r.stock_after) for r in repairs] == [("initial_movement", 100, 100)]
        movement = StockMovement.query.filter_by(product_id=product.id).one()
        assert movement.movement_type == "initial"
        assert (movement.stock_before, movement.quantity, movement.stock_after) == (0, 100, 100)
        assert reconciliation_service.audit_stock_chains() == []

    def test_counter_realigned_to_chain_tail(self, db_session, product):
        reconciliation_service.reconcile_stock()
        stock_service.reduce_stock(product.id, 10, description="Penjualan")
        product.stock = 95
        db_session.commit()

        (report,) = reconciliation_service.audit_stock_chains()
        assert (report.product_stock, report.chain_tail) == (95, 90)

        repairs = reconciliation_service.reconcile_stock()

        assert [(r.action, r.stock_after) for r in repairs] == [("realign_stock", 90)]
        db_session.refresh(product)
        assert product.stock == 90
        assert StockMovement.query.filter_by(product_id=product.id).count() == 2

    def test_dry_run_does_not_write(self, db_session, product):
        repairs = reconciliation_service.reconcile_stock(dry_run=True)

        assert len(repairs) == 1
        assert StockMovement.query.count() == 0

    def test_reconcile_is_idempotent(self, db_session, product):
        reconciliation_service.reconcile_stock()
        assert reconciliation_service.reconcile_stock() == []
