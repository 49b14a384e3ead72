# Overview: Pytest coverage for the transaction recorder; sale, purchase and payroll postings.

"""
Transaction recorder tests.

Covers the status rule, balance + cash-flow bookkeeping, COGS with the
inventory clamp, idempotent recording, and reversal on cancel.
"""

from decimal import Decimal

import pytest

from tokoberas.errors import AccountNotFoundError, StatePreconditionError, ValidationError
from tokoberas.models import CashFlow, FinancialPosting, FinancialTransaction, Sale
from tokoberas.services import ledger_service, sales_service, transaction_service
from tokoberas.validation import LineItem

from conftest import make_product, set_balance


def sale_transactions(sale_id):
    return transaction_service.list_transactions_for_reference("sale", sale_id)


class TestSaleCompletion:
    def test_cash_sale_of_30000(self, db_session, accounts, product):
        """Cash account at 0, cash sale of 30.000."""
        sale = sales_service.create_sale(items=[LineItem(product.id, 2)], payment_method="cash")

        tx = transaction_service.get_sale_transaction(sale.id)
        assert tx.status == "completed"
        assert tx.amount == Decimal("30000")
        assert tx.transaction_code.startswith(f"TXN-SAL-{sale.id}-")

        db_session.refresh(accounts["1101"])
        assert accounts["1101"].current_balance == Decimal("30000")

        flows = db_session.query(CashFlow).filter_by(account_id=accounts["1101"].id).all()
        assert len(flows) == 1
        assert flows[0].direction == "inflow"
        assert flows[0].category == "sales"
        assert flows[0].running_balance == Decimal("30000")

    def test_transfer_sale_lands_in_designated_bank(self, db_session, accounts, product):
        sales_service.create_sale(items=[LineItem(product.id, 1)], payment_method="transfer")

        db_session.refresh(accounts["1102"])
        db_session.refresh(accounts["1101"])
        assert accounts["1102"].current_balance == Decimal("15000")
        assert accounts["1101"].current_balance == Decimal("0")

    def test_online_electronic_sale_stays_pending(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 1)], payment_method="transfer", channel="online"
        )

        tx = transaction_service.get_sale_transaction(sale.id)
        assert tx.status == "pending"
        assert tx.balance_applied is False
        db_session.refresh(accounts["1102"])
        assert accounts["1102"].current_balance == Decimal("0")
        assert db_session.query(CashFlow).count() == 0

    def test_online_cash_sale_completes_immediately(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 1)], payment_method="cash", channel="online"
        )
        assert sale.status == "pending"
        assert transaction_service.get_sale_transaction(sale.id).status == "completed"

    def test_missing_payment_account_rolls_back_whole_sale(self, db_session, accounts, product):
        accounts["1102"].is_active = False
        db_session.commit()

        with pytest.raises(AccountNotFoundError):
            sales_service.create_sale(items=[LineItem(product.id, 3)], payment_method="debit")

        db_session.refresh(product)
        assert product.stock == 100
        assert db_session.query(Sale).count() == 0
        assert db_session.query(FinancialTransaction).count() == 0

    def test_audit_trail_of_completed_sale(self, db_session, accounts, product):
        sale = sales_service.create_sale(items=[LineItem(product.id, 1)], payment_method="cash")
        tx = transaction_service.get_sale_transaction(sale.id)

        events = ledger_service.list_audit_events(tx.id)
        assert [e.event_type for e in events] == ["created", "balance_applied", "completed"]
        assert events[0].payload["kind"] == "sale"
        assert events[0].payload["sale_number"] == sale.sale_number
        assert events[0].schema_version == 1


class TestCogs:
    def test_cogs_booked_with_completed_sale(self, db_session, accounts, product):
        set_balance(accounts["1301"], 1000000)
        sale = sales_service.create_sale(items=[LineItem(product.id, 3)], payment_method="cash")

        cogs = [t for t in sale_transactions(sale.id) if t.category == "cogs"]
        assert len(cogs) == 1
        assert cogs[0].amount == Decimal("30000")
        assert cogs[0].transaction_code.startswith(f"TXN-COGS-{sale.id}-")

        db_session.refresh(accounts["1301"])
        db_session.refresh(accounts["5101"])
        assert accounts["1301"].current_balance == Decimal("970000")
        assert accounts["5101"].current_balance == Decimal("30000")
        # COGS writes no cash flow
        assert db_session.query(CashFlow).filter_by(transaction_id=cogs[0].id).count() == 0

    def test_cogs_clamps_inventory_at_zero(self, db_session, accounts, caplog):
        set_balance(accounts["1301"], 1000)
        product = make_product(code="BR-CLAMP", purchase_price=1500, selling_price=2000)

        sale = sales_service.create_sale(items=[LineItem(product.id, 1)], payment_method="cash")

        db_session.refresh(accounts["1301"])
        assert accounts["1301"].current_balance == Decimal("0")
        cogs = next(t for t in sale_transactions(sale.id) if t.category == "cogs")
        assert cogs.amount == Decimal("1500")
        assert cogs.applied_amount == Decimal("1000")
        events = ledger_service.list_audit_events(cogs.id)
        assert "balance_clamped" in [e.event_type for e in events]

        # the expense side mirrors what left inventory, not the requested cost
        db_session.refresh(accounts["5101"])
        assert accounts["5101"].current_balance == Decimal("1000")
        warnings = [r for r in caplog.records if r.levelname == "WARNING" and "clamped" in r.getMessage()]
        assert len(warnings) == 1

    def test_cancel_clamped_cogs_moves_back_applied_amount(self, db_session, accounts):
        set_balance(accounts["1301"], 1000)
        product = make_product(code="BR-CLAMP", purchase_price=1500, selling_price=2000)
        sale = sales_service.create_sale(items=[LineItem(product.id, 1)], payment_method="cash")
        tx = transaction_service.get_sale_transaction(sale.id)

        transaction_service.cancel_transaction(tx.id, "salah input")

        db_session.refresh(accounts["1301"])
        db_session.refresh(accounts["5101"])
        assert accounts["1301"].current_balance == Decimal("1000")
        assert accounts["5101"].current_balance == Decimal("0")

    def test_no_cogs_while_sale_transaction_pending(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 1)], payment_method="transfer", channel="online"
        )
        assert [t.category for t in sale_transactions(sale.id)] == ["sales"]


class TestIdempotency:
    def test_recording_a_sale_twice_creates_one_transaction(self, db_session, accounts, product):
        sale = sales_service.create_sale(items=[LineItem(product.id, 2)], payment_method="cash")
        first = transaction_service.get_sale_transaction(sale.id)

        again = transaction_service.record_event("sale", sale.id)
        assert again.id == first.id
        transaction_service.record_sale(sale.id)

        sales = [t for t in sale_transactions(sale.id) if t.category == "sales"]
        assert len(sales) == 1
        db_session.refresh(accounts["1101"])
        assert accounts["1101"].current_balance == Decimal("30000")
        assert db_session.query(FinancialPosting).filter_by(key=f"sale:{sale.id}:r1").count() == 1

    def test_confirming_twice_applies_once(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 1)], payment_method="transfer", channel="online"
        )
        tx = transaction_service.get_sale_transaction(sale.id)

        transaction_service.confirm_transaction(tx.id)
        transaction_service.confirm_transaction(tx.id)

        db_session.refresh(accounts["1102"])
        assert accounts["1102"].current_balance == Decimal("15000")
        assert db_session.query(CashFlow).filter_by(transaction_id=tx.id).count() == 1

    def test_unknown_event_kind(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.record_event("refund", 1)

    def test_payroll_event_requires_account(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.record_event("payroll", 1)


class TestCancel:
    def test_cancel_completed_sale_transaction_reverses_balance(self, db_session, accounts, product):
        set_balance(accounts["1301"], 100000)
        sale = sales_service.create_sale(items=[LineItem(product.id, 2)], payment_method="cash")
        tx = transaction_service.get_sale_transaction(sale.id)

        transaction_service.cancel_transaction(tx.id, "salah input")

        for code in ("1101", "1301", "5101"):
            db_session.refresh(accounts[code])
        assert accounts["1101"].current_balance == Decimal("0")
        assert accounts["1301"].current_balance == Decimal("100000")
        assert accounts["5101"].current_balance == Decimal("0")

        flows = db_session.query(CashFlow).filter_by(transaction_id=tx.id).order_by(CashFlow.id).all()
        assert [(f.direction, f.category) for f in flows] == [("inflow", "sales"), ("outflow", "sales_reversal")]
        assert flows[-1].running_balance == Decimal("0")
        assert all(t.status == "cancelled" for t in sale_transactions(sale.id))

    def test_cancel_requires_reason(self, db_session, accounts, product):
        sale = sales_service.create_sale(items=[LineItem(product.id, 1)], payment_method="cash")
        tx = transaction_service.get_sale_transaction(sale.id)
        with pytest.raises(ValidationError):
            transaction_service.cancel_transaction(tx.id, "")

    def test_cancelled_transaction_cannot_be_confirmed(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 1)], payment_method="transfer", channel="online"
        )
        tx = transaction_service.get_sale_transaction(sale.id)
        transaction_service.cancel_transaction(tx.id, "dibatalkan pelanggan")

        with pytest.raises(StatePreconditionError):
            transaction_service.confirm_transaction(tx.id)


class TestCodes:
    def test_revision_suffix(self, db_session):
        from datetime import date

        assert transaction_service.generate_transaction_code("SAL", 7, date(2024, 3, 5)) == "TXN-SAL-7-20240305"
        assert transaction_service.generate_transaction_code("SAL", 7, date(2024, 3, 5), 2) == "TXN-SAL-7-20240305-R2"
