# Overview: Pytest coverage for the sale lifecycle (create, edit, payment confirm/reject, pickup, cancel).

from datetime import date
from decimal import Decimal

import pytest

from tokoberas.errors import StatePreconditionError, ValidationError
from tokoberas.models import CashFlow, Sale
from tokoberas.services import sales_service, transaction_service
from tokoberas.validation import LineItem


def online_order(product, quantity=2, method="transfer"):
    return sales_service.create_sale(
        items=[LineItem(product.id, quantity)],
        payment_method=method,
        channel="online",
        customer_name="Ibu Rina",
    )


class TestCreate:
    def test_offline_sale_is_completed(self, db_session, accounts, product, cashier):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 2)], user_id=cashier.id, transaction_date=date(2024, 5, 1)
        )

        assert sale.status == "completed"
        assert sale.channel == "offline"
        assert sale.sale_number == "TRX-20240501-0001"
        assert sale.total == Decimal("30000")
        assert sale.total_cost == Decimal("20000")
        assert sale.profit == Decimal("10000")
        assert sale.completed_at is not None

    def test_sale_numbers_increase_per_day(self, db_session, accounts, product):
        first = sales_service.create_sale(items=[LineItem(product.id, 1)], transaction_date=date(2024, 5, 1))
        second = sales_service.create_sale(items=[LineItem(product.id, 1)], transaction_date=date(2024, 5, 1))
        other_day = sales_service.create_sale(items=[LineItem(product.id, 1)], transaction_date=date(2024, 5, 2))

        assert first.sale_number == "TRX-20240501-0001"
        assert second.sale_number == "TRX-20240501-0002"
        assert other_day.sale_number == "TRX-20240502-0001"

    def test_explicit_unit_price_overrides_selling_price(self, db_session, accounts, product):
        sale = sales_service.create_sale(items=[LineItem(product.id, 2, Decimal("14000"))])
        assert sale.total == Decimal("28000")

    def test_invalid_payment_method(self, db_session, accounts, product):
        with pytest.raises(ValidationError):
            sales_service.create_sale(items=[LineItem(product.id, 1)], payment_method="bitcoin")

    def test_no_items(self, db_session, accounts):
        with pytest.raises(ValidationError):
            sales_service.create_sale(items=[])

    def test_inactive_product_rejected(self, db_session, accounts, product):
        product.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            sales_service.create_sale(items=[LineItem(product.id, 1)])


class TestOnlinePayment:
    def test_confirm_payment_completes_transaction(self, db_session, accounts, product):
        sale = online_order(product)
        sales_service.submit_payment_proof(sale.id)
        sale = sales_service.confirm_payment(sale.id)

        assert sale.status == "paid"
        tx = transaction_service.get_sale_transaction(sale.id)
        assert tx.status == "completed"
        db_session.refresh(accounts["1102"])
        assert accounts["1102"].current_balance == Decimal("30000")
        categories = sorted(t.category for t in transaction_service.list_transactions_for_reference("sale", sale.id))
        assert categories == ["cogs", "sales"]

    def test_reject_after_confirm_reverses_and_bumps_revision(self, db_session, accounts, product):
        sale = online_order(product)
        sales_service.confirm_payment(sale.id)

        sale = sales_service.reject_payment(sale.id, "Bukti transfer palsu")

        assert sale.status == "pending"
        assert sale.financial_revision == 2
        assert sale.payment_rejection_reason == "Bukti transfer palsu"
        assert transaction_service.get_sale_transaction(sale.id) is None
        db_session.refresh(accounts["1102"])
        assert accounts["1102"].current_balance == Decimal("0")
        # Stock stays reserved for the order
        db_session.refresh(product)
        assert product.stock == 98

    def test_confirm_after_reject_records_new_revision(self, db_session, accounts, product):
        sale = online_order(product)
        sales_service.reject_payment(sale.id, "Nominal kurang")
        sales_service.submit_payment_proof(sale.id)
        sale = sales_service.confirm_payment(sale.id)

        tx = transaction_service.get_sale_transaction(sale.id)
        assert tx.status == "completed"
        assert tx.transaction_code.endswith("-R2")
        db_session.refresh(accounts["1102"])
        assert accounts["1102"].current_balance == Decimal("30000")
        assert db_session.query(CashFlow).count() == 1

    def test_pickup_flow(self, db_session, accounts, product):
        sale = online_order(product)
        sales_service.confirm_payment(sale.id)
        sales_service.mark_ready_for_pickup(sale.id)
        sale = sales_service.complete_sale(sale.id)

        assert sale.status == "completed"
        assert len([t for t in transaction_service.list_transactions_for_reference("sale", sale.id)
                    if t.category == "sales"]) == 1

    def test_cannot_complete_unpaid_transfer_order(self, db_session, accounts, product):
        sale = online_order(product)
        with pytest.raises(StatePreconditionError):
            sales_service.complete_sale(sale.id)

    def test_cash_order_completes_from_pending(self, db_session, accounts, product):
        sale = online_order(product, method="cash")
        sale = sales_service.complete_sale(sale.id)
        assert sale.status == "completed"
        db_session.refresh(accounts["1101"])
        assert accounts["1101"].current_balance == Decimal("30000")

    def test_ready_requires_paid(self, db_session, accounts, product):
        sale = online_order(product)
        with pytest.raises(StatePreconditionError):
            sales_service.mark_ready_for_pickup(sale.id)

    def test_reject_requires_reason(self, db_session, accounts, product):
        sale = online_order(product)
        with pytest.raises(ValidationError):
            sales_service.reject_payment(sale.id, "")


class TestEditDeleteCancel:
    def test_edit_pending_order_changes_amount_in_place(self, db_session, accounts, product):
        sale = online_order(product, quantity=5)
        tx_before = transaction_service.get_sale_transaction(sale.id)

        sale = sales_service.edit_sale(sale.id, items=[LineItem(product.id, 3)])

        tx_after = transaction_service.get_sale_transaction(sale.id)
        assert tx_after.id == tx_before.id
        assert tx_after.amount == Decimal("45000")
        assert sale.total == Decimal("45000")
        assert [line.quantity for line in sale.lines] == [3]

    def test_edit_with_applied_transaction_rerecords(self, db_session, accounts, product):
        sale = online_order(product, quantity=2, method="cash")
        sales_service.edit_sale(sale.id, items=[LineItem(product.id, 1)])

        txs = [t for t in transaction_service.list_transactions_for_reference("sale", sale.id) if t.category == "sales"]
        assert [t.status for t in txs] == ["cancelled", "completed"]
        assert txs[1].transaction_code.endswith("-R2")
        db_session.refresh(accounts["1101"])
        assert accounts["1101"].current_balance == Decimal("15000")

    def test_edit_payment_method_moves_money(self, db_session, accounts, product):
        sale = online_order(product, quantity=1, method="cash")
        sales_service.edit_sale(sale.id, items=[LineItem(product.id, 1)], payment_method="transfer")

        tx = transaction_service.get_sale_transaction(sale.id)
        assert tx.status == "pending"
        db_session.refresh(accounts["1101"])
        assert accounts["1101"].current_balance == Decimal("0")

    def test_cannot_edit_completed_sale(self, db_session, accounts, product):
        sale = sales_service.create_sale(items=[LineItem(product.id, 1)])
        with pytest.raises(StatePreconditionError) as exc:
            sales_service.edit_sale(sale.id, items=[LineItem(product.id, 2)])
        assert "completed" in str(exc.value)

    def test_cannot_delete_completed_sale(self, db_session, accounts, product):
        sale = sales_service.create_sale(items=[LineItem(product.id, 1)])
        with pytest.raises(StatePreconditionError):
            sales_service.delete_sale(sale.id)
        assert db_session.query(Sale).count() == 1

    def test_delete_pending_order(self, db_session, accounts, product):
        sale = online_order(product)
        sales_service.delete_sale(sale.id)

        assert db_session.query(Sale).count() == 0
        txs = transaction_service.list_transactions_for_reference("sale", sale.id)
        assert [t.status for t in txs] == ["cancelled"]

    def test_cancel_restores_stock_and_reverses(self, db_session, accounts, product):
        sale = online_order(product, method="cash")
        sale = sales_service.cancel_sale(sale.id, "Pelanggan batal")

        assert sale.status == "cancelled"
        db_session.refresh(product)
        db_session.refresh(accounts["1101"])
        assert product.stock == 100
        assert accounts["1101"].current_balance == Decimal("0")

    def test_cancel_is_idempotent(self, db_session, accounts, product):
        sale = online_order(product)
        sales_service.cancel_sale(sale.id, "Batal")
        sales_service.cancel_sale(sale.id, "Batal lagi")
        db_session.refresh(product)
        assert product.stock == 100
