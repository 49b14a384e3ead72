# Overview: Pytest coverage for purchases; receiving stock and recording the expense.

from decimal import Decimal

import pytest

from tokoberas.errors import StatePreconditionError, ValidationError
from tokoberas.models import CashFlow
from tokoberas.services import purchase_service, stock_service, transaction_service
from tokoberas.validation import LineItem

from conftest import set_balance


class TestPurchase:
    def test_create_is_pending_and_moves_nothing(self, db_session, accounts, product):
        purchase = purchase_service.create_purchase(
            supplier_name="PT Sumber Beras", items=[LineItem(product.id, 50, Decimal("9500"))]
        )

        assert purchase.status == "pending"
        assert purchase.total == Decimal("475000")
        assert purchase.purchase_code.startswith("PUR-")
        db_session.refresh(product)
        assert product.stock == 100
        assert transaction_service.list_transactions_for_reference("purchase", purchase.id) == []

    def test_receive_books_stock_expense_and_inventory(self, db_session, accounts, product):
        set_balance(accounts["1101"], 1000000)
        purchase = purchase_service.create_purchase(
            supplier_name="PT Sumber Beras", items=[LineItem(product.id, 50, Decimal("9500"))]
        )

        purchase = purchase_service.receive_purchase(purchase.id)

        assert purchase.status == "completed"
        db_session.refresh(product)
        assert product.stock == 150
        assert product.purchase_price == Decimal("9500")
        movements = stock_service.list_movements_for_reference("purchase", purchase.id)
        assert [(m.movement_type, m.quantity) for m in movements] == [("in", 50)]

        (tx,) = transaction_service.list_transactions_for_reference("purchase", purchase.id)
        assert tx.transaction_type == "expense"
        assert tx.category == "inventory"
        assert tx.status == "completed"

        for code in ("1101", "1301"):
            db_session.refresh(accounts[code])
        assert accounts["1101"].current_balance == Decimal("525000")
        assert accounts["1301"].current_balance == Decimal("475000")
        flow = db_session.query(CashFlow).filter_by(transaction_id=tx.id).one()
        assert flow.direction == "outflow"
        assert flow.category == "purchases"

    def test_receive_twice_is_a_no_op(self, db_session, accounts, product):
        purchase = purchase_service.create_purchase(supplier_name="CV Padi", items=[LineItem(product.id, 10)])
        purchase_service.receive_purchase(purchase.id)
        purchase_service.receive_purchase(purchase.id)

        db_session.refresh(product)
        assert product.stock == 110
        assert len(transaction_service.list_transactions_for_reference("purchase", purchase.id)) == 1

    def test_default_cost_is_product_purchase_price(self, db_session, accounts, product):
        purchase = purchase_service.create_purchase(supplier_name="CV Padi", items=[LineItem(product.id, 10)])
        assert purchase.total == Decimal("100000")

    def test_cancelled_purchase_cannot_be_received(self, db_session, accounts, product):
        purchase = purchase_service.create_purchase(supplier_name="CV Padi", items=[LineItem(product.id, 10)])
        purchase_service.cancel_purchase(purchase.id)

        with pytest.raises(StatePreconditionError):
            purchase_service.receive_purchase(purchase.id)

    def test_supplier_required(self, db_session, accounts, product):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(supplier_name="", items=[LineItem(product.id, 1)])
