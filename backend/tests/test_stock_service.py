# Overview: Pytest coverage for the stock ledger; movements, chain audit and sale edit/delete trails.

import pytest

from tokoberas.errors import InsufficientStockError, NotFoundError, ValidationError
from tokoberas.models import StockMovement
from tokoberas.services import reconciliation_service, sales_service, stock_service
from tokoberas.validation import LineItem

from conftest import make_product


class TestRecordMovement:
    def test_movement_snapshots_before_and_after(self, db_session, product):
        movement = stock_service.record_movement(
            product_id=product.id, movement_type="in", quantity=20, description="Kiriman supplier"
        )

        assert movement.stock_before == 100
        assert movement.stock_after == 120
        assert product.stock == 120

    def test_cannot_go_negative(self, db_session, product):
        with pytest.raises(InsufficientStockError) as exc:
            stock_service.reduce_stock(product.id, 101)

        assert exc.value.details == {"product_id": product.id, "available": 100, "requested": 101}
        db_session.refresh(product)
        assert product.stock == 100
        assert db_session.query(StockMovement).count() == 0

    @pytest.mark.parametrize("movement_type,quantity", [("in", -1), ("out", 5), ("return", -2), ("adjustment", 0)])
    def test_sign_must_match_type(self, db_session, product, movement_type, quantity):
        with pytest.raises(ValidationError):
            stock_service.record_movement(product_id=product.id, movement_type=movement_type, quantity=quantity)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.reduce_stock(12345, 1)

    def test_damage_quantity_is_booked_as_removal(self, db_session, product):
        movement = stock_service.adjust_stock(
            product_id=product.id, movement_type="damage", quantity=3, description="Karung sobek"
        )
        assert movement.quantity == -3
        assert product.stock == 97

    def test_manual_adjust_refuses_sale_movements(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product_id=product.id, movement_type="out", quantity=-1, description="x")

    def test_adjust_requires_description(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product_id=product.id, movement_type="adjustment", quantity=2, description="")


class TestCreateProduct:
    def test_opening_stock_enters_as_initial_movement(self, db_session):
        product = stock_service.create_product(
            code="BR-NEW", name="Beras Rojolele 10kg", category="beras", unit="karung",
            purchase_price=95000, selling_price=120000, stock=40, min_stock=5,
        )

        movements = stock_service.list_movements(product.id)
        assert [(m.movement_type, m.stock_before, m.quantity, m.stock_after) for m in movements] == [
            ("initial", 0, 40, 40)
        ]
        assert product.stock == 40
        assert stock_service.verify_chain(product.id).is_consistent
        assert reconciliation_service.audit_stock_chains() == []

    def test_product_without_opening_stock_has_no_movements(self, db_session):
        product = stock_service.create_product(code="BR-ZERO", name="Beras Merah 1kg")

        assert stock_service.list_movements(product.id) == []
        assert stock_service.verify_chain(product.id).is_consistent

    def test_duplicate_code_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_service.create_product(code=product.code, name="Beras Lain", stock=5)
        assert db_session.query(StockMovement).count() == 0

    @pytest.mark.parametrize("field,value", [("code", ""), ("stock", -1), ("stock", "1.5"), ("purchase_price", "abc")])
    def test_invalid_input_rejected(self, db_session, field, value):
        kwargs = {"code": "BR-BAD", "name": "Beras Uji", "stock": 10}
        kwargs[field] = value
        with pytest.raises(ValidationError):
            stock_service.create_product(**kwargs)


class TestChain:
    def test_consecutive_movements_chain(self, db_session):
        product = make_product(stock=0)
        stock_service.record_movement(product_id=product.id, movement_type="initial", quantity=50)
        stock_service.reduce_stock(product.id, 10)
        stock_service.restore_stock(product.id, 4)
        stock_service.adjust_stock(product_id=product.id, movement_type="correction", quantity=-2, description="Opname")

        movements = stock_service.list_movements(product.id)
        for prev, cur in zip(movements, movements[1:]):
            assert prev.stock_after == cur.stock_before
        report = stock_service.verify_chain(product.id)
        assert report.is_consistent
        assert report.chain_tail == 42

    def test_product_stock_without_history_is_flagged(self, db_session, product):
        report = stock_service.verify_chain(product.id)
        assert not report.is_consistent
        assert report.chain_tail is None

    def test_detects_out_of_band_stock_change(self, db_session):
        product = make_product(stock=0)
        stock_service.record_movement(product_id=product.id, movement_type="initial", quantity=10)
        product.stock = 7
        db_session.commit()

        report = stock_service.verify_chain(product.id)
        assert not report.is_consistent
        assert report.chain_tail == 10
        assert report.product_stock == 7


class TestSaleEditTrail:
    def test_edit_returns_old_quantity_then_books_new(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 5)], payment_method="transfer", channel="online"
        )
        assert product.stock == 95

        sales_service.edit_sale(sale.id, items=[LineItem(product.id, 3)])

        movements = stock_service.list_movements_for_reference("sale", sale.id)
        assert [(m.movement_type, m.quantity) for m in movements] == [("out", -5), ("return", 5), ("out", -3)]
        assert movements[1].stock_before == 95 and movements[1].stock_after == 100
        assert movements[2].stock_before == 100 and movements[2].stock_after == 97
        db_session.refresh(product)
        assert product.stock == 97

    def test_delete_round_trip_restores_stock(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 4)], payment_method="transfer", channel="online"
        )
        sales_service.delete_sale(sale.id)

        db_session.refresh(product)
        assert product.stock == 100
        movements = stock_service.list_movements(product.id)
        assert [m.quantity for m in movements] == [-4, 4]
        assert stock_service.verify_chain(product.id).chain_tail == 100

    def test_failed_edit_leaves_sale_untouched(self, db_session, accounts, product):
        sale = sales_service.create_sale(
            items=[LineItem(product.id, 5)], payment_method="transfer", channel="online"
        )

        with pytest.raises(InsufficientStockError):
            sales_service.edit_sale(sale.id, items=[LineItem(product.id, 500)])

        db_session.refresh(product)
        assert product.stock == 95
        assert len(stock_service.list_movements(product.id)) == 1
