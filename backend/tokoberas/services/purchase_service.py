# Overview: Service-layer operations for stock purchases; receiving books stock in and records the expense.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..errors import NotFoundError, StatePreconditionError, ValidationError
from ..models import Purchase, PurchaseLine
from ..models.purchases import PURCHASE_CANCELLED, PURCHASE_COMPLETED, PURCHASE_PENDING
from ..models.sales import PAYMENT_METHODS
from ..money import ZERO, to_decimal
from ..time_utils import today, utcnow
from ..validation import LineItem
from . import stock_service, transaction_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_daily_number


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if not purchase:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    return purchase


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.query(Purchase).filter_by(id=purchase_id).first()
    if not purchase:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    return purchase


def list_purchases(*, status: str | None = None, limit: int = 100) -> list[Purchase]:
    query = db.session.query(Purchase)
    if status:
        query = query.filter(Purchase.status == status)
    return query.order_by(Purchase.id.desc()).limit(limit).all()


def create_purchase(
    *,
    supplier_name: str,
    items: list[LineItem],
    payment_method: str = "cash",
    notes: str | None = None,
    user_id: int | None = None,
    purchase_date: date | None = None,
) -> Purchase:
    """Create a pending purchase order. Nothing moves until it is received."""
    if not supplier_name:
        raise ValidationError("supplier_name required")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method {payment_method}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    if not items:
        raise ValidationError("Cannot create a purchase with no items")

    def _op():
        begin_write()
        on_date = purchase_date or today()
        purchase = Purchase(
            purchase_code=next_daily_number(Purchase.purchase_code, "PUR", on_date),
            supplier_name=supplier_name,
            payment_method=payment_method,
            status=PURCHASE_PENDING,
            notes=notes,
            purchase_date=on_date,
            user_id=user_id,
        )
        db.session.add(purchase)

        total = ZERO
        for item in items:
            product = stock_service.get_product(item.product_id)
            unit_cost = item.unit_price if item.unit_price is not None else to_decimal(product.purchase_price)
            line_total = unit_cost * item.quantity
            purchase.lines.append(PurchaseLine(
                product_id=product.id,
                quantity=item.quantity,
                unit_cost=unit_cost,
                subtotal=line_total,
            ))
            total += line_total

        purchase.total = total
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def receive_purchase(purchase_id: int, user_id: int | None = None, *, update_cost: bool = True) -> Purchase:
    """
    Receive a pending purchase: stock "in" movements per line, the expense
    transaction with its outflow, and the inventory asset increase.

    With update_cost the products' purchase_price follows the received cost.
    """
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        if purchase.status == PURCHASE_COMPLETED:
            return purchase
        if purchase.status != PURCHASE_PENDING:
            raise StatePreconditionError(
                f"Cannot receive a {purchase.status} purchase",
                details={"purchase_id": purchase.id},
            )

        for line in purchase.lines:
            product = stock_service.get_product(line.product_id, lock=True)
            stock_service._record_movement_inner(
                product=product,
                movement_type="in",
                quantity=line.quantity,
                description=f"Pembelian {purchase.purchase_code} dari {purchase.supplier_name}",
                user_id=user_id,
                unit_price=line.unit_cost,
                reference_type="purchase",
                reference_id=purchase.id,
            )
            if update_cost:
                product.purchase_price = line.unit_cost

        purchase.status = PURCHASE_COMPLETED
        purchase.received_at = utcnow()
        transaction_service._record_purchase_inner(purchase, actor_user_id=user_id)

        db.session.commit()
        return purchase

    return run_with_retry(_op)


def cancel_purchase(purchase_id: int) -> Purchase:
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        if purchase.status != PURCHASE_PENDING:
            raise StatePreconditionError(
                f"Cannot cancel a {purchase.status} purchase",
                details={"purchase_id": purchase.id},
            )
        purchase.status = PURCHASE_CANCELLED
        db.session.commit()
        return purchase

    return run_with_retry(_op)
