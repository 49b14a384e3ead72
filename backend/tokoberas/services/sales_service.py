"""
Sales Service - sale lifecycle wired to the stock ledger and the transaction recorder

Every public function here is one unit of work: the sale row, the product rows
and the account rows it touches are locked, stock movements and financial
records are written together, and the whole thing commits or rolls back as one.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, StatePreconditionError, ValidationError
from ..models import Sale, SaleLine
from ..models.ledger import TX_PENDING
from ..models.sales import (
    CHANNEL_OFFLINE,
    CHANNELS,
    PAYMENT_CASH,
    PAYMENT_METHODS,
    SALE_AWAITING_CONFIRMATION,
    SALE_CANCELLED,
    SALE_COMPLETED,
    SALE_PAID,
    SALE_PENDING,
    SALE_READY_FOR_PICKUP,
)
from ..money import ZERO, to_decimal
from ..time_utils import today, utcnow
from ..validation import LineItem
from . import stock_service, transaction_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_daily_number


EDITABLE_STATUSES = (SALE_PENDING, SALE_AWAITING_CONFIRMATION)
CONFIRMABLE_STATUSES = (SALE_PENDING, SALE_AWAITING_CONFIRMATION)
REJECTABLE_STATUSES = (SALE_PENDING, SALE_AWAITING_CONFIRMATION, SALE_PAID)


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    status: str | None = None,
    channel: str | None = None,
    start: date | None = None,
    end: date | None = None,
    limit: int = 100,
) -> list[Sale]:
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if channel:
        query = query.filter(Sale.channel == channel)
    if start:
        query = query.filter(Sale.transaction_date >= start)
    if end:
        query = query.filter(Sale.transaction_date <= end)
    return query.order_by(Sale.id.desc()).limit(limit).all()


def _book_lines(sale: Sale, items: list[LineItem], user_id: int | None, description: str) -> None:
    """Create sale lines and take their quantities out of stock. Sets totals."""
    subtotal = ZERO
    total_cost = ZERO
    for item in items:
        product = stock_service.get_product(item.product_id, lock=True)
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is inactive", details={"product_id": product.id})

        unit_price = item.unit_price if item.unit_price is not None else to_decimal(product.selling_price)
        unit_cost = to_decimal(product.purchase_price)
        line_total = unit_price * item.quantity

        stock_service._record_movement_inner(
            product=product,
            movement_type="out",
            quantity=-item.quantity,
            description=description,
            user_id=user_id,
            unit_price=unit_price,
            reference_type="sale",
            reference_id=sale.id,
        )
        sale.lines.append(SaleLine(
            product_id=product.id,
            quantity=item.quantity,
            unit_price=unit_price,
            unit_cost=unit_cost,
            subtotal=line_total,
        ))
        subtotal += line_total
        total_cost += unit_cost * item.quantity

    sale.subtotal = subtotal
    sale.total = subtotal
    sale.total_cost = total_cost
    db.session.flush()


def _restore_lines(sale: Sale, user_id: int | None, description: str) -> None:
    for line in list(sale.lines):
        stock_service._restore_stock_inner(
            line.product_id,
            line.quantity,
            description=description,
            user_id=user_id,
            unit_price=line.unit_price,
            reference_type="sale",
            reference_id=sale.id,
        )


def _validate_header(payment_method: str, channel: str) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method {payment_method}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    if channel not in CHANNELS:
        raise ValidationError(f"Invalid channel {channel}", details={"allowed": list(CHANNELS)})


def create_sale(
    *,
    items: list[LineItem],
    payment_method: str = PAYMENT_CASH,
    channel: str | None = None,
    customer_name: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    transaction_date: date | None = None,
) -> Sale:
    """
    Create a sale, reduce stock and record it financially.

    Offline sales are completed on the spot. Online orders start pending and
    get a pending transaction unless they are paid in cash.
    """
    channel = channel or current_app.config.get("DEFAULT_SALE_CHANNEL", CHANNEL_OFFLINE)
    _validate_header(payment_method, channel)
    if not items:
        raise ValidationError("Cannot create a sale with no items")

    def _op():
        begin_write()
        on_date = transaction_date or today()
        now = utcnow()
        sale = Sale(
            sale_number=next_daily_number(Sale.sale_number, "TRX", on_date),
            customer_name=customer_name or "Walk-in Customer",
            channel=channel,
            payment_method=payment_method,
            status=SALE_COMPLETED if channel == CHANNEL_OFFLINE else SALE_PENDING,
            notes=notes,
            user_id=user_id,
            transaction_date=on_date,
            financial_revision=1,
        )
        if channel == CHANNEL_OFFLINE:
            sale.payment_confirmed_at = now
            sale.payment_confirmed_by = user_id
            sale.completed_at = now
        db.session.add(sale)
        db.session.flush()

        _book_lines(sale, items, user_id, f"Penjualan {sale.sale_number}")
        transaction_service._record_sale_inner(sale, actor_user_id=user_id)

        db.session.commit()
        return sale

    return run_with_retry(_op)


def edit_sale(
    sale_id: int,
    *,
    items: list[LineItem],
    user_id: int | None = None,
    payment_method: str | None = None,
    customer_name: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Replace the line items of an unpaid sale.

    Stock: every old line is returned (return movement of the old quantity),
    then every new line is booked out (out movement of the new quantity).
    Finance: a pending transaction has its amount changed; an applied one is
    reversed and the sale is recorded again under the next revision.
    """
    if not items:
        raise ValidationError("Cannot edit a sale to have no items")

    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status not in EDITABLE_STATUSES:
            raise StatePreconditionError(
                f"Cannot edit a {sale.status} sale",
                details={"sale_id": sale.id, "status": sale.status},
            )

        old_method = sale.payment_method
        if payment_method is not None:
            _validate_header(payment_method, sale.channel)
            sale.payment_method = payment_method
        if customer_name is not None:
            sale.customer_name = customer_name
        if notes is not None:
            sale.notes = notes

        _restore_lines(sale, user_id, f"Edit penjualan {sale.sale_number} (pengembalian)")
        for line in list(sale.lines):
            sale.lines.remove(line)
        db.session.flush()
        _book_lines(sale, items, user_id, f"Edit penjualan {sale.sale_number}")

        tx = transaction_service.get_sale_transaction(sale.id, lock=True)
        if (
            tx is not None
            and tx.status == TX_PENDING
            and not tx.balance_applied
            and sale.payment_method == old_method
            and to_decimal(sale.total) > ZERO
        ):
            transaction_service._update_pending_amount_inner(tx, sale.total, actor_user_id=user_id)
        else:
            if tx is not None:
                transaction_service._cancel_transaction_inner(
                    tx, reason="sale edited", actor_user_id=user_id
                )
            sale.financial_revision = (sale.financial_revision or 1) + 1
            transaction_service._record_sale_inner(sale, actor_user_id=user_id)

        db.session.commit()
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int, user_id: int | None = None) -> None:
    """Remove an uncompleted sale; its stock comes back and its transaction is cancelled."""
    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status == SALE_COMPLETED:
            raise StatePreconditionError(
                "Cannot delete a completed sale",
                details={"sale_id": sale.id},
            )

        if sale.status != SALE_CANCELLED:
            _restore_lines(sale, user_id, f"Hapus penjualan {sale.sale_number}")
            tx = transaction_service.get_sale_transaction(sale.id, lock=True)
            if tx is not None:
                transaction_service._cancel_transaction_inner(
                    tx, reason="sale deleted", actor_user_id=user_id
                )

        current_app.logger.info("Deleting sale %s", sale.sale_number)
        db.session.delete(sale)
        db.session.commit()

    return run_with_retry(_op)


def cancel_sale(sale_id: int, reason: str, user_id: int | None = None) -> Sale:
    if not reason:
        raise ValidationError("reason required")

    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status == SALE_CANCELLED:
            return sale
        if sale.status == SALE_COMPLETED:
            raise StatePreconditionError(
                "Cannot cancel a completed sale",
                details={"sale_id": sale.id},
            )

        _restore_lines(sale, user_id, f"Batal penjualan {sale.sale_number}")
        tx = transaction_service.get_sale_transaction(sale.id, lock=True)
        if tx is not None:
            transaction_service._cancel_transaction_inner(tx, reason=reason, actor_user_id=user_id)

        sale.status = SALE_CANCELLED
        sale.cancelled_at = utcnow()
        sale.notes = f"{sale.notes}\n{reason}" if sale.notes else reason
        db.session.commit()
        return sale

    return run_with_retry(_op)


def submit_payment_proof(sale_id: int) -> Sale:
    """Customer reports an electronic payment; the order waits for staff confirmation."""
    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status != SALE_PENDING:
            raise StatePreconditionError(
                f"Cannot submit payment for a {sale.status} sale",
                details={"sale_id": sale.id},
            )
        sale.status = SALE_AWAITING_CONFIRMATION
        sale.payment_rejection_reason = None
        db.session.commit()
        return sale

    return run_with_retry(_op)


def confirm_payment(sale_id: int, user_id: int | None = None) -> Sale:
    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status not in CONFIRMABLE_STATUSES:
            raise StatePreconditionError(
                f"Cannot confirm payment of a {sale.status} sale",
                details={"sale_id": sale.id, "status": sale.status},
            )
        sale.status = SALE_PAID
        sale.payment_confirmed_at = utcnow()
        sale.payment_confirmed_by = user_id
        sale.payment_rejection_reason = None

        transaction_service._complete_sale_transaction_inner(sale, actor_user_id=user_id)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def reject_payment(sale_id: int, reason: str, user_id: int | None = None) -> Sale:
    """
    Reject a payment: the live transaction is cancelled (reversed if it was
    applied) and the sale's financial revision moves on, so a later
    confirmation is recorded afresh.
    """
    if not reason:
        raise ValidationError("reason required")

    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status not in REJECTABLE_STATUSES:
            raise StatePreconditionError(
                f"Cannot reject payment of a {sale.status} sale",
                details={"sale_id": sale.id, "status": sale.status},
            )

        tx = transaction_service.get_sale_transaction(sale.id, lock=True)
        if tx is not None:
            transaction_service._cancel_transaction_inner(tx, reason=reason, actor_user_id=user_id)

        sale.status = SALE_PENDING
        sale.payment_rejection_reason = reason
        sale.payment_rejected_at = utcnow()
        sale.payment_confirmed_at = None
        sale.payment_confirmed_by = None
        sale.financial_revision = (sale.financial_revision or 1) + 1
        db.session.commit()
        return sale

    return run_with_retry(_op)


def mark_ready_for_pickup(sale_id: int) -> Sale:
    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status != SALE_PAID:
            raise StatePreconditionError(
                "Only paid orders can be marked ready for pickup",
                details={"sale_id": sale.id, "status": sale.status},
            )
        sale.status = SALE_READY_FOR_PICKUP
        db.session.commit()
        return sale

    return run_with_retry(_op)


def complete_sale(sale_id: int, user_id: int | None = None) -> Sale:
    """
    Finish an order (picked up). Cash orders may be completed straight from
    pending since the money is taken at the counter.
    """
    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if sale.status == SALE_COMPLETED:
            return sale

        allowed = (SALE_PAID, SALE_READY_FOR_PICKUP)
        if sale.payment_method == PAYMENT_CASH:
            allowed = allowed + CONFIRMABLE_STATUSES
        if sale.status not in allowed:
            raise StatePreconditionError(
                f"Cannot complete a {sale.status} sale",
                details={"sale_id": sale.id, "status": sale.status},
            )

        now = utcnow()
        if sale.payment_confirmed_at is None:
            sale.payment_confirmed_at = now
            sale.payment_confirmed_by = user_id
        sale.status = SALE_COMPLETED
        sale.completed_at = now

        transaction_service._complete_sale_transaction_inner(sale, actor_user_id=user_id)
        db.session.commit()
        return sale

    return run_with_retry(_op)
