# Overview: Service-layer operations for manual operating expenses; approval, payment and cancellation.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, StatePreconditionError, ValidationError
from ..models import Expense
from ..models.expenses import (
    EXPENSE_APPROVED,
    EXPENSE_CANCELLED,
    EXPENSE_KINDS,
    EXPENSE_PAID,
    EXPENSE_PENDING,
)
from ..time_utils import today, utcnow
from ..validation import coerce_amount
from . import account_service, transaction_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_daily_number
"""
Expense Invariants (authoritative)

- pending -> approved -> paid; pending or approved -> cancelled without any
  ledger effect.
- Paying books exactly one completed expense transaction (posting key
  "expense:{id}") that debits the expense's account and appends an
  "operating_expenses" outflow.
- Cancelling a paid expense cancels its transaction, which reverses the
  applied amount with an opposite cash flow. Nothing is deleted.
"""


def _lock_expense(expense_id: int) -> Expense:
    expense = lock_for_update(db.session.query(Expense).filter_by(id=expense_id)).first()
    if not expense:
        raise NotFoundError("Expense not found", details={"expense_id": expense_id})
    return expense


def get_expense(expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id).first()
    if not expense:
        raise NotFoundError("Expense not found", details={"expense_id": expense_id})
    return expense


def list_expenses(
    *,
    status: str | None = None,
    kind: str | None = None,
    start: date | None = None,
    end: date | None = None,
    limit: int = 100,
) -> list[Expense]:
    query = db.session.query(Expense)
    if status:
        query = query.filter(Expense.status == status)
    if kind:
        query = query.filter(Expense.kind == kind)
    if start:
        query = query.filter(Expense.expense_date >= start)
    if end:
        query = query.filter(Expense.expense_date <= end)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).limit(limit).all()


def create_expense(
    *,
    description: str,
    amount,
    kind: str,
    account_id: int,
    expense_date: date | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Expense:
    """Register a pending expense. Nothing is booked until it is paid."""
    description = str(description or "").strip()
    if not description:
        raise ValidationError("description required")
    if kind not in EXPENSE_KINDS:
        raise ValidationError(f"Invalid expense kind {kind}", details={"allowed": list(EXPENSE_KINDS)})
    amount = coerce_amount(amount, "amount", allow_zero=False)
    if not account_id:
        raise ValidationError("account_id required")

    def _op():
        begin_write()
        account = account_service.get_account(account_id)
        on_date = expense_date or today()
        expense = Expense(
            expense_code=next_daily_number(Expense.expense_code, "EXP", on_date),
            expense_date=on_date,
            description=description,
            kind=kind,
            amount=amount,
            account_id=account.id,
            status=EXPENSE_PENDING,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(expense)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def approve_expense(expense_id: int, user_id: int | None = None, notes: str | None = None) -> Expense:
    def _op():
        begin_write()
        expense = _lock_expense(expense_id)
        if expense.status == EXPENSE_APPROVED:
            return expense
        if expense.status != EXPENSE_PENDING:
            raise StatePreconditionError(
                f"Cannot approve a {expense.status} expense",
                details={"expense_id": expense.id},
            )
        expense.status = EXPENSE_APPROVED
        expense.approved_by = user_id
        expense.approved_at = utcnow()
        if notes:
            expense.notes = notes
        db.session.commit()
        return expense

    return run_with_retry(_op)


def pay_expense(expense_id: int, user_id: int | None = None) -> Expense:
    """
    Pay an approved expense from its account.

    Paying twice returns the paid expense; the ledger entry is written once.
    """
    def _op():
        begin_write()
        expense = _lock_expense(expense_id)
        if expense.status == EXPENSE_PAID:
            return expense
        if expense.status != EXPENSE_APPROVED:
            raise StatePreconditionError(
                f"Cannot pay a {expense.status} expense",
                details={"expense_id": expense.id},
            )
        transaction_service._record_expense_payment_inner(expense, actor_user_id=user_id)
        expense.status = EXPENSE_PAID
        expense.paid_at = utcnow()
        db.session.commit()
        current_app.logger.info("Paid expense %s (%s)", expense.expense_code, expense.amount)
        return expense

    return run_with_retry(_op)


def cancel_expense(expense_id: int, reason: str, user_id: int | None = None) -> Expense:
    if not reason:
        raise ValidationError("reason required")

    def _op():
        begin_write()
        expense = _lock_expense(expense_id)
        if expense.status == EXPENSE_CANCELLED:
            return expense

        if expense.status == EXPENSE_PAID and expense.transaction_id is not None:
            tx = transaction_service.get_transaction(expense.transaction_id, lock=True)
            transaction_service._cancel_transaction_inner(tx, reason=reason, actor_user_id=user_id)
            current_app.logger.warning(
                "Paid expense %s cancelled, %s reversed: %s", expense.expense_code, tx.transaction_code, reason
            )

        expense.status = EXPENSE_CANCELLED
        expense.cancelled_at = utcnow()
        expense.notes = reason
        db.session.commit()
        return expense

    return run_with_retry(_op)
