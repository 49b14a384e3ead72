# Overview: Service-layer operations for the transaction recorder; turns business events into ledger entries.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, StatePreconditionError, ValidationError
from ..models import (
    CashFlow,
    Expense,
    FinancialAccount,
    FinancialPosting,
    FinancialTransaction,
    Payroll,
    Purchase,
    Sale,
)
from ..models.expenses import EXPENSE_APPROVED, EXPENSE_PAID
from ..models.ledger import (
    FLOW_OPERATING,
    INFLOW,
    OUTFLOW,
    TX_CANCELLED,
    TX_COMPLETED,
    TX_EXPENSE,
    TX_INCOME,
    TX_PENDING,
)
from ..models.sales import CHANNEL_ONLINE, PAYMENT_CASH, PAYMENT_CONFIRMED_STATUSES
from ..money import ZERO, to_decimal
from ..time_utils import today, utcnow
from . import account_service
from .account_service import DECREASE, INCREASE, PaymentAccountPolicy
from .concurrency import begin_write, lock_for_update, run_with_retry
from .ledger_service import (
    EVENT_AMOUNT_CHANGED,
    EVENT_BALANCE_APPLIED,
    EVENT_BALANCE_CLAMPED,
    EVENT_BALANCE_REVERSED,
    EVENT_CANCELLED,
    EVENT_COMPLETED,
    EVENT_CREATED,
    AmountChangeAudit,
    BalanceAudit,
    CogsAudit,
    ExpenseAudit,
    PayrollAudit,
    PurchaseAudit,
    ReversalAudit,
    SaleAudit,
    append_audit_event,
)
"""
Transaction Recorder Invariants (authoritative)

Unit of work:
- Every public function here opens its own unit of work (begin_write + row
  locks + commit inside run_with_retry). The _..._inner helpers never commit
  and are what other services call from inside THEIR unit of work.
- Any exception rolls back the whole unit of work: no transaction row,
  balance change, cash flow, stock movement or posting key survives a failure.

Idempotency:
- A business event is recorded at most once. The FinancialPosting key
  ("sale:{id}:r{revision}", "purchase:{id}", "payroll:{id}",
  "payroll-reversal:{id}", "expense:{id}", "cogs:{sale_id}:r{revision}") is
  looked up after the source row is locked and written last.
- Completing a transaction whose balance_applied is already set is a no-op.

Status rule for sales:
- cash -> completed
- electronic + online -> completed only when the sale payment is confirmed
  (paid / ready_for_pickup / completed), otherwise pending
- electronic + offline -> completed

Balances and cash flows:
- completed income credits to_account, completed expense debits from_account;
  each mutation appends exactly one CashFlow row with the post-mutation
  running balance.
- COGS moves value from the inventory asset account (clamped at zero) to the
  COGS expense account and writes no CashFlow row.
- completed -> cancelled reverses the applied amount and appends an
  opposite-direction CashFlow row ("<category>_reversal"). Rows are never
  deleted.
"""

PREFIX_SALE = "SAL"
PREFIX_COGS = "COGS"
PREFIX_PURCHASE = "PUR"
PREFIX_PAYROLL = "PAY"
PREFIX_PAYROLL_REVERSAL = "PAYREV"
PREFIX_EXPENSE = "EXP"

CATEGORY_SALES = "sales"
CATEGORY_COGS = "cogs"
CATEGORY_INVENTORY = "inventory"
CATEGORY_PAYROLL = "payroll"
CATEGORY_EXPENSE = "expense"

SUBCATEGORY_REVERSAL = "reversal"

# Cash-flow category used for each transaction category
CASH_FLOW_CATEGORIES = {
    CATEGORY_SALES: "sales",
    CATEGORY_INVENTORY: "purchases",
    CATEGORY_PAYROLL: "salaries",
    CATEGORY_EXPENSE: "operating_expenses",
}

EVENT_KINDS = ("sale", "purchase", "payroll", "expense")


# ---------------------------------------------------------------------------
# Codes, keys and lookups
# ---------------------------------------------------------------------------

def generate_transaction_code(prefix: str, reference_id: int, on_date: date | None = None, revision: int = 1) -> str:
    """TXN-{PREFIX}-{referenceId}-{YYYYMMDD}, with -R{n} for re-recordings."""
    on_date = on_date or today()
    code = f"TXN-{prefix}-{reference_id}-{on_date.strftime('%Y%m%d')}"
    if revision > 1:
        code = f"{code}-R{revision}"

    candidate = code
    suffix = 2
    while db.session.query(FinancialTransaction.id).filter_by(transaction_code=candidate).first():
        candidate = f"{code}-{suffix}"
        suffix += 1
    return candidate


def sale_posting_key(sale: Sale) -> str:
    return f"sale:{sale.id}:r{sale.financial_revision or 1}"


def cogs_posting_key(sale: Sale) -> str:
    return f"cogs:{sale.id}:r{sale.financial_revision or 1}"


def _find_posting(key: str) -> FinancialPosting | None:
    return db.session.query(FinancialPosting).filter_by(key=key).first()


def _write_posting(key: str, reference_type: str, reference_id: int, tx: FinancialTransaction | None) -> FinancialPosting:
    posting = FinancialPosting(
        key=key,
        reference_type=reference_type,
        reference_id=reference_id,
        transaction_id=tx.id if tx is not None else None,
    )
    db.session.add(posting)
    db.session.flush()
    return posting


def get_transaction(transaction_id: int, *, lock: bool = False) -> FinancialTransaction:
    query = db.session.query(FinancialTransaction).filter_by(id=transaction_id)
    if lock:
        query = lock_for_update(query)
    tx = query.first()
    if tx is None:
        raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
    return tx


def get_sale_transaction(sale_id: int, *, lock: bool = False) -> FinancialTransaction | None:
    """The live (not cancelled) sales transaction of a sale, if any."""
    query = (
        db.session.query(FinancialTransaction)
        .filter(
            FinancialTransaction.reference_type == "sale",
            FinancialTransaction.reference_id == sale_id,
            FinancialTransaction.category == CATEGORY_SALES,
            FinancialTransaction.status != TX_CANCELLED,
        )
        .order_by(FinancialTransaction.id.desc())
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def list_transactions_for_reference(reference_type: str, reference_id: int) -> list[FinancialTransaction]:
    return (
        db.session.query(FinancialTransaction)
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(FinancialTransaction.id.asc())
        .all()
    )


def _lock_account(account_id: int | None) -> FinancialAccount | None:
    if account_id is None:
        return None
    return account_service.get_account(account_id, require_active=False, lock=True)


# ---------------------------------------------------------------------------
# Core mutations (no commit)
# ---------------------------------------------------------------------------

def _create_transaction(
    *,
    code: str,
    transaction_type: str,
    category: str,
    subcategory: str | None,
    amount,
    reference_type: str | None,
    reference_id: int | None,
    from_account: FinancialAccount | None = None,
    to_account: FinancialAccount | None = None,
    description: str | None = None,
    notes: str | None = None,
    transaction_date: date | None = None,
    created_by: int | None = None,
    audit_payload=None,
) -> FinancialTransaction:
    amount = to_decimal(amount)
    if amount <= ZERO:
        raise ValidationError("Transaction amount must be positive", details={"amount": str(amount)})
    if transaction_type == TX_INCOME and to_account is None:
        raise ValidationError("Income transactions require a destination account")
    if transaction_type == TX_EXPENSE and from_account is None:
        raise ValidationError("Expense transactions require a source account")

    tx = FinancialTransaction(
        transaction_code=code,
        transaction_type=transaction_type,
        category=category,
        subcategory=subcategory,
        amount=amount,
        from_account_id=from_account.id if from_account is not None else None,
        to_account_id=to_account.id if to_account is not None else None,
        reference_type=reference_type,
        reference_id=reference_id,
        status=TX_PENDING,
        description=description,
        notes=notes,
        transaction_date=transaction_date or today(),
        created_by=created_by,
        balance_applied=False,
    )
    db.session.add(tx)
    db.session.flush()

    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_CREATED,
        payload=audit_payload,
        actor_user_id=created_by,
    )
    return tx


def _append_cash_flow(
    *,
    tx: FinancialTransaction,
    account: FinancialAccount,
    direction: str,
    category: str,
    amount,
    description: str | None = None,
) -> CashFlow:
    flow = CashFlow(
        flow_date=today(),
        flow_type=FLOW_OPERATING,
        direction=direction,
        category=category,
        amount=to_decimal(amount),
        account_id=account.id,
        transaction_id=tx.id,
        description=description or tx.description,
        running_balance=account.current_balance,
    )
    db.session.add(flow)
    db.session.flush()
    return flow


def _audit_balance(tx: FinancialTransaction, change, actor_user_id: int | None) -> None:
    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_BALANCE_CLAMPED if change.clamped else EVENT_BALANCE_APPLIED,
        payload=BalanceAudit(
            account_id=change.account_id,
            requested_amount=str(change.requested),
            applied_amount=str(change.applied),
            balance_before=str(change.balance_before),
            balance_after=str(change.balance_after),
        ),
        actor_user_id=actor_user_id,
    )


def _apply_balance(tx: FinancialTransaction, actor_user_id: int | None) -> None:
    """Mutate the account(s) of a transaction and append its cash flow."""
    if tx.balance_applied:
        return

    if tx.category == CATEGORY_COGS:
        inventory = _lock_account(tx.from_account_id)
        cogs = _lock_account(tx.to_account_id)
        change = account_service.adjust_balance(inventory, tx.amount, DECREASE)
        # COGS books only what actually left inventory
        if cogs is not None and change.applied > ZERO:
            account_service.adjust_balance(cogs, change.applied, INCREASE)
        _audit_balance(tx, change, actor_user_id)
    elif tx.transaction_type == TX_INCOME:
        account = _lock_account(tx.to_account_id)
        change = account_service.adjust_balance(account, tx.amount, INCREASE)
        if change.applied > ZERO:
            _append_cash_flow(
                tx=tx,
                account=account,
                direction=INFLOW,
                category=CASH_FLOW_CATEGORIES.get(tx.category, tx.category),
                amount=change.applied,
            )
        _audit_balance(tx, change, actor_user_id)
    else:
        account = _lock_account(tx.from_account_id)
        change = account_service.adjust_balance(account, tx.amount, DECREASE)
        if change.applied > ZERO:
            _append_cash_flow(
                tx=tx,
                account=account,
                direction=OUTFLOW,
                category=CASH_FLOW_CATEGORIES.get(tx.category, tx.category),
                amount=change.applied,
            )
        _audit_balance(tx, change, actor_user_id)

        if tx.category == CATEGORY_INVENTORY:
            inventory = account_service.get_account(
                code=current_app.config["INVENTORY_ACCOUNT_CODE"], lock=True
            )
            account_service.adjust_balance(inventory, tx.amount, INCREASE)

    tx.balance_applied = True
    tx.balance_applied_at = utcnow()
    tx.applied_amount = change.applied


def _reverse_balance(tx: FinancialTransaction, reason: str, actor_user_id: int | None) -> None:
    """Undo an applied transaction with an opposite-direction mutation."""
    applied = to_decimal(tx.applied_amount if tx.applied_amount is not None else tx.amount)

    if tx.category == CATEGORY_COGS:
        inventory = _lock_account(tx.from_account_id)
        cogs = _lock_account(tx.to_account_id)
        if applied > ZERO:
            account_service.adjust_balance(inventory, applied, INCREASE)
            if cogs is not None:
                account_service.adjust_balance(cogs, applied, DECREASE)
        account_id = inventory.id
    elif tx.transaction_type == TX_INCOME:
        account = _lock_account(tx.to_account_id)
        if applied > ZERO:
            account_service.adjust_balance(account, applied, DECREASE)
            _append_cash_flow(
                tx=tx,
                account=account,
                direction=OUTFLOW,
                category=f"{CASH_FLOW_CATEGORIES.get(tx.category, tx.category)}_reversal",
                amount=applied,
                description=f"Reversal of {tx.transaction_code}",
            )
        account_id = account.id
    else:
        account = _lock_account(tx.from_account_id)
        if applied > ZERO:
            account_service.adjust_balance(account, applied, INCREASE)
            _append_cash_flow(
                tx=tx,
                account=account,
                direction=INFLOW,
                category=f"{CASH_FLOW_CATEGORIES.get(tx.category, tx.category)}_reversal",
                amount=applied,
                description=f"Reversal of {tx.transaction_code}",
            )
        account_id = account.id
        if tx.category == CATEGORY_INVENTORY:
            inventory = account_service.get_account(
                code=current_app.config["INVENTORY_ACCOUNT_CODE"], lock=True
            )
            account_service.adjust_balance(inventory, tx.amount, DECREASE)

    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_BALANCE_REVERSED,
        payload=ReversalAudit(
            reason=reason,
            reversed_amount=str(applied),
            account_id=account_id,
            original_transaction_id=tx.id,
        ),
        actor_user_id=actor_user_id,
    )


def _complete_transaction_inner(tx: FinancialTransaction, actor_user_id: int | None = None) -> FinancialTransaction:
    if tx.status == TX_CANCELLED:
        raise StatePreconditionError(
            "Cannot complete a cancelled transaction",
            details={"transaction_id": tx.id},
        )
    if tx.status == TX_COMPLETED and tx.balance_applied:
        return tx

    _apply_balance(tx, actor_user_id)
    tx.status = TX_COMPLETED
    tx.approved_by = actor_user_id
    tx.approved_at = utcnow()
    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_COMPLETED,
        actor_user_id=actor_user_id,
    )

    if tx.reference_type == "sale" and tx.category == CATEGORY_SALES:
        sale = db.session.query(Sale).filter_by(id=tx.reference_id).first()
        if sale is not None:
            _record_cogs_inner(sale, actor_user_id=actor_user_id)
    return tx


def _cancel_transaction_inner(
    tx: FinancialTransaction,
    *,
    reason: str,
    actor_user_id: int | None = None,
) -> FinancialTransaction:
    if tx.status == TX_CANCELLED:
        return tx

    if tx.balance_applied:
        _reverse_balance(tx, reason, actor_user_id)

    if tx.reference_type == "sale" and tx.category == CATEGORY_SALES:
        linked_cogs = (
            db.session.query(FinancialTransaction)
            .filter(
                FinancialTransaction.reference_type == "sale",
                FinancialTransaction.reference_id == tx.reference_id,
                FinancialTransaction.category == CATEGORY_COGS,
                FinancialTransaction.status != TX_CANCELLED,
            )
            .all()
        )
        for cogs_tx in linked_cogs:
            _cancel_transaction_inner(cogs_tx, reason=reason, actor_user_id=actor_user_id)

    tx.status = TX_CANCELLED
    tx.cancelled_at = utcnow()
    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_CANCELLED,
        payload=ReversalAudit(
            reason=reason,
            reversed_amount=str(tx.applied_amount or ZERO) if tx.balance_applied else "0",
        ),
        actor_user_id=actor_user_id,
    )
    return tx


def _update_pending_amount_inner(
    tx: FinancialTransaction,
    new_amount,
    *,
    actor_user_id: int | None = None,
) -> FinancialTransaction:
    new_amount = to_decimal(new_amount)
    if tx.balance_applied or tx.status != TX_PENDING:
        raise StatePreconditionError(
            "Only pending transactions can change amount",
            details={"transaction_id": tx.id, "status": tx.status},
        )
    old_amount = to_decimal(tx.amount)
    if old_amount == new_amount:
        return tx
    tx.amount = new_amount
    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_AMOUNT_CHANGED,
        payload=AmountChangeAudit(old_amount=str(old_amount), new_amount=str(new_amount)),
        actor_user_id=actor_user_id,
    )
    return tx


# ---------------------------------------------------------------------------
# Business events (no commit)
# ---------------------------------------------------------------------------

def sale_transaction_status(sale: Sale) -> str:
    if sale.payment_method == PAYMENT_CASH:
        return TX_COMPLETED
    if sale.channel == CHANNEL_ONLINE:
        return TX_COMPLETED if sale.status in PAYMENT_CONFIRMED_STATUSES else TX_PENDING
    return TX_COMPLETED


def _record_sale_inner(sale: Sale, *, actor_user_id: int | None = None) -> FinancialTransaction | None:
    """
    Record the income side of a sale. The caller holds the sale row lock.

    Returns the transaction (existing one if the sale revision was already
    recorded), or None for a zero-total sale.
    """
    key = sale_posting_key(sale)
    posting = _find_posting(key)
    if posting is not None:
        return posting.transaction

    total = to_decimal(sale.total)
    if total <= ZERO:
        _write_posting(key, "sale", sale.id, None)
        return None

    account = PaymentAccountPolicy().resolve(sale.payment_method, lock=True)
    revision = sale.financial_revision or 1

    tx = _create_transaction(
        code=generate_transaction_code(PREFIX_SALE, sale.id, sale.transaction_date, revision),
        transaction_type=TX_INCOME,
        category=CATEGORY_SALES,
        subcategory=sale.payment_method,
        amount=total,
        reference_type="sale",
        reference_id=sale.id,
        to_account=account,
        description=f"Penjualan {sale.sale_number} - {sale.customer_name}",
        transaction_date=sale.transaction_date,
        created_by=actor_user_id or sale.user_id,
        audit_payload=SaleAudit(
            sale_id=sale.id,
            sale_number=sale.sale_number,
            payment_method=sale.payment_method,
            channel=sale.channel,
            sale_status=sale.status,
            revision=revision,
            total=str(total),
            total_cost=str(to_decimal(sale.total_cost)),
            customer_name=sale.customer_name,
        ),
    )

    if sale_transaction_status(sale) == TX_COMPLETED:
        _complete_transaction_inner(tx, actor_user_id=actor_user_id or sale.user_id)

    _write_posting(key, "sale", sale.id, tx)
    current_app.logger.info(
        "Recorded sale %s as %s (%s, %s)", sale.sale_number, tx.transaction_code, tx.status, total
    )
    return tx


def _record_cogs_inner(sale: Sale, *, actor_user_id: int | None = None) -> FinancialTransaction | None:
    total_cost = to_decimal(sale.total_cost)
    if total_cost <= ZERO:
        return None

    key = cogs_posting_key(sale)
    posting = _find_posting(key)
    if posting is not None:
        return posting.transaction

    inventory = account_service.get_account(code=current_app.config["INVENTORY_ACCOUNT_CODE"], lock=True)
    cogs_account = account_service.get_account(code=current_app.config["COGS_ACCOUNT_CODE"], lock=True)
    revision = sale.financial_revision or 1

    tx = _create_transaction(
        code=generate_transaction_code(PREFIX_COGS, sale.id, sale.transaction_date, revision),
        transaction_type=TX_EXPENSE,
        category=CATEGORY_COGS,
        subcategory="sale",
        amount=total_cost,
        reference_type="sale",
        reference_id=sale.id,
        from_account=inventory,
        to_account=cogs_account,
        description=f"HPP {sale.sale_number}",
        transaction_date=sale.transaction_date,
        created_by=actor_user_id or sale.user_id,
    )
    _apply_balance(tx, actor_user_id)
    tx.status = TX_COMPLETED
    tx.approved_by = actor_user_id
    tx.approved_at = utcnow()
    append_audit_event(
        transaction_id=tx.id,
        event_type=EVENT_COMPLETED,
        payload=CogsAudit(
            sale_id=sale.id,
            sale_number=sale.sale_number,
            requested_amount=str(total_cost),
            applied_amount=str(tx.applied_amount),
            inventory_account_id=inventory.id,
            cogs_account_id=cogs_account.id,
        ),
        actor_user_id=actor_user_id,
    )
    _write_posting(key, "sale", sale.id, tx)
    return tx


def _complete_sale_transaction_inner(sale: Sale, *, actor_user_id: int | None = None) -> FinancialTransaction | None:
    """Make sure a sale whose payment is settled has a completed transaction."""
    tx = get_sale_transaction(sale.id, lock=True)
    if tx is None:
        return _record_sale_inner(sale, actor_user_id=actor_user_id)
    return _complete_transaction_inner(tx, actor_user_id=actor_user_id)


def _record_purchase_inner(purchase: Purchase, *, actor_user_id: int | None = None) -> FinancialTransaction | None:
    key = f"purchase:{purchase.id}"
    posting = _find_posting(key)
    if posting is not None:
        return posting.transaction

    total = to_decimal(purchase.total)
    if total <= ZERO:
        _write_posting(key, "purchase", purchase.id, None)
        return None

    account = PaymentAccountPolicy().resolve(purchase.payment_method, lock=True)
    tx = _create_transaction(
        code=generate_transaction_code(PREFIX_PURCHASE, purchase.id, purchase.purchase_date),
        transaction_type=TX_EXPENSE,
        category=CATEGORY_INVENTORY,
        subcategory="purchase",
        amount=total,
        reference_type="purchase",
        reference_id=purchase.id,
        from_account=account,
        description=f"Pembelian {purchase.purchase_code} - {purchase.supplier_name}",
        transaction_date=purchase.purchase_date,
        created_by=actor_user_id or purchase.user_id,
        audit_payload=PurchaseAudit(
            purchase_id=purchase.id,
            purchase_code=purchase.purchase_code,
            supplier_name=purchase.supplier_name,
            payment_method=purchase.payment_method,
            total=str(total),
            line_count=len(purchase.lines),
        ),
    )
    _complete_transaction_inner(tx, actor_user_id=actor_user_id or purchase.user_id)
    _write_posting(key, "purchase", purchase.id, tx)
    current_app.logger.info("Recorded purchase %s as %s", purchase.purchase_code, tx.transaction_code)
    return tx


def _record_payroll_payment_inner(
    payroll: Payroll,
    *,
    account_id: int,
    actor_user_id: int | None = None,
    notes: str | None = None,
) -> FinancialTransaction:
    key = f"payroll:{payroll.id}"
    posting = _find_posting(key)
    if posting is not None:
        return posting.transaction

    account = account_service.get_account(account_id, lock=True)
    net_salary = to_decimal(payroll.net_salary)
    account_service.ensure_sufficient_balance(account, net_salary)

    pay_date = today()
    employee_name = payroll.user.name if payroll.user is not None else f"#{payroll.user_id}"
    tx = _create_transaction(
        code=generate_transaction_code(PREFIX_PAYROLL, payroll.id, pay_date),
        transaction_type=TX_EXPENSE,
        category=CATEGORY_PAYROLL,
        subcategory="salary_payment",
        amount=net_salary,
        reference_type="payroll",
        reference_id=payroll.id,
        from_account=account,
        description=f"Pembayaran gaji {employee_name} periode {payroll.period_month}",
        notes=notes,
        transaction_date=pay_date,
        created_by=actor_user_id,
        audit_payload=PayrollAudit(
            payroll_id=payroll.id,
            payroll_code=payroll.payroll_code,
            employee_id=payroll.user_id,
            period_month=payroll.period_month,
            net_salary=str(net_salary),
            account_id=account.id,
        ),
    )
    _complete_transaction_inner(tx, actor_user_id=actor_user_id)
    _write_posting(key, "payroll", payroll.id, tx)
    return tx


def _reverse_payroll_payment_inner(
    payroll: Payroll,
    *,
    reason: str,
    actor_user_id: int | None = None,
) -> FinancialTransaction:
    """
    Compensating income transaction for a paid payroll.

    The original payment transaction is left untouched.
    """
    key = f"payroll-reversal:{payroll.id}"
    posting = _find_posting(key)
    if posting is not None:
        return posting.transaction

    if payroll.transaction_id is None:
        raise StatePreconditionError("Payroll has no payment to reverse", details={"payroll_id": payroll.id})
    original = get_transaction(payroll.transaction_id, lock=True)
    if original.status != TX_COMPLETED:
        raise StatePreconditionError(
            "Payroll payment is not completed",
            details={"transaction_id": original.id, "status": original.status},
        )

    account = account_service.get_account(original.from_account_id, require_active=False, lock=True)
    amount = to_decimal(original.applied_amount if original.applied_amount is not None else original.amount)

    tx = _create_transaction(
        code=generate_transaction_code(PREFIX_PAYROLL_REVERSAL, payroll.id, today()),
        transaction_type=TX_INCOME,
        category=CATEGORY_PAYROLL,
        subcategory=SUBCATEGORY_REVERSAL,
        amount=amount,
        reference_type="payroll",
        reference_id=payroll.id,
        to_account=account,
        description=f"Pembatalan pembayaran gaji {payroll.payroll_code}",
        notes=reason,
        transaction_date=today(),
        created_by=actor_user_id,
        audit_payload=ReversalAudit(
            reason=reason,
            reversed_amount=str(amount),
            account_id=account.id,
            original_transaction_id=original.id,
        ),
    )
    change = account_service.adjust_balance(account, amount, INCREASE)
    _append_cash_flow(
        tx=tx,
        account=account,
        direction=INFLOW,
        category=f"{CASH_FLOW_CATEGORIES[CATEGORY_PAYROLL]}_reversal",
        amount=change.applied,
    )
    _audit_balance(tx, change, actor_user_id)
    tx.balance_applied = True
    tx.balance_applied_at = utcnow()
    tx.applied_amount = change.applied
    tx.status = TX_COMPLETED
    tx.approved_by = actor_user_id
    tx.approved_at = utcnow()
    append_audit_event(transaction_id=tx.id, event_type=EVENT_COMPLETED, actor_user_id=actor_user_id)

    _write_posting(key, "payroll", payroll.id, tx)
    return tx


def _record_expense_payment_inner(expense: Expense, *, actor_user_id: int | None = None) -> FinancialTransaction:
    """Completed expense transaction for a paid operating expense. The caller holds the expense row lock."""
    key = f"expense:{expense.id}"
    posting = _find_posting(key)
    if posting is not None:
        return posting.transaction

    if expense.status not in (EXPENSE_APPROVED, EXPENSE_PAID):
        raise StatePreconditionError(
            f"Cannot pay a {expense.status} expense",
            details={"expense_id": expense.id, "status": expense.status},
        )

    account = account_service.get_account(expense.account_id, lock=True)
    amount = to_decimal(expense.amount)
    account_service.ensure_sufficient_balance(account, amount)

    tx = _create_transaction(
        code=generate_transaction_code(PREFIX_EXPENSE, expense.id, expense.expense_date),
        transaction_type=TX_EXPENSE,
        category=CATEGORY_EXPENSE,
        subcategory=expense.kind,
        amount=amount,
        reference_type="expense",
        reference_id=expense.id,
        from_account=account,
        description=expense.description,
        notes=expense.notes,
        transaction_date=expense.expense_date,
        created_by=actor_user_id or expense.user_id,
        audit_payload=ExpenseAudit(
            expense_id=expense.id,
            expense_code=expense.expense_code,
            kind=expense.kind,
            amount=str(amount),
            account_id=account.id,
            approved_by=expense.approved_by,
        ),
    )
    _complete_transaction_inner(tx, actor_user_id=actor_user_id)
    expense.transaction_id = tx.id
    _write_posting(key, "expense", expense.id, tx)
    current_app.logger.info("Recorded expense %s as %s (%s)", expense.expense_code, tx.transaction_code, amount)
    return tx


# ---------------------------------------------------------------------------
# Public units of work
# ---------------------------------------------------------------------------

def _lock_source(model, source_id: int, label: str):
    row = lock_for_update(db.session.query(model).filter_by(id=source_id)).first()
    if row is None:
        raise NotFoundError(f"{label} not found", details={f"{label.lower()}_id": source_id})
    return row


def record_sale(sale_id: int, actor_user_id: int | None = None) -> FinancialTransaction | None:
    def _op():
        begin_write()
        sale = _lock_source(Sale, sale_id, "Sale")
        tx = _record_sale_inner(sale, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def record_purchase(purchase_id: int, actor_user_id: int | None = None) -> FinancialTransaction | None:
    def _op():
        begin_write()
        purchase = _lock_source(Purchase, purchase_id, "Purchase")
        tx = _record_purchase_inner(purchase, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def record_payroll_payment(
    payroll_id: int,
    account_id: int,
    actor_user_id: int | None = None,
    notes: str | None = None,
) -> FinancialTransaction:
    def _op():
        begin_write()
        payroll = _lock_source(Payroll, payroll_id, "Payroll")
        tx = _record_payroll_payment_inner(
            payroll, account_id=account_id, actor_user_id=actor_user_id, notes=notes
        )
        db.session.commit()
        return tx

    return run_with_retry(_op)


def record_expense_payment(expense_id: int, actor_user_id: int | None = None) -> FinancialTransaction:
    def _op():
        begin_write()
        expense = _lock_source(Expense, expense_id, "Expense")
        tx = _record_expense_payment_inner(expense, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def record_event(kind: str, source_id: int, *, actor_user_id: int | None = None, **kwargs):
    """
    Record a business event by kind: "sale", "purchase", "payroll" or "expense".

    Payroll events need account_id (and accept notes).
    """
    if kind == "expense":
        return record_expense_payment(source_id, actor_user_id=actor_user_id)
    if kind == "sale":
        return record_sale(source_id, actor_user_id=actor_user_id)
    if kind == "purchase":
        return record_purchase(source_id, actor_user_id=actor_user_id)
    if kind == "payroll":
        account_id = kwargs.get("account_id")
        if account_id is None:
            raise ValidationError("account_id required for payroll payments")
        return record_payroll_payment(
            source_id, account_id, actor_user_id=actor_user_id, notes=kwargs.get("notes")
        )
    raise ValidationError(f"Unknown event kind {kind}", details={"allowed": list(EVENT_KINDS)})


def confirm_transaction(transaction_id: int, actor_user_id: int | None = None) -> FinancialTransaction:
    """pending -> completed; applies the balance once."""
    def _op():
        begin_write()
        tx = get_transaction(transaction_id, lock=True)
        _complete_transaction_inner(tx, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def cancel_transaction(transaction_id: int, reason: str, actor_user_id: int | None = None) -> FinancialTransaction:
    """pending -> cancelled, or completed -> cancelled with an explicit reversal."""
    if not reason:
        raise ValidationError("reason required")

    def _op():
        begin_write()
        tx = get_transaction(transaction_id, lock=True)
        _cancel_transaction_inner(tx, reason=reason, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def complete_sale_transaction(sale_id: int, actor_user_id: int | None = None) -> FinancialTransaction | None:
    def _op():
        begin_write()
        sale = _lock_source(Sale, sale_id, "Sale")
        tx = _complete_sale_transaction_inner(sale, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def reverse_payroll_payment(payroll_id: int, reason: str, actor_user_id: int | None = None) -> FinancialTransaction:
    def _op():
        begin_write()
        payroll = _lock_source(Payroll, payroll_id, "Payroll")
        tx = _reverse_payroll_payment_inner(payroll, reason=reason, actor_user_id=actor_user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def list_transactions(
    *,
    transaction_type: str | None = None,
    category: str | None = None,
    status: str | None = None,
    start: date | None = None,
    end: date | None = None,
    limit: int = 200,
) -> list[FinancialTransaction]:
    query = db.session.query(FinancialTransaction)
    if transaction_type:
        query = query.filter(FinancialTransaction.transaction_type == transaction_type)
    if category:
        query = query.filter(FinancialTransaction.category == category)
    if status:
        query = query.filter(FinancialTransaction.status == status)
    if start:
        query = query.filter(FinancialTransaction.transaction_date >= start)
    if end:
        query = query.filter(FinancialTransaction.transaction_date <= end)
    return (
        query.order_by(FinancialTransaction.transaction_date.desc(), FinancialTransaction.id.desc())
        .limit(limit)
        .all()
    )
