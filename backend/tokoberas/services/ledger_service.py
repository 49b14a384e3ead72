# Overview: Service-layer operations for the transaction audit trail; typed, versioned event payloads.

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional

from ..extensions import db
from ..models import TransactionAuditEvent
"""
Transaction Audit Invariants (authoritative)

- Append-only: audit events are never updated or deleted.
- Events are written inside the same DB transaction as the change they record.
- Every payload is built from one of the dataclasses below and stamped with
  its SCHEMA_VERSION. Adding a field bumps the version.
- Monetary values are stored as strings to keep Decimal precision in JSON.
"""

EVENT_CREATED = "created"
EVENT_COMPLETED = "completed"
EVENT_BALANCE_APPLIED = "balance_applied"
EVENT_BALANCE_CLAMPED = "balance_clamped"
EVENT_CANCELLED = "cancelled"
EVENT_BALANCE_REVERSED = "balance_reversed"
EVENT_AMOUNT_CHANGED = "amount_changed"

EVENT_TYPES = (
    EVENT_CREATED,
    EVENT_COMPLETED,
    EVENT_BALANCE_APPLIED,
    EVENT_BALANCE_CLAMPED,
    EVENT_CANCELLED,
    EVENT_BALANCE_REVERSED,
    EVENT_AMOUNT_CHANGED,
)


@dataclass
class SaleAudit:
    SCHEMA_VERSION = 1

    sale_id: int
    sale_number: str
    payment_method: str
    channel: str
    sale_status: str
    revision: int
    total: str
    total_cost: str
    customer_name: Optional[str] = None


@dataclass
class PurchaseAudit:
    SCHEMA_VERSION = 1

    purchase_id: int
    purchase_code: str
    supplier_name: str
    payment_method: str
    total: str
    line_count: int


@dataclass
class PayrollAudit:
    SCHEMA_VERSION = 1

    payroll_id: int
    payroll_code: str
    employee_id: int
    period_month: str
    net_salary: str
    account_id: int


@dataclass
class ExpenseAudit:
    SCHEMA_VERSION = 1

    expense_id: int
    expense_code: str
    kind: str
    amount: str
    account_id: int
    approved_by: Optional[int] = None


@dataclass
class CogsAudit:
    SCHEMA_VERSION = 1

    sale_id: int
    sale_number: str
    requested_amount: str
    applied_amount: str
    inventory_account_id: int
    cogs_account_id: int


@dataclass
class ReversalAudit:
    SCHEMA_VERSION = 1

    reason: str
    reversed_amount: str
    account_id: Optional[int] = None
    original_transaction_id: Optional[int] = None


@dataclass
class BalanceAudit:
    SCHEMA_VERSION = 1

    account_id: int
    requested_amount: str
    applied_amount: str
    balance_before: str
    balance_after: str


@dataclass
class AmountChangeAudit:
    SCHEMA_VERSION = 1

    old_amount: str
    new_amount: str
    reason: str = "sale edited"
    extra: dict = field(default_factory=dict)


def append_audit_event(
    *,
    transaction_id: int,
    event_type: str,
    payload=None,
    actor_user_id: int | None = None,
) -> TransactionAuditEvent:
    """
    Append-only transaction audit event.

    - payload is one of the audit dataclasses (or None).
    - No deletes/updates of existing events.
    - occurred_at is system time (db default).
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown audit event type {event_type}")

    schema_version = getattr(payload, "SCHEMA_VERSION", 1)
    data = None
    if payload is not None:
        data = asdict(payload)
        data["kind"] = type(payload).__name__.replace("Audit", "").lower()

    ev = TransactionAuditEvent(
        transaction_id=transaction_id,
        event_type=event_type,
        schema_version=schema_version,
        payload=data,
        actor_user_id=actor_user_id,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(transaction_id: int) -> list[TransactionAuditEvent]:
    return (
        db.session.query(TransactionAuditEvent)
        .filter_by(transaction_id=transaction_id)
        .order_by(TransactionAuditEvent.id.asc())
        .all()
    )
