from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_iso_date, to_utc_z


TX_INCOME = "income"
TX_EXPENSE = "expense"

TX_PENDING = "pending"
TX_COMPLETED = "completed"
TX_CANCELLED = "cancelled"

FLOW_OPERATING = "operating"
FLOW_INVESTING = "investing"
FLOW_FINANCING = "financing"
FLOW_TYPES = (FLOW_OPERATING, FLOW_INVESTING, FLOW_FINANCING)

INFLOW = "inflow"
OUTFLOW = "outflow"


class FinancialTransaction(db.Model):
    """
    Financial transaction produced by a business event.

    - income transactions credit to_account; expense transactions debit from_account.
      COGS sets both (inventory asset -> COGS expense).
    - reference_type/reference_id is a polymorphic link to the source document
      (sale, purchase, payroll).
    - balance_applied records that the account mutation already happened, so
      completing the same transaction again is a no-op.
    - applied_amount is what actually moved on the debited/credited account
      (smaller than amount when a clamp policy kicked in); reversals use it.
    - Immutable after completed/cancelled except for audit events.
    """
    __tablename__ = "financial_transactions"
    __table_args__ = (
        db.Index("ix_fintx_reference", "reference_type", "reference_id"),
        db.Index("ix_fintx_type_status_date", "transaction_type", "status", "transaction_date"),
        db.CheckConstraint("amount > 0", name="ck_fintx_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_code = db.Column(db.String(64), nullable=False, unique=True)

    transaction_type = db.Column(db.String(16), nullable=False)
    category = db.Column(db.String(32), nullable=False, index=True)
    subcategory = db.Column(db.String(32), nullable=True)

    amount = db.Column(db.Numeric(15, 2), nullable=False)

    from_account_id = db.Column(db.Integer, db.ForeignKey("financial_accounts.id"), nullable=True, index=True)
    to_account_id = db.Column(db.Integer, db.ForeignKey("financial_accounts.id"), nullable=True, index=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=TX_PENDING, index=True)
    description = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    transaction_date = db.Column(db.Date, nullable=False, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    balance_applied = db.Column(db.Boolean, nullable=False, default=False)
    balance_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    applied_amount = db.Column(db.Numeric(15, 2), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    from_account = db.relationship("FinancialAccount", foreign_keys=[from_account_id])
    to_account = db.relationship("FinancialAccount", foreign_keys=[to_account_id])
    audit_events = db.relationship(
        "TransactionAuditEvent",
        backref="transaction",
        lazy=True,
        order_by="TransactionAuditEvent.id",
    )

    @property
    def is_income(self) -> bool:
        return self.transaction_type == TX_INCOME

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_code": self.transaction_code,
            "transaction_type": self.transaction_type,
            "category": self.category,
            "subcategory": self.subcategory,
            "amount": to_json_number(self.amount),
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "status": self.status,
            "description": self.description,
            "notes": self.notes,
            "transaction_date": to_iso_date(self.transaction_date),
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "balance_applied": self.balance_applied,
            "applied_amount": to_json_number(self.applied_amount),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }


class CashFlow(db.Model):
    """
    Append-only cash movement against one account.

    running_balance snapshots the account balance right after the mutation that
    produced this row. Rows are never updated or deleted; reversals append a row
    in the opposite direction.
    """
    __tablename__ = "cash_flows"
    __table_args__ = (
        db.Index("ix_cash_flows_account_date", "account_id", "flow_date"),
        db.CheckConstraint("amount > 0", name="ck_cash_flows_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    flow_date = db.Column(db.Date, nullable=False, index=True)
    flow_type = db.Column(db.String(16), nullable=False, default=FLOW_OPERATING)
    direction = db.Column(db.String(8), nullable=False)
    category = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(15, 2), nullable=False)

    account_id = db.Column(db.Integer, db.ForeignKey("financial_accounts.id"), nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("financial_transactions.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=True)
    running_balance = db.Column(db.Numeric(15, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("FinancialAccount", backref=db.backref("cash_flows", lazy="dynamic"))
    transaction = db.relationship("FinancialTransaction", backref=db.backref("cash_flows", lazy=True))

    @property
    def signed_amount(self):
        return self.amount if self.direction == INFLOW else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "flow_date": to_iso_date(self.flow_date),
            "flow_type": self.flow_type,
            "direction": self.direction,
            "category": self.category,
            "amount": to_json_number(self.amount),
            "account_id": self.account_id,
            "transaction_id": self.transaction_id,
            "description": self.description,
            "running_balance": to_json_number(self.running_balance),
            "created_at": to_utc_z(self.created_at),
        }


class TransactionAuditEvent(db.Model):
    """
    Typed, versioned audit trail for a financial transaction.

    payload is produced from a per-kind dataclass (see ledger_service) and is
    stamped with schema_version so readers can branch on shape changes.
    """
    __tablename__ = "transaction_audit_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("financial_transactions.id"), nullable=False, index=True
    )
    event_type = db.Column(db.String(32), nullable=False, index=True)
    schema_version = db.Column(db.Integer, nullable=False, default=1)
    payload = db.Column(db.JSON, nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "event_type": self.event_type,
            "schema_version": self.schema_version,
            "payload": self.payload,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class FinancialPosting(db.Model):
    """
    Idempotency key for "this business event has been financially recorded".

    Checked and written while the source document row is locked, so two
    concurrent deliveries of the same event cannot both record it.
    """
    __tablename__ = "financial_postings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(64), nullable=False, unique=True)
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("financial_transactions.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("FinancialTransaction")
