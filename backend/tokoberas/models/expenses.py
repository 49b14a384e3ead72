from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_iso_date, to_utc_z


EXPENSE_PENDING = "pending"
EXPENSE_APPROVED = "approved"
EXPENSE_PAID = "paid"
EXPENSE_CANCELLED = "cancelled"

EXPENSE_STATUSES = (EXPENSE_PENDING, EXPENSE_APPROVED, EXPENSE_PAID, EXPENSE_CANCELLED)

# Kinds of running costs (pengeluaran); stored as the ledger subcategory
EXPENSE_KINDS = {
    "operasional": "Operasional",
    "maintenance": "Maintenance & Perbaikan",
    "marketing": "Marketing & Promosi",
    "transportasi": "Transportasi",
    "utilitas": "Listrik, Air & Telepon",
    "lainnya": "Lainnya",
}

BUDGET_DRAFT = "draft"
BUDGET_ACTIVE = "active"
BUDGET_CLOSED = "closed"

BUDGET_STATUSES = (BUDGET_DRAFT, BUDGET_ACTIVE, BUDGET_CLOSED)


class Expense(db.Model):
    """
    Manual operating expense (pengeluaran): pending -> approved -> paid.

    Money only leaves the chosen account when the expense is paid; the
    ledger transaction is linked through transaction_id.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_status_date", "status", "expense_date"),
        db.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_code = db.Column(db.String(32), nullable=False, unique=True)

    expense_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey("financial_accounts.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=EXPENSE_PENDING)
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("financial_transactions.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    account = db.relationship("FinancialAccount")

    @property
    def kind_label(self) -> str:
        return EXPENSE_KINDS.get(self.kind, self.kind)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_code": self.expense_code,
            "expense_date": to_iso_date(self.expense_date),
            "description": self.description,
            "kind": self.kind,
            "kind_label": self.kind_label,
            "amount": to_json_number(self.amount),
            "account_id": self.account_id,
            "status": self.status,
            "notes": self.notes,
            "user_id": self.user_id,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "transaction_id": self.transaction_id,
            "created_at": to_utc_z(self.created_at),
        }


class Budget(db.Model):
    """
    Planned spending (anggaran) for one category over one month.

    category matches the expense kind for manual expenses, or the ledger
    category ("payroll", "inventory") for the other outflows.
    """
    __tablename__ = "budgets"
    __table_args__ = (
        db.Index("ix_budgets_period_status", "period", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    budget_code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    period = db.Column(db.String(7), nullable=False)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    category = db.Column(db.String(32), nullable=False)
    planned_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=BUDGET_ACTIVE)
    description = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "budget_code": self.budget_code,
            "name": self.name,
            "period": self.period,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "category": self.category,
            "planned_amount": to_json_number(self.planned_amount),
            "status": self.status,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
