from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_iso_date, to_utc_z


PAYROLL_DRAFT = "draft"
PAYROLL_APPROVED = "approved"
PAYROLL_PAID = "paid"
PAYROLL_CANCELLED = "cancelled"
PAYROLL_REVERSED = "reversed"

CONFIG_CATEGORIES = ("basic", "allowance", "deduction", "overtime", "tax", "insurance")


class Payroll(db.Model):
    """
    Monthly salary slip (gaji) for one employee.

    gross = basic + overtime + bonus + allowance
    net   = gross - tax - insurance - other_deductions - deduction_amount

    Lifecycle: draft -> approved -> paid -> reversed, draft/approved -> cancelled.
    """
    __tablename__ = "payrolls"
    __table_args__ = (
        db.UniqueConstraint("user_id", "period_month", name="uq_payrolls_user_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payroll_code = db.Column(db.String(32), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    period_month = db.Column(db.String(7), nullable=False, index=True)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    basic_salary = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    overtime_rate = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    overtime_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    bonus_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    allowance_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    deduction_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    gross_salary = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    insurance_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    other_deductions = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PAYROLL_DRAFT, index=True)
    breakdown = db.Column(db.JSON, nullable=True)

    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_date = db.Column(db.Date, nullable=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("financial_transactions.id"), nullable=True)
    reversal_transaction_id = db.Column(db.Integer, db.ForeignKey("financial_transactions.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("payrolls", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payroll_code": self.payroll_code,
            "user_id": self.user_id,
            "period_month": self.period_month,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "basic_salary": to_json_number(self.basic_salary),
            "overtime_hours": to_json_number(self.overtime_hours),
            "overtime_rate": to_json_number(self.overtime_rate),
            "overtime_amount": to_json_number(self.overtime_amount),
            "bonus_amount": to_json_number(self.bonus_amount),
            "allowance_amount": to_json_number(self.allowance_amount),
            "deduction_amount": to_json_number(self.deduction_amount),
            "gross_salary": to_json_number(self.gross_salary),
            "tax_amount": to_json_number(self.tax_amount),
            "insurance_amount": to_json_number(self.insurance_amount),
            "other_deductions": to_json_number(self.other_deductions),
            "net_salary": to_json_number(self.net_salary),
            "status": self.status,
            "breakdown": self.breakdown,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "paid_by": self.paid_by,
            "paid_at": to_utc_z(self.paid_at),
            "payment_date": to_iso_date(self.payment_date),
            "transaction_id": self.transaction_id,
            "reversal_transaction_id": self.reversal_transaction_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class PayrollConfiguration(db.Model):
    """
    Configurable salary component.

    applies_to is a role name or "all". Fixed components use amount; tax and
    insurance use percentage with min_value (tax threshold) and max_value
    (insurance salary cap).
    """
    __tablename__ = "payroll_configurations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    config_key = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(16), nullable=False, index=True)
    applies_to = db.Column(db.String(16), nullable=False, default="all")

    amount = db.Column(db.Numeric(15, 2), nullable=True)
    percentage = db.Column(db.Numeric(7, 4), nullable=True)
    min_value = db.Column(db.Numeric(15, 2), nullable=True)
    max_value = db.Column(db.Numeric(15, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "config_key": self.config_key,
            "name": self.name,
            "category": self.category,
            "applies_to": self.applies_to,
            "amount": to_json_number(self.amount),
            "percentage": to_json_number(self.percentage),
            "min_value": to_json_number(self.min_value),
            "max_value": to_json_number(self.max_value),
            "is_active": self.is_active,
        }
