# Overview: Service-layer operations for payroll; salary calculation, generation, approval, payment and reversal.

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, StatePreconditionError, ValidationError
from ..models import Payroll, PayrollConfiguration, User
from ..models.payroll import (
    PAYROLL_APPROVED,
    PAYROLL_CANCELLED,
    PAYROLL_DRAFT,
    PAYROLL_PAID,
    PAYROLL_REVERSED,
)
from ..money import ZERO, quantize, to_decimal
from ..time_utils import parse_period, today, utcnow
from . import transaction_service
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Payroll Invariants (authoritative)

- gross = basic + overtime + bonus + allowance
- net   = gross - tax - insurance - other_deductions - deduction_amount
- One payroll per (user, period_month); generating twice is a no-op.
- draft -> approved -> paid -> reversed, draft/approved -> cancelled.
- Paying produces exactly one expense transaction + outflow + account debit.
  Reversal never touches that transaction; it adds a compensating income
  transaction + inflow.

Calculation:
- Basic salary and allowances come from active PayrollConfiguration rows for
  the employee's role (or "all"); without any, the role fallbacks below apply.
- Overtime and bonus are always 0: the store pays fixed monthly salaries.
- tax = rate% x (gross - threshold) when gross > threshold (min_value holds
  the threshold).
- insurance = rate% x min(gross, cap) (max_value holds the cap).
"""

BASIC_SALARY_FALLBACK = {
    "admin": Decimal("5000000"),
    "karyawan": Decimal("3500000"),
    "kasir": Decimal("3000000"),
}
DEFAULT_BASIC_SALARY = Decimal("3000000")

ALLOWANCE_FALLBACK = {
    "admin": Decimal("800000"),
    "karyawan": Decimal("500000"),
    "kasir": Decimal("400000"),
}
DEFAULT_ALLOWANCE = Decimal("400000")

HUNDRED = Decimal("100")

DEFAULT_CONFIGURATION = (
    # (config_key, name, category, applies_to, amount, percentage, min_value, max_value, is_active)
    ("basic_salary_admin", "Gaji Pokok Admin", "basic", "admin", "5000000", None, None, None, True),
    ("basic_salary_karyawan", "Gaji Pokok Karyawan", "basic", "karyawan", "3500000", None, None, None, True),
    ("basic_salary_kasir", "Gaji Pokok Kasir", "basic", "kasir", "3000000", None, None, None, True),
    ("overtime_rate", "Tarif Lembur per Jam", "overtime", "all", "25000", None, None, None, True),
    ("transport_allowance_admin", "Tunjangan Transport Admin", "allowance", "admin", "500000", None, None, None, True),
    ("meal_allowance_admin", "Tunjangan Makan Admin", "allowance", "admin", "300000", None, None, None, True),
    ("transport_allowance_karyawan", "Tunjangan Transport Karyawan", "allowance", "karyawan", "300000", None, None, None, True),
    ("meal_allowance_karyawan", "Tunjangan Makan Karyawan", "allowance", "karyawan", "200000", None, None, None, True),
    ("transport_allowance_kasir", "Tunjangan Transport Kasir", "allowance", "kasir", "250000", None, None, None, True),
    ("meal_allowance_kasir", "Tunjangan Makan Kasir", "allowance", "kasir", "150000", None, None, None, True),
    # Toko beras tidak memotong PPh / BPJS; rows exist so they can be switched on
    ("income_tax", "PPh 21", "tax", "all", None, "5", "4500000", None, False),
    ("bpjs_insurance", "BPJS Kesehatan", "insurance", "all", None, "1", None, "8000000", False),
)


@dataclass
class PayrollBreakdown:
    role: str
    basic_salary: Decimal
    overtime_hours: Decimal = ZERO
    overtime_rate: Decimal = ZERO
    overtime_amount: Decimal = ZERO
    bonus_amount: Decimal = ZERO
    allowance_amount: Decimal = ZERO
    deduction_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    insurance_amount: Decimal = ZERO
    other_deductions: Decimal = ZERO
    details: dict = field(default_factory=dict)

    @property
    def gross_salary(self) -> Decimal:
        return self.basic_salary + self.overtime_amount + self.bonus_amount + self.allowance_amount

    @property
    def net_salary(self) -> Decimal:
        return (
            self.gross_salary
            - self.tax_amount
            - self.insurance_amount
            - self.other_deductions
            - self.deduction_amount
        )

    def to_dict(self) -> dict:
        data = {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}
        data["gross_salary"] = str(self.gross_salary)
        data["net_salary"] = str(self.net_salary)
        return data


def _active_configs(category: str, role: str) -> list[PayrollConfiguration]:
    return (
        db.session.query(PayrollConfiguration)
        .filter(
            PayrollConfiguration.category == category,
            PayrollConfiguration.is_active.is_(True),
            PayrollConfiguration.applies_to.in_((role, "all")),
        )
        .order_by(PayrollConfiguration.id.asc())
        .all()
    )


def _basic_salary(role: str) -> tuple[Decimal, dict]:
    configs = [c for c in _active_configs("basic", role) if c.amount is not None]
    # A role-specific row wins over an "all" row
    configs.sort(key=lambda c: 0 if c.applies_to == role else 1)
    if configs:
        return to_decimal(configs[0].amount), {"source": configs[0].config_key, "monthly_rate": str(configs[0].amount)}
    amount = BASIC_SALARY_FALLBACK.get(role, DEFAULT_BASIC_SALARY)
    return amount, {"source": "fallback", "monthly_rate": str(amount)}


def _allowances(role: str) -> tuple[Decimal, dict]:
    configs = [c for c in _active_configs("allowance", role) if c.amount is not None]
    if configs:
        details = {c.config_key: str(to_decimal(c.amount)) for c in configs}
        return sum((to_decimal(c.amount) for c in configs), ZERO), details
    amount = ALLOWANCE_FALLBACK.get(role, DEFAULT_ALLOWANCE)
    return amount, {"fallback": str(amount)}


def _deductions(role: str) -> tuple[Decimal, dict]:
    configs = [c for c in _active_configs("deduction", role) if c.amount is not None]
    details = {c.config_key: str(to_decimal(c.amount)) for c in configs}
    return sum((to_decimal(c.amount) for c in configs), ZERO), details


def _tax(role: str, gross: Decimal) -> tuple[Decimal, dict]:
    total = ZERO
    details = {}
    for config in _active_configs("tax", role):
        if config.percentage is None:
            continue
        threshold = to_decimal(config.min_value)
        taxable = gross - threshold
        amount = quantize(to_decimal(config.percentage) * taxable / HUNDRED) if taxable > ZERO else ZERO
        details[config.config_key] = {
            "rate": str(config.percentage),
            "threshold": str(threshold),
            "amount": str(amount),
        }
        total += amount
    return total, details


def _insurance(role: str, gross: Decimal) -> tuple[Decimal, dict]:
    total = ZERO
    details = {}
    for config in _active_configs("insurance", role):
        if config.percentage is None:
            continue
        base = gross if config.max_value is None else min(gross, to_decimal(config.max_value))
        amount = quantize(to_decimal(config.percentage) * base / HUNDRED)
        details[config.config_key] = {
            "rate": str(config.percentage),
            "base": str(base),
            "amount": str(amount),
        }
        total += amount
    return total, details


def calculate(user: User, period: str) -> PayrollBreakdown:
    """Compute one employee's salary for a "YYYY-MM" period. Read-only."""
    parse_period(period)
    role = user.role

    basic, basic_details = _basic_salary(role)
    allowance, allowance_details = _allowances(role)
    deduction, deduction_details = _deductions(role)

    breakdown = PayrollBreakdown(
        role=role,
        basic_salary=basic,
        allowance_amount=allowance,
        deduction_amount=deduction,
    )
    gross = breakdown.gross_salary
    breakdown.tax_amount, tax_details = _tax(role, gross)
    breakdown.insurance_amount, insurance_details = _insurance(role, gross)

    breakdown.details = {
        "period": period,
        "basic_salary_details": {"role": role, **basic_details},
        "overtime_details": {"hours": "0", "rate": "0", "amount": "0", "note": "Gaji tetap, tanpa lembur"},
        "bonus_details": {"performance_bonus": "0", "attendance_bonus": "0", "special_bonus": "0"},
        "allowance_details": allowance_details,
        "deduction_details": deduction_details,
        "tax_details": tax_details or {"note": "Tidak ada pajak"},
        "insurance_details": insurance_details or {"note": "Tidak ada BPJS"},
    }
    return breakdown


def preview(user_id: int, period: str) -> PayrollBreakdown:
    """calculate() for a user id, with lookup and period errors as domain errors."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    try:
        return calculate(user, period)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"period": period})


def _next_payroll_code(period: str) -> str:
    count = db.session.query(Payroll).filter_by(period_month=period).count()
    seq = count + 1
    code = f"PAY-{period}-{seq:03d}"
    while db.session.query(Payroll.id).filter_by(payroll_code=code).first():
        seq += 1
        code = f"PAY-{period}-{seq:03d}"
    return code


def generate(period: str, user_ids: list[int] | None = None) -> list[Payroll]:
    """
    Create draft payrolls for a period.

    Employees that already have a payroll for the period are skipped, so the
    call is safe to repeat. Returns only the payrolls created by this call.
    """
    try:
        period_start, period_end = parse_period(period)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"period": period})

    def _op():
        begin_write()
        query = db.session.query(User).filter(User.is_active.is_(True))
        if user_ids:
            query = query.filter(User.id.in_(user_ids))
        else:
            query = query.filter(User.role.in_(current_app.config["PAYROLL_ROLES"]))

        created = []
        for user in query.order_by(User.id.asc()).all():
            existing = db.session.query(Payroll.id).filter_by(user_id=user.id, period_month=period).first()
            if existing:
                continue

            breakdown = calculate(user, period)
            payroll = Payroll(
                payroll_code=_next_payroll_code(period),
                user_id=user.id,
                period_month=period,
                period_start=period_start,
                period_end=period_end,
                basic_salary=breakdown.basic_salary,
                overtime_hours=breakdown.overtime_hours,
                overtime_rate=breakdown.overtime_rate,
                overtime_amount=breakdown.overtime_amount,
                bonus_amount=breakdown.bonus_amount,
                allowance_amount=breakdown.allowance_amount,
                deduction_amount=breakdown.deduction_amount,
                gross_salary=breakdown.gross_salary,
                tax_amount=breakdown.tax_amount,
                insurance_amount=breakdown.insurance_amount,
                other_deductions=breakdown.other_deductions,
                net_salary=breakdown.net_salary,
                status=PAYROLL_DRAFT,
                breakdown=breakdown.details,
            )
            db.session.add(payroll)
            db.session.flush()
            created.append(payroll)

        db.session.commit()
        return created

    return run_with_retry(_op)


def _lock_payroll(payroll_id: int) -> Payroll:
    payroll = lock_for_update(db.session.query(Payroll).filter_by(id=payroll_id)).first()
    if not payroll:
        raise NotFoundError("Payroll not found", details={"payroll_id": payroll_id})
    return payroll


def get_payroll(payroll_id: int) -> Payroll:
    payroll = db.session.query(Payroll).filter_by(id=payroll_id).first()
    if not payroll:
        raise NotFoundError("Payroll not found", details={"payroll_id": payroll_id})
    return payroll


def list_payrolls(*, period: str | None = None, status: str | None = None) -> list[Payroll]:
    query = db.session.query(Payroll)
    if period:
        query = query.filter(Payroll.period_month == period)
    if status:
        query = query.filter(Payroll.status == status)
    return query.order_by(Payroll.period_month.desc(), Payroll.id.asc()).all()


def approve(payroll_id: int, user_id: int | None = None) -> Payroll:
    def _op():
        begin_write()
        payroll = _lock_payroll(payroll_id)
        if payroll.status != PAYROLL_DRAFT:
            raise StatePreconditionError(
                f"Only draft payrolls can be approved (status: {payroll.status})",
                details={"payroll_id": payroll.id},
            )
        payroll.status = PAYROLL_APPROVED
        payroll.approved_by = user_id
        payroll.approved_at = utcnow()
        db.session.commit()
        return payroll

    return run_with_retry(_op)


def cancel(payroll_id: int, reason: str | None = None) -> Payroll:
    def _op():
        begin_write()
        payroll = _lock_payroll(payroll_id)
        if payroll.status not in (PAYROLL_DRAFT, PAYROLL_APPROVED):
            raise StatePreconditionError(
                f"Cannot cancel a {payroll.status} payroll",
                details={"payroll_id": payroll.id},
            )
        payroll.status = PAYROLL_CANCELLED
        if reason:
            payroll.notes = reason
        db.session.commit()
        return payroll

    return run_with_retry(_op)


def process_payment(payroll_id: int, account_id: int, user_id: int | None = None, notes: str | None = None) -> Payroll:
    """
    Pay an approved payroll from an account.

    Raises StatePreconditionError unless the payroll is approved, and
    InsufficientBalanceError when the account cannot cover the net salary.
    """
    def _op():
        begin_write()
        payroll = _lock_payroll(payroll_id)
        if payroll.status == PAYROLL_PAID:
            return payroll
        if payroll.status != PAYROLL_APPROVED:
            raise StatePreconditionError(
                "Payroll must be approved first",
                details={"payroll_id": payroll.id, "status": payroll.status},
            )
        if to_decimal(payroll.net_salary) <= ZERO:
            raise ValidationError("Net salary must be positive", details={"payroll_id": payroll.id})

        tx = transaction_service._record_payroll_payment_inner(
            payroll, account_id=account_id, actor_user_id=user_id, notes=notes
        )
        payroll.status = PAYROLL_PAID
        payroll.paid_by = user_id
        payroll.paid_at = utcnow()
        payroll.payment_date = today()
        payroll.transaction_id = tx.id
        if notes:
            payroll.notes = notes

        current_app.logger.info(
            "Payroll %s paid: %s from account %s", payroll.payroll_code, payroll.net_salary, account_id
        )
        db.session.commit()
        return payroll

    return run_with_retry(_op)


def reverse_payment(payroll_id: int, user_id: int | None = None, reason: str | None = None) -> Payroll:
    """Undo a paid payroll with a compensating transaction."""
    if not reason:
        raise ValidationError("reason required")

    def _op():
        begin_write()
        payroll = _lock_payroll(payroll_id)
        if payroll.status == PAYROLL_REVERSED:
            return payroll
        if payroll.status != PAYROLL_PAID:
            raise StatePreconditionError(
                "Only paid payrolls can be reversed",
                details={"payroll_id": payroll.id, "status": payroll.status},
            )
        tx = transaction_service._reverse_payroll_payment_inner(
            payroll, reason=reason, actor_user_id=user_id
        )
        payroll.status = PAYROLL_REVERSED
        payroll.reversal_transaction_id = tx.id
        payroll.notes = f"{payroll.notes}\n{reason}" if payroll.notes else reason
        db.session.commit()
        return payroll

    return run_with_retry(_op)


def seed_default_configuration() -> list[PayrollConfiguration]:
    """Create the default salary components (idempotent)."""
    def _op():
        begin_write()
        created = []
        for key, name, category, applies_to, amount, percentage, min_value, max_value, is_active in DEFAULT_CONFIGURATION:
            if db.session.query(PayrollConfiguration.id).filter_by(config_key=key).first():
                continue
            config = PayrollConfiguration(
                config_key=key,
                name=name,
                category=category,
                applies_to=applies_to,
                amount=Decimal(amount) if amount is not None else None,
                percentage=Decimal(percentage) if percentage is not None else None,
                min_value=Decimal(min_value) if min_value is not None else None,
                max_value=Decimal(max_value) if max_value is not None else None,
                is_active=is_active,
            )
            db.session.add(config)
            created.append(config)
        db.session.commit()
        return created

    return run_with_retry(_op)
