# Overview: Service-layer operations for monthly spending budgets (anggaran).

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Budget
from ..models.expenses import BUDGET_ACTIVE, BUDGET_STATUSES
from ..time_utils import parse_period
from ..validation import coerce_amount
from .concurrency import begin_write, lock_for_update, run_with_retry


def get_budget(budget_id: int) -> Budget:
    budget = db.session.query(Budget).filter_by(id=budget_id).first()
    if not budget:
        raise NotFoundError("Budget not found", details={"budget_id": budget_id})
    return budget


def list_budgets(*, period: str | None = None, status: str | None = None) -> list[Budget]:
    query = db.session.query(Budget)
    if period:
        query = query.filter(Budget.period == period)
    if status:
        query = query.filter(Budget.status == status)
    return query.order_by(Budget.period.desc(), Budget.category.asc()).all()


def create_budget(
    *,
    period: str,
    category: str,
    planned_amount,
    name: str | None = None,
    description: str | None = None,
    status: str = BUDGET_ACTIVE,
    created_by: int | None = None,
) -> Budget:
    """One budget per category and month ("YYYY-MM")."""
    try:
        start, end = parse_period(period)
    except ValueError:
        raise ValidationError("period must be YYYY-MM", details={"period": period})
    category = str(category or "").strip()
    if not category:
        raise ValidationError("category required")
    if status not in BUDGET_STATUSES:
        raise ValidationError(f"Invalid budget status {status}", details={"allowed": list(BUDGET_STATUSES)})
    planned = coerce_amount(planned_amount, "planned_amount")
    code = f"BDG-{start.strftime('%Y%m')}-{category.upper()}"

    def _op():
        begin_write()
        if db.session.query(Budget.id).filter_by(budget_code=code).first():
            raise ValidationError(
                f"Budget for {category} in {period} already exists",
                details={"budget_code": code},
            )
        budget = Budget(
            budget_code=code,
            name=name or f"Anggaran {category} {start.strftime('%m/%Y')}",
            period=start.strftime("%Y-%m"),
            period_start=start,
            period_end=end,
            category=category,
            planned_amount=planned,
            status=status,
            description=description,
            created_by=created_by,
        )
        db.session.add(budget)
        db.session.commit()
        return budget

    return run_with_retry(_op)


def set_budget_status(budget_id: int, status: str) -> Budget:
    if status not in BUDGET_STATUSES:
        raise ValidationError(f"Invalid budget status {status}", details={"allowed": list(BUDGET_STATUSES)})

    def _op():
        begin_write()
        budget = lock_for_update(db.session.query(Budget).filter_by(id=budget_id)).first()
        if not budget:
            raise NotFoundError("Budget not found", details={"budget_id": budget_id})
        budget.status = status
        db.session.commit()
        return budget

    return run_with_retry(_op)
