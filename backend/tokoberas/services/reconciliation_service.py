# Overview: Service-layer operations for reconciliation; rebuilds balances and stock counters from their histories.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import CashFlow, FinancialAccount, Product, StockMovement
from ..models.inventory import MOVEMENT_INITIAL
from ..models.ledger import INFLOW
from ..money import to_decimal
from . import stock_service
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Reconciliation Invariants (authoritative)

- Cash-flow rows and stock movements are ground truth; this module never
  writes, updates or deletes them, except for creating a missing "initial"
  movement for a product that has stock but no history at all.
- recalculate_balances() only looks at accounts with auto_update_balance.
  expected = opening_balance + SUM(inflow) - SUM(outflow).
- Running twice in a row changes nothing the second time.
- dry_run reports what would change and rolls back.
"""


@dataclass
class BalanceDrift:
    account_id: int
    account_code: str
    account_name: str
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.expected_balance - self.stored_balance

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "account_code": self.account_code,
            "account_name": self.account_name,
            "stored_balance": float(self.stored_balance),
            "expected_balance": float(self.expected_balance),
            "difference": float(self.difference),
        }


@dataclass
class StockRepair:
    product_id: int
    product_code: str
    action: str
    stock_before: int
    stock_after: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_code": self.product_code,
            "action": self.action,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
        }


def net_cash_flows(account_id: int, *, before=None) -> Decimal:
    """SUM(inflow) - SUM(outflow) for an account, optionally before a date."""
    signed = case((CashFlow.direction == INFLOW, CashFlow.amount), else_=-CashFlow.amount)
    query = db.session.query(func.coalesce(func.sum(signed), 0)).filter(CashFlow.account_id == account_id)
    if before is not None:
        query = query.filter(CashFlow.flow_date < before)
    return to_decimal(query.scalar() or 0)


def expected_balance(account: FinancialAccount) -> Decimal:
    return to_decimal(account.opening_balance) + net_cash_flows(account.id)


def find_balance_drift() -> list[BalanceDrift]:
    """Read-only comparison of stored vs recomputed balances."""
    drifts = []
    accounts = (
        db.session.query(FinancialAccount)
        .filter(FinancialAccount.auto_update_balance.is_(True))
        .order_by(FinancialAccount.id.asc())
        .all()
    )
    for account in accounts:
        expected = expected_balance(account)
        stored = to_decimal(account.current_balance)
        if expected != stored:
            drifts.append(BalanceDrift(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                stored_balance=stored,
                expected_balance=expected,
            ))
    return drifts


def recalculate_balances(dry_run: bool = False) -> list[BalanceDrift]:
    """
    Reset every auto-updated account to opening + net cash flows.

    Returns the accounts whose stored balance was (or, with dry_run, would
    be) corrected.
    """
    def _op():
        begin_write()
        accounts = lock_for_update(
            db.session.query(FinancialAccount)
            .filter(FinancialAccount.auto_update_balance.is_(True))
            .order_by(FinancialAccount.id.asc())
        ).all()

        drifts = []
        for account in accounts:
            expected = expected_balance(account)
            stored = to_decimal(account.current_balance)
            if expected == stored:
                continue
            drifts.append(BalanceDrift(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                stored_balance=stored,
                expected_balance=expected,
            ))
            if not dry_run:
                account.current_balance = expected
                current_app.logger.warning(
                    "Account %s balance corrected from %s to %s", account.code, stored, expected
                )

        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return drifts

    return run_with_retry(_op)


def audit_stock_chains() -> list[stock_service.ChainReport]:
    """Chain reports for every product whose history or counter is inconsistent."""
    reports = []
    for (product_id,) in db.session.query(Product.id).order_by(Product.id.asc()).all():
        report = stock_service.verify_chain(product_id)
        if not report.is_consistent:
            reports.append(report)
    return reports


def reconcile_stock(dry_run: bool = False) -> list[StockRepair]:
    """
    Realign product stock counters with their movement chains.

    - A product with stock but no movements gets an "initial" movement.
    - A product whose stock differs from its chain tail is set to the tail.
    """
    def _op():
        begin_write()
        products = lock_for_update(db.session.query(Product).order_by(Product.id.asc())).all()

        repairs = []
        for product in products:
            tail = (
                db.session.query(StockMovement.stock_after)
                .filter(StockMovement.product_id == product.id)
                .order_by(StockMovement.id.desc())
                .first()
            )
            stock = int(product.stock or 0)

            if tail is None:
                if stock <= 0:
                    continue
                repairs.append(StockRepair(product.id, product.code, "initial_movement", stock, stock))
                if not dry_run:
                    db.session.add(StockMovement(
                        product_id=product.id,
                        movement_type=MOVEMENT_INITIAL,
                        quantity=stock,
                        stock_before=0,
                        stock_after=stock,
                        unit_price=product.purchase_price,
                        description="Stok awal (rekonsiliasi)",
                        reference_type="reconciliation",
                    ))
                    current_app.logger.warning(
                        "Created initial movement of %s for product %s", stock, product.code
                    )
                continue

            chain_tail = int(tail[0])
            if chain_tail < 0:
                current_app.logger.error(
                    "Product %s movement chain ends below zero (%s); run stock audit", product.code, chain_tail
                )
                continue
            if chain_tail != stock:
                repairs.append(StockRepair(product.id, product.code, "realign_stock", stock, chain_tail))
                if not dry_run:
                    product.stock = chain_tail
                    current_app.logger.warning(
                        "Product %s stock realigned from %s to %s", product.code, stock, chain_tail
                    )

        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return repairs

    return run_with_retry(_op)
