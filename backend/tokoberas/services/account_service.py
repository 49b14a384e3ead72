# Overview: Service-layer operations for financial accounts; balances, payment-method routing and seeding.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import AccountNotFoundError, InsufficientBalanceError, ValidationError
from ..models import FinancialAccount
from ..models.accounts import (
    ACCOUNT_TYPES,
    NEGATIVE_ALLOW,
    NEGATIVE_BALANCE_POLICIES,
    NEGATIVE_CLAMP,
    NEGATIVE_REJECT,
)
from ..money import ZERO, format_rupiah, to_decimal
from ..validation import coerce_amount
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Account Store Invariants (authoritative)

- Balances change only through adjust_balance(), inside the caller's unit of
  work, on an account row the caller loaded with lock=True.
- adjust_balance() never commits.
- Subtractions below zero follow account.negative_balance_policy:
    allow  -> balance goes negative
    clamp  -> balance stops at zero, a warning is logged, applied < requested
    reject -> InsufficientBalanceError, nothing changes
- Payment method -> account routing is explicit configuration
  (PAYMENT_ACCOUNT_CODES). There is no fallback account.
"""

INCREASE = "increase"
DECREASE = "decrease"


@dataclass(frozen=True)
class BalanceChange:
    account_id: int
    requested: Decimal
    applied: Decimal
    balance_before: Decimal
    balance_after: Decimal

    @property
    def clamped(self) -> bool:
        return self.applied != self.requested


DEFAULT_ACCOUNTS = (
    {
        "code": "1101",
        "name": "Kas Toko",
        "account_type": "cash",
        "account_category": "cash",
        "description": "Kas tunai di toko",
    },
    {
        "code": "1102",
        "name": "Bank BCA",
        "account_type": "bank",
        "account_category": "bank",
        "bank_name": "BCA",
        "description": "Rekening bank untuk transfer, debit dan kartu kredit",
    },
    {
        "code": "1301",
        "name": "Persediaan Beras",
        "account_type": "asset",
        "account_category": "inventory",
        "auto_update_balance": False,
        "negative_balance_policy": NEGATIVE_CLAMP,
        "description": "Nilai persediaan barang dagangan",
    },
    {
        "code": "5101",
        "name": "Harga Pokok Penjualan",
        "account_type": "expense",
        "account_category": "cogs",
        "auto_update_balance": False,
        "description": "Akumulasi harga pokok penjualan",
    },
)


def get_account(
    account_id: int | None = None,
    *,
    code: str | None = None,
    account_type: str | None = None,
    category: str | None = None,
    name: str | None = None,
    require_active: bool = True,
    lock: bool = False,
) -> FinancialAccount:
    """
    Look up a single account by id or by attributes.

    Raises AccountNotFoundError if nothing matches (or only an inactive
    account matches while require_active is set).
    """
    query = db.session.query(FinancialAccount)
    if account_id is not None:
        query = query.filter(FinancialAccount.id == account_id)
    if code is not None:
        query = query.filter(FinancialAccount.code == code)
    if account_type is not None:
        query = query.filter(FinancialAccount.account_type == account_type)
    if category is not None:
        query = query.filter(FinancialAccount.account_category == category)
    if name is not None:
        query = query.filter(FinancialAccount.name == name)
    if require_active:
        query = query.filter(FinancialAccount.is_active.is_(True))
    if lock:
        query = lock_for_update(query)

    account = query.order_by(FinancialAccount.id.asc()).first()
    if account is None:
        raise AccountNotFoundError(
            "Account not found",
            details={
                "account_id": account_id,
                "code": code,
                "account_type": account_type,
                "category": category,
            },
        )
    return account


def list_accounts(*, include_inactive: bool = False) -> list[FinancialAccount]:
    query = db.session.query(FinancialAccount)
    if not include_inactive:
        query = query.filter(FinancialAccount.is_active.is_(True))
    return query.order_by(FinancialAccount.code.asc()).all()


def adjust_balance(account: FinancialAccount, amount, direction: str) -> BalanceChange:
    """
    Add to or subtract from an account balance inside the current unit of work.

    The caller must hold the account row lock. Returns what actually moved.
    """
    amount = to_decimal(amount)
    if amount <= ZERO:
        raise ValidationError("Amount must be positive", details={"amount": str(amount)})
    if direction not in (INCREASE, DECREASE):
        raise ValidationError(f"Unknown balance direction {direction}")

    before = to_decimal(account.current_balance)

    if direction == INCREASE:
        applied = amount
        after = before + amount
    else:
        applied = amount
        after = before - amount
        if after < ZERO:
            policy = account.negative_balance_policy or NEGATIVE_ALLOW
            if policy == NEGATIVE_REJECT:
                raise InsufficientBalanceError(
                    f"Insufficient balance in {account.name}",
                    details={
                        "account_id": account.id,
                        "available": str(before),
                        "required": str(amount),
                    },
                )
            if policy == NEGATIVE_CLAMP:
                applied = max(before, ZERO)
                after = before - applied
                current_app.logger.warning(
                    "Balance of account %s (%s) clamped: requested %s, applied %s",
                    account.code,
                    account.name,
                    amount,
                    applied,
                )

    account.current_balance = after
    return BalanceChange(
        account_id=account.id,
        requested=amount,
        applied=applied,
        balance_before=before,
        balance_after=after,
    )


def ensure_sufficient_balance(account: FinancialAccount, amount) -> None:
    amount = to_decimal(amount)
    available = to_decimal(account.current_balance)
    if available < amount:
        raise InsufficientBalanceError(
            f"Insufficient balance in {account.name}. "
            f"Available: {format_rupiah(available)}, Required: {format_rupiah(amount)}",
            details={
                "account_id": account.id,
                "available": str(available),
                "required": str(amount),
            },
        )


class PaymentAccountPolicy:
    """
    Resolves which account receives (or pays) money for a payment method.

    The mapping comes from app config PAYMENT_ACCOUNT_CODES unless one is
    passed in explicitly.
    """

    def __init__(self, account_codes: dict[str, str] | None = None):
        if account_codes is None:
            account_codes = current_app.config.get("PAYMENT_ACCOUNT_CODES", {})
        self.account_codes = dict(account_codes)

    def account_code_for(self, payment_method: str) -> str:
        code = self.account_codes.get(payment_method)
        if not code:
            raise AccountNotFoundError(
                f"Account not found for payment method {payment_method}",
                details={"payment_method": payment_method},
            )
        return code

    def resolve(self, payment_method: str, *, lock: bool = False) -> FinancialAccount:
        code = self.account_code_for(payment_method)
        try:
            return get_account(code=code, lock=lock)
        except AccountNotFoundError:
            raise AccountNotFoundError(
                f"Account not found for payment method {payment_method}",
                details={"payment_method": payment_method, "account_code": code},
            )


def _seed_default_accounts_inner() -> list[FinancialAccount]:
    created = []
    for entry in DEFAULT_ACCOUNTS:
        existing = db.session.query(FinancialAccount).filter_by(code=entry["code"]).first()
        if existing:
            continue
        account = FinancialAccount(
            opening_balance=ZERO,
            current_balance=ZERO,
            is_active=True,
            auto_update_balance=entry.get("auto_update_balance", True),
            negative_balance_policy=entry.get("negative_balance_policy", NEGATIVE_ALLOW),
            **{k: v for k, v in entry.items() if k not in ("auto_update_balance", "negative_balance_policy")},
        )
        db.session.add(account)
        created.append(account)
    db.session.flush()
    return created


def seed_default_accounts() -> list[FinancialAccount]:
    """Create the default cash, bank, inventory and COGS accounts (idempotent)."""
    def _op():
        begin_write()
        created = _seed_default_accounts_inner()
        db.session.commit()
        return created

    return run_with_retry(_op)


def create_account(
    *,
    code: str,
    name: str,
    account_type: str,
    account_category: str | None = None,
    opening_balance=0,
    bank_name: str | None = None,
    account_number: str | None = None,
    auto_update_balance: bool = True,
    negative_balance_policy: str = NEGATIVE_ALLOW,
) -> FinancialAccount:
    code = str(code or "").strip()
    name = str(name or "").strip()
    if not code:
        raise ValidationError("Account code is required")
    if not name:
        raise ValidationError("Account name is required")
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"Invalid account type {account_type}")
    if negative_balance_policy not in NEGATIVE_BALANCE_POLICIES:
        raise ValidationError(f"Invalid negative balance policy {negative_balance_policy}")
    opening = coerce_amount(opening_balance, "opening_balance")

    def _op():
        begin_write()
        if db.session.query(FinancialAccount).filter_by(code=code).first():
            raise ValidationError(f"Account code {code} already exists")
        account = FinancialAccount(
            code=code,
            name=name,
            account_type=account_type,
            account_category=account_category or account_type,
            bank_name=bank_name,
            account_number=account_number,
            opening_balance=opening,
            current_balance=opening,
            auto_update_balance=auto_update_balance,
            negative_balance_policy=negative_balance_policy,
        )
        db.session.add(account)
        db.session.commit()
        return account

    return run_with_retry(_op)
