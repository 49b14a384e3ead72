from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_utc_z


ACCOUNT_TYPES = ("cash", "bank", "asset", "expense", "liability", "equity")

# What adjust_balance does when a subtraction would take the balance below zero
NEGATIVE_ALLOW = "allow"
NEGATIVE_CLAMP = "clamp"
NEGATIVE_REJECT = "reject"
NEGATIVE_BALANCE_POLICIES = (NEGATIVE_ALLOW, NEGATIVE_CLAMP, NEGATIVE_REJECT)


class FinancialAccount(db.Model):
    """
    A named money bucket with a running balance.

    BALANCE INVARIANT:
    For accounts with auto_update_balance=True the stored current_balance must
    equal opening_balance + SUM(inflows) - SUM(outflows) over the account's
    cash_flows rows. The reconciliation service is the repair path.

    Accounts that move without cash flows (inventory asset, COGS expense) are
    seeded with auto_update_balance=False so reconciliation leaves them alone.
    """
    __tablename__ = "financial_accounts"
    __table_args__ = (
        db.Index("ix_financial_accounts_type_active", "account_type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    account_type = db.Column(db.String(16), nullable=False, index=True)
    account_category = db.Column(db.String(32), nullable=True, index=True)

    bank_name = db.Column(db.String(64), nullable=True)
    account_number = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    opening_balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    current_balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    auto_update_balance = db.Column(db.Boolean, nullable=False, default=True)
    negative_balance_policy = db.Column(db.String(16), nullable=False, default=NEGATIVE_ALLOW)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<FinancialAccount id={self.id} code={self.code!r} type={self.account_type} balance={self.current_balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type,
            "account_category": self.account_category,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "opening_balance": to_json_number(self.opening_balance),
            "current_balance": to_json_number(self.current_balance),
            "is_active": self.is_active,
            "auto_update_balance": self.auto_update_balance,
            "negative_balance_policy": self.negative_balance_policy,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
