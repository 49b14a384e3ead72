# backend/tokoberas/config.py
from __future__ import annotations
import json
import os


def _json_env(name: str, default: dict) -> dict:
    raw = os.environ.get(name)
    if not raw:
        return dict(default)
    return json.loads(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tokoberas.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tokoberas.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment method -> account code. Every electronic method lands in the
    # single designated bank account (Bank BCA).
    PAYMENT_ACCOUNT_CODES = _json_env(
        "PAYMENT_ACCOUNT_CODES",
        {
            "cash": "1101",
            "transfer": "1102",
            "debit": "1102",
            "credit": "1102",
        },
    )

    # Accounts used for cost-of-goods bookings
    INVENTORY_ACCOUNT_CODE = os.environ.get("INVENTORY_ACCOUNT_CODE", "1301")
    COGS_ACCOUNT_CODE = os.environ.get("COGS_ACCOUNT_CODE", "5101")

    # Roles that receive a monthly payroll
    PAYROLL_ROLES = ("admin", "karyawan", "kasir")

    # Channel assumed when a sale payload omits it
    DEFAULT_SALE_CHANNEL = os.environ.get("DEFAULT_SALE_CHANNEL", "offline")
