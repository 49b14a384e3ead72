from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_iso_date, to_utc_z


CHANNEL_OFFLINE = "offline"
CHANNEL_ONLINE = "online"
CHANNELS = (CHANNEL_OFFLINE, CHANNEL_ONLINE)

PAYMENT_CASH = "cash"
PAYMENT_TRANSFER = "transfer"
PAYMENT_DEBIT = "debit"
PAYMENT_CREDIT = "credit"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_TRANSFER, PAYMENT_DEBIT, PAYMENT_CREDIT)

SALE_PENDING = "pending"
SALE_AWAITING_CONFIRMATION = "awaiting_confirmation"
SALE_PAID = "paid"
SALE_READY_FOR_PICKUP = "ready_for_pickup"
SALE_COMPLETED = "completed"
SALE_CANCELLED = "cancelled"

# Sale statuses that mean the customer's money has been confirmed
PAYMENT_CONFIRMED_STATUSES = (SALE_PAID, SALE_READY_FOR_PICKUP, SALE_COMPLETED)


class Sale(db.Model):
    """
    Sale (penjualan) document.

    Offline (walk-in) sales are created completed. Online orders start pending,
    move through payment confirmation and pickup, and finish completed.

    financial_revision is bumped when a payment is rejected so the next
    confirmation is recorded under a fresh posting key.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_name = db.Column(db.String(255), nullable=False, default="Walk-in Customer")
    channel = db.Column(db.String(16), nullable=False, default=CHANNEL_OFFLINE)
    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)
    status = db.Column(db.String(24), nullable=False, default=SALE_PENDING, index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    payment_rejection_reason = db.Column(db.String(500), nullable=True)
    financial_revision = db.Column(db.Integer, nullable=False, default=1)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    transaction_date = db.Column(db.Date, nullable=False)

    payment_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_confirmed_by = db.Column(db.Integer, nullable=True)
    payment_rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def profit(self):
        return (self.total or 0) - (self.total_cost or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_name": self.customer_name,
            "channel": self.channel,
            "payment_method": self.payment_method,
            "status": self.status,
            "subtotal": to_json_number(self.subtotal),
            "total": to_json_number(self.total),
            "total_cost": to_json_number(self.total_cost),
            "notes": self.notes,
            "payment_rejection_reason": self.payment_rejection_reason,
            "financial_revision": self.financial_revision,
            "user_id": self.user_id,
            "transaction_date": to_iso_date(self.transaction_date),
            "payment_confirmed_at": to_utc_z(self.payment_confirmed_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Line item (detail penjualan). unit_cost snapshots the product cost basis."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    unit_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("lines", lazy=True, order_by="SaleLine.id", cascade="all, delete-orphan"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": to_json_number(self.unit_price),
            "unit_cost": to_json_number(self.unit_cost),
            "subtotal": to_json_number(self.subtotal),
        }
