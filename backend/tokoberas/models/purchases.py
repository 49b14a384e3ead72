from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_iso_date, to_utc_z


PURCHASE_PENDING = "pending"
PURCHASE_COMPLETED = "completed"
PURCHASE_CANCELLED = "cancelled"


class Purchase(db.Model):
    """Stock purchase (pembelian) from a supplier; paid from the account mapped to payment_method."""
    __tablename__ = "purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_code = db.Column(db.String(32), nullable=False, unique=True)

    supplier_name = db.Column(db.String(255), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    status = db.Column(db.String(16), nullable=False, default=PURCHASE_PENDING, index=True)

    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    purchase_date = db.Column(db.Date, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_code": self.purchase_code,
            "supplier_name": self.supplier_name,
            "payment_method": self.payment_method,
            "status": self.status,
            "total": to_json_number(self.total),
            "notes": self.notes,
            "purchase_date": to_iso_date(self.purchase_date),
            "user_id": self.user_id,
            "received_at": to_utc_z(self.received_at),
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(15, 2), nullable=False)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)

    purchase = db.relationship(
        "Purchase",
        backref=db.backref("lines", lazy=True, order_by="PurchaseLine.id", cascade="all, delete-orphan"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost": to_json_number(self.unit_cost),
            "subtotal": to_json_number(self.subtotal),
        }
