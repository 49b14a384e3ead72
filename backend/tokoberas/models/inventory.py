from __future__ import annotations

from ..extensions import db
from ..money import to_json_number
from ..time_utils import to_utc_z


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_RETURN = "return"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_DAMAGE = "damage"
MOVEMENT_CORRECTION = "correction"
MOVEMENT_INITIAL = "initial"

# Sign each movement type must carry (None: either sign, never zero)
MOVEMENT_SIGNS = {
    MOVEMENT_IN: 1,
    MOVEMENT_RETURN: 1,
    MOVEMENT_INITIAL: 1,
    MOVEMENT_OUT: -1,
    MOVEMENT_DAMAGE: -1,
    MOVEMENT_ADJUSTMENT: None,
    MOVEMENT_CORRECTION: None,
}


class Product(db.Model):
    """
    Product (barang) master data with a live stock counter.

    STOCK DESIGN DECISION:
    Product.stock is the live on-hand quantity, but it is only ever written by
    stock_service.record_movement() under a row lock, in the same unit of work
    as the StockMovement row that explains the change. The movement chain is
    the audit trail; reconciliation realigns stock with the chain tail.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="kg")

    purchase_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
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
        return f"<Product id={self.id} code={self.code!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "purchase_price": to_json_number(self.purchase_price),
            "selling_price": to_json_number(self.selling_price),
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Immutable record of one change to a product's on-hand quantity.

    Chain invariant per product (ordered by id):
        movement[i].stock_after == movement[i].stock_before + movement[i].quantity
        movement[i].stock_after == movement[i + 1].stock_before
        movement[i].stock_after >= 0
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_id_id", "product_id", "id"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Numeric(15, 2), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "unit_price": to_json_number(self.unit_price),
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }
