# Overview: Service-layer operations for the stock ledger; every quantity change is an immutable movement.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import Product, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_CORRECTION,
    MOVEMENT_DAMAGE,
    MOVEMENT_INITIAL,
    MOVEMENT_OUT,
    MOVEMENT_RETURN,
    MOVEMENT_SIGNS,
)
from ..money import to_decimal
from ..validation import coerce_amount, coerce_int
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Product.stock is written ONLY by _record_movement_inner(), on a product row
  loaded with lock_for_update(), in the same unit of work as the movement.
- Every movement stores stock_before, quantity (signed) and stock_after, with
  stock_after = stock_before + quantity >= 0.
- Consecutive movements of a product chain: movement[i].stock_after ==
  movement[i+1].stock_before (ordered by id).
- Movements are never updated or deleted. Edits are expressed as a "return"
  of the old quantity followed by an "out" of the new quantity.

Sign rules:
- in / return / initial: quantity > 0
- out / damage: quantity < 0
- adjustment / correction: quantity != 0
"""

MANUAL_MOVEMENT_TYPES = (MOVEMENT_ADJUSTMENT, MOVEMENT_DAMAGE, MOVEMENT_CORRECTION)


@dataclass
class ChainBreak:
    movement_id: int
    problem: str
    expected: int | None = None
    actual: int | None = None

    def to_dict(self) -> dict:
        return {
            "movement_id": self.movement_id,
            "problem": self.problem,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass
class ChainReport:
    product_id: int
    product_stock: int
    movement_count: int
    chain_tail: int | None
    breaks: list[ChainBreak] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        if self.breaks:
            return False
        if self.chain_tail is None:
            return self.product_stock == 0
        return self.chain_tail == self.product_stock

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_stock": self.product_stock,
            "movement_count": self.movement_count,
            "chain_tail": self.chain_tail,
            "is_consistent": self.is_consistent,
            "breaks": [b.to_dict() for b in self.breaks],
        }


def _check_sign(movement_type: str, quantity: int) -> None:
    if movement_type not in MOVEMENT_SIGNS:
        raise ValidationError(f"Unknown movement type {movement_type}")
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError("Quantity must be an integer")
    if quantity == 0:
        raise ValidationError("Quantity must not be zero")
    sign = MOVEMENT_SIGNS[movement_type]
    if sign is not None and (quantity > 0) != (sign > 0):
        raise ValidationError(
            f"Quantity sign does not match movement type {movement_type}",
            details={"movement_type": movement_type, "quantity": quantity},
        )


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(*, include_inactive: bool = False, low_stock_only: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if low_stock_only:
        query = query.filter(Product.stock <= Product.min_stock)
    return query.order_by(Product.code.asc()).all()


def create_product(
    *,
    code: str,
    name: str,
    category: str | None = None,
    unit: str = "kg",
    purchase_price=0,
    selling_price=0,
    stock=0,
    min_stock=0,
    user_id: int | None = None,
) -> Product:
    """
    Register a product. Opening stock enters through an "initial" movement
    (0 -> stock) so the chain explains the counter from the first row.
    """
    code = str(code or "").strip()
    name = str(name or "").strip()
    if not code:
        raise ValidationError("Product code is required")
    if not name:
        raise ValidationError("Product name is required")
    opening_stock = coerce_int(stock, "stock")
    if opening_stock < 0:
        raise ValidationError("stock must not be negative", details={"stock": opening_stock})
    min_stock = coerce_int(min_stock, "min_stock")
    purchase_price = coerce_amount(purchase_price, "purchase_price")
    selling_price = coerce_amount(selling_price, "selling_price")

    def _op():
        begin_write()
        if db.session.query(Product.id).filter_by(code=code).first():
            raise ValidationError(f"Product code {code} already exists", details={"code": code})
        product = Product(
            code=code,
            name=name,
            category=category,
            unit=unit,
            purchase_price=purchase_price,
            selling_price=selling_price,
            stock=0,
            min_stock=min_stock,
            is_active=True,
        )
        db.session.add(product)
        db.session.flush()

        if opening_stock > 0:
            _record_movement_inner(
                product=product,
                movement_type=MOVEMENT_INITIAL,
                quantity=opening_stock,
                description="Stok awal barang baru",
                user_id=user_id,
                unit_price=selling_price,
                details={"initial_stock": opening_stock, "unit_cost": str(purchase_price)},
            )
        db.session.commit()
        current_app.logger.info("Registered product %s with opening stock %s", product.code, opening_stock)
        return product

    return run_with_retry(_op)


def _record_movement_inner(
    *,
    product: Product,
    movement_type: str,
    quantity: int,
    description: str | None = None,
    user_id: int | None = None,
    unit_price=None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    details: dict | None = None,
) -> StockMovement:
    """Core movement logic without locking, retry, or commit.

    The caller must have loaded `product` with a row lock.
    """
    _check_sign(movement_type, quantity)

    stock_before = int(product.stock or 0)
    stock_after = stock_before + quantity
    if stock_after < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product.id,
                "available": stock_before,
                "requested": -quantity,
            },
        )

    movement = StockMovement(
        product_id=product.id,
        user_id=user_id,
        movement_type=movement_type,
        quantity=quantity,
        stock_before=stock_before,
        stock_after=stock_after,
        unit_price=to_decimal(unit_price) if unit_price is not None else None,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        details=details,
    )
    product.stock = stock_after
    db.session.add(movement)
    db.session.flush()
    return movement


def record_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    description: str | None = None,
    user_id: int | None = None,
    unit_price=None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    details: dict | None = None,
) -> StockMovement:
    """Record a single movement in its own unit of work."""
    def _op():
        begin_write()
        product = get_product(product_id, lock=True)
        movement = _record_movement_inner(
            product=product,
            movement_type=movement_type,
            quantity=quantity,
            description=description,
            user_id=user_id,
            unit_price=unit_price,
            reference_type=reference_type,
            reference_id=reference_id,
            details=details,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def _reduce_stock_inner(
    product_id: int,
    quantity: int,
    *,
    description: str | None = None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    unit_price=None,
    details: dict | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", details={"quantity": quantity})
    product = get_product(product_id, lock=True)
    return _record_movement_inner(
        product=product,
        movement_type=MOVEMENT_OUT,
        quantity=-quantity,
        description=description,
        user_id=user_id,
        unit_price=unit_price,
        reference_type=reference_type,
        reference_id=reference_id,
        details=details,
    )


def _restore_stock_inner(
    product_id: int,
    quantity: int,
    *,
    description: str | None = None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    unit_price=None,
    details: dict | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", details={"quantity": quantity})
    product = get_product(product_id, lock=True)
    return _record_movement_inner(
        product=product,
        movement_type=MOVEMENT_RETURN,
        quantity=quantity,
        description=description,
        user_id=user_id,
        unit_price=unit_price,
        reference_type=reference_type,
        reference_id=reference_id,
        details=details,
    )


def reduce_stock(product_id: int, quantity: int, **kwargs) -> StockMovement:
    """Take `quantity` units out of stock ("out" movement)."""
    def _op():
        begin_write()
        movement = _reduce_stock_inner(product_id, quantity, **kwargs)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def restore_stock(product_id: int, quantity: int, **kwargs) -> StockMovement:
    """Put `quantity` units back into stock ("return" movement)."""
    def _op():
        begin_write()
        movement = _restore_stock_inner(product_id, quantity, **kwargs)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_stock(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    description: str,
    user_id: int | None = None,
) -> StockMovement:
    """
    Manual stock change: adjustment (stock opname), damage, or correction.

    Damage quantities may be passed positive; they are booked as removals.
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"Movement type {movement_type} cannot be recorded manually",
            details={"allowed": list(MANUAL_MOVEMENT_TYPES)},
        )
    if not description:
        raise ValidationError("description required")
    if movement_type == MOVEMENT_DAMAGE and isinstance(quantity, int) and quantity > 0:
        quantity = -quantity

    return record_movement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        description=description,
        user_id=user_id,
        reference_type="manual",
    )


def list_movements(product_id: int, *, limit: int | None = None) -> list[StockMovement]:
    query = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_movements_for_reference(reference_type: str, reference_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def verify_chain(product_id: int) -> ChainReport:
    """
    Walk a product's movements in id order and report every break.

    Read-only. The product's own stock counter is compared with the chain tail.
    """
    product = get_product(product_id)
    movements = list_movements(product_id)

    breaks: list[ChainBreak] = []
    previous_after = None
    for movement in movements:
        if movement.stock_before + movement.quantity != movement.stock_after:
            breaks.append(ChainBreak(
                movement_id=movement.id,
                problem="arithmetic",
                expected=movement.stock_before + movement.quantity,
                actual=movement.stock_after,
            ))
        if movement.stock_after < 0:
            breaks.append(ChainBreak(
                movement_id=movement.id,
                problem="negative",
                actual=movement.stock_after,
            ))
        if previous_after is not None and movement.stock_before != previous_after:
            breaks.append(ChainBreak(
                movement_id=movement.id,
                problem="discontinuity",
                expected=previous_after,
                actual=movement.stock_before,
            ))
        previous_after = movement.stock_after

    return ChainReport(
        product_id=product.id,
        product_stock=int(product.stock or 0),
        movement_count=len(movements),
        chain_tail=previous_after,
        breaks=breaks,
    )
