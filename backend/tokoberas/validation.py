from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .money import ZERO, to_decimal


# Upper bound for a single money value: Rp 999.999.999.999
MAX_AMOUNT = Decimal("999999999999")


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None


def coerce_int(value: Any, field: str, *, positive: bool = False) -> int:
    """Strict integer parsing: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if positive and result <= 0:
        raise ValidationError(f"{field} must be positive", details={field: result})
    return result


def coerce_amount(value: Any, field: str, *, allow_zero: bool = True) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if amount < ZERO or (amount == ZERO and not allow_zero):
        raise ValidationError(f"{field} must be positive", details={field: str(amount)})
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large", details={field: str(amount)})
    return amount


def parse_line_items(raw: Any, *, price_field: str = "unit_price") -> list[LineItem]:
    """
    Parse [{"product_id": 1, "quantity": 5, "unit_price": 12000}, ...].

    unit_price is optional; the product's own price applies when it is absent.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = coerce_int(entry.get("product_id"), f"items[{index}].product_id", positive=True)
        quantity = coerce_int(entry.get("quantity"), f"items[{index}].quantity", positive=True)
        price = entry.get(price_field)
        unit_price = coerce_amount(price, f"items[{index}].{price_field}") if price is not None else None
        items.append(LineItem(product_id=product_id, quantity=quantity, unit_price=unit_price))
    return items
