# Overview: Decimal money helpers (single currency, Indonesian Rupiah).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """
    Coerce int/str/Decimal into a 2-place Decimal.

    Floats are routed through str() so 0.1 stays 0.10 rather than
    0.1000000000000000055511151231257827.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError("amount must be numeric")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid amount: {value!r}")


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_json_number(value) -> float | None:
    """Serialize a money value for JSON responses."""
    if value is None:
        return None
    return float(value)


def format_rupiah(value) -> str:
    """Rp 1.234.567 (dot thousands separator, no decimals)."""
    amount = to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {abs(int(amount)):,}".replace(",", ".")
