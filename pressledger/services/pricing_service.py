from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pressledger.core.errors import ValidationError

COST_QUANT = Decimal("0.000001")
MONEY_QUANT = Decimal("0.01")


class PricingConflict(ValidationError):
    pass


def to_decimal(v: float | int | str | Decimal | None) -> Decimal | None:
    if v is None:
        return None
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError, TypeError):
        return None


def round2(v: Decimal) -> Decimal:
    return v.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def quantize_cost(v: Decimal) -> Decimal:
    return v.quantize(COST_QUANT, rounding=ROUND_HALF_UP)


def weighted_average_cost(
    *,
    current_stock_sheets: int,
    current_unit_cost: Decimal,
    incoming_sheets: int,
    incoming_total_cost: Decimal,
) -> Decimal:
    """
    Blend the unit cost of stock on hand with an incoming purchase.

        new = (stock * cost + purchase_total) / (stock + incoming)

    With no stock on hand the purchase price alone sets the cost. Result is per sheet,
    quantized to 6 places.
    """
    if incoming_sheets <= 0:
        raise ValidationError("incoming sheets must be > 0", {"field": "quantity_sheets", "value": incoming_sheets})
    stock = Decimal(int(current_stock_sheets))
    incoming = Decimal(int(incoming_sheets))
    if stock <= 0:
        return quantize_cost(incoming_total_cost / incoming)
    return quantize_cost((stock * current_unit_cost + incoming_total_cost) / (stock + incoming))


def derive_purchase_total(
    *,
    units_count: int | None,
    price_per_unit: float | Decimal | None,
    price_total: float | Decimal | None,
) -> Decimal | None:
    """
    Derive the total cost of a purchase entered per ream (or other unit).

    Rules:
    - If only price_total is provided: use it as given (no rounding)
    - If only price_per_unit is provided: price_total = price_per_unit * units_count
    - If both provided: must be consistent within 0.01, else conflict
    - If price_per_unit is provided, units_count must be > 0
    """
    ppu = to_decimal(price_per_unit)
    pt = to_decimal(price_total)

    if ppu is None and pt is None:
        return None

    if ppu is not None and ppu < 0:
        raise PricingConflict("price per unit must be >= 0", {"field": "price_per_unit"})
    if pt is not None and pt < 0:
        raise PricingConflict("purchase total must be >= 0", {"field": "purchase_total_cost"})

    if ppu is None:
        assert pt is not None
        return pt

    n = int(units_count) if units_count is not None else 0
    if n <= 0:
        raise PricingConflict(
            "units count must be > 0 when providing a price per unit",
            {"field": "reams", "units_count": n},
        )

    expected = round2(ppu * Decimal(n))
    if pt is None:
        return expected

    pt2 = round2(pt)
    if abs(pt2 - expected) > MONEY_QUANT:
        raise PricingConflict(
            "price per unit x units does not match purchase total",
            {
                "units_count": n,
                "price_per_unit": str(round2(ppu)),
                "purchase_total_cost": str(pt2),
                "expected_total": str(expected),
            },
        )
    return pt2


def line_total(quantity: Decimal, unit_cost: Decimal) -> Decimal:
    return round2(quantity * unit_cost)
