"""Order pricing: subtotal, delivery fee, tax and total."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .models import OrderItem

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PricingRules:
    """Fixed pricing constants applied at checkout."""

    delivery_fee: Decimal = Decimal("40")
    free_delivery_threshold: Decimal = Decimal("500")  # fee waived strictly above this
    tax_rate: Decimal = Decimal("0.05")


@dataclass(frozen=True)
class Quote:
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def quote(items: Iterable[OrderItem], rules: PricingRules | None = None) -> Quote:
    """
    Price a cart.

    The delivery fee is waived once the subtotal exceeds the free delivery
    threshold. Tax applies to the subtotal only.

    Example:
        items totalling 300 with default rules -> fee 40, tax 15, total 355
    """
    rules = rules or PricingRules()
    subtotal = _round(sum((i.line_total for i in items), Decimal("0")))
    if subtotal > rules.free_delivery_threshold:
        fee = Decimal("0")
    else:
        fee = rules.delivery_fee
    fee = _round(fee)
    tax = _round(subtotal * rules.tax_rate)
    return Quote(subtotal=subtotal, delivery_fee=fee, tax=tax, total=subtotal + fee + tax)
