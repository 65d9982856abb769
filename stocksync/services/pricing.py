"""
Shopify price derivation from the Naver price.

target = naver_price * rate * (1 + margin_percent / 100), then rounded by the
mapping's strategy and clamped to its min/max. Decimal throughout.
"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional, Union

from stocksync.core.enums import RoundingStrategy
from stocksync.core.exceptions import ValidationError
from stocksync.schemas import PricingPolicy

CENT = Decimal("0.01")
CHARM_ENDING = Decimal("0.99")

Number = Union[Decimal, int, float, str]


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def apply_rounding(value: Decimal, strategy: RoundingStrategy) -> Decimal:
    """
    Examples (round / ceil / charm):
        12.345 -> 12.35 / 13 / 12.99
        13.00  -> 13.00 / 13 / 13.99
    """
    if strategy == RoundingStrategy.NONE:
        return value
    if strategy == RoundingStrategy.ROUND:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    if strategy == RoundingStrategy.CEIL:
        return value.to_integral_value(rounding=ROUND_CEILING)
    if strategy == RoundingStrategy.CHARM:
        whole = (value - CHARM_ENDING).to_integral_value(rounding=ROUND_CEILING)
        return max(whole, Decimal(0)) + CHARM_ENDING
    raise ValidationError(f"Unknown rounding strategy: {strategy}")


def calculate_target_price(
    source_price: Number,
    rate: Number,
    policy: Optional[PricingPolicy] = None,
) -> Decimal:
    """
    Args:
        source_price: price on the source platform (KRW)
        rate: units of target currency per unit of source currency
        policy: margin, rounding and clamps; defaults apply when omitted

    Returns:
        Target price, never negative
    """
    policy = policy or PricingPolicy()
    source = _dec(source_price)
    rate = _dec(rate)

    if source < 0:
        raise ValidationError("Source price must not be negative")
    if rate <= 0:
        raise ValidationError("Exchange rate must be positive")

    price = source * rate * (1 + policy.margin_percent / Decimal(100))
    price = apply_rounding(price, policy.rounding)

    if policy.min_price is not None and price < policy.min_price:
        price = policy.min_price
    if policy.max_price is not None and price > policy.max_price:
        price = policy.max_price

    return max(price, Decimal(0))


def prices_differ(current: Optional[Decimal], target: Decimal) -> bool:
    """More than one cent apart."""
    if current is None:
        return True
    return abs(_dec(current) - target) > CENT
