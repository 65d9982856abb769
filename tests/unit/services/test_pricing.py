from decimal import Decimal

import pytest

from stocksync.core.enums import RoundingStrategy
from stocksync.core.exceptions import ValidationError
from stocksync.schemas import PricingPolicy
from stocksync.services.pricing import apply_rounding, calculate_target_price, prices_differ


@pytest.mark.parametrize("value,strategy,expected", [
    ("12.345", RoundingStrategy.NONE, "12.345"),
    ("12.345", RoundingStrategy.ROUND, "12.35"),
    ("12.344", RoundingStrategy.ROUND, "12.34"),
    ("12.345", RoundingStrategy.CEIL, "13"),
    ("13.00", RoundingStrategy.CEIL, "13"),
    ("12.345", RoundingStrategy.CHARM, "12.99"),
    ("13.00", RoundingStrategy.CHARM, "13.99"),
    ("12.99", RoundingStrategy.CHARM, "12.99"),
    ("0.10", RoundingStrategy.CHARM, "0.99"),
])
def test_rounding(value, strategy, expected):
    assert apply_rounding(Decimal(value), strategy) == Decimal(expected)


def test_default_policy_adds_fifteen_percent_and_rounds_to_cents():
    # 25000 KRW at 0.00075 = 18.75 USD, +15% = 21.5625
    assert calculate_target_price(Decimal("25000"), Decimal("0.00075")) == Decimal("21.56")


def test_margin_and_charm_pricing():
    policy = PricingPolicy(margin_percent=Decimal("20"), rounding=RoundingStrategy.CHARM)
    # 10000 * 0.001 * 1.2 = 12.00
    assert calculate_target_price(10000, "0.001", policy) == Decimal("12.99")


def test_negative_margin_discount():
    policy = PricingPolicy(margin_percent=Decimal("-10"), rounding=RoundingStrategy.NONE)
    assert calculate_target_price(Decimal("10000"), Decimal("0.001"), policy) == Decimal("9.000")


def test_min_and_max_clamps():
    floor = PricingPolicy(min_price=Decimal("5.00"))
    ceiling = PricingPolicy(max_price=Decimal("50.00"))

    assert calculate_target_price(1000, "0.00075", floor) == Decimal("5.00")
    assert calculate_target_price(1000000, "0.00075", ceiling) == Decimal("50.00")


def test_invalid_inputs():
    with pytest.raises(ValidationError):
        calculate_target_price(Decimal("-1"), Decimal("0.00075"))
    with pytest.raises(ValidationError):
        calculate_target_price(Decimal("100"), Decimal("0"))


def test_margin_must_stay_above_minus_hundred():
    with pytest.raises(ValueError):
        PricingPolicy(margin_percent=Decimal("-100"))


def test_prices_differ_by_more_than_a_cent():
    assert prices_differ(None, Decimal("1.00")) is True
    assert prices_differ(Decimal("21.56"), Decimal("21.57")) is False
    assert prices_differ(Decimal("21.50"), Decimal("21.56")) is True
