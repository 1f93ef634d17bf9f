from decimal import Decimal

from salecompass.services.comparator import NO_MARKET_DATA, compare_to_market, market_average


def test_sale_below_market_average():
    result = compare_to_market(Decimal("4.00"), [Decimal("4.00"), Decimal("6.00")])
    assert result.average_price == Decimal("5.00")
    assert result.market_savings_percent == 20


def test_sale_above_market_average_is_negative():
    result = compare_to_market(Decimal("6.00"), [Decimal("5.00")])
    assert result.market_savings_percent == -20


def test_savings_rounded_half_up():
    # (4.50 - 3.99) / 4.50 = 11.33%
    result = compare_to_market(Decimal("3.99"), [Decimal("4.50")])
    assert result.market_savings_percent == 11
    # (8.00 - 7.00) / 8.00 = 12.5%
    assert compare_to_market(Decimal("7.00"), [Decimal("8.00")]).market_savings_percent == 13


def test_no_price_data_is_none_not_zero():
    result = compare_to_market(Decimal("2.99"), [])
    assert result is NO_MARKET_DATA
    assert result.average_price is None
    assert result.market_savings_percent is None
    assert not result.has_data


def test_placeholder_prices_are_ignored():
    assert market_average([Decimal("0.00"), Decimal("3.00")]) == Decimal("3.00")
    assert compare_to_market(Decimal("1.00"), [Decimal("0.00")]) is NO_MARKET_DATA


def test_average_rounded_to_cents():
    assert market_average([Decimal("1.00"), Decimal("1.00"), Decimal("1.01")]) == Decimal("1.00")
    assert market_average([Decimal("0.01"), Decimal("0.02")]) == Decimal("0.02")
