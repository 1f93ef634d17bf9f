"""Market comparator: sale price vs. average regular price across stores.

averagePrice = mean of the regular store prices of a product, rounded to cents.
marketSavingsPercent = round((average - sale) / average * 100).

Positive savings means the sale is cheaper than the market average, negative
means it is more expensive. A product without usable store prices has no
comparison at all: both fields are None, never 0.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


@dataclass(frozen=True)
class MarketComparison:
    """Comparator output for one sale row."""

    average_price: Decimal | None = None
    market_savings_percent: int | None = None

    @property
    def has_data(self) -> bool:
        return self.average_price is not None


NO_MARKET_DATA = MarketComparison()


def market_average(store_prices: Iterable[Decimal]) -> Decimal | None:
    """Mean of positive store prices, rounded half-up to cents.

    Non-positive prices are placeholders for products added without a known
    price and are left out.
    """
    prices = [Decimal(p) for p in store_prices if p is not None and Decimal(p) > 0]
    if not prices:
        return None
    return (sum(prices) / len(prices)).quantize(CENT, rounding=ROUND_HALF_UP)


def savings_percent(average_price: Decimal, sale_price: Decimal) -> int:
    """Relative discount of `sale_price` vs. `average_price`, whole percent, half-up."""
    ratio = (average_price - sale_price) / average_price * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compare_to_market(sale_price: Decimal, store_prices: Iterable[Decimal]) -> MarketComparison:
    """Compare a sale price with the market average of a product.

    Args:
        sale_price: Unit sale price from the sheet.
        store_prices: Regular prices of the product at every store carrying it.

    Returns:
        MarketComparison, or NO_MARKET_DATA when there are no usable prices.
    """
    average = market_average(store_prices)
    if average is None or average <= 0:
        return NO_MARKET_DATA
    return MarketComparison(
        average_price=average,
        market_savings_percent=savings_percent(average, sale_price),
    )
