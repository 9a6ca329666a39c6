"""Aggregation — common destinations across origins and the cheapest one for the whole group."""

import statistics
from decimal import Decimal

from meetingpoint.schemas.search import CommonDestination, OriginPriceMap, PriceQuote


def _cheapest_by_destination(quotes: list[PriceQuote]) -> dict[str, PriceQuote]:
    best: dict[str, PriceQuote] = {}
    for quote in quotes:
        current = best.get(quote.destination_city)
        if current is None or quote.price < current.price:
            best[quote.destination_city] = quote
    return best


def common_destinations(price_map: OriginPriceMap) -> set[str]:
    """Destination codes quoted from every origin; empty if the map or any origin list is empty."""
    if not price_map:
        return set()

    common: set[str] | None = None
    for quotes in price_map.values():
        codes = {q.destination_city for q in quotes}
        common = codes if common is None else common & codes
        if not common:
            return set()
    return common


def rank_common_destinations(price_map: OriginPriceMap) -> list[CommonDestination]:
    """Every common destination ordered by total, then median, then code."""
    common = common_destinations(price_map)
    if not common:
        return []

    per_origin = {
        origin: _cheapest_by_destination(quotes)
        for origin, quotes in sorted(price_map.items())
    }

    ranked = []
    for destination in common:
        prices: dict[str, Decimal] = {}
        country = None
        currency = None
        for origin, by_dest in per_origin.items():
            quote = by_dest[destination]
            prices[origin] = quote.price
            if country is None and quote.destination_country:
                country = quote.destination_country
            if currency is None:
                currency = quote.currency

        values = list(prices.values())
        ranked.append(CommonDestination(
            destination_city=destination,
            destination_country=country,
            total_price=sum(values, Decimal("0")),
            median_price=Decimal(statistics.median(values)),
            per_origin_price=prices,
            currency=currency,
        ))

    ranked.sort(key=lambda d: (d.total_price, d.median_price, d.destination_city))
    return ranked


def select_optimal_destination(price_map: OriginPriceMap) -> CommonDestination | None:
    """The destination minimizing group cost, or None when no destination is common to all origins."""
    ranked = rank_common_destinations(price_map)
    return ranked[0] if ranked else None
