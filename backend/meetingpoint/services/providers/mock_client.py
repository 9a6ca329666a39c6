"""Mock provider — deterministic demo prices when no provider credentials are configured."""

import hashlib
import logging
import random
from decimal import Decimal

from meetingpoint.schemas.search import PriceQuote, SearchRequest
from meetingpoint.services.providers.base import sort_by_price

logger = logging.getLogger(__name__)

EUROPEAN_DESTINATIONS = [
    ("CDG", "FR"),  # Paris
    ("FCO", "IT"),  # Rome
    ("MAD", "ES"),  # Madrid
    ("AMS", "NL"),  # Amsterdam
    ("ATH", "GR"),  # Athens
    ("LIS", "PT"),  # Lisbon
    ("ZRH", "CH"),  # Zurich
    ("VIE", "AT"),  # Vienna
    ("CPH", "DK"),  # Copenhagen
    ("ARN", "SE"),  # Stockholm
    ("BER", "DE"),  # Berlin
    ("DUB", "IE"),  # Dublin
]

CONTINENT_DESTINATIONS = {
    "EU": EUROPEAN_DESTINATIONS,
    "NA": [("JFK", "US"), ("ORD", "US"), ("YYZ", "CA"), ("MEX", "MX")],
    "SA": [("GRU", "BR"), ("EZE", "AR"), ("BOG", "CO"), ("SCL", "CL")],
    "AS": [("HND", "JP"), ("PEK", "CN"), ("SIN", "SG"), ("DEL", "IN")],
    "AF": [("JNB", "ZA"), ("CAI", "EG"), ("NBO", "KE"), ("LOS", "NG")],
    "OC": [("SYD", "AU"), ("AKL", "NZ"), ("NAN", "FJ")],
}

COUNTRY_DESTINATIONS = {
    "FR": [("CDG", "FR"), ("NCE", "FR"), ("LYS", "FR"), ("MRS", "FR")],
    "IT": [("FCO", "IT"), ("MXP", "IT"), ("VCE", "IT"), ("NAP", "IT")],
    "ES": [("MAD", "ES"), ("BCN", "ES"), ("AGP", "ES"), ("IBZ", "ES")],
    "DE": [("BER", "DE"), ("MUC", "DE"), ("FRA", "DE"), ("DUS", "DE")],
}


def candidate_destinations(request: SearchRequest) -> list[tuple[str, str | None]]:
    flt = request.destination_filter
    if flt.continent:
        return CONTINENT_DESTINATIONS.get(flt.continent, EUROPEAN_DESTINATIONS)
    if flt.country:
        return COUNTRY_DESTINATIONS.get(flt.country, [])
    if flt.destinations:
        known = {code: country for pairs in CONTINENT_DESTINATIONS.values() for code, country in pairs}
        return [(code, known.get(code)) for code in flt.destinations]
    return EUROPEAN_DESTINATIONS


class MockFlightClient:
    """Generates stable per-route prices so demo runs are reproducible."""

    name = "mock"

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        quotes = []
        for code, country in candidate_destinations(request):
            if code == request.origin:
                continue
            # Deterministic seed based on route+date for consistency
            seed_str = f"{request.origin}{code}{request.departure_date.isoformat()}"
            seed = int(hashlib.md5(seed_str.encode()).hexdigest()[:8], 16)
            rng = random.Random(seed)
            price = Decimal(str(round(rng.uniform(100, 600), 2)))
            quotes.append(PriceQuote(
                origin=request.origin,
                destination_city=code,
                destination_country=country,
                price=price,
                currency=request.currency,
            ))

        logger.info(f"Generated {len(quotes)} mock quotes for {request.origin}")
        return sort_by_price(quotes)
