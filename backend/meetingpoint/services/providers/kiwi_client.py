"""Kiwi (Tequila) API client — cheapest destinations from one origin."""

import logging
from decimal import Decimal, InvalidOperation

import httpx

from meetingpoint.errors import ProviderHttpError, ProviderParseError, TransientNetworkError
from meetingpoint.schemas.search import PriceQuote, SearchRequest
from meetingpoint.services.providers.base import sort_by_price

logger = logging.getLogger(__name__)

KIWI_DATE_FORMAT = "%d/%m/%Y"


def build_fly_to(request: SearchRequest) -> str:
    """Kiwi's ``fly_to`` value for the request's destination filter."""
    flt = request.destination_filter
    if flt.continent:
        return f"{flt.continent}-"
    if flt.country:
        return flt.country
    if flt.destinations:
        return ",".join(flt.destinations)
    return "anywhere"


def build_search_params(request: SearchRequest, default_currency: str = "EUR") -> dict[str, str]:
    departure = request.departure_date.strftime(KIWI_DATE_FORMAT)
    params = {
        "fly_from": request.origin,
        "fly_to": build_fly_to(request),
        "date_from": departure,
        "date_to": departure,
        "curr": request.currency or default_currency,
        "one_for_city": "1",
    }
    if request.return_date:
        returning = request.return_date.strftime(KIWI_DATE_FORMAT)
        params["return_from"] = returning
        params["return_to"] = returning
    return params


def parse_search_response(payload: dict, request: SearchRequest) -> list[PriceQuote]:
    if not isinstance(payload, dict):
        raise ProviderParseError("Kiwi response is not a JSON object")

    currency = payload.get("currency") or request.currency
    quotes = []
    try:
        for item in payload.get("data") or []:
            country = (item.get("countryTo") or {}).get("code")
            quotes.append(PriceQuote(
                origin=item.get("flyFrom") or request.origin,
                destination_city=item["flyTo"],
                destination_country=country,
                price=Decimal(str(item["price"])),
                currency=currency,
            ))
    except (KeyError, TypeError, AttributeError, InvalidOperation, ValueError) as e:
        raise ProviderParseError(f"Unexpected Kiwi response shape: {e}") from e
    return quotes


class KiwiClient:
    """Adapter for the Kiwi Tequila search API."""

    name = "kiwi"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.tequila.kiwi.com",
        default_currency: str = "EUR",
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._default_currency = default_currency
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"apikey": self._api_key, "Accept": "application/json"},
            )
        return self._client

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        client = await self._get_client()
        params = build_search_params(request, self._default_currency)
        logger.info(f"Searching destinations from {request.origin} with Kiwi (fly_to={params['fly_to']})")

        try:
            resp = await client.get("/v2/search", params=params)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Kiwi request error: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"Kiwi search error: {resp.status_code}")
            raise ProviderHttpError(resp.status_code, resp.text)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProviderParseError(f"Kiwi returned invalid JSON: {e}") from e

        quotes = parse_search_response(payload, request)
        logger.debug(f"Kiwi returned {len(quotes)} quotes from {request.origin}")
        return sort_by_price(quotes)

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None
