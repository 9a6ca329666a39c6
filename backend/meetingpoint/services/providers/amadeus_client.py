"""Amadeus API client — adapter for destination pricing with OAuth2 client credentials."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

import httpx

from meetingpoint.errors import (
    AuthenticationError,
    ProviderHttpError,
    ProviderParseError,
    TransientNetworkError,
)
from meetingpoint.schemas.search import PriceQuote, SearchRequest
from meetingpoint.services.providers.base import sort_by_price

logger = logging.getLogger(__name__)

# Refresh the token this long before Amadeus says it expires
TOKEN_EXPIRY_BUFFER_SECONDS = 60
MAX_OFFERS = 100


def cheapest_per_destination(quotes: list[PriceQuote]) -> list[PriceQuote]:
    best: dict[str, PriceQuote] = {}
    for quote in quotes:
        current = best.get(quote.destination_city)
        if current is None or quote.price < current.price:
            best[quote.destination_city] = quote
    return list(best.values())


def parse_flight_offers(payload: dict, request: SearchRequest) -> list[PriceQuote]:
    """Cheapest offer per destination from a /v2/shopping/flight-offers response."""
    locations = ((payload.get("dictionaries") or {}).get("locations")) or {}
    quotes = []
    try:
        for offer in payload.get("data") or []:
            itineraries = offer.get("itineraries") or []
            if not itineraries or not itineraries[0].get("segments"):
                continue
            segments = itineraries[0]["segments"]
            origin = segments[0]["departure"]["iataCode"]
            destination = segments[-1]["arrival"]["iataCode"]
            if not origin or not destination:
                continue
            quotes.append(PriceQuote(
                origin=origin,
                destination_city=destination,
                destination_country=(locations.get(destination) or {}).get("countryCode"),
                price=Decimal(str(offer["price"]["total"])),
                currency=offer["price"].get("currency") or request.currency,
            ))
    except (KeyError, TypeError, AttributeError, InvalidOperation, ValueError) as e:
        raise ProviderParseError(f"Unexpected Amadeus offer shape: {e}") from e
    return cheapest_per_destination(quotes)


def parse_flight_destinations(payload: dict, request: SearchRequest) -> list[PriceQuote]:
    """Quotes from a /v1/shopping/flight-destinations (inspiration search) response."""
    locations = ((payload.get("dictionaries") or {}).get("locations")) or {}
    currency = ((payload.get("meta") or {}).get("currency")) or request.currency
    quotes = []
    try:
        for item in payload.get("data") or []:
            destination = item["destination"]
            quotes.append(PriceQuote(
                origin=item.get("origin") or request.origin,
                destination_city=destination,
                destination_country=(locations.get(destination) or {}).get("countryCode"),
                price=Decimal(str(item["price"]["total"])),
                currency=currency,
            ))
    except (KeyError, TypeError, AttributeError, InvalidOperation, ValueError) as e:
        raise ProviderParseError(f"Unexpected Amadeus destination shape: {e}") from e

    country = request.destination_filter.country
    if country:
        quotes = [q for q in quotes if q.destination_country == country]
    return cheapest_per_destination(quotes)


class AmadeusClient:
    """Adapter for Amadeus Self-Service API."""

    name = "amadeus"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://test.api.amadeus.com",
        client: httpx.AsyncClient | None = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url
        self._token: str | None = None
        self._token_expires: datetime | None = None
        self._token_lock = asyncio.Lock()
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url)
        return self._client

    async def _ensure_token(self) -> str:
        """Get or refresh OAuth2 token."""
        async with self._token_lock:
            if self._token and self._token_expires and datetime.now(timezone.utc) < self._token_expires:
                return self._token

            client = await self._get_client()
            try:
                resp = await client.post(
                    "/v1/security/oauth2/token",
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.TransportError as e:
                raise TransientNetworkError(f"Amadeus token request error: {e}") from e

            if resp.status_code >= 500 or resp.status_code == 429:
                raise ProviderHttpError(resp.status_code, resp.text)
            if resp.status_code >= 400:
                logger.error(f"Amadeus token request rejected: {resp.status_code}")
                raise AuthenticationError(
                    f"Failed to authenticate with Amadeus (HTTP {resp.status_code})"
                )

            try:
                data = resp.json()
                self._token = data["access_token"]
                expires_in = int(data.get("expires_in", 1799))
            except (ValueError, KeyError, TypeError) as e:
                raise AuthenticationError("Amadeus token response had no access token") from e

            self._token_expires = datetime.now(timezone.utc) + timedelta(
                seconds=expires_in - TOKEN_EXPIRY_BUFFER_SECONDS
            )
            logger.info("Amadeus token refreshed")
            return self._token

    def _invalidate_token(self, token: str) -> None:
        if self._token == token:
            self._token = None
            self._token_expires = None

    async def _get_json(self, path: str, params: dict) -> dict:
        client = await self._get_client()
        # A token revoked before its expiry gets one refresh before giving up
        for _ in range(2):
            token = await self._ensure_token()
            try:
                resp = await client.get(
                    path,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.TransportError as e:
                raise TransientNetworkError(f"Amadeus request error: {e}") from e
            if resp.status_code != 401:
                break
            logger.warning("Amadeus rejected the access token, refreshing")
            self._invalidate_token(token)
        else:
            raise AuthenticationError("Amadeus rejected the access token")

        if resp.status_code >= 400:
            logger.error(f"Amadeus search error: {resp.status_code}")
            raise ProviderHttpError(resp.status_code, resp.text)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProviderParseError(f"Amadeus returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ProviderParseError("Amadeus response is not a JSON object")
        return payload

    def _offer_params(self, request: SearchRequest, destination: str) -> dict:
        params = {
            "originLocationCode": request.origin,
            "destinationLocationCode": destination,
            "departureDate": request.departure_date.isoformat(),
            "adults": 1,
            "currencyCode": request.currency,
            "max": MAX_OFFERS,
        }
        if request.return_date:
            params["returnDate"] = request.return_date.isoformat()
        return params

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        flt = request.destination_filter

        if flt.destinations:
            logger.info(
                f"Searching {len(flt.destinations)} destinations from {request.origin} with Amadeus"
            )
            # One call at a time, so a gate permit covers exactly one HTTP request
            quotes = []
            for dest in flt.destinations:
                payload = await self._get_json(
                    "/v2/shopping/flight-offers", self._offer_params(request, dest)
                )
                quotes.extend(parse_flight_offers(payload, request))
            return sort_by_price(cheapest_per_destination(quotes))

        if flt.continent:
            logger.warning("Continent filtering not supported by Amadeus, searching all destinations")

        params = {
            "origin": request.origin,
            "departureDate": request.departure_date.isoformat(),
            "oneWay": "false" if request.return_date else "true",
            "viewBy": "DESTINATION",
        }
        logger.info(f"Searching destinations from {request.origin} with Amadeus")
        payload = await self._get_json("/v1/shopping/flight-destinations", params)
        return sort_by_price(parse_flight_destinations(payload, request))

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None
