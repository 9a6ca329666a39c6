"""Shared fixtures: fake provider, controllable clock, request builders."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from meetingpoint.schemas.search import MultiOriginSearchRequest, PriceQuote, SearchRequest

DEPARTURE = date(2026, 5, 1)


def make_quote(origin: str, destination: str, price, country: str | None = None,
               currency: str = "USD") -> PriceQuote:
    return PriceQuote(
        origin=origin,
        destination_city=destination,
        destination_country=country,
        price=Decimal(str(price)),
        currency=currency,
    )


def make_request(origin: str = "JFK", **kwargs) -> SearchRequest:
    kwargs.setdefault("departure_date", DEPARTURE)
    kwargs.setdefault("currency", "USD")
    return SearchRequest(origin=origin, **kwargs)


def make_multi_request(origins=("JFK", "SFO"), **kwargs) -> MultiOriginSearchRequest:
    kwargs.setdefault("departure_date", DEPARTURE)
    kwargs.setdefault("currency", "USD")
    return MultiOriginSearchRequest(origins=list(origins), **kwargs)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Provider returning canned quotes per origin, or raising canned errors.

    ``prices`` maps origin -> {destination: price}; ``errors`` maps origin -> exception;
    ``delays`` maps origin -> seconds to sleep before answering.
    """

    def __init__(self, prices=None, errors=None, delays=None, name: str = "fake",
                 countries=None):
        self.name = name
        self.prices = prices or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.countries = countries or {}
        self.calls: list[SearchRequest] = []
        self.cancelled: list[str] = []

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        self.calls.append(request)
        try:
            delay = self.delays.get(request.origin)
            if delay:
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(request.origin)
            raise

        error = self.errors.get(request.origin)
        if error is not None:
            raise error

        return [
            make_quote(request.origin, dest, price, self.countries.get(dest), request.currency)
            for dest, price in self.prices.get(request.origin, {}).items()
        ]


async def settle(rounds: int = 5) -> None:
    """Let every ready task run until it blocks."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def no_sleep():
    """Replacement for asyncio.sleep that records requested delays without waiting."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
