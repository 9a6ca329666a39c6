"""Provider interface and the layers stacked on top of it (cache → gate → resilience → provider)."""

import logging
from typing import Protocol, runtime_checkable

from meetingpoint.schemas.search import PriceQuote, SearchRequest
from meetingpoint.services.cache_service import ResponseCache, build_cache_key, cache_bypass
from meetingpoint.services.concurrency_gate import BoundedConcurrencyGate
from meetingpoint.services.resilience import ResiliencePolicy

logger = logging.getLogger(__name__)

CACHE_OPERATION = "CheapestDestinations"


@runtime_checkable
class Provider(Protocol):
    """A flight-pricing source: one origin in, quotes per destination out.

    Implementations raise AuthenticationError, ProviderHttpError,
    ProviderParseError or TransientNetworkError on failure. Cancellation
    arrives as ``asyncio.CancelledError`` and must abort the network call.
    """

    name: str

    async def search(self, request: SearchRequest) -> list[PriceQuote]: ...


def sort_by_price(quotes: list[PriceQuote]) -> list[PriceQuote]:
    return sorted(quotes, key=lambda q: (q.price, q.destination_city))


class ResilientProvider:
    """Runs every call of the inner provider through a ResiliencePolicy."""

    def __init__(self, inner: Provider, policy: ResiliencePolicy):
        self.inner = inner
        self.policy = policy
        self.name = inner.name

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        return await self.policy.execute(lambda: self.inner.search(request))


class ConcurrencyLimitedProvider:
    """Holds a gate permit for the whole duration of the inner call, retries included."""

    def __init__(self, inner: Provider, gate: BoundedConcurrencyGate):
        self.inner = inner
        self.gate = gate
        self.name = inner.name

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        async with self.gate.acquire():
            return await self.inner.search(request)


class CachingProvider:
    """Memoizes inner results per normalized request.

    The bypass comes from ``cache_bypass`` (an inbound no-cache directive)
    or from ``enabled=False``.
    """

    def __init__(
        self,
        inner: Provider,
        cache: ResponseCache,
        ttl: float,
        enabled: bool = True,
    ):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl
        self.enabled = enabled
        self.name = inner.name

    async def search(self, request: SearchRequest) -> list[PriceQuote]:
        key = build_cache_key(CACHE_OPERATION, request)

        async def compute() -> list[PriceQuote]:
            return sort_by_price(await self.inner.search(request))

        return await self.cache.get_or_compute(
            key,
            compute,
            ttl=self.ttl,
            bypass=not self.enabled or cache_bypass.get(),
        )
