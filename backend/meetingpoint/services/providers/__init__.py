"""Flight-pricing providers and the resilient stack built around them."""

import logging

from meetingpoint.config import Settings
from meetingpoint.services.cache_service import ResponseCache
from meetingpoint.services.concurrency_gate import BoundedConcurrencyGate
from meetingpoint.services.providers.amadeus_client import AmadeusClient
from meetingpoint.services.providers.base import (
    CachingProvider,
    ConcurrencyLimitedProvider,
    Provider,
    ResilientProvider,
)
from meetingpoint.services.providers.kiwi_client import KiwiClient
from meetingpoint.services.providers.mock_client import MockFlightClient
from meetingpoint.services.resilience import CircuitBreakerRegistry, ResiliencePolicy

logger = logging.getLogger(__name__)

__all__ = [
    "AmadeusClient",
    "CachingProvider",
    "ConcurrencyLimitedProvider",
    "KiwiClient",
    "MockFlightClient",
    "Provider",
    "ResilientProvider",
    "build_provider",
    "build_provider_stack",
]


def build_provider(settings: Settings) -> Provider:
    """Concrete provider chosen by ``flight_provider``; ``auto`` falls back to mock without credentials."""
    choice = settings.flight_provider.strip().lower()

    if choice == "auto":
        if settings.kiwi_api_key:
            choice = "kiwi"
        elif settings.amadeus_client_id:
            choice = "amadeus"
        else:
            choice = "mock"

    if choice == "kiwi":
        return KiwiClient(
            api_key=settings.kiwi_api_key,
            base_url=settings.kiwi_base_url,
            default_currency=settings.default_currency,
        )
    if choice == "amadeus":
        return AmadeusClient(
            client_id=settings.amadeus_client_id,
            client_secret=settings.amadeus_client_secret,
            base_url=settings.amadeus_base_url,
        )
    if choice == "mock":
        logger.warning("No flight provider credentials configured, using mock prices")
        return MockFlightClient()
    raise ValueError(f"Unknown flight provider '{settings.flight_provider}'")


def build_provider_stack(
    provider: Provider,
    settings: Settings,
    cache: ResponseCache,
    breakers: CircuitBreakerRegistry,
    gate: BoundedConcurrencyGate | None = None,
) -> CachingProvider:
    """Wrap ``provider`` as cache → concurrency gate → resilience policy → provider."""
    breaker = breakers.get_or_create(
        provider.name,
        failure_threshold=settings.circuit_breaker_threshold,
        break_duration=settings.circuit_breaker_break_seconds,
    )
    policy = ResiliencePolicy(
        breaker,
        retry_count=settings.retry_count,
        base_delay=settings.retry_base_delay_seconds,
        timeout=settings.per_attempt_timeout_seconds,
    )
    if gate is None:
        gate = BoundedConcurrencyGate(
            max_concurrent=settings.max_concurrent_requests,
            max_queued=settings.max_queued_requests,
        )
    return CachingProvider(
        ConcurrencyLimitedProvider(ResilientProvider(provider, policy), gate),
        cache,
        ttl=settings.cache_ttl_seconds,
        enabled=settings.cache_enabled,
    )
