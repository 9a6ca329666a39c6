"""Tests for the multi-origin search orchestrator."""

import asyncio
import gc
from decimal import Decimal

import pytest
from conftest import FakeProvider, make_multi_request, settle

from meetingpoint.config import Settings
from meetingpoint.errors import AuthenticationError, ProviderHttpError
from meetingpoint.schemas.search import MultiOriginSearchRequest
from meetingpoint.services.cache_service import ResponseCache
from meetingpoint.services.concurrency_gate import BoundedConcurrencyGate
from meetingpoint.services.providers import build_provider_stack
from meetingpoint.services.resilience import CircuitBreakerRegistry
from meetingpoint.services.search_orchestrator import SearchOrchestrator

PRICES = {
    "JFK": {"CDG": 500, "FCO": 600},
    "SFO": {"FCO": 400, "CDG": 600},
}


def _stack(provider, gate=None, **overrides):
    settings = Settings(
        retry_count=0,
        retry_base_delay_seconds=0,
        per_attempt_timeout_seconds=5,
        **overrides,
    )
    return build_provider_stack(
        provider, settings, ResponseCache(), CircuitBreakerRegistry(), gate=gate,
    )


@pytest.mark.asyncio
async def test_finds_cheapest_common_destination():
    orchestrator = SearchOrchestrator(FakeProvider(PRICES, countries={"FCO": "IT"}))

    best = await orchestrator.find_cheapest_common_destination(make_multi_request())

    assert best.destination_city == "FCO"
    assert best.destination_country == "IT"
    assert best.total_price == Decimal("1000")
    assert best.median_price == Decimal("500")


@pytest.mark.asyncio
async def test_results_are_sorted_by_price():
    orchestrator = SearchOrchestrator(FakeProvider(PRICES))

    price_map = await orchestrator.search_many(make_multi_request())

    assert [q.destination_city for q in price_map["JFK"]] == ["CDG", "FCO"]
    assert [q.destination_city for q in price_map["SFO"]] == ["FCO", "CDG"]


@pytest.mark.asyncio
async def test_each_origin_gets_its_own_request():
    provider = FakeProvider(PRICES)
    orchestrator = SearchOrchestrator(provider)

    await orchestrator.search_many(make_multi_request(["JFK", "SFO"], currency="EUR"))

    assert sorted(r.origin for r in provider.calls) == ["JFK", "SFO"]
    assert all(r.currency == "EUR" for r in provider.calls)


@pytest.mark.asyncio
async def test_failed_origin_is_left_out():
    provider = FakeProvider(
        {**PRICES, "ORD": {"FCO": 100}},
        errors={"SFO": ProviderHttpError(503)},
    )
    orchestrator = SearchOrchestrator(provider)

    price_map = await orchestrator.search_many(make_multi_request(["JFK", "SFO", "ORD"]))

    assert set(price_map) == {"JFK", "ORD"}


@pytest.mark.asyncio
async def test_all_origins_failing_yields_empty_map():
    provider = FakeProvider(errors={
        "JFK": AuthenticationError("bad key"),
        "SFO": ProviderHttpError(500),
    })
    orchestrator = SearchOrchestrator(provider)

    assert await orchestrator.search_many(make_multi_request()) == {}
    assert await orchestrator.find_cheapest_common_destination(make_multi_request()) is None


@pytest.mark.asyncio
async def test_unexpected_error_is_isolated_to_its_origin():
    provider = FakeProvider(PRICES, errors={"SFO": RuntimeError("bug")})
    orchestrator = SearchOrchestrator(provider)

    price_map = await orchestrator.search_many(make_multi_request())

    assert list(price_map) == ["JFK"]


@pytest.mark.asyncio
async def test_empty_origins_rejected():
    request = MultiOriginSearchRequest.model_construct(
        origins=[],
        departure_date=make_multi_request().departure_date,
        return_date=None,
        currency="USD",
    )
    with pytest.raises(ValueError):
        await SearchOrchestrator(FakeProvider()).search_many(request)


@pytest.mark.asyncio
async def test_cancel_signal_returns_completed_origins():
    provider = FakeProvider(PRICES, delays={"SFO": 30})
    orchestrator = SearchOrchestrator(provider)
    cancel = asyncio.Event()

    search = asyncio.create_task(orchestrator.search_many(make_multi_request(), cancel=cancel))
    await settle()
    cancel.set()
    price_map = await search

    assert list(price_map) == ["JFK"]
    assert provider.cancelled == ["SFO"]


@pytest.mark.asyncio
async def test_cancelling_the_caller_cancels_every_lookup():
    provider = FakeProvider(PRICES, delays={"JFK": 30, "SFO": 30})
    orchestrator = SearchOrchestrator(provider)

    search = asyncio.create_task(orchestrator.search_many(make_multi_request()))
    await settle()
    search.cancel()

    with pytest.raises(asyncio.CancelledError):
        await search
    assert sorted(provider.cancelled) == ["JFK", "SFO"]


@pytest.mark.asyncio
async def test_cancelled_caller_leaves_no_unretrieved_task_errors():
    loop = asyncio.get_running_loop()
    reported = []
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    try:
        provider = FakeProvider(
            PRICES,
            errors={"JFK": ProviderHttpError(503)},
            delays={"SFO": 30},
        )
        orchestrator = SearchOrchestrator(provider)

        search = asyncio.create_task(orchestrator.search_many(make_multi_request()))
        await settle()
        search.cancel()
        with pytest.raises(asyncio.CancelledError):
            await search

        del search
        gc.collect()
        await settle()
    finally:
        loop.set_exception_handler(previous_handler)

    assert not [c for c in reported if "never retrieved" in c.get("message", "")]


class TestFullProviderStack:
    @pytest.mark.asyncio
    async def test_repeat_search_is_served_from_cache(self):
        provider = FakeProvider(PRICES)
        orchestrator = SearchOrchestrator(_stack(provider))

        first = await orchestrator.find_cheapest_common_destination(make_multi_request())
        second = await orchestrator.find_cheapest_common_destination(make_multi_request())

        assert first == second
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_bypass_forces_fresh_lookups(self):
        provider = FakeProvider(PRICES)
        orchestrator = SearchOrchestrator(_stack(provider))

        await orchestrator.search_many(make_multi_request())
        await orchestrator.search_many(make_multi_request(), bypass_cache=True)

        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_disabled_cache_always_calls_provider(self):
        provider = FakeProvider(PRICES)
        orchestrator = SearchOrchestrator(_stack(provider, cache_enabled=False))

        await orchestrator.search_many(make_multi_request())
        await orchestrator.search_many(make_multi_request())

        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        provider = FakeProvider(PRICES, errors={"SFO": ProviderHttpError(503)})
        orchestrator = SearchOrchestrator(_stack(provider))

        first = await orchestrator.search_many(make_multi_request())
        assert list(first) == ["JFK"]

        provider.errors.clear()
        second = await orchestrator.search_many(make_multi_request())
        assert set(second) == {"JFK", "SFO"}

    @pytest.mark.asyncio
    async def test_cancel_releases_gate_permits(self):
        provider = FakeProvider(PRICES, delays={"JFK": 30, "SFO": 30})
        gate = BoundedConcurrencyGate(max_concurrent=1, max_queued=5)
        orchestrator = SearchOrchestrator(_stack(provider, gate=gate))
        cancel = asyncio.Event()

        search = asyncio.create_task(orchestrator.search_many(make_multi_request(), cancel=cancel))
        await settle()
        assert gate.in_flight == 1
        assert gate.queued == 1

        cancel.set()
        assert await search == {}
        assert gate.in_flight == 0
        assert gate.queued == 0

    @pytest.mark.asyncio
    async def test_origins_beyond_gate_capacity_fail_alone(self):
        provider = FakeProvider(
            {"JFK": {"FCO": 1}, "SFO": {"FCO": 1}, "ORD": {"FCO": 1}},
            delays={"JFK": 0.01, "SFO": 0.01, "ORD": 0.01},
        )
        gate = BoundedConcurrencyGate(max_concurrent=1, max_queued=1)
        orchestrator = SearchOrchestrator(_stack(provider, gate=gate))

        price_map = await orchestrator.search_many(make_multi_request(["JFK", "SFO", "ORD"]))

        assert list(price_map) == ["JFK", "SFO"]
        assert len(provider.calls) == 2
