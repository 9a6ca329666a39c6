"""Search orchestrator — fans one multi-origin query out to per-origin provider lookups."""

import asyncio
import logging
import time

from meetingpoint.errors import ProviderError
from meetingpoint.schemas.search import (
    CommonDestination,
    MultiOriginSearchRequest,
    OriginPriceMap,
)
from meetingpoint.services.aggregation import select_optimal_destination
from meetingpoint.services.cache_service import cache_bypass
from meetingpoint.services.providers.base import Provider, sort_by_price

logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """Coordinates concurrent per-origin searches and isolates their failures."""

    def __init__(self, provider: Provider):
        self.provider = provider

    async def search_many(
        self,
        request: MultiOriginSearchRequest,
        *,
        bypass_cache: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OriginPriceMap:
        """
        Search every origin concurrently and map origin -> quotes sorted by price.

        An origin whose lookup fails is logged and left out of the map; when
        every origin fails the map is empty. Setting ``cancel`` aborts the
        lookups still in flight and returns the origins already completed.
        """
        if not request.origins:
            raise ValueError("At least one origin must be provided")

        start_time = time.monotonic()
        logger.info(f"Starting parallel destination search for {len(request.origins)} origins")

        # Tasks copy the current context, so the bypass flag reaches the caching layer
        token = cache_bypass.set(bypass_cache)
        try:
            tasks = {
                origin: asyncio.create_task(
                    self.provider.search(request.for_origin(origin)),
                    name=f"search:{origin}",
                )
                for origin in request.origins
            }
        finally:
            cache_bypass.reset(token)

        await self._wait_all(tasks, cancel)

        results: OriginPriceMap = {}
        for origin, task in tasks.items():
            if task.cancelled():
                logger.info(f"Search for {origin} was cancelled")
                continue
            error = task.exception()
            if error is None:
                results[origin] = sort_by_price(task.result())
            elif isinstance(error, ProviderError):
                logger.warning(f"Search failed for {origin}: {error}")
            else:
                logger.error(f"Unexpected error searching {origin}: {error!r}")

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            f"Destination search finished: {len(results)}/{len(request.origins)} origins "
            f"succeeded in {elapsed_ms}ms"
        )
        return results

    @staticmethod
    async def _wait_all(
        tasks: dict[str, asyncio.Task],
        cancel: asyncio.Event | None,
    ) -> None:
        pending = set(tasks.values())
        cancel_waiter = asyncio.create_task(cancel.wait()) if cancel is not None else None
        try:
            while pending:
                waiting = pending | {cancel_waiter} if cancel_waiter else pending
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
                if cancel_waiter is not None and cancel_waiter in done:
                    logger.info(f"Search cancelled with {len(pending)} origins outstanding")
                    break
        finally:
            for task in pending:
                task.cancel()
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            # Retrieve failures of finished lookups even if the caller is gone
            for task in tasks.values():
                if task.done() and not task.cancelled():
                    task.exception()

    async def find_cheapest_common_destination(
        self,
        request: MultiOriginSearchRequest,
        *,
        bypass_cache: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> CommonDestination | None:
        price_map = await self.search_many(request, bypass_cache=bypass_cache, cancel=cancel)
        return select_optimal_destination(price_map)
