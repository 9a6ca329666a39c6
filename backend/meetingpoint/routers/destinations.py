"""Destinations router — cheapest common destination for travelers leaving from several origins."""

import logging

from fastapi import APIRouter, Depends, Request

from meetingpoint.schemas.search import (
    CheapestDestinationResponse,
    MultiOriginSearchRequest,
    PriceQuote,
)
from meetingpoint.services.aggregation import select_optimal_destination
from meetingpoint.services.search_orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def get_search_orchestrator(request: Request) -> SearchOrchestrator:
    return request.app.state.search_orchestrator


def wants_no_cache(request: Request) -> bool:
    """True when the caller sent ``Cache-Control: no-cache`` or ``Pragma: no-cache``."""
    cache_control = request.headers.get("cache-control", "")
    directives = {d.strip().lower() for d in cache_control.split(",")}
    if "no-cache" in directives or "no-store" in directives:
        return True
    return request.headers.get("pragma", "").strip().lower() == "no-cache"


@router.post("/cheapest", response_model=CheapestDestinationResponse)
async def find_cheapest_destination(
    req: MultiOriginSearchRequest,
    request: Request,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    """Find the destination with the lowest combined fare across all origins."""
    price_map = await orchestrator.search_many(req, bypass_cache=wants_no_cache(request))
    destination = select_optimal_destination(price_map)

    failed = [origin for origin in req.origins if origin not in price_map]
    if destination is None:
        logger.info(f"No common destination for origins {req.origins}")

    return CheapestDestinationResponse(
        found=destination is not None,
        destination=destination,
        origins_searched=list(price_map),
        origins_failed=failed,
    )


@router.post("/by-origin", response_model=dict[str, list[PriceQuote]])
async def search_destinations_by_origin(
    req: MultiOriginSearchRequest,
    request: Request,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    """Raw per-origin destination prices, cheapest first."""
    return await orchestrator.search_many(req, bypass_cache=wants_no_cache(request))
