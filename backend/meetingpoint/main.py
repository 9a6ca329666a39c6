import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetingpoint.config import settings

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(os.environ.get("LOG_DIR", Path(__file__).resolve().parent.parent / "logs"))
_LOG_DIR.mkdir(parents=True, exist_ok=True)

_log_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "meetingpoint.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from meetingpoint.routers import destinations
from meetingpoint.services.cache_service import response_cache
from meetingpoint.services.providers import build_provider, build_provider_stack
from meetingpoint.services.resilience import circuit_breakers
from meetingpoint.services.search_orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build the provider stack once, cache and breakers are process-wide
    provider = build_provider(settings)
    stack = build_provider_stack(provider, settings, response_cache, circuit_breakers)
    app.state.search_orchestrator = SearchOrchestrator(stack)
    logger.info(f"Using flight provider '{provider.name}'")

    yield

    # Shutdown
    close = getattr(provider, "close", None)
    if close is not None:
        await close()
        logger.info(f"Closed flight provider '{provider.name}'")


app = FastAPI(
    title="MeetingPoint",
    description="Cheapest common destination for travelers departing from different cities",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(destinations.router, prefix="/api/destinations", tags=["destinations"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "service": "meetingpoint",
        "circuits": circuit_breakers.states(),
        "cache": response_cache.stats(),
    }
