"""
FastAPI application entrypoint.

Lifespan:
  • On startup: build the service graph, verify the ledger store
    (SQL backend), start the expired-usage sweep.
  • On shutdown: stop the sweep, close HTTP/ledger clients, dispose
    the engine cleanly.

Routers:
  • /api/playlist, /api/usage — playlist generation + quota
  • /api/health — key rotation state and LLM reachability
  • / — service index
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from playlistmaker.core.config import settings
from playlistmaker.core.database import engine
from playlistmaker.core.dependencies import create_services
from playlistmaker.core.errors import LedgerUnavailableError
from playlistmaker.routers.health import router as health_router
from playlistmaker.routers.playlist import router as playlist_router
from playlistmaker.schemas.playlist import ErrorResponse
from playlistmaker.services.usage_ledger import UsageLedger

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# ── Background sweep ────────────────────────────────────────
async def sweep_expired_usage(ledger: UsageLedger, interval_seconds: float) -> None:
    """Delete expired usage records now and then every interval."""
    while True:
        try:
            removed = await ledger.purge_expired()
            logger.info("Usage sweep removed %d expired record(s)", removed)
        except LedgerUnavailableError:
            logger.warning("Usage sweep skipped — ledger unavailable")
        except Exception:
            # Driver errors can escape the store's wrapping; keep sweeping.
            logger.exception("Usage sweep failed")
        await asyncio.sleep(interval_seconds)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    services = create_services(settings)
    app.state.services = services

    # Startup — verify DB is reachable
    if settings.LEDGER_BACKEND == "sql":
        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("Database connection verified ✓")
        except Exception:
            logger.warning(
                "Could not reach the database on startup. "
                "The app will start, but playlist requests will fail until the DB is available."
            )

    sweeper = asyncio.create_task(
        sweep_expired_usage(services.ledger, settings.SWEEP_INTERVAL_SECONDS),
    )
    logger.info(
        "%s ready — %d YouTube key(s), LLM %s, ledger=%s",
        settings.APP_NAME,
        len(services.rotator),
        "configured" if services.generator.configured else "NOT configured",
        settings.LEDGER_BACKEND,
    )

    yield  # ← application runs here

    # Shutdown — stop the sweep, clean up clients and the connection pool
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await services.close()
    await engine.dispose()
    logger.info("Shutdown complete ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=VERSION,
    description=(
        "Playlist Maker — LLM-curated song lists resolved to YouTube videos, "
        "with a per-client daily song quota."
    ),
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Malformed or mistyped bodies get the same 400 shape as a blank prompt."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.info("Rejected invalid request to %s: %s", request.url.path, problems)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="Invalid request", details=problems).model_dump(
            exclude_none=True,
        ),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(playlist_router, prefix="/api")
app.include_router(health_router, prefix="/api")


# ── Index ───────────────────────────────────────────────────
@app.get(
    "/",
    tags=["System"],
    summary="Service index",
)
async def index() -> dict[str, object]:
    """Name, version and the available endpoints."""
    return {
        "message": settings.APP_NAME,
        "version": VERSION,
        "endpoints": {
            "health": "GET /api/health",
            "usage": "GET /api/usage",
            "playlist": "POST /api/playlist",
        },
    }
