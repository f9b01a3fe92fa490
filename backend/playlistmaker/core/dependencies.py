"""
Service wiring and the FastAPI dependency that exposes it.

create_services() builds one object graph per process (in the app
lifespan) and stores it on app.state. Routers get it through
Depends(get_services); tests swap it via app.dependency_overrides.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

import httpx
from fastapi import HTTPException, Request, status

from playlistmaker.core.config import Settings
from playlistmaker.core.database import async_session_factory
from playlistmaker.services.credential_rotator import CredentialRotator
from playlistmaker.services.llm_client import SongGenerator
from playlistmaker.services.lookup import LookupOrchestrator
from playlistmaker.services.playlist_builder import PlaylistBuilder
from playlistmaker.services.redis_ledger import RedisUsageLedger
from playlistmaker.services.usage_ledger import (
    InMemoryUsageLedger,
    SqlUsageLedger,
    UsageLedger,
)
from playlistmaker.services.video_search import InvidiousSearchClient, YouTubeSearchClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppServices:
    """Everything a request needs, owned for the process lifetime."""

    builder: PlaylistBuilder
    lookup: LookupOrchestrator
    generator: SongGenerator
    http: httpx.AsyncClient | None = None

    @property
    def ledger(self) -> UsageLedger:
        return self.builder.ledger

    @property
    def rotator(self) -> CredentialRotator:
        return self.lookup.rotator

    async def close(self) -> None:
        if self.http is not None:
            await self.http.aclose()
        await self.ledger.close()


def create_ledger(config: Settings) -> UsageLedger:
    """Pick the ledger store named by LEDGER_BACKEND."""
    window = datetime.timedelta(hours=config.USAGE_WINDOW_HOURS)

    if config.LEDGER_BACKEND == "memory":
        logger.warning("Using the in-memory usage ledger — quota resets on restart")
        return InMemoryUsageLedger(window=window)
    if config.LEDGER_BACKEND == "redis":
        return RedisUsageLedger(config.REDIS_URL, window=window)
    return SqlUsageLedger(async_session_factory, window=window)


def create_services(config: Settings) -> AppServices:
    """Build the service graph from settings."""
    http = httpx.AsyncClient(timeout=config.SEARCH_TIMEOUT_SECONDS)

    keys = config.youtube_api_keys()
    if not keys:
        logger.error(
            "No YouTube API keys configured (YOUTUBE_API_KEY1, YOUTUBE_API_KEY2, …)",
        )
    else:
        logger.info("Loaded %d YouTube API key(s)", len(keys))

    lookup = LookupOrchestrator(
        rotator=CredentialRotator(keys),
        youtube=YouTubeSearchClient(
            http,
            search_url=config.YOUTUBE_SEARCH_URL,
            timeout=config.SEARCH_TIMEOUT_SECONDS,
        ),
        fallbacks=[
            InvidiousSearchClient(http, instance, timeout=config.SEARCH_TIMEOUT_SECONDS)
            for instance in config.INVIDIOUS_INSTANCES
        ],
    )

    generator = SongGenerator(
        api_key=config.GROQ_API_KEY,
        base_url=config.LLM_BASE_URL,
        model=config.LLM_MODEL,
        temperature=config.LLM_TEMPERATURE,
        max_tokens=config.LLM_MAX_TOKENS,
        timeout=config.LLM_TIMEOUT_SECONDS,
    )

    builder = PlaylistBuilder(
        ledger=create_ledger(config),
        generator=generator,
        lookup=lookup,
        daily_limit=config.DAILY_SONG_LIMIT,
        max_songs=config.MAX_SONGS_PER_REQUEST,
        default_songs=config.DEFAULT_SONGS_PER_REQUEST,
    )

    return AppServices(builder=builder, lookup=lookup, generator=generator, http=http)



async def get_services(request: Request) -> AppServices:
    """
    FastAPI dependency — the process-wide service graph.

    Usage in routers:
        Services = Annotated[AppServices, Depends(get_services)]
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up.",
        )
    return services
