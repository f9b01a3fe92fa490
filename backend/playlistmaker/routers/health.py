"""
Health router — configuration and upstream status for operators.

GET /api/health
  • How many YouTube keys are configured, which one is active, and
    per-key request/error/exhaustion counters (keys are masked).
  • Whether the LLM is reachable with the configured key.
"""

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from playlistmaker.core.dependencies import AppServices, get_services
from playlistmaker.schemas.health import (
    CredentialStats,
    HealthResponse,
    ServiceFlags,
    YouTubeKeys,
)

router = APIRouter(tags=["System"])

Services = Annotated[AppServices, Depends(get_services)]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Search-key rotation state and LLM reachability",
)
async def health(services: Services) -> HealthResponse:
    rotator = services.rotator
    active = rotator.active

    return HealthResponse(
        timestamp=datetime.datetime.now(datetime.timezone.utc),
        services=ServiceFlags(
            youtube=len(rotator) > 0,
            llm=services.generator.configured,
        ),
        llm_status=await services.generator.check_status(),
        youtube_keys=YouTubeKeys(
            total=len(rotator),
            current=active.index + 1 if active is not None else 0,
            stats=[CredentialStats.model_validate(stat) for stat in rotator.stats()],
        ),
    )
