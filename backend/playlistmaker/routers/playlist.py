"""
Playlist router — the public entry point for playlist generation.

POST /api/playlist
  1. Resolves the client identity (network address, proxy-aware).
  2. Runs the playlist flow (validation → quota pre-check → titles →
     concurrent lookup → conditional charge).
  3. Translates service errors into the documented JSON bodies.

GET /api/usage
  Songs used by the caller in the current window, and the limit.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from playlistmaker.auth.client_identity import get_client_id
from playlistmaker.core.dependencies import AppServices, get_services
from playlistmaker.core.errors import (
    InvalidPromptError,
    LedgerUnavailableError,
    NoMatchError,
    QuotaExceededError,
)
from playlistmaker.schemas.playlist import (
    ErrorResponse,
    NoMatchResponse,
    PlaylistCreate,
    PlaylistItem,
    PlaylistResponse,
    PlaylistStats,
    QuotaExceededResponse,
    UsageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Playlist"])

# Type aliases for cleaner signatures
Services = Annotated[AppServices, Depends(get_services)]
ClientId = Annotated[str, Depends(get_client_id)]

_LEDGER_DOWN = "Usage tracking is temporarily unavailable"


def _json(status_code: int, body: ErrorResponse | NoMatchResponse | QuotaExceededResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _quota_response(exc: QuotaExceededError) -> JSONResponse:
    return _json(
        status.HTTP_429_TOO_MANY_REQUESTS,
        QuotaExceededResponse(
            code=exc.code,
            message=(
                f"You have reached your limit of {exc.limit} songs per 24 hours."
                if exc.code == "LIMIT_REACHED"
                else "Your request could not be completed as it would exceed your usage limit."
            ),
            limit=exc.limit,
            remaining=exc.remaining,
            resets_at=exc.resets_at,
        ),
    )


@router.post(
    "/playlist",
    response_model=PlaylistResponse,
    summary="Generate a YouTube playlist from a prompt",
    description=(
        "Asks the LLM for songs matching the prompt, finds each on YouTube "
        "and returns a watch_videos link. Charged against a per-client "
        "daily song quota; a request that finds nothing is not charged."
    ),
    responses={
        400: {"model": ErrorResponse},
        404: {"model": NoMatchResponse},
        429: {"model": QuotaExceededResponse},
        500: {"model": ErrorResponse},
    },
)
async def create_playlist(
    payload: PlaylistCreate,
    services: Services,
    client_id: ClientId,
) -> PlaylistResponse | JSONResponse:
    try:
        result = await services.builder.build(client_id, payload.prompt, payload.num_songs)
    except InvalidPromptError as exc:
        return _json(status.HTTP_400_BAD_REQUEST, ErrorResponse(error=str(exc)))
    except QuotaExceededError as exc:
        return _quota_response(exc)
    except NoMatchError as exc:
        return _json(
            status.HTTP_404_NOT_FOUND,
            NoMatchResponse(
                items=[PlaylistItem.model_validate(item) for item in exc.items],
                songs=exc.songs,
                used_ai=exc.used_ai,
            ),
        )
    except LedgerUnavailableError as exc:
        return _json(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(error=_LEDGER_DOWN, details=str(exc)),
        )
    except Exception as exc:
        logger.exception("Playlist generation failed for %s", client_id)
        return _json(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(error="Failed to generate the playlist", details=str(exc)),
        )

    return PlaylistResponse(
        playlist_url=result.playlist_url,
        new_usage_count=result.usage_count,
        items=[PlaylistItem.model_validate(item.as_dict()) for item in result.items],
        stats=PlaylistStats(
            requested=result.requested,
            generated=result.generated,
            found_on_youtube=result.found_count,
            success_rate=result.success_rate,
        ),
        used_ai=result.used_ai,
        message=result.message,
    )


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Songs used by the caller in the current window",
    responses={500: {"model": ErrorResponse}},
)
async def get_usage(
    services: Services,
    client_id: ClientId,
) -> UsageResponse | JSONResponse:
    try:
        usage = await services.ledger.get_usage(client_id)
    except LedgerUnavailableError as exc:
        return _json(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(error=_LEDGER_DOWN, details=str(exc)),
        )

    return UsageResponse(count=usage.count, limit=services.builder.daily_limit)
