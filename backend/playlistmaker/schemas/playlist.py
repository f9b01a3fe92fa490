"""
Pydantic v2 schemas for playlist generation and usage.

The wire format is camelCase (the web client's convention); Python code
uses snake_case and serialises by alias.

Separation:
  • PlaylistCreate   — what the CLIENT sends.
  • PlaylistResponse — 200 body.
  • QuotaExceededResponse / NoMatchResponse / ErrorResponse — non-200 bodies.
"""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Request schema ──────────────────────────────────────────
class PlaylistCreate(_CamelModel):
    """
    Payload accepted by POST /api/playlist.

    prompt is optional at the schema level so a missing or blank prompt
    gets the service's 400, not a generic 422. A numSongs that isn't a
    number falls back to the default count.
    """

    prompt: str | None = Field(
        default=None,
        max_length=1000,
        examples=["90s rock for a road trip"],
        description="Free-text description of the playlist.",
    )
    num_songs: int | None = Field(
        default=None,
        examples=[10],
        description="Songs requested; clamped to [1, 30], default 10.",
    )

    @field_validator("num_songs", mode="before")
    @classmethod
    def _lenient_count(cls, value: Any) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None


# ── Response schemas ────────────────────────────────────────
class PlaylistItem(_CamelModel):
    title: str
    video_url: str | None = None
    video_id: str | None = None
    found: bool


class PlaylistStats(_CamelModel):
    requested: int
    generated: int
    found_on_youtube: int
    success_rate: int


class PlaylistResponse(_CamelModel):
    """Body returned when at least one song was found."""

    success: bool = True
    playlist_url: str
    new_usage_count: int
    items: list[PlaylistItem]
    stats: PlaylistStats
    used_ai: bool = Field(alias="usedAI")
    message: str


class QuotaExceededResponse(_CamelModel):
    """429 body — the client's limit and what is left of it."""

    error: str = "Song limit exceeded"
    code: str
    message: str
    limit: int
    remaining: int
    resets_at: datetime.datetime | None = None


class NoMatchResponse(_CamelModel):
    """404 body — nothing resolved, nothing charged."""

    error: str = "No YouTube videos found for any song"
    items: list[PlaylistItem]
    songs: list[str]
    used_ai: bool = Field(alias="usedAI")


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None


class UsageResponse(BaseModel):
    """GET /api/usage body."""

    count: int
    limit: int
