"""Pydantic v2 response schemas for the health endpoint."""

from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CredentialStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str = Field(..., description="Masked key (first 10 characters).")
    requests: int
    errors: int
    exhausted: bool
    last_used: datetime.datetime | None = None


class YouTubeKeys(BaseModel):
    total: int
    current: int = Field(..., description="1-based index of the active key (0 if none).")
    stats: list[CredentialStats]


class ServiceFlags(BaseModel):
    youtube: bool
    llm: bool


class HealthResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = "ok"
    timestamp: datetime.datetime
    services: ServiceFlags
    llm_status: Literal["working", "invalid_key", "error", "not_configured"]
    youtube_keys: YouTubeKeys
