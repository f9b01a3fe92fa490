"""
Service-level errors.

Services raise these; routers translate them to HTTP responses.
Search and generator errors never reach a router — they are absorbed
by the lookup orchestrator and the playlist builder respectively.
"""

from __future__ import annotations

import datetime
from typing import Any


class InvalidPromptError(Exception):
    """Raised when the playlist prompt is missing or blank."""


class QuotaExceededError(Exception):
    """Raised when a client would exceed its song quota for the window.

    Attributes:
        limit:     The configured per-window song limit.
        remaining: Songs the client can still request in this window.
        resets_at: When the client's window expires, if known.
        code:      LIMIT_REACHED for the pre-check,
                   LIMIT_REACHED_ON_INCREMENT for the commit.
    """

    def __init__(
        self,
        limit: int,
        remaining: int,
        resets_at: datetime.datetime | None = None,
        code: str = "LIMIT_REACHED",
    ) -> None:
        super().__init__(f"Song limit of {limit} reached ({remaining} remaining)")
        self.limit = limit
        self.remaining = remaining
        self.resets_at = resets_at
        self.code = code


class NoMatchError(Exception):
    """Raised when no title in a batch resolved to a video. No quota is charged."""

    def __init__(
        self,
        items: list[dict[str, Any]],
        songs: list[str],
        used_ai: bool,
    ) -> None:
        super().__init__("No videos found for any song")
        self.items = items
        self.songs = songs
        self.used_ai = used_ai


class LedgerUnavailableError(Exception):
    """Raised when the usage ledger cannot be read or written.

    Fatal for the request: quota integrity cannot be guaranteed.
    """


class SongGeneratorError(Exception):
    """Raised when the language-model call fails or returns nothing usable."""


class VideoSearchError(Exception):
    """Raised when a single search call fails for a non-quota reason."""


class QuotaExhaustedError(VideoSearchError):
    """Raised when a search credential is out of quota or not permitted.

    Recovered by rotating to the next credential.
    """
