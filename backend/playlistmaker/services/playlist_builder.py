"""
Playlist generation — the per-request flow.

  1. Validate the prompt, clamp the song count.
  2. Quota pre-check against the usage ledger (advisory, read-only).
  3. Get titles from the LLM; pad from the static fallback lists on
     failure or shortfall; de-duplicate; truncate.
  4. Resolve every title concurrently. One title's failure never fails
     the batch.
  5. Nothing found → NoMatchError, no quota charged.
  6. Otherwise charge the ledger for every title ATTEMPTED (not only
     the ones found) with a conditional atomic increment, and return
     the multi-video playlist link.

The pre-check and the commit are separate steps: two concurrent requests
can both pass step 2, but the commit re-checks the limit atomically, so
the later one is rejected instead of overshooting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from playlistmaker.core.errors import (
    InvalidPromptError,
    NoMatchError,
    QuotaExceededError,
    SongGeneratorError,
)
from playlistmaker.services.fallback_songs import get_fallback_songs
from playlistmaker.services.llm_client import SongGenerator
from playlistmaker.services.lookup import LookupOrchestrator
from playlistmaker.services.song_titles import unique_preserve_order
from playlistmaker.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
PLAYLIST_URL = "https://www.youtube.com/watch_videos?video_ids={video_ids}"


@dataclass(frozen=True, slots=True)
class SongResult:
    """Outcome of looking up one title."""

    title: str
    video_id: str | None = None

    @property
    def found(self) -> bool:
        return self.video_id is not None

    @property
    def video_url(self) -> str | None:
        if self.video_id is None:
            return None
        return WATCH_URL.format(video_id=self.video_id)

    def as_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "videoUrl": self.video_url,
            "videoId": self.video_id,
            "found": self.found,
        }


@dataclass(slots=True)
class PlaylistResult:
    """A generated playlist and its statistics."""

    playlist_url: str
    items: list[SongResult]
    songs: list[str]
    requested: int
    used_ai: bool
    usage_count: int
    found_count: int = field(init=False)

    def __post_init__(self) -> None:
        self.found_count = sum(1 for item in self.items if item.found)

    @property
    def generated(self) -> int:
        return len(self.songs)

    @property
    def success_rate(self) -> int:
        if not self.songs:
            return 0
        return round(self.found_count / len(self.songs) * 100)

    @property
    def message(self) -> str:
        if self.found_count == self.requested:
            return "Playlist generated successfully!"
        return f"Playlist created with {self.found_count} of {self.requested} songs"


FallbackSource = Callable[[str, int], list[str]]


class PlaylistBuilder:
    """Turns (client, prompt, count) into a playlist, enforcing the quota."""

    def __init__(
        self,
        ledger: UsageLedger,
        generator: SongGenerator,
        lookup: LookupOrchestrator,
        *,
        daily_limit: int = 50,
        max_songs: int = 30,
        default_songs: int = 10,
        fallback: FallbackSource = get_fallback_songs,
    ) -> None:
        self.ledger = ledger
        self._generator = generator
        self._lookup = lookup
        self.daily_limit = daily_limit
        self._max_songs = max_songs
        self._default_songs = default_songs
        self._fallback = fallback

    def clamp_count(self, requested: int | None) -> int:
        """Missing/zero → default; then clamp to [1, max_songs]."""
        count = requested or self._default_songs
        return max(1, min(count, self._max_songs))

    async def build(
        self,
        client_id: str,
        prompt: str | None,
        requested_count: int | None,
    ) -> PlaylistResult:
        """
        Run the full flow for one request.

        Raises:
            InvalidPromptError:     blank prompt.
            QuotaExceededError:     pre-check or commit would pass the limit.
            NoMatchError:           no title resolved (nothing charged).
            LedgerUnavailableError: the ledger could not be read/written.
        """
        # ── 1. Validate ─────────────────────────────────────
        prompt = (prompt or "").strip()
        if not prompt:
            raise InvalidPromptError("A playlist description is required")

        count = self.clamp_count(requested_count)

        # ── 2. Quota pre-check ──────────────────────────────
        usage = await self.ledger.get_usage(client_id)
        if usage.count + count > self.daily_limit:
            logger.info(
                "Quota pre-check rejected %s: %d used + %d requested > %d",
                client_id, usage.count, count, self.daily_limit,
            )
            raise QuotaExceededError(
                limit=self.daily_limit,
                remaining=max(0, self.daily_limit - usage.count),
                resets_at=usage.resets_at,
            )

        logger.info("New request from %s: %r (%d songs)", client_id, prompt, count)

        # ── 3. Titles ───────────────────────────────────────
        titles, used_ai = await self._collect_titles(prompt, count)
        logger.info(
            "Using %d titles (%s)", len(titles), "LLM" if used_ai else "fallback lists",
        )

        # ── 4. Concurrent lookup ────────────────────────────
        items = await self._resolve_all(titles)
        video_ids = [item.video_id for item in items if item.video_id]
        logger.info("Found %d/%d videos", len(video_ids), len(titles))

        # ── 5. Nothing found — no charge ────────────────────
        if not video_ids:
            raise NoMatchError(
                items=[item.as_dict() for item in items],
                songs=titles,
                used_ai=used_ai,
            )

        # ── 6. Charge attempted titles, atomically ──────────
        usage_count = await self.ledger.increment_usage(
            client_id, len(titles), limit=self.daily_limit,
        )
        logger.info("Usage for %s: %d/%d", client_id, usage_count, self.daily_limit)

        return PlaylistResult(
            playlist_url=PLAYLIST_URL.format(video_ids=",".join(video_ids)),
            items=items,
            songs=titles,
            requested=count,
            used_ai=used_ai,
            usage_count=usage_count,
        )

    # ── Internals ───────────────────────────────────────────
    async def _collect_titles(self, prompt: str, count: int) -> tuple[list[str], bool]:
        titles: list[str] = []
        used_ai = False

        try:
            titles = await self._generator.generate(prompt, count)
            used_ai = True
        except SongGeneratorError as exc:
            logger.warning("Song generator failed (%s) — using fallback lists", exc)

        titles = unique_preserve_order(titles)
        if len(titles) < count:
            logger.info("Padding %d missing titles from fallback lists", count - len(titles))
            titles = unique_preserve_order([*titles, *self._fallback(prompt, count)])

        return titles[:count], used_ai

    async def _resolve_all(self, titles: list[str]) -> list[SongResult]:
        return list(await asyncio.gather(*(self._resolve_one(title) for title in titles)))

    async def _resolve_one(self, title: str) -> SongResult:
        try:
            video_id = await self._lookup.resolve(title)
        except Exception:
            logger.exception("Lookup for %r raised — marking as not found", title)
            video_id = None
        return SongResult(title=title, video_id=video_id)
