"""
Resilient title → video id lookup.

For one song title:
  1. Build query variants (raw, dash collapsed, "official audio",
     "official video").
  2. Try the variants on the active YouTube key; the first match wins.
  3. On a quota/permission failure, flag the key exhausted and retry
     the whole variant list on the next key — at most one attempt per
     configured key.
  4. Other failures (timeouts, 5xx, bad JSON) skip to the next variant
     on the same key; keys are only rotated for quota failures.
  5. If the keys found nothing, try the keyless fallback providers.

resolve() never raises — a failed lookup is just None.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from playlistmaker.core.errors import QuotaExhaustedError, VideoSearchError
from playlistmaker.services.credential_rotator import CredentialRotator
from playlistmaker.services.video_search import FallbackSearch, YouTubeSearchClient

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"\s*-\s*")


def query_variants(title: str) -> list[str]:
    """Phrasings tried for one title, most specific first."""
    return [
        title,
        _SEPARATOR.sub(" ", title, count=1),
        f"{title} official audio",
        f"{title} official video",
    ]


class LookupOrchestrator:
    """Resolves song titles using rotating YouTube keys, then fallbacks."""

    def __init__(
        self,
        rotator: CredentialRotator,
        youtube: YouTubeSearchClient,
        fallbacks: Sequence[FallbackSearch] = (),
    ) -> None:
        self.rotator = rotator
        self._youtube = youtube
        self._fallbacks = list(fallbacks)

    async def resolve(self, title: str) -> str | None:
        """Return the best video id for title, or None."""
        try:
            video_id = await self._search_youtube(title)
            if video_id is None and self._fallbacks:
                video_id = await self._search_fallbacks(title)
        except Exception:
            logger.exception("Lookup for %r failed unexpectedly", title)
            return None

        if video_id is None:
            logger.info("✗ No video found for %r", title)
        return video_id

    # ── YouTube with key rotation ───────────────────────────
    async def _search_youtube(self, title: str) -> str | None:
        if not len(self.rotator):
            logger.debug("No YouTube keys configured — skipping for %r", title)
            return None

        variants = query_variants(title)

        for attempt in range(len(self.rotator)):
            credential = self.rotator.active
            if credential is None:
                return None
            rotated = False

            for query in variants:
                logger.debug(
                    "Searching with %s: %r (attempt %d)", credential.label, query, attempt,
                )
                try:
                    video_id = await self._youtube.search(query, credential)
                except QuotaExhaustedError as exc:
                    logger.warning(
                        "Quota failure on %s for %r (%s) — rotating",
                        credential.label, title, exc,
                    )
                    self.rotator.mark_exhausted(credential)
                    rotated = True
                    break
                except VideoSearchError as exc:
                    logger.warning(
                        "Search failed on %s for %r: %s", credential.label, query, exc,
                    )
                    continue

                if video_id:
                    logger.info(
                        "✓ %r → %s (via %s)", title, video_id, credential.label,
                    )
                    return video_id

            if not rotated:
                return None

        logger.error("All %d YouTube keys exhausted while looking up %r", len(self.rotator), title)
        return None

    # ── Keyless fallbacks ───────────────────────────────────
    async def _search_fallbacks(self, title: str) -> str | None:
        variants = query_variants(title)

        for provider in self._fallbacks:
            try:
                for query in variants:
                    video_id = await provider.search(query)
                    if video_id:
                        logger.info("✓ %r → %s (via %s)", title, video_id, provider.name)
                        return video_id
            except VideoSearchError as exc:
                logger.warning("Fallback %s failed for %r: %s", provider.name, title, exc)

        return None
