"""
Video search clients.

  • YouTubeSearchClient  — YouTube Data API v3 /search, one key per call.
  • InvidiousSearchClient — keyless search on a public Invidious instance,
                            used as a fallback provider.

Both return the best match's video id, or None when nothing matched.
Failures are raised as VideoSearchError; YouTube failures that mean the
key is out of quota or not allowed are raised as QuotaExhaustedError so
the caller can rotate keys.

Every call carries a bounded timeout (SEARCH_TIMEOUT_SECONDS); a timeout
is an ordinary (non-quota) failure.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

import httpx

from playlistmaker.core.errors import QuotaExhaustedError, VideoSearchError
from playlistmaker.services.credential_rotator import Credential

logger = logging.getLogger(__name__)

# YouTube category id for "Music"
MUSIC_CATEGORY_ID = "10"

# Reason codes / messages that mean "this key can't search right now".
_QUOTA_PATTERN = re.compile(
    r"quota|ratelimitexceeded|userratelimitexceeded|dailylimitexceeded",
    re.IGNORECASE,
)
_NOT_ENABLED_PATTERN = re.compile(
    r"has not been used|is disabled|accessnotconfigured",
    re.IGNORECASE,
)
_QUOTA_STATUSES = {403, 429}


class FallbackSearch(Protocol):
    """A keyless search provider tried after the YouTube keys."""

    name: str

    async def search(self, query: str) -> str | None: ...


def _error_details(response: httpx.Response) -> tuple[str, str]:
    """Pull (reason, message) out of a Google API error body, if any."""
    try:
        error = response.json().get("error", {})
    except (ValueError, AttributeError):
        return "", response.text[:200]

    if not isinstance(error, dict):
        return "", str(error)[:200]

    reasons = error.get("errors") or [{}]
    reason = reasons[0].get("reason", "") if isinstance(reasons[0], dict) else ""
    return reason, str(error.get("message", ""))


def classify_youtube_error(response: httpx.Response) -> VideoSearchError:
    """Map a non-200 YouTube response to QuotaExhaustedError or VideoSearchError."""
    reason, message = _error_details(response)
    detail = f"HTTP {response.status_code}: {reason or message or 'no details'}"
    text = f"{reason} {message}"

    if (
        response.status_code in _QUOTA_STATUSES
        or _QUOTA_PATTERN.search(text)
        or _NOT_ENABLED_PATTERN.search(text)
    ):
        return QuotaExhaustedError(detail)
    return VideoSearchError(detail)


def _first_video_id(items: Any) -> str | None:
    if not isinstance(items, list):
        raise VideoSearchError("Malformed search response: items is not a list")
    for item in items:
        ident = item.get("id") if isinstance(item, dict) else None
        if isinstance(ident, dict) and ident.get("videoId"):
            return str(ident["videoId"])
    return None


class YouTubeSearchClient:
    """Single-result music search against the YouTube Data API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        search_url: str = "https://www.googleapis.com/youtube/v3/search",
        timeout: float = 5.0,
    ) -> None:
        self._http = http
        self._search_url = search_url
        self._timeout = timeout

    async def search(self, query: str, credential: Credential) -> str | None:
        params = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": 1,
            "videoCategoryId": MUSIC_CATEGORY_ID,
            "key": credential.value,
        }

        try:
            response = await self._http.get(
                self._search_url, params=params, timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise VideoSearchError(f"Search timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise VideoSearchError(f"Search request failed: {exc}") from exc

        if response.status_code != 200:
            raise classify_youtube_error(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise VideoSearchError("Malformed search response: invalid JSON") from exc
        if not isinstance(body, dict):
            raise VideoSearchError("Malformed search response: expected an object")

        return _first_video_id(body.get("items", []))


class InvidiousSearchClient:
    """Search one Invidious instance (no API key required)."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        instance: str,
        timeout: float = 5.0,
    ) -> None:
        self._http = http
        self.name = instance.rstrip("/")
        self._timeout = timeout

    async def search(self, query: str) -> str | None:
        try:
            response = await self._http.get(
                f"{self.name}/api/v1/search",
                params={"q": query, "type": "video"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise VideoSearchError(f"{self.name} timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise VideoSearchError(f"{self.name} request failed: {exc}") from exc

        if response.status_code != 200:
            raise VideoSearchError(f"{self.name} returned HTTP {response.status_code}")

        try:
            results = response.json()
        except ValueError as exc:
            raise VideoSearchError(f"{self.name} returned invalid JSON") from exc
        if not isinstance(results, list):
            raise VideoSearchError(f"{self.name} returned an unexpected payload")

        for item in results:
            if isinstance(item, dict) and item.get("type") == "video" and item.get("videoId"):
                return str(item["videoId"])
        return None
