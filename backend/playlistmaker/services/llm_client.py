"""
LLM client for generating song lists.

Uses an OpenAI-compatible /chat/completions API (Groq by default) via httpx.
The model only proposes titles — parsing, de-duplication and truncation
happen here, and video lookup happens elsewhere.

Configuration:
  GROQ_API_KEY — server-side only (never exposed to clients)
  LLM_BASE_URL — OpenAI-compatible base URL
  LLM_MODEL    — defaults to llama-3.1-8b-instant (fast, cheap)

Output contract:
  • Plain "Artist - Track" lines, one per line
  • Higher temperature (0.8) for variety between requests
  • Bounded max_tokens (800)
"""

from __future__ import annotations

import logging

import httpx

from playlistmaker.core.errors import SongGeneratorError
from playlistmaker.services.song_titles import parse_song_lines, unique_preserve_order

logger = logging.getLogger(__name__)

# ── System prompt ───────────────────────────────────────────
SYSTEM_PROMPT = """\
You are an expert music curator with deep knowledge of every genre and era.
Your job is to produce accurate, relevant, high-quality song lists.

═══ FORMAT RULES (ABSOLUTE) ═══
- EXACT format: "Artist - Song Title" (spaces around the dash)
- One song per line
- No numbering (no "1.", no "1)"), no bullets, no asterisks
- No explanations, no intro text, no closing text
- Only the song lines

═══ CONTENT RULES ═══
- Only real, popular songs that are easy to find on YouTube
- Diversify artists (at most 2 songs by the same artist)
- Match the language implied by the request
- If a genre is mentioned, be precise about that genre
- If an era is mentioned (70s, 80s, 90s), respect it
- If a mood is mentioned (sad, happy, energetic), match it

═══ CORRECT EXAMPLES ═══
Queen - Bohemian Rhapsody
Los Bunkers - Ven Aquí
The Beatles - Hey Jude
Soda Stereo - De Música Ligera

═══ WRONG (do not do this) ═══
1. Queen - Bohemian Rhapsody
* The Beatles - Hey Jude
- Pink Floyd - Wish You Were Here
"Nirvana - Smells Like Teen Spirit"\
"""


class SongGenerator:
    """Asks the language model for `count` songs matching a prompt."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.8,
        max_tokens: int = 800,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, prompt: str, count: int) -> list[str]:
        """
        Return up to `count` unique "Artist - Track" strings.

        Raises:
            SongGeneratorError: If the key is missing, the call fails,
                or the reply contains no usable song lines.
        """
        if not self._api_key:
            raise SongGeneratorError("GROQ_API_KEY is not configured")

        user_message = (
            f'Generate EXACTLY {count} songs that match this request: "{prompt}"\n\n'
            "Remember: only the song lines, no numbering, no explanations."
        )

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }

        logger.info("Requesting %d songs from %s", count, self.model)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.error("LLM request failed: %s", exc)
            raise SongGeneratorError("LLM service is unreachable") from exc

        if response.status_code != 200:
            logger.error(
                "LLM API error: status=%d body=%s",
                response.status_code,
                response.text[:500],
            )
            if response.status_code == 401:
                logger.error("The configured GROQ_API_KEY appears to be invalid")
            raise SongGeneratorError("LLM service returned an error")

        # ── Parse the model's text ──────────────────────────
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("Failed to parse LLM response: %s", exc)
            raise SongGeneratorError("Could not parse LLM response") from exc

        logger.debug("LLM reply: %.200s", content)
        songs = unique_preserve_order(parse_song_lines(content or ""))
        if not songs:
            raise SongGeneratorError("LLM reply contained no song lines")

        logger.info("LLM produced %d valid songs", len(songs))
        return songs[:count]

    async def check_status(self) -> str:
        """
        Probe the models endpoint for the health check.

        Returns one of: working, invalid_key, error, not_configured.
        """
        if not self._api_key:
            return "not_configured"

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._base_url}/models", headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.warning("LLM health probe failed: %s", exc)
            return "error"

        if response.status_code == 200:
            return "working"
        if response.status_code == 401:
            return "invalid_key"
        return "error"
