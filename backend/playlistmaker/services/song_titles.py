"""Parsing and de-duplication of "Artist - Track" song lines."""

from __future__ import annotations

import re
from collections.abc import Iterable

_NUMBERING = re.compile(r"^\s*\d+[).\-\s:]+")
_BULLETS = re.compile(r"^[*\-\s]+")
_LONG_DASH = re.compile(r"\s+[—–]\s+")
_QUOTES = re.compile(r"[\"'`]")


def parse_song_lines(text: str) -> list[str]:
    """
    Turn raw model output into "Artist - Track" lines.

    Strips numbering ("1.", "2)"), bullets, quotes and long dashes;
    drops lines that are too short or have no separator dash.
    """
    songs: list[str] = []
    for line in text.splitlines():
        line = _NUMBERING.sub("", line)
        line = _BULLETS.sub("", line)
        line = _LONG_DASH.sub(" - ", line, count=1)
        line = _QUOTES.sub("", line).strip()
        if len(line) > 3 and "-" in line:
            songs.append(line)
    return songs


def unique_preserve_order(titles: Iterable[str]) -> list[str]:
    """Drop case-insensitive duplicates (ignoring surrounding whitespace), keeping the first."""
    seen: set[str] = set()
    unique: list[str] = []
    for title in titles:
        key = title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(title)
    return unique
