"""Playlist flow: validation, quota pre-check/commit, title sourcing, lookup."""

from unittest.mock import AsyncMock

import pytest

from playlistmaker.core.errors import (
    InvalidPromptError,
    NoMatchError,
    QuotaExceededError,
    SongGeneratorError,
)
from playlistmaker.services.playlist_builder import PlaylistBuilder, SongResult
from playlistmaker.services.usage_ledger import UsageLedger, UsageSnapshot

from conftest import START, WINDOW

CLIENT = "203.0.113.7"


class FakeGenerator:
    def __init__(self, songs=None, error=None):
        self._songs = songs or []
        self._error = error
        self.calls = []

    async def generate(self, prompt, count):
        self.calls.append((prompt, count))
        if self._error:
            raise self._error
        return list(self._songs)[:count]


class FakeLookup:
    """Resolves titles from a mapping; titles not in it are not found."""

    def __init__(self, found=None, default=None, on_resolve=None):
        self._found = found or {}
        self._default = default
        self._on_resolve = on_resolve
        self.resolved = []

    async def resolve(self, title):
        self.resolved.append(title)
        if self._on_resolve:
            await self._on_resolve(title)
        if callable(self._default):
            return self._default(title)
        return self._found.get(title, self._default)


def _songs(n, prefix="Artist"):
    return [f"{prefix} {i} - Song {i}" for i in range(n)]


def _fallback(prompt, count):
    return _songs(count, prefix="Fallback")


def _builder(ledger, generator, lookup, **kwargs):
    kwargs.setdefault("fallback", _fallback)
    return PlaylistBuilder(ledger, generator, lookup, **kwargs)


def _vid(title):
    return "v" + title.split()[1]


# ── Validation and clamping ─────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", [None, "", "   \n"])
async def test_blank_prompt_is_rejected_before_anything_else(memory_ledger, prompt):
    generator = FakeGenerator(_songs(5))
    builder = _builder(memory_ledger, generator, FakeLookup(default="vid"))

    with pytest.raises(InvalidPromptError):
        await builder.build(CLIENT, prompt, 5)

    assert generator.calls == []
    assert (await memory_ledger.get_usage(CLIENT)).count == 0


@pytest.mark.parametrize(
    "requested, expected",
    [(None, 10), (0, 10), (-3, 1), (1, 1), (30, 30), (31, 30), (500, 30)],
)
def test_clamp_count(memory_ledger, requested, expected):
    builder = _builder(memory_ledger, FakeGenerator(), FakeLookup())

    assert builder.clamp_count(requested) == expected


# ── Quota ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_request_reaching_limit_exactly_is_allowed(memory_ledger):
    await memory_ledger.increment_usage(CLIENT, 45)
    builder = _builder(memory_ledger, FakeGenerator(_songs(5)), FakeLookup(default=_vid))

    result = await builder.build(CLIENT, "road trip", 5)

    assert result.usage_count == 50
    assert (await memory_ledger.get_usage(CLIENT)).count == 50


@pytest.mark.asyncio
async def test_request_over_limit_is_rejected_by_pre_check(memory_ledger):
    await memory_ledger.increment_usage(CLIENT, 45)
    generator = FakeGenerator(_songs(6))
    builder = _builder(memory_ledger, generator, FakeLookup(default=_vid))

    with pytest.raises(QuotaExceededError) as excinfo:
        await builder.build(CLIENT, "road trip", 6)

    error = excinfo.value
    assert error.code == "LIMIT_REACHED"
    assert error.limit == 50
    assert error.remaining == 5
    assert error.resets_at == START + WINDOW
    assert generator.calls == []
    assert (await memory_ledger.get_usage(CLIENT)).count == 45


@pytest.mark.asyncio
async def test_pre_check_uses_clamped_count(memory_ledger):
    await memory_ledger.increment_usage(CLIENT, 20)
    builder = _builder(memory_ledger, FakeGenerator(_songs(30)), FakeLookup(default=_vid))

    result = await builder.build(CLIENT, "everything", 999)

    assert result.requested == 30
    assert result.usage_count == 50


@pytest.mark.asyncio
async def test_usage_from_expired_window_does_not_count(memory_ledger, clock):
    await memory_ledger.increment_usage(CLIENT, 50)
    clock.advance(hours=24, minutes=1)
    builder = _builder(memory_ledger, FakeGenerator(_songs(10)), FakeLookup(default=_vid))

    result = await builder.build(CLIENT, "fresh start", 10)

    assert result.usage_count == 10


@pytest.mark.asyncio
async def test_commit_rejects_when_concurrent_request_used_the_quota(memory_ledger):
    charged = []

    async def competing_request(title):
        if not charged:
            charged.append(title)
            await memory_ledger.increment_usage(CLIENT, 45)

    builder = _builder(
        memory_ledger,
        FakeGenerator(_songs(10)),
        FakeLookup(default=_vid, on_resolve=competing_request),
    )

    with pytest.raises(QuotaExceededError) as excinfo:
        await builder.build(CLIENT, "race", 10)

    assert excinfo.value.code == "LIMIT_REACHED_ON_INCREMENT"
    assert excinfo.value.remaining == 5
    assert (await memory_ledger.get_usage(CLIENT)).count == 45


# ── Charging ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_charges_attempted_titles_not_found_ones(memory_ledger):
    titles = _songs(10)
    found = {title: f"id{i}" for i, title in enumerate(titles[:6])}
    builder = _builder(memory_ledger, FakeGenerator(titles), FakeLookup(found=found))

    result = await builder.build(CLIENT, "mixed bag", 10)

    assert result.found_count == 6
    assert result.generated == 10
    assert result.usage_count == 10
    assert result.success_rate == 60
    assert result.message == "Playlist created with 6 of 10 songs"
    assert result.playlist_url == (
        "https://www.youtube.com/watch_videos?video_ids=id0,id1,id2,id3,id4,id5"
    )


@pytest.mark.asyncio
async def test_nothing_found_raises_and_charges_nothing(memory_ledger):
    titles = _songs(4)
    builder = _builder(memory_ledger, FakeGenerator(titles), FakeLookup())

    with pytest.raises(NoMatchError) as excinfo:
        await builder.build(CLIENT, "obscure", 4)

    assert excinfo.value.songs == titles
    assert excinfo.value.used_ai is True
    assert [item["found"] for item in excinfo.value.items] == [False] * 4
    assert (await memory_ledger.get_usage(CLIENT)).count == 0


@pytest.mark.asyncio
async def test_all_found_message(memory_ledger):
    builder = _builder(memory_ledger, FakeGenerator(_songs(3)), FakeLookup(default=_vid))

    result = await builder.build(CLIENT, "short", 3)

    assert result.message == "Playlist generated successfully!"
    assert result.success_rate == 100


# ── Title sourcing ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_generator_failure_uses_fallback_lists(memory_ledger):
    generator = FakeGenerator(error=SongGeneratorError("LLM service is unreachable"))
    builder = _builder(memory_ledger, generator, FakeLookup(default=_vid))

    result = await builder.build(CLIENT, "rock", 4)

    assert result.used_ai is False
    assert result.songs == _songs(4, prefix="Fallback")
    assert result.usage_count == 4


@pytest.mark.asyncio
async def test_short_generator_reply_is_padded_from_fallback(memory_ledger):
    generator = FakeGenerator(_songs(2))
    builder = _builder(memory_ledger, generator, FakeLookup(default=_vid))

    result = await builder.build(CLIENT, "pop", 5)

    assert result.used_ai is True
    assert result.songs == [*_songs(2), *_songs(3, prefix="Fallback")]


@pytest.mark.asyncio
async def test_duplicate_titles_are_collapsed_before_padding(memory_ledger):
    generator = FakeGenerator(["A - B", "a - b ", "C - D"])
    builder = _builder(
        memory_ledger, generator, FakeLookup(default="vid"),
        fallback=lambda prompt, count: ["C - D", "E - F", "G - H"],
    )

    result = await builder.build(CLIENT, "dupes", 3)

    assert result.songs == ["A - B", "C - D", "E - F"]


# ── Lookup ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_items_keep_title_order(memory_ledger):
    titles = _songs(5)
    lookup = FakeLookup(found={titles[1]: "b", titles[3]: "d"})
    builder = _builder(memory_ledger, FakeGenerator(titles), lookup)

    result = await builder.build(CLIENT, "order", 5)

    assert [item.title for item in result.items] == titles
    assert [item.video_id for item in result.items] == [None, "b", None, "d", None]
    assert result.items[1].video_url == "https://www.youtube.com/watch?v=b"


@pytest.mark.asyncio
async def test_lookup_exception_marks_only_that_title_missing(memory_ledger):
    titles = _songs(3)

    def resolve(title):
        if title == titles[0]:
            raise RuntimeError("boom")
        return _vid(title)

    builder = _builder(memory_ledger, FakeGenerator(titles), FakeLookup(default=resolve))

    result = await builder.build(CLIENT, "flaky", 3)

    assert [item.found for item in result.items] == [False, True, True]
    assert result.usage_count == 3


@pytest.mark.asyncio
async def test_commit_is_a_conditional_increment_for_titles_attempted():
    ledger = AsyncMock(spec=UsageLedger)
    ledger.get_usage.return_value = UsageSnapshot(count=0)
    ledger.increment_usage.return_value = 4
    builder = _builder(ledger, FakeGenerator(_songs(4)), FakeLookup(found={"Artist 2 - Song 2": "x"}))

    result = await builder.build(CLIENT, "checked", 4)

    ledger.increment_usage.assert_awaited_once_with(CLIENT, 4, limit=50)
    assert result.usage_count == 4


def test_song_result_as_dict():
    assert SongResult("A - B", "xyz").as_dict() == {
        "title": "A - B",
        "videoUrl": "https://www.youtube.com/watch?v=xyz",
        "videoId": "xyz",
        "found": True,
    }
    assert SongResult("C - D").as_dict()["videoUrl"] is None
