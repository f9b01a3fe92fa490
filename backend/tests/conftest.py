"""Shared fixtures for the playlist service tests.

External services (LLM, YouTube, Invidious) are always faked — either
with small scripted classes here or with httpx.MockTransport.
"""

import datetime
import os
from collections.abc import Callable
from typing import Any

# Must be set before playlistmaker.core.config is imported.
os.environ.setdefault("LEDGER_BACKEND", "memory")

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from playlistmaker.core.database import Base
from playlistmaker.services.credential_rotator import Credential
from playlistmaker.services.redis_ledger import RedisUsageLedger
from playlistmaker.services.usage_ledger import InMemoryUsageLedger, SqlUsageLedger

WINDOW = datetime.timedelta(hours=24)
# Far future: fakeredis applies EXPIREAT against the real clock.
START = datetime.datetime(2099, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """Controllable UTC clock for window tests."""

    def __init__(self, now: datetime.datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


class FakeYouTube:
    """Scripted stand-in for YouTubeSearchClient.

    `script(query, credential)` returns a video id / None, or raises.
    Every call is recorded as (query, credential index).
    """

    def __init__(self, script: Callable[[str, Credential], Any]) -> None:
        self._script = script
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, credential: Credential) -> str | None:
        self.calls.append((query, credential.index))
        return self._script(query, credential)

    @property
    def credentials_used(self) -> list[int]:
        return [index for _, index in self.calls]


class FakeFallback:
    """Scripted stand-in for an Invidious instance."""

    def __init__(self, name: str, script: Callable[[str], Any]) -> None:
        self.name = name
        self._script = script
        self.calls: list[str] = []

    async def search(self, query: str) -> str | None:
        self.calls.append(query)
        return self._script(query)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_ledger(clock: FakeClock) -> InMemoryUsageLedger:
    return InMemoryUsageLedger(window=WINDOW, clock=clock)


def make_redis_ledger(clock: FakeClock) -> RedisUsageLedger:
    """Redis ledger on its own in-process fakeredis server (Lua via lupa)."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisUsageLedger("redis://unused", window=WINDOW, clock=clock, client=client)


@pytest_asyncio.fixture
async def redis_ledger(clock):
    ledger = make_redis_ledger(clock)
    yield ledger
    await ledger.close()


@pytest_asyncio.fixture(params=["memory", "sql", "redis"])
async def ledger(request, tmp_path, clock):
    """Every ledger store, each with the same fake clock."""
    if request.param == "memory":
        yield InMemoryUsageLedger(window=WINDOW, clock=clock)
        return

    if request.param == "redis":
        redis_store = make_redis_ledger(clock)
        yield redis_store
        await redis_store.close()
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'usage.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SqlUsageLedger(
        async_sessionmaker(engine, expire_on_commit=False),
        window=WINDOW,
        clock=clock,
    )
    await engine.dispose()
