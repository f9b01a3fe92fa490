"""
Per-client song usage ledger.

Tracks how many songs each client identity generated in its rolling
window and enforces the quota at commit time.

Design decisions:
  • One interface, swappable stores — memory (dev/tests), SQL (Postgres
    in production, SQLite locally) and Redis (see redis_ledger.py).
  • Expired windows are never used to deny or grant quota: reads treat
    them as empty, increments reset them in the same atomic step.
  • Conditional increment — increment_usage(limit=…) checks and charges
    in one atomic operation, so concurrent requests from one client
    cannot jointly overshoot the limit.
  • Store failures raise LedgerUnavailableError — never "count 0".
"""

from __future__ import annotations

import abc
import asyncio
import datetime
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import case, delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playlistmaker.core.errors import LedgerUnavailableError, QuotaExceededError
from playlistmaker.models.usage_record import UsageRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]

INCREMENT_REJECTED = "LIMIT_REACHED_ON_INCREMENT"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    """A client's live usage. window_start is None when the window is empty."""

    count: int
    window_start: datetime.datetime | None = None
    resets_at: datetime.datetime | None = None


class UsageLedger(abc.ABC):
    """Interface shared by every ledger store."""

    def __init__(
        self,
        window: datetime.timedelta = datetime.timedelta(hours=24),
        clock: Clock = utcnow,
    ) -> None:
        self.window = window
        self._clock = clock

    # ── Operations ──────────────────────────────────────────
    @abc.abstractmethod
    async def get_usage(self, client_id: str) -> UsageSnapshot:
        """Return the live usage for client_id (empty if the window expired)."""

    @abc.abstractmethod
    async def increment_usage(
        self,
        client_id: str,
        delta: int,
        *,
        limit: int | None = None,
    ) -> int:
        """
        Atomically add delta to the client's count and return the new count.

        Resets the window to {delta, now} if it expired or never existed.
        With a limit, nothing is written and QuotaExceededError is raised
        when the new count would exceed it.
        """

    @abc.abstractmethod
    async def purge_expired(self) -> int:
        """Delete expired records. Returns how many were removed."""

    async def close(self) -> None:
        """Release store connections."""

    # ── Shared helpers ──────────────────────────────────────
    def _is_live(self, window_start: datetime.datetime, now: datetime.datetime) -> bool:
        return now - window_start <= self.window

    def _snapshot(self, count: int, window_start: datetime.datetime) -> UsageSnapshot:
        return UsageSnapshot(
            count=count,
            window_start=window_start,
            resets_at=window_start + self.window,
        )

    def _reject(self, limit: int, current: UsageSnapshot) -> QuotaExceededError:
        return QuotaExceededError(
            limit=limit,
            remaining=max(0, limit - current.count),
            resets_at=current.resets_at,
            code=INCREMENT_REJECTED,
        )

    @staticmethod
    def _check_delta(delta: int) -> None:
        if delta < 0:
            raise ValueError(f"delta must be non-negative, got {delta}")


# ── In-memory store ─────────────────────────────────────────
class InMemoryUsageLedger(UsageLedger):
    """Process-local ledger guarded by a lock per client key."""

    def __init__(
        self,
        window: datetime.timedelta = datetime.timedelta(hours=24),
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(window, clock)
        self._records: dict[str, tuple[int, datetime.datetime]] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _live_record(
        self, client_id: str, now: datetime.datetime
    ) -> tuple[int, datetime.datetime] | None:
        record = self._records.get(client_id)
        if record is None or not self._is_live(record[1], now):
            return None
        return record

    async def get_usage(self, client_id: str) -> UsageSnapshot:
        record = self._live_record(client_id, self._clock())
        if record is None:
            return UsageSnapshot(count=0)
        return self._snapshot(*record)

    async def increment_usage(
        self,
        client_id: str,
        delta: int,
        *,
        limit: int | None = None,
    ) -> int:
        self._check_delta(delta)
        async with self._locks[client_id]:
            now = self._clock()
            record = self._live_record(client_id, now)
            count, window_start = record or (0, now)

            new_count = count + delta
            if limit is not None and new_count > limit:
                current = self._snapshot(*record) if record else UsageSnapshot(count=0)
                raise self._reject(limit, current)

            self._records[client_id] = (new_count, window_start)
            return new_count

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            client_id
            for client_id, (_, window_start) in self._records.items()
            if not self._is_live(window_start, now)
        ]
        for client_id in expired:
            del self._records[client_id]
            lock = self._locks.get(client_id)
            if lock is not None and not lock.locked():
                del self._locks[client_id]
        return len(expired)


# ── SQL store ───────────────────────────────────────────────
# Dialect-specific INSERT with ON CONFLICT support.
_UPSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlUsageLedger(UsageLedger):
    """
    SQLAlchemy-backed ledger.

    The increment is a single INSERT … ON CONFLICT DO UPDATE … WHERE …
    RETURNING statement: the window reset, the add and the limit check
    happen atomically per row, with no external lock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        window: datetime.timedelta = datetime.timedelta(hours=24),
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(window, clock)
        self._session_factory = session_factory

    @staticmethod
    def _upsert_for(session: AsyncSession):  # type: ignore[no-untyped-def]
        dialect = session.bind.dialect.name
        try:
            return _UPSERTS[dialect]
        except KeyError:
            raise LedgerUnavailableError(f"Unsupported ledger dialect: {dialect}") from None

    async def get_usage(self, client_id: str) -> UsageSnapshot:
        stmt = select(UsageRecord.song_count, UsageRecord.window_start).where(
            UsageRecord.client_id == client_id,
        )
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Usage read failed for %s", client_id)
            raise LedgerUnavailableError("Usage ledger is unavailable") from exc

        if row is None:
            return UsageSnapshot(count=0)

        window_start = _as_utc(row.window_start)
        if not self._is_live(window_start, self._clock()):
            return UsageSnapshot(count=0)
        return self._snapshot(row.song_count, window_start)

    async def increment_usage(
        self,
        client_id: str,
        delta: int,
        *,
        limit: int | None = None,
    ) -> int:
        self._check_delta(delta)
        if limit is not None and delta > limit:
            raise self._reject(limit, await self.get_usage(client_id))

        now = self._clock()
        cutoff = now - self.window

        try:
            async with self._session_factory() as session:
                insert = self._upsert_for(session)
                stmt = insert(UsageRecord).values(
                    client_id=client_id,
                    song_count=delta,
                    window_start=now,
                    updated_at=now,
                )

                expired = UsageRecord.window_start < cutoff
                new_count = case(
                    (expired, stmt.excluded.song_count),
                    else_=UsageRecord.song_count + stmt.excluded.song_count,
                )
                new_start = case(
                    (expired, stmt.excluded.window_start),
                    else_=UsageRecord.window_start,
                )

                stmt = stmt.on_conflict_do_update(
                    index_elements=[UsageRecord.client_id],
                    set_={
                        "song_count": new_count,
                        "window_start": new_start,
                        "updated_at": now,
                    },
                    where=(new_count <= limit) if limit is not None else None,
                ).returning(UsageRecord.song_count)

                result = await session.execute(stmt)
                count = result.scalar_one_or_none()
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Usage increment failed for %s", client_id)
            raise LedgerUnavailableError("Usage ledger is unavailable") from exc

        if count is None and limit is not None:
            # Conflict row existed and the limit condition failed — nothing written.
            raise self._reject(limit, await self.get_usage(client_id))

        return count

    async def purge_expired(self) -> int:
        cutoff = self._clock() - self.window
        stmt = delete(UsageRecord).where(UsageRecord.window_start < cutoff)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Usage sweep failed")
            raise LedgerUnavailableError("Usage ledger is unavailable") from exc
        return result.rowcount or 0
