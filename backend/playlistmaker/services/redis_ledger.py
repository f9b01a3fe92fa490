"""
Redis-backed usage ledger.

Each client is a hash `usage:<client_id>` with fields count and
window_start (epoch seconds). The key expires shortly after its window
ends, so Redis does the sweep itself.

The read / window reset / limit check / increment / expiry sequence runs
as one Lua script — atomic on the server, no client-side locking.
"""

from __future__ import annotations

import datetime
import logging

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from playlistmaker.core.errors import LedgerUnavailableError
from playlistmaker.services.usage_ledger import (
    Clock,
    UsageLedger,
    UsageSnapshot,
    utcnow,
)

logger = logging.getLogger(__name__)

_KEY_PREFIX = "usage:"

# KEYS[1] = usage key
# ARGV    = now (epoch s), window (s), delta, limit (-1 = unlimited)
# Returns {accepted (1|0), count, window_start}
_INCREMENT_SCRIPT = """
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local delta = tonumber(ARGV[3])
local limit = tonumber(ARGV[4])

local count = 0
local start = now
local stored = redis.call('HMGET', KEYS[1], 'count', 'window_start')
if stored[1] and stored[2] and (now - tonumber(stored[2])) <= window then
  count = tonumber(stored[1])
  start = tonumber(stored[2])
end

if limit >= 0 and count + delta > limit then
  return {0, count, tostring(start)}
end

count = count + delta
redis.call('HSET', KEYS[1], 'count', count, 'window_start', tostring(start))
redis.call('EXPIREAT', KEYS[1], math.ceil(start + window) + 1)
return {1, count, tostring(start)}
"""


def _from_epoch(value: str | float) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(float(value), tz=datetime.timezone.utc)


class RedisUsageLedger(UsageLedger):
    """Ledger stored in Redis hashes with server-side TTL expiry."""

    def __init__(
        self,
        url: str,
        window: datetime.timedelta = datetime.timedelta(hours=24),
        clock: Clock = utcnow,
        client: aioredis.Redis | None = None,
    ) -> None:
        super().__init__(window, clock)
        if client is None:
            client = aioredis.from_url(url, decode_responses=True)
        self._client = client
        self._increment = self._client.register_script(_INCREMENT_SCRIPT)

    async def get_usage(self, client_id: str) -> UsageSnapshot:
        try:
            stored = await self._client.hgetall(f"{_KEY_PREFIX}{client_id}")
        except RedisError as exc:
            logger.exception("Usage read failed for %s", client_id)
            raise LedgerUnavailableError("Usage ledger is unavailable") from exc

        if not stored or "window_start" not in stored:
            return UsageSnapshot(count=0)

        window_start = _from_epoch(stored["window_start"])
        if not self._is_live(window_start, self._clock()):
            return UsageSnapshot(count=0)
        return self._snapshot(int(stored.get("count", 0)), window_start)

    async def increment_usage(
        self,
        client_id: str,
        delta: int,
        *,
        limit: int | None = None,
    ) -> int:
        self._check_delta(delta)
        try:
            accepted, count, window_start = await self._increment(
                keys=[f"{_KEY_PREFIX}{client_id}"],
                args=[
                    self._clock().timestamp(),
                    self.window.total_seconds(),
                    delta,
                    -1 if limit is None else limit,
                ],
            )
        except RedisError as exc:
            logger.exception("Usage increment failed for %s", client_id)
            raise LedgerUnavailableError("Usage ledger is unavailable") from exc

        if not int(accepted):
            current = (
                self._snapshot(int(count), _from_epoch(window_start))
                if int(count)
                else UsageSnapshot(count=0)
            )
            raise self._reject(limit or 0, current)

        return int(count)

    async def purge_expired(self) -> int:
        # Keys carry their own EXPIREAT; nothing to sweep.
        return 0

    async def close(self) -> None:
        await self._client.aclose()
