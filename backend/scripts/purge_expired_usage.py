"""
One-off sweep of expired usage records.

Usage:
    python -m scripts.purge_expired_usage

The API already sweeps on startup and every SWEEP_INTERVAL_SECONDS;
this is for cron jobs or after long downtime. Uses the ledger backend
configured by LEDGER_BACKEND (the in-memory backend has nothing to purge).
"""

import asyncio
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from playlistmaker.core.config import settings
from playlistmaker.core.database import engine
from playlistmaker.core.dependencies import create_ledger


async def main() -> None:
    ledger = create_ledger(settings)
    try:
        removed = await ledger.purge_expired()
    finally:
        await ledger.close()
        await engine.dispose()

    print()
    print("=" * 60)
    print("  Usage Sweep Complete")
    print("=" * 60)
    print()
    print(f"  Backend:  {settings.LEDGER_BACKEND}")
    print(f"  Window:   {settings.USAGE_WINDOW_HOURS}h")
    print(f"  Removed:  {removed} expired record(s)")
    print("=" * 60)
    print()


if __name__ == "__main__":
    asyncio.run(main())
