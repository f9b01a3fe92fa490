"""
Usage record model for the per-client song quota.

Each row holds the song count for one client identity in its current
rolling window. PK: client_id — one row per client.

A row whose window_start is older than the window duration is logically
empty; the next increment resets it in the same statement. Expired rows
are physically removed by the periodic sweep (ix_usage_records_window_start
supports that delete).
"""

import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from playlistmaker.core.database import Base


class UsageRecord(Base):
    """Songs generated by one client in the current window."""

    __tablename__ = "usage_records"

    client_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    song_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    window_start: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("song_count >= 0", name="ck_song_count_non_neg"),
        Index("ix_usage_records_window_start", "window_start"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecord client={self.client_id} "
            f"count={self.song_count} since={self.window_start:%Y-%m-%d %H:%M}>"
        )
