# shipsync/domain/sync_checkpoint.py

from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import String, Date, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from shipsync.database.base import Base


class SyncCheckpoint(Base):
    """Durable crawl progress: the end of the next month still to be crawled."""
    __tablename__ = 'sync_checkpoints'

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    month_end: Mapped[Optional[date]] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
