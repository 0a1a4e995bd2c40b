# shipsync/database/sync_checkpoint_repository.py

from datetime import date
from typing import Optional
from sqlalchemy.orm import Session

from .base_repository import BaseRepository
from shipsync.domain.sync_checkpoint import SyncCheckpoint


class SyncCheckpointRepository(BaseRepository):
    """Single-row-per-name storage for crawl checkpoints."""

    def get_month_end(self, db: Session, name: str) -> Optional[date]:
        row = db.get(SyncCheckpoint, name)
        return row.month_end if row else None

    def set_month_end(self, db: Session, name: str, month_end: Optional[date]):
        row = db.get(SyncCheckpoint, name)
        if month_end is None:
            if row is not None:
                db.delete(row)
            return
        if row is None:
            db.add(SyncCheckpoint(name=name, month_end=month_end))
        else:
            row.month_end = month_end
