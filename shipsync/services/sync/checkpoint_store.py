# shipsync/services/sync/checkpoint_store.py
# Durable crawl progress: the month end the next full crawl resumes from.

import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from shipsync.database import get_db_session
from shipsync.database.sync_checkpoint_repository import SyncCheckpointRepository
from shipsync.utils.logger import logger

DEFAULT_CHECKPOINT_NAME = "shipments"


class CheckpointStore(ABC):
    """load() returns the saved month end or None; save(None) clears it."""

    @abstractmethod
    def load(self) -> Optional[date]:
        ...

    @abstractmethod
    def save(self, month_end: Optional[date]) -> None:
        ...

    def clear(self) -> None:
        self.save(None)


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self, month_end: Optional[date] = None):
        self._month_end = month_end
        self.history: list = []

    def load(self) -> Optional[date]:
        return self._month_end

    def save(self, month_end: Optional[date]) -> None:
        self._month_end = month_end
        self.history.append(month_end)


class FileCheckpointStore(CheckpointStore):
    """JSON file holding {"monthEnd": "YYYY-MM-DD"}; the file is removed when cleared."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[date]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            value = data.get("monthEnd") if isinstance(data, dict) else None
            return date.fromisoformat(value) if value else None
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable checkpoint file {self.path}: {e}")
            return None

    def save(self, month_end: Optional[date]) -> None:
        if month_end is None:
            if os.path.exists(self.path):
                os.remove(self.path)
                logger.info(f"Checkpoint cleared ({self.path}).")
            return
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        # Write-then-rename so a crash never leaves a half-written checkpoint
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".checkpoint-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({"monthEnd": month_end.isoformat()}, fh)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"Checkpoint saved: {month_end.isoformat()} ({self.path}).")


class DatabaseCheckpointStore(CheckpointStore):
    """Checkpoint row in the sync_checkpoints table."""

    def __init__(self, repository: SyncCheckpointRepository, name: str = DEFAULT_CHECKPOINT_NAME):
        self.repository = repository
        self.name = name

    def load(self) -> Optional[date]:
        with get_db_session() as db:
            return self.repository.get_month_end(db, self.name)

    def save(self, month_end: Optional[date]) -> None:
        with get_db_session() as db:
            self.repository.set_month_end(db, self.name, month_end)
        logger.debug(f"Checkpoint '{self.name}' saved: {month_end.isoformat() if month_end else 'cleared'}.")


def build_checkpoint_store(app_config, engine=None) -> CheckpointStore:
    """Checkpoint backend selected by CHECKPOINT_BACKEND ('file' or 'database')."""
    backend = (app_config.CHECKPOINT_BACKEND or "file").lower()
    if backend == "database":
        logger.info("Using database checkpoint store.")
        return DatabaseCheckpointStore(SyncCheckpointRepository(engine))
    path = app_config.checkpoint_file_path
    logger.info(f"Using file checkpoint store at {path}.")
    return FileCheckpointStore(path)
