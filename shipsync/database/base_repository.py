# shipsync/database/base_repository.py
# Provides a simplified base class for ORM repositories.

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from shipsync.utils.logger import logger

class BaseRepository:
    """
    Base class for data repositories using SQLAlchemy ORM Sessions.
    Stores the engine; individual methods receive the Session they work in,
    so the caller owns the transaction boundary (see get_db_session()).
    """

    def __init__(self, engine: Engine):
        """
        Initializes the BaseRepository.

        Args:
            engine: The SQLAlchemy Engine instance.
        """
        if not isinstance(engine, Engine):
             raise TypeError("engine must be an instance of sqlalchemy.engine.Engine")
        self.engine = engine
        logger.debug(f"{self.__class__.__name__} initialized with SQLAlchemy engine: {engine.url.database}")

    @staticmethod
    def _bulk(db: Session, statement):
        """Runs a bulk UPDATE/DELETE without in-session synchronization; callers expire afterwards."""
        return db.execute(statement, execution_options={"synchronize_session": False})
