# shipsync/database/schema_manager.py
# Creates the database tables on startup.

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .base import Base
from shipsync.utils.logger import logger
from shipsync.api.errors import DatabaseError

class SchemaManager:
    def __init__(self, engine: Engine):
        self.engine = engine
        logger.debug("SchemaManager initialized with the SQLAlchemy engine.")

    def initialize_schema(self):
        # Registers every ORM model on Base.metadata before create_all
        import shipsync.domain  # noqa: F401

        try:
            logger.info("Creating database schema...")
            Base.metadata.create_all(bind=self.engine)
            logger.info(f"Tables created/verified: {', '.join(sorted(Base.metadata.tables))}.")
        except SQLAlchemyError as e:
            logger.critical(f"Database schema initialization failed: {e}", exc_info=True)
            raise DatabaseError(f"Schema initialization failed: {e}") from e
