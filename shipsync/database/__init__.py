# shipsync/database/__init__.py
# Initializes SQLAlchemy components: Engine, SessionLocal, Base metadata.
# Uses local imports for logger/errors to prevent circular dependencies during Alembic runs.

import threading
from typing import Optional, Generator
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

# Base must be importable without side effects (Alembic)
from .base import Base

# --- SQLAlchemy Engine and Session Factory Globals ---
_sqla_engine: Optional[Engine] = None
_SessionLocalFactory: Optional[sessionmaker[Session]] = None
_engine_lock = threading.Lock()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(database_uri: str, pool_size: int, max_overflow: int) -> Engine:
    if database_uri.startswith("sqlite"):
        engine_kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
        if database_uri in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
        engine = create_engine(database_uri, **engine_kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(
        database_uri,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=False
    )


# --- Engine and Session Factory initialization ---
def init_sqlalchemy(database_uri: str, pool_size: int = 10, max_overflow: int = 20) -> Engine:
    """
    Initializes the SQLAlchemy engine, session factory, and database schema.
    Should be called once during application startup.
    """
    from shipsync.utils.logger import logger
    from shipsync.api.errors import DatabaseError, ConfigurationError

    global _sqla_engine, _SessionLocalFactory
    with _engine_lock:
        if _sqla_engine and _SessionLocalFactory:
            logger.warning("SQLAlchemy engine and session factory already initialized.")
            return _sqla_engine

        if not database_uri:
            raise ConfigurationError("Database URI is missing in configuration.")

        logger.info("Initializing SQLAlchemy engine and session factory...")
        engine: Optional[Engine] = None
        try:
            # 1. Create the Engine
            engine = _build_engine(database_uri, pool_size, max_overflow)

            # 2. Test Connection
            try:
                with engine.connect():
                    logger.info("Database connection successful.")
            except SQLAlchemyError as conn_err:
                logger.critical(f"Database connection failed: {conn_err}", exc_info=True)
                raise DatabaseError(f"Failed to connect to the database: {conn_err}") from conn_err

            # 3. Create Session Factory (SessionLocal)
            session_factory = sessionmaker(
                autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
            )
            logger.info("SQLAlchemy session factory (SessionLocal) created.")

            # 4. Initialize Schema (uses the engine)
            from .schema_manager import SchemaManager
            logger.info("Initializing database schema...")
            SchemaManager(engine).initialize_schema()
            logger.info("Database schema initialization complete.")

            _sqla_engine = engine
            _SessionLocalFactory = session_factory
            logger.info("SQLAlchemy initialization complete.")
            return _sqla_engine

        except (DatabaseError, ConfigurationError):
             if engine is not None:
                 engine.dispose()
             raise
        except SQLAlchemyError as e:
             logger.critical(f"SQLAlchemy engine/session factory initialization failed: {e}", exc_info=True)
             if engine is not None:
                 engine.dispose()
             raise DatabaseError(f"SQLAlchemy initialization failed: {e}") from e


def get_sqla_engine() -> Engine:
    """Returns the initialized engine; init_sqlalchemy() must have run."""
    if _sqla_engine is None:
        raise RuntimeError("SQLAlchemy engine has not been initialized.")
    return _sqla_engine


# --- Session context manager ---
@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager yielding a database session.
    Commits on success, rolls back on any error, always closes.
    """
    from shipsync.utils.logger import logger
    from shipsync.api.errors import DatabaseError

    if not _SessionLocalFactory:
        raise RuntimeError("Database session factory has not been initialized.")

    db: Optional[Session] = None
    try:
        db = _SessionLocalFactory()
        yield db
        db.commit()
        logger.debug("Database session committed successfully.")
    except SQLAlchemyError as sql_ex:
        logger.error(f"Database error occurred in session: {sql_ex}", exc_info=True)
        if db:
            db.rollback()
            logger.warning("Database session rolled back due to SQLAlchemyError.")
        raise DatabaseError(f"Database operation failed: {sql_ex}") from sql_ex
    except Exception:
        if db:
            db.rollback()
            logger.debug("Database session rolled back due to exception.")
        raise
    finally:
        if db:
            db.close()


# --- Engine shutdown ---
def dispose_sqlalchemy_engine():
    """Closes all connections in the engine's pool. Call during application shutdown."""
    from shipsync.utils.logger import logger

    global _sqla_engine, _SessionLocalFactory
    with _engine_lock:
        if _sqla_engine:
            logger.info("Disposing SQLAlchemy engine connection pool...")
            _sqla_engine.dispose()
            _sqla_engine = None
            _SessionLocalFactory = None
            logger.info("SQLAlchemy engine connection pool disposed.")
        else:
            logger.debug("SQLAlchemy engine shutdown called, but engine already disposed or not initialized.")

__all__ = [
    "init_sqlalchemy",
    "get_db_session",
    "get_sqla_engine",
    "dispose_sqlalchemy_engine",
    "Base",
]
