import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# --- Add the project root to sys.path so 'shipsync' imports resolve ---
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# --- Application config and model metadata ---
try:
    from shipsync.config import config as app_config
    from shipsync.database.base import Base
    # Registers every ORM model on Base.metadata
    import shipsync.domain  # noqa: F401
except ImportError as e:
    print(f"Error importing application modules: {e}")
    print("Make sure alembic is run from the project root directory.")
    print(f"PROJECT_ROOT: {PROJECT_ROOT}")
    sys.exit(1)

target_metadata = Base.metadata

config = context.config

# --- Database URL comes from the application config, not alembic.ini ---
db_url = app_config.SQLALCHEMY_DATABASE_URI
if not db_url:
    print("Error: SQLALCHEMY_DATABASE_URI is not configured.")
    sys.exit(1)
config.set_main_option('sqlalchemy.url', db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # SQLite cannot ALTER constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
