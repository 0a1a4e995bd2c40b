# shipsync/config/settings.py
# Loads environment variables and defines the application configuration.

from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from dotenv import load_dotenv
import os
import logging
import sys
from urllib.parse import quote_plus # Passwords inside the URL

# Determine the project root directory dynamically
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
dotenv_path = os.path.join(PROJECT_ROOT, '.env')
load_dotenv(dotenv_path=dotenv_path)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Config:
    """
    Application configuration loaded from environment variables.
    Provides type hints and default values.
    """
    # Flask Settings
    SECRET_KEY: str = field(default_factory=lambda: os.environ.get('SECRET_KEY', 'default_secret_key_change_me_in_env'))
    APP_HOST: str = field(default_factory=lambda: os.environ.get('APP_HOST', '0.0.0.0'))
    APP_PORT: int = field(default_factory=lambda: int(os.environ.get('APP_PORT', 5004)))
    APP_DEBUG: bool = field(default_factory=lambda: _env_bool('APP_DEBUG', 'False'))
    LOG_LEVEL: str = field(default_factory=lambda: os.environ.get('LOG_LEVEL', 'INFO').upper())

    # --- Database Settings ---
    DB_TYPE: str = field(default_factory=lambda: os.environ.get('DB_TYPE', 'POSTGRES').upper())

    # PostgreSQL Specific Settings (read from .env)
    POSTGRES_HOST: str = field(default_factory=lambda: os.environ.get('POSTGRES_HOST', 'localhost'))
    POSTGRES_PORT: int = field(default_factory=lambda: int(os.environ.get('POSTGRES_PORT', 5432)))
    POSTGRES_USER: str = field(default_factory=lambda: os.environ.get('POSTGRES_USER', ''))
    POSTGRES_PASSWORD: str = field(default_factory=lambda: os.environ.get('POSTGRES_PASSWORD', ''))
    POSTGRES_DB: str = field(default_factory=lambda: os.environ.get('POSTGRES_DB', ''))

    # SQLite file (DB_TYPE=SQLITE). ':memory:' is accepted.
    DATABASE_PATH: str = field(default_factory=lambda: os.environ.get('DATABASE_PATH', ''))

    # --- SQLAlchemy Database URL ---
    # Constructed based on the DB_TYPE and specific settings
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Kurasi API Integration Settings
    KURASI_BASE_URL: str = field(default_factory=lambda: os.environ.get('KURASI_BASE_URL', 'https://api.kurasi.app'))
    KURASI_USERNAME: str = field(default_factory=lambda: os.environ.get('KURASI_USERNAME', ''))
    KURASI_PASSWORD: str = field(default_factory=lambda: os.environ.get('KURASI_PASSWORD', ''))
    # Static credentials skip /login and /me when provided
    KURASI_TOKEN: str = field(default_factory=lambda: os.environ.get('KURASI_TOKEN', ''))
    KURASI_CLIENT_CODE: str = field(default_factory=lambda: os.environ.get('KURASI_CLIENT_CODE', ''))
    REQUEST_TIMEOUT: int = field(default_factory=lambda: int(os.environ.get('REQUEST_TIMEOUT', 60)))

    # Kurasi API Endpoints (relative to KURASI_BASE_URL)
    LOGIN_ENDPOINT: str = field(default_factory=lambda: os.environ.get('LOGIN_ENDPOINT', '/api/v1/login'))
    ME_ENDPOINT: str = field(default_factory=lambda: os.environ.get('ME_ENDPOINT', '/api/v1/me'))
    SHIPMENTS_ENDPOINT: str = field(default_factory=lambda: os.environ.get('SHIPMENTS_ENDPOINT', '/api/v1/shipmentManagement'))

    # --- Shipment Sync Settings ---
    SYNC_START_DATE: str = field(default_factory=lambda: os.environ.get('SYNC_START_DATE', '2018-01-01'))
    SYNC_PAGE_SIZE: int = field(default_factory=lambda: int(os.environ.get('SYNC_PAGE_SIZE', 800)))
    INCREMENTAL_PAGE_SIZE: int = field(default_factory=lambda: int(os.environ.get('INCREMENTAL_PAGE_SIZE', 500)))
    MIN_PAGE_SIZE: int = field(default_factory=lambda: int(os.environ.get('MIN_PAGE_SIZE', 200)))
    INCREMENTAL_LOOKBACK_DAYS: int = field(default_factory=lambda: int(os.environ.get('INCREMENTAL_LOOKBACK_DAYS', 7)))
    MAX_RETRIES: int = field(default_factory=lambda: int(os.environ.get('MAX_RETRIES', 5)))
    RETRY_BASE_DELAY: float = field(default_factory=lambda: float(os.environ.get('RETRY_BASE_DELAY', 1.0)))
    RETRY_MAX_DELAY: float = field(default_factory=lambda: float(os.environ.get('RETRY_MAX_DELAY', 30.0)))
    RETRY_JITTER: float = field(default_factory=lambda: float(os.environ.get('RETRY_JITTER', 0.4)))
    SYNC_RUN_TIMEOUT_SECONDS: int = field(default_factory=lambda: int(os.environ.get('SYNC_RUN_TIMEOUT_SECONDS', 0)))

    # Checkpoint persistence: 'file' or 'database'
    CHECKPOINT_BACKEND: str = field(default_factory=lambda: os.environ.get('CHECKPOINT_BACKEND', 'file').lower())
    CHECKPOINT_PATH: str = field(default_factory=lambda: os.environ.get('CHECKPOINT_PATH', 'data/kurasi_checkpoint.json'))

    # Background scheduler
    SYNC_SCHEDULER_ENABLED: bool = field(default_factory=lambda: _env_bool('SYNC_SCHEDULER_ENABLED', 'False'))
    SYNC_INTERVAL_MINUTES: int = field(default_factory=lambda: int(os.environ.get('SYNC_INTERVAL_MINUTES', 60)))

    # Deleting an order also deletes its package details
    CASCADE_PACKAGE_ON_ORDER_DELETE: bool = field(default_factory=lambda: _env_bool('CASCADE_PACKAGE_ON_ORDER_DELETE', 'True'))

    def __post_init__(self):
        # Validate log level
        valid_levels = list(logging._nameToLevel.keys())
        if self.LOG_LEVEL not in valid_levels:
             print(f"Warning: Invalid LOG_LEVEL '{self.LOG_LEVEL}'. Valid levels: {valid_levels}. Defaulting to INFO.", file=sys.stderr)
             self.LOG_LEVEL = 'INFO'

        # --- Build SQLAlchemy Database URI ---
        if self.SQLALCHEMY_DATABASE_URI:
            pass # Explicit URI wins (tests, alembic overrides)
        elif self.DB_TYPE == 'POSTGRES':
            if not all([self.POSTGRES_HOST, self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_DB]):
                print("Warning: Missing PostgreSQL connection details in environment variables. Database connection will likely fail.", file=sys.stderr)
                self.SQLALCHEMY_DATABASE_URI = None
            else:
                 encoded_password = quote_plus(self.POSTGRES_PASSWORD)
                 self.SQLALCHEMY_DATABASE_URI = f"postgresql+psycopg://{self.POSTGRES_USER}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        elif self.DB_TYPE == 'SQLITE':
             if self.DATABASE_PATH == ':memory:':
                  self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
             elif self.DATABASE_PATH:
                  abs_path = os.path.join(PROJECT_ROOT, self.DATABASE_PATH) if not os.path.isabs(self.DATABASE_PATH) else self.DATABASE_PATH
                  os.makedirs(os.path.dirname(abs_path), exist_ok=True)
                  self.SQLALCHEMY_DATABASE_URI = f"sqlite:///{abs_path}"
             else:
                  print("Warning: DB_TYPE is SQLITE but DATABASE_PATH is not set.", file=sys.stderr)
                  self.SQLALCHEMY_DATABASE_URI = None
        else:
             print(f"Warning: Unsupported DB_TYPE '{self.DB_TYPE}'. No database URI configured.", file=sys.stderr)
             self.SQLALCHEMY_DATABASE_URI = None

        # Validate page sizes
        if self.MIN_PAGE_SIZE < 1:
            print(f"Warning: MIN_PAGE_SIZE ({self.MIN_PAGE_SIZE}) is invalid. Setting to 200.", file=sys.stderr)
            self.MIN_PAGE_SIZE = 200
        for name in ('SYNC_PAGE_SIZE', 'INCREMENTAL_PAGE_SIZE'):
            if getattr(self, name) < self.MIN_PAGE_SIZE:
                print(f"Warning: {name} ({getattr(self, name)}) is below MIN_PAGE_SIZE. Clamping to {self.MIN_PAGE_SIZE}.", file=sys.stderr)
                setattr(self, name, self.MIN_PAGE_SIZE)

        if self.MAX_RETRIES < 1:
            print(f"Warning: MAX_RETRIES ({self.MAX_RETRIES}) must be at least 1. Setting to 1.", file=sys.stderr)
            self.MAX_RETRIES = 1

        if self.CHECKPOINT_BACKEND not in ('file', 'database'):
            print(f"Warning: Unsupported CHECKPOINT_BACKEND '{self.CHECKPOINT_BACKEND}'. Using 'file'.", file=sys.stderr)
            self.CHECKPOINT_BACKEND = 'file'

        try:
            date.fromisoformat(self.SYNC_START_DATE)
        except ValueError:
            print(f"Warning: SYNC_START_DATE '{self.SYNC_START_DATE}' is not YYYY-MM-DD. Using 2018-01-01.", file=sys.stderr)
            self.SYNC_START_DATE = '2018-01-01'

    @property
    def sync_start_date(self) -> date:
        return date.fromisoformat(self.SYNC_START_DATE)

    @property
    def checkpoint_file_path(self) -> str:
        if os.path.isabs(self.CHECKPOINT_PATH):
            return self.CHECKPOINT_PATH
        return os.path.join(PROJECT_ROOT, self.CHECKPOINT_PATH)

# Singleton instance, created by load_config
_config_instance: Optional[Config] = None

def load_config() -> Config:
    """Loads or returns the singleton Config instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
        # Log loaded config values (mask sensitive ones)
        print("--- Configuration Loaded ---")
        print(f"  APP_HOST: {_config_instance.APP_HOST}")
        print(f"  APP_PORT: {_config_instance.APP_PORT}")
        print(f"  APP_DEBUG: {_config_instance.APP_DEBUG}")
        print(f"  LOG_LEVEL: {_config_instance.LOG_LEVEL}")
        print(f"  DB_TYPE: {_config_instance.DB_TYPE}")
        db_uri_log = str(_config_instance.SQLALCHEMY_DATABASE_URI)
        if _config_instance.POSTGRES_PASSWORD:
             db_uri_log = db_uri_log.replace(quote_plus(_config_instance.POSTGRES_PASSWORD), '********')
        print(f"  SQLALCHEMY_DATABASE_URI: {db_uri_log}")
        print(f"  KURASI_BASE_URL: {_config_instance.KURASI_BASE_URL}")
        print(f"  KURASI_USERNAME: {'*' * len(_config_instance.KURASI_USERNAME) if _config_instance.KURASI_USERNAME else 'Not Set'}")
        print(f"  KURASI_TOKEN: {'Set' if _config_instance.KURASI_TOKEN else 'Not Set'}")
        print(f"  SYNC_PAGE_SIZE: {_config_instance.SYNC_PAGE_SIZE} (min {_config_instance.MIN_PAGE_SIZE})")
        print(f"  CHECKPOINT_BACKEND: {_config_instance.CHECKPOINT_BACKEND}")
        print("--------------------------")
    return _config_instance

# Expose the singleton instance directly
config = load_config()

def get_project_root() -> str:
    return PROJECT_ROOT
