import logging
import os
import sys
from concurrent_log_handler import ConcurrentRotatingFileHandler
from typing import Optional

# --- Settings ---
LOG_DIRECTORY = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "logs")
LOG_FILENAME_BASE = "app.log"
LOG_LEVEL_DEFAULT = "INFO"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d | %(funcName)s] - %(message)s'
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 10
LOGGER_NAME = "ShipSync"

class Logger:
    """Wraps logger setup around a console handler and a ConcurrentRotatingFileHandler."""
    _instance = None
    _logger = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, name: str = LOGGER_NAME, log_level: Optional[str] = None):
        if self._initialized:
            # Only the level may change after the first setup
            if log_level:
                self._apply_level(log_level)
            return

        level_str = log_level
        if level_str is None:
            try:
                from shipsync.config import config  # Deferred import, config may import the logger
                level_str = config.LOG_LEVEL
            except ImportError:
                level_str = LOG_LEVEL_DEFAULT

        self._logger = logging.getLogger(name)
        level_str = self._apply_level(level_str)

        if not self._logger.handlers:
            formatter = logging.Formatter(LOG_FORMAT)

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self._logger.addHandler(console_handler)

            try:
                os.makedirs(LOG_DIRECTORY, exist_ok=True)
                log_file_path = os.path.join(LOG_DIRECTORY, LOG_FILENAME_BASE)

                file_handler = ConcurrentRotatingFileHandler(
                    filename=log_file_path,
                    mode='a',
                    maxBytes=LOG_MAX_BYTES,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding='utf-8',
                )
                file_handler.setFormatter(formatter)
                self._logger.addHandler(file_handler)
                print(f"Logging configured (ConcurrentRotatingFileHandler). Level: {level_str}. File: {log_file_path}")
            except OSError as e:
                print(f"Error configuring file logging: {e}", file=sys.stderr)

        self._initialized = True

    def _apply_level(self, level_str: str) -> str:
        level_str = level_str.upper()
        numeric_level = getattr(logging, level_str, None)
        if not isinstance(numeric_level, int):
            print(f"Warning: invalid log level '{level_str}'. Using {LOG_LEVEL_DEFAULT}.", file=sys.stderr)
            level_str = LOG_LEVEL_DEFAULT
            numeric_level = getattr(logging, level_str)
        self._logger.setLevel(numeric_level)
        return level_str

    def get_logger(self) -> logging.Logger:
        """Returns the configured logger instance."""
        if not self._logger:
            raise RuntimeError("Logger has not been initialized.")
        return self._logger

# Global logger instance
logger_instance = Logger()
logger = logger_instance.get_logger()

def configure_logger(level: str):
    """Reconfigures the global logger level."""
    global logger_instance, logger
    logger_instance = Logger(log_level=level)
    logger = logger_instance.get_logger()
