"""Application Bootstrap (Entry Point)."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .cli import app
from .config import Settings, get_settings

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5MB
LOG_FILE_BACKUP_COUNT = 3

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"

# Marks handlers installed here so a second setup replaces them
_HANDLER_TAG = "_tempo_handler"


def _tagged(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging: a rotating file under the data dir plus stderr.

    Levels come from TEMPO_LOG_LEVEL (root and file) and
    TEMPO_CONSOLE_LOG_LEVEL (stderr). Calling it again swaps the previously
    installed handlers instead of stacking new ones. If settings cannot be
    loaded, logging still starts with a local data/tempo.log at INFO.
    """
    log_file = Path("data/tempo.log")
    log_level, console_level = "INFO", "WARNING"
    try:
        settings = settings or get_settings()
        log_file = settings.log_file
        log_level, console_level = settings.log_level, settings.console_log_level
    except Exception as e:
        print(f"Warning: Failed to load settings for logging: {e}", file=sys.stderr)

    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = _tagged(
        RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    file_handler.setLevel(logging.DEBUG)

    console_handler = _tagged(logging.StreamHandler())
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler.setLevel(getattr(logging, console_level))

    root_logger = logging.getLogger()
    for handler in [h for h in root_logger.handlers if getattr(h, _HANDLER_TAG, False)]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(getattr(logging, log_level))
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Python warnings (e.g. dateutil deprecations) end up in the log file too
    logging.captureWarnings(True)


def main() -> None:
    """Main entry point for the Tempo CLI."""
    setup_logging()
    app()


if __name__ == "__main__":
    main()
