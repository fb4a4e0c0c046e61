"""
Logging setup for the CV matching backend.

Everything logs through ``get_logger`` so records land under the ``cvmatch``
namespace; ``configure_for_environment`` picks handlers from ENVIRONMENT.
"""
import logging
import logging.config
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)-32s | %(funcName)-20s:%(lineno)-4d | %(message)s",
    "json": '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
}

# third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "pdfminer": "ERROR",
    "pymongo": "WARNING",
    "httpx": "WARNING",
    "urllib3": "WARNING",
}

# ENVIRONMENT -> (level, console, file, format); None level means LOG_LEVEL
PROFILES = {
    "production": (None, True, True, "detailed"),
    "development": ("DEBUG", True, True, "detailed"),
    "testing": ("WARNING", True, False, "simple"),
}

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _rotating_handler(path: Path, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": str(path),
        "maxBytes": MAX_LOG_BYTES,
        "backupCount": LOG_BACKUPS,
        "encoding": "utf8",
    }


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    format_style: str = "detailed"
) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: main log path, defaults to $LOG_DIR/cvmatch_<date>.log
        enable_console: log to stdout
        enable_file: log to a rotating file plus an error-only file beside it
        format_style: 'simple', 'detailed' or 'json'
    """
    stamp = datetime.now().strftime("%Y%m%d")
    log_path = Path(log_file) if log_file else Path(os.getenv("LOG_DIR", "logs")) / f"cvmatch_{stamp}.log"

    handlers: Dict[str, Any] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "simple" if format_style == "simple" else "detailed",
            "stream": "ext://sys.stdout",
        }
    if enable_file:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _rotating_handler(log_path, level)
        handlers["error_file"] = _rotating_handler(log_path.with_name(f"cvmatch_errors_{stamp}.log"), "ERROR")

    loggers: Dict[str, Any] = {name: {"level": lvl} for name, lvl in QUIET_LOGGERS.items()}
    loggers["uvicorn"] = {
        "level": "INFO",
        "handlers": [h for h in ("console", "file") if h in handlers],
        "propagate": False,
    }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {"format": FORMATS.get(format_style, FORMATS["detailed"]), "datefmt": "%Y-%m-%d %H:%M:%S"},
            "simple": {"format": FORMATS["simple"]},
        },
        "handlers": handlers,
        "root": {"level": level, "handlers": list(handlers)},
        "loggers": loggers,
    })

    logger = get_logger("logging")
    logger.info(f"Logging configured - Level: {level}, Console: {enable_console}, File: {enable_file}")
    if enable_file:
        logger.info(f"Log file: {log_path}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the cvmatch namespace (pass __name__)"""
    if name == "cvmatch" or name.startswith("cvmatch."):
        return logging.getLogger(name)
    return logging.getLogger(f"cvmatch.{name}")


def configure_for_environment() -> None:
    """Apply the logging profile named by ENVIRONMENT (default development)"""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    if environment not in PROFILES:
        setup_logging(level=log_level)
        return
    level, console, to_file, style = PROFILES[environment]
    setup_logging(level=level or log_level, enable_console=console, enable_file=to_file, format_style=style)


class PerformanceMonitor:
    """Times a block and logs it, warning when it runs past threshold_ms"""

    def __init__(self, operation_name: str, logger: Optional[logging.Logger] = None, threshold_ms: float = 1000):
        self.operation_name = operation_name
        self.logger = logger or get_logger("performance")
        self.threshold_ms = threshold_ms
        self.elapsed_ms = 0.0
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        self.logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000

        if exc_type is not None:
            self.logger.error(f"{self.operation_name} failed after {self.elapsed_ms:.2f}ms: {exc_val}")
        elif self.elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation_name} took {self.elapsed_ms:.2f}ms (threshold {self.threshold_ms}ms)"
            )
        else:
            self.logger.info(f"{self.operation_name} completed in {self.elapsed_ms:.2f}ms")
        return False
