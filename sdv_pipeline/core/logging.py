import functools
import inspect
import json
import logging
import logging.handlers
import socket
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .config import Settings, get_settings


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.hostname = self._get_hostname()

    def _get_hostname(self) -> str:
        try:
            return socket.gethostname()
        except OSError:
            return "unknown"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "hostname": self.hostname,
            "process_id": record.process,
            "thread_id": record.thread,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        for attribute in ("environment", "job_id", "upload_id", "tenant_id", "task_id"):
            if hasattr(record, attribute):
                log_entry[attribute] = getattr(record, attribute)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Filter to add context information to log records."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.context = context or {}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            setattr(record, key, value)
        return True


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Setup application logging configuration."""
    settings = settings or get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.logging.level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if settings.logging.json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt=settings.logging.format,
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    environment_filter = ContextFilter({"environment": settings.environment})

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(environment_filter)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.logging.file_path:
        file_path = Path(settings.logging.file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=settings.logging.max_bytes,
            backupCount=settings.logging.backup_count,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(environment_filter)
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    if settings.is_production:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("boto3").setLevel(logging.WARNING)
        logging.getLogger("botocore").setLevel(logging.WARNING)


def get_logger(name: str, context: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Get a logger with optional context.

    Args:
        name: Logger name (usually __name__)
        context: Additional context to add to all log messages

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if context:
        logger.addFilter(ContextFilter(context))

    return logger


def log_execution_time(logger: logging.Logger, level: int = logging.INFO):
    """
    Decorator to log function execution time.

    Works for plain and ``async def`` functions.
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    logger.error(
                        f"{func.__name__} failed after {time.perf_counter() - start_time:.4f} seconds: {e}"
                    )
                    raise
                logger.log(level, f"{func.__name__} executed in {time.perf_counter() - start_time:.4f} seconds")
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{func.__name__} failed after {time.perf_counter() - start_time:.4f} seconds: {e}"
                )
                raise
            logger.log(level, f"{func.__name__} executed in {time.perf_counter() - start_time:.4f} seconds")
            return result

        return wrapper
    return decorator


class StructuredLogger:
    """Wrapper for structured logging with predefined fields."""

    def __init__(self, name: str, **default_fields):
        self.logger = logging.getLogger(name)
        self.default_fields = default_fields

    def _log(self, level: int, message: str, **fields):
        extra_fields = {**self.default_fields, **fields}
        self.logger.log(level, message, extra={"extra_fields": extra_fields})

    def bind(self, **fields) -> "StructuredLogger":
        return StructuredLogger(self.logger.name, **{**self.default_fields, **fields})

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, **fields)
