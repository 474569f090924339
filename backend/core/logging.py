"""
Structured Logging Configuration
Coloured console output for development, JSON lines for production and files
"""
import contextvars
import logging
import sys
import time
from contextlib import contextmanager
from typing import Iterator, Optional
from datetime import datetime, timezone
import json


# Attributes every LogRecord carries; anything else was passed through `extra=`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Spreadsheet currently being imported; copied into tasks spawned by the import
_current_source: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("current_source", default=None)


@contextmanager
def source_context(spreadsheet_id: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``spreadsheet_id``"""
    token = _current_source.set(spreadsheet_id)
    try:
        yield
    finally:
        _current_source.reset(token)


class SourceContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "spreadsheet_id"):
            record.spreadsheet_id = _current_source.get()
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for production environments.
    Fields passed with `extra=` (spreadsheet_id, tab, duration_ms...) are
    merged into the log line.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data and value is not None:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Colored log formatter for development environments.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime('%H:%M:%S')

        source = getattr(record, "spreadsheet_id", None)
        message = f"[{source}] {record.getMessage()}" if source else record.getMessage()
        formatted = f"{color}{timestamp} │ {record.levelname:8}{self.RESET} │ {record.name:28} │ {message}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if json_format else ColoredFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SourceContextFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())  # Always JSON for files
        file_handler.addFilter(SourceContextFilter())
        root_logger.addHandler(file_handler)

    # Quiet noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name (typically __name__)"""
    return logging.getLogger(name)


class PerformanceLogger:
    """
    Context manager for logging operation duration.

    Usage:
        with PerformanceLogger(logger, "import 1AbC", threshold_ms=5000):
            await orchestrator.run_import(config)
    """

    def __init__(self, logger: logging.Logger, operation: str, threshold_ms: float = 100):
        self.logger = logger
        self.operation = operation
        self.threshold_ms = threshold_ms
        self.start_time: Optional[float] = None
        self.duration_ms: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration_ms = (time.perf_counter() - self.start_time) * 1000
            outcome = "failed" if exc_type else "completed"

            if self.duration_ms > self.threshold_ms:
                self.logger.warning(
                    f"🐢 Slow operation: {self.operation} {outcome} in {self.duration_ms:.2f}ms"
                )
            else:
                self.logger.debug(f"{self.operation} {outcome} in {self.duration_ms:.2f}ms")

        return False  # Don't suppress exceptions
