# Core module initialization
# Settings, error taxonomy, logging, document store and middleware

from .config import settings, get_settings
from .exceptions import (
    AppException,
    ValidationError,
    DatabaseError,
    SheetsConfigurationError,
    SheetFetchError,
    ImportFailedError,
)
from .logging import get_logger, setup_logging, source_context, PerformanceLogger
from .database import DocumentStore, Collection
from .middleware import TimingMiddleware, setup_middleware, metrics_collector

__all__ = [
    # Config
    'settings',
    'get_settings',

    # Exceptions
    'AppException',
    'ValidationError',
    'DatabaseError',
    'SheetsConfigurationError',
    'SheetFetchError',
    'ImportFailedError',

    # Logging
    'get_logger',
    'setup_logging',
    'source_context',
    'PerformanceLogger',

    # Document store
    'DocumentStore',
    'Collection',

    # Middleware
    'TimingMiddleware',
    'setup_middleware',
    'metrics_collector',
]
