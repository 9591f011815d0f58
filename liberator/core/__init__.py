"""Core utilities for configuration, errors, logging, caching and archives."""

from .cache import TTLCache
from .config import LiberatorConfig
from .exceptions import (
    ArchiveDecodeError,
    ArchiveEncodeError,
    ArchiveError,
    ConfigurationError,
    InvalidConfigError,
    InvalidInputError,
    InvalidTransitionError,
    JobError,
    LiberatorError,
    MissingConfigError,
    PersistenceError,
    RateLimitError,
    StorageError,
    ValidationError,
    ZipSecurityError,
)
from .logging_config import configure_job_logging, get_job_logger
from .rate_limiter import SubmissionRateLimiter
from .service_container import (
    ServiceContainer,
    get_service_container,
    reset_service_container,
    set_service_container,
)
from .zip_handler import ArchiveCodec, archive_filename, archive_root

__all__ = [
    # Cache
    "TTLCache",
    # Configuration
    "LiberatorConfig",
    # Rate limiting
    "SubmissionRateLimiter",
    # Logging
    "configure_job_logging",
    "get_job_logger",
    # Archives
    "ArchiveCodec",
    "archive_root",
    "archive_filename",
    # Service container
    "ServiceContainer",
    "get_service_container",
    "reset_service_container",
    "set_service_container",
    # Exceptions
    "LiberatorError",
    "ValidationError",
    "InvalidInputError",
    "ArchiveError",
    "ArchiveDecodeError",
    "ArchiveEncodeError",
    "ZipSecurityError",
    "JobError",
    "InvalidTransitionError",
    "StorageError",
    "PersistenceError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "RateLimitError",
]
