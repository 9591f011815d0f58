"""Runtime configuration for the Liberator service.

All values come from environment variables with conservative defaults, so the
server can start with no configuration at all and an in-memory store.
"""

import os
from dataclasses import dataclass
from typing import Any

from .exceptions import InvalidConfigError, MissingConfigError

STORE_BACKENDS = ("memory", "supabase")

# Default upload cap (50MB), matches the zip handler limit
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise InvalidConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise InvalidConfigError(f"{name} must be positive, got {value}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LiberatorConfig:
    """Configuration for the liberation service."""

    host: str = "0.0.0.0"
    port: int = 3001
    store_backend: str = "memory"
    supabase_url: str | None = None
    supabase_key: str | None = None
    archive_bucket: str = "liberated-archives"
    max_concurrent_jobs: int = 4
    job_retention_seconds: int = 3600  # Job records live for one hour
    archive_retention_seconds: int = 3600  # Never longer than the job record
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    rate_limit_calls: int = 10  # Submissions per client per period
    rate_limit_period: float = 60.0
    enable_job_listing: bool = False
    log_level: str = "INFO"
    log_file: str | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check cross-field constraints.

        Raises:
            InvalidConfigError: If a value is out of range
            MissingConfigError: If the selected backend lacks credentials
        """
        if self.store_backend not in STORE_BACKENDS:
            raise InvalidConfigError(
                f"Unknown store backend {self.store_backend!r}, expected one of {', '.join(STORE_BACKENDS)}"
            )
        if self.max_concurrent_jobs < 1:
            raise InvalidConfigError("max_concurrent_jobs must be at least 1")
        if self.archive_retention_seconds > self.job_retention_seconds:
            raise InvalidConfigError(
                "archive_retention_seconds must not exceed job_retention_seconds "
                f"({self.archive_retention_seconds} > {self.job_retention_seconds})"
            )
        if self.store_backend == "supabase" and not self.has_supabase:
            raise MissingConfigError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the supabase store")

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "LiberatorConfig":
        """Build a configuration from environment variables."""
        return cls(
            host=os.environ.get("LIBERATOR_HOST", "0.0.0.0"),
            port=_env_int("LIBERATOR_PORT", 3001, minimum=1),
            store_backend=os.environ.get("LIBERATOR_STORE", "memory").strip().lower(),
            supabase_url=os.environ.get("SUPABASE_URL") or None,
            supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or None,
            archive_bucket=os.environ.get("LIBERATOR_ARCHIVE_BUCKET", "liberated-archives"),
            max_concurrent_jobs=_env_int("LIBERATOR_MAX_CONCURRENT_JOBS", 4, minimum=1),
            job_retention_seconds=_env_int("LIBERATOR_JOB_RETENTION_SECONDS", 3600, minimum=1),
            archive_retention_seconds=_env_int("LIBERATOR_ARCHIVE_RETENTION_SECONDS", 3600, minimum=1),
            max_upload_bytes=_env_int("LIBERATOR_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES, minimum=1),
            rate_limit_calls=_env_int("LIBERATOR_RATE_LIMIT_CALLS", 10, minimum=1),
            rate_limit_period=_env_float("LIBERATOR_RATE_LIMIT_PERIOD", 60.0),
            enable_job_listing=_env_bool("LIBERATOR_ENABLE_JOB_LISTING"),
            log_level=os.environ.get("LIBERATOR_LOG_LEVEL", "INFO"),
            log_file=os.environ.get("LIBERATOR_LOG_FILE") or None,
        )

    def summary(self) -> dict[str, Any]:
        """Non-secret view of the configuration for health output."""
        return {
            "store_backend": self.store_backend,
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "job_retention_seconds": self.job_retention_seconds,
            "archive_retention_seconds": self.archive_retention_seconds,
            "durable_records": self.has_supabase,
        }
