"""Service container for dependency injection.

This module provides a centralized container for the Liberator services,
so the HTTP routes and MCP tools share one job controller and tests can swap
in their own configuration.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .config import LiberatorConfig
from .rate_limiter import SubmissionRateLimiter

if TYPE_CHECKING:
    from ..jobs.controller import JobController
    from ..jobs.storage import JobRecorder, JobStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all Liberator services.

    Provides lazy initialization of services and centralized access.
    Thread-safe for concurrent access patterns.

    Usage:
        container = get_service_container()
        job = await container.controller.submit(data, "demo")
    """

    config: LiberatorConfig | None = None

    _lock: threading.RLock = field(default_factory=threading.RLock)
    _initialized: bool = field(default=False)

    _store: "JobStore | None" = field(default=None)
    _recorder: "JobRecorder | None" = field(default=None)
    _controller: "JobController | None" = field(default=None)
    _rate_limiter: SubmissionRateLimiter | None = field(default=None)

    def initialize(self) -> None:
        """Initialize all services.

        This method is thread-safe and idempotent.
        """
        with self._lock:
            if self._initialized:
                return
            self._do_initialize()
            self._initialized = True

    def _do_initialize(self) -> None:
        from ..jobs.controller import JobController
        from ..jobs.storage import InMemoryJobStore, NullJobRecorder
        from ..jobs.supabase_store import SupabaseJobRecorder, SupabaseJobStore, SupabaseRestClient
        from .zip_handler import ArchiveCodec

        if self.config is None:
            self.config = LiberatorConfig.from_env()
        config = self.config

        logger.info(f"Initializing Liberator services (store={config.store_backend})...")

        rest_client = None
        if config.has_supabase:
            assert config.supabase_url is not None and config.supabase_key is not None
            rest_client = SupabaseRestClient(config.supabase_url, config.supabase_key)

        if config.store_backend == "supabase" and rest_client is not None:
            self._store = SupabaseJobStore(
                rest_client,
                bucket=config.archive_bucket,
                job_retention_seconds=config.job_retention_seconds,
                archive_retention_seconds=config.archive_retention_seconds,
            )
        else:
            self._store = InMemoryJobStore(
                job_retention_seconds=config.job_retention_seconds,
                archive_retention_seconds=config.archive_retention_seconds,
            )

        self._recorder = SupabaseJobRecorder(rest_client) if rest_client is not None else NullJobRecorder()

        self._controller = JobController(
            self._store,
            recorder=self._recorder,
            codec=ArchiveCodec(max_archive_bytes=config.max_upload_bytes),
            max_concurrent_jobs=config.max_concurrent_jobs,
        )
        self._rate_limiter = SubmissionRateLimiter(config.rate_limit_calls, config.rate_limit_period)

        logger.info("Liberator services initialized")

    @property
    def settings(self) -> LiberatorConfig:
        self.initialize()
        assert self.config is not None
        return self.config

    @property
    def store(self) -> "JobStore":
        self.initialize()
        assert self._store is not None
        return self._store

    @property
    def controller(self) -> "JobController":
        self.initialize()
        assert self._controller is not None
        return self._controller

    @property
    def rate_limiter(self) -> SubmissionRateLimiter:
        self.initialize()
        assert self._rate_limiter is not None
        return self._rate_limiter


_container: ServiceContainer | None = None
_container_lock = threading.Lock()


def get_service_container() -> ServiceContainer:
    """Get the global service container instance."""
    global _container
    if _container is None:
        with _container_lock:
            if _container is None:
                _container = ServiceContainer()
    return _container


def set_service_container(container: ServiceContainer) -> None:
    """Replace the global container (tests, embedding applications)."""
    global _container
    with _container_lock:
        _container = container


def reset_service_container() -> None:
    """Drop the global container so the next access rebuilds it."""
    global _container
    with _container_lock:
        _container = None
