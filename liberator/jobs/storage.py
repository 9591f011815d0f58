"""
Job and archive storage interfaces.

The job controller depends only on `JobStore` (live job records and output
archives) and `JobRecorder` (durable record of finished jobs), so single
process deployments can keep everything in memory while multi-instance
deployments use a networked backend.
"""

import logging
from abc import ABC, abstractmethod

from ..core.cache import TTLCache
from ..pipeline.models import LiberationJob

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """
    Registry of job records and their output archives.

    Implementations must allow concurrent reads and never interleave two
    writes to the same key. Records handed out are copies: mutating them
    does not change the stored job.
    """

    name: str = "abstract"

    @abstractmethod
    async def put_job(self, job: LiberationJob) -> None:
        """Insert or replace a job record."""

    @abstractmethod
    async def get_job(self, job_id: str) -> LiberationJob | None:
        """Return a copy of the job record, or None if unknown or evicted."""

    @abstractmethod
    async def list_jobs(self) -> list[LiberationJob]:
        """Return copies of every live job record."""

    @abstractmethod
    async def put_archive(self, job_id: str, data: bytes) -> None:
        """Store the output archive of a job."""

    @abstractmethod
    async def get_archive(self, job_id: str) -> bytes | None:
        """Return the output archive, or None if absent or evicted."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Evict records and archives past their retention window.

        Returns:
            Number of evicted job records
        """

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryJobStore(JobStore):
    """Process-local store backed by two TTL caches."""

    name = "memory"

    def __init__(
        self,
        job_retention_seconds: float = 3600,
        archive_retention_seconds: float = 3600,
        max_jobs: int = 1000,
        cache_factory: type[TTLCache] = TTLCache,
    ) -> None:
        """Initialize the store.

        Args:
            job_retention_seconds: Lifetime of a job record from submission
            archive_retention_seconds: Lifetime of an archive from creation,
                capped by the remaining lifetime of its job
            max_jobs: Maximum number of records kept at once
            cache_factory: Cache class, replaceable in tests
        """
        self._jobs = cache_factory(maxsize=max_jobs, ttl_seconds=job_retention_seconds)
        self._archives = cache_factory(maxsize=max_jobs, ttl_seconds=archive_retention_seconds)
        self.archive_retention_seconds = archive_retention_seconds

    async def put_job(self, job: LiberationJob) -> None:
        # Updates keep the original expiry so retention counts from submission
        self._jobs.set(job.id, job.model_copy(deep=True), keep_expiry=True)

    async def get_job(self, job_id: str) -> LiberationJob | None:
        found, job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if found else None

    async def list_jobs(self) -> list[LiberationJob]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    async def put_archive(self, job_id: str, data: bytes) -> None:
        job_remaining = self._jobs.expires_in(job_id)
        ttl = self.archive_retention_seconds
        if job_remaining is not None:
            ttl = min(ttl, job_remaining)
        self._archives.set(job_id, data, ttl_seconds=ttl)

    async def get_archive(self, job_id: str) -> bytes | None:
        found, data = self._archives.get(job_id)
        return data if found else None

    async def purge_expired(self) -> int:
        evicted = self._jobs.purge_expired()
        archives = self._archives.purge_expired()
        if evicted or archives:
            logger.info(f"Evicted {evicted} expired jobs and {archives} archives")
        return evicted

    def __len__(self) -> int:
        return len(self._jobs)


class JobRecorder(ABC):
    """Durable record of finished jobs, used for cross-process status queries."""

    enabled: bool = True

    @abstractmethod
    async def record(self, job: LiberationJob) -> None:
        """Persist a finished job.

        Raises:
            PersistenceError: If the record could not be written
        """

    @abstractmethod
    async def fetch(self, job_id: str) -> LiberationJob | None:
        """Look a job up in durable storage.

        Raises:
            PersistenceError: If the lookup itself failed
        """

    async def close(self) -> None:
        return None


class NullJobRecorder(JobRecorder):
    """Recorder used when no durable backend is configured."""

    enabled = False

    async def record(self, job: LiberationJob) -> None:
        return None

    async def fetch(self, job_id: str) -> LiberationJob | None:
        return None
