"""Job controller running the liberation pipeline in the background.

A submitted archive becomes a `LiberationJob` that moves through
pending -> scanning -> auditing -> cleaning -> rebuilding -> completed.
Every phase failure is caught here and turned into a `failed` job with a
message; nothing escapes to the caller or the event loop.
"""

import asyncio
import logging
from collections.abc import Callable

from ..core.exceptions import InvalidInputError, LiberatorError
from ..core.logging_config import get_job_logger
from ..core.zip_handler import ArchiveCodec, FileMap, archive_root
from ..pipeline.models import JobStatus, LiberationJob, SourceType
from ..pipeline.rewriter import RegexRewriter, Rewriter, clean_files
from ..pipeline.scaffold import generate as generate_scaffold
from ..pipeline.scanner import ProjectScanner
from .requests import validate_project_name
from .storage import JobRecorder, JobStore, NullJobRecorder

logger = logging.getLogger(__name__)
job_logger = get_job_logger()

RESULT_HANDLE_TEMPLATE = "/api/liberate/download/{job_id}"
STATUS_HANDLE_TEMPLATE = "/api/liberate/audit/{job_id}"

# Progress checkpoints assigned on phase entry
PROGRESS_SCANNING = 10
PROGRESS_AUDITING = 30
PROGRESS_CLEANING = 50
PROGRESS_REBUILDING = 70
PROGRESS_PACKAGING = 90

JobListener = Callable[[LiberationJob], None]


class _PhaseFailure(Exception):
    def __init__(self, phase: str, cause: BaseException):
        super().__init__(f"{phase} failed: {_describe(cause)}")
        self.phase = phase
        self.cause = cause


def _describe(error: BaseException) -> str:
    if isinstance(error, LiberatorError):
        return str(error)
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class JobController:
    """Owns liberation jobs from submission to completion or failure.

    Jobs run as asyncio tasks admitted through a bounded worker pool. The
    CPU-bound phases run in worker threads so status polling stays
    responsive. There is no cancellation: once submitted, a job runs to
    completion or failure.
    """

    def __init__(
        self,
        store: JobStore,
        recorder: JobRecorder | None = None,
        codec: ArchiveCodec | None = None,
        scanner: ProjectScanner | None = None,
        rewriter: Rewriter | None = None,
        max_concurrent_jobs: int = 4,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Registry of job records and output archives
            recorder: Durable record of finished jobs (best effort)
            codec: Archive codec used for extraction and packaging
            scanner: Project scanner producing the audit report
            rewriter: Content rewriter used by the clean pass
            max_concurrent_jobs: Size of the worker pool
        """
        self.store = store
        self.recorder = recorder or NullJobRecorder()
        self.codec = codec or ArchiveCodec()
        self.scanner = scanner or ProjectScanner()
        self.rewriter = rewriter or RegexRewriter()
        self.max_concurrent_jobs = max_concurrent_jobs
        self._slots: asyncio.Semaphore | None = None
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[JobListener] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_listener(self, listener: JobListener) -> None:
        """Register a callback receiving a snapshot after every job change."""
        self._listeners.append(listener)

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def submit(
        self,
        archive: bytes,
        project_name: str,
        source_type: SourceType | str = SourceType.ARCHIVE,
        source_url: str | None = None,
    ) -> LiberationJob:
        """Create a pending job and start processing it in the background.

        Returns immediately with a snapshot of the pending job.

        Raises:
            InvalidInputError: If the archive or the project name is missing or invalid
        """
        validate_project_name(project_name)
        if not archive:
            raise InvalidInputError("An archive is required")
        try:
            source_type = SourceType(source_type)
        except ValueError:
            raise InvalidInputError(f"Unknown source_type {source_type!r}") from None

        await self._purge_expired()

        job = LiberationJob(project_name=project_name, source_type=source_type, source_url=source_url)
        await self.store.put_job(job)
        self._notify(job)
        job_logger.info(
            "Liberation job submitted",
            extra={
                "event": "job_submitted",
                "job_id": job.id,
                "project": project_name,
                "status": job.status.value,
                "progress": job.progress,
                "archive_bytes": len(archive),
            },
        )

        snapshot = job.model_copy(deep=True)
        task = asyncio.create_task(self._run(job, archive), name=f"liberation-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))
        return snapshot

    async def wait(self, job_id: str) -> LiberationJob | None:
        """Wait for a running job to settle and return its final record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.store.get_job(job_id)

    async def get_status(self, job_id: str) -> LiberationJob | None:
        """Return the job record, consulting durable storage as a fallback."""
        job = await self.store.get_job(job_id)
        if job is not None:
            return job
        try:
            return await self.recorder.fetch(job_id)
        except Exception as e:
            logger.warning(f"Durable lookup of job {job_id} failed: {e}")
            return None

    async def get_archive(self, job_id: str) -> tuple[LiberationJob | None, bytes | None]:
        """Return the live job record and its archive (None while unavailable)."""
        job = await self.store.get_job(job_id)
        if job is None or job.status != JobStatus.COMPLETED:
            return job, None
        return job, await self.store.get_archive(job_id)

    async def list_jobs(self) -> list[LiberationJob]:
        return await self.store.list_jobs()

    async def shutdown(self) -> None:
        """Let in-flight jobs finish, then release storage resources."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        await self.store.close()
        await self.recorder.close()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _worker_slots(self) -> asyncio.Semaphore:
        if self._slots is None:
            self._slots = asyncio.Semaphore(self.max_concurrent_jobs)
        return self._slots

    async def _run(self, job: LiberationJob, archive: bytes) -> None:
        async with self._worker_slots():
            try:
                done = await self._execute(job, archive)
            except _PhaseFailure as failure:
                await self._fail(job, str(failure), failure.cause)
                return
            except Exception as e:  # noqa: BLE001 - the worker must never crash
                await self._fail(job, f"Liberation failed: {_describe(e)}", e)
                return

        await self._record(done)

    async def _phase(self, name: str, func: Callable, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as e:
            raise _PhaseFailure(name, e) from e

    async def _execute(self, job: LiberationJob, archive: bytes) -> LiberationJob:
        # Phase 1: extraction
        await self._enter(job, JobStatus.SCANNING, PROGRESS_SCANNING)
        file_map: FileMap = await self._phase("Extraction", self.codec.decode, archive)

        # Phase 2: audit
        await self._enter(job, JobStatus.AUDITING, PROGRESS_AUDITING)
        report = await self._phase("Audit", self.scanner.scan, file_map)
        job.audit_report = report
        await self._save(job)
        job_logger.info(
            "Audit complete",
            extra={
                "event": "job_audited",
                "job_id": job.id,
                "score": report.score,
                "grade": report.grade,
            },
        )

        # Phase 3: clean
        await self._enter(job, JobStatus.CLEANING, PROGRESS_CLEANING)
        cleaned, clean_result = await self._phase("Cleaning", clean_files, file_map, self.rewriter)
        job.clean_result = clean_result
        await self._save(job)

        # Phase 4: rebuild
        await self._enter(job, JobStatus.REBUILDING, PROGRESS_REBUILDING)
        scaffold = await self._phase("Rebuild", generate_scaffold, job.project_name)
        cleaned.update(scaffold)

        # Phase 5: package
        await self._enter(job, JobStatus.REBUILDING, PROGRESS_PACKAGING)
        output = await self._phase("Packaging", self.codec.encode, cleaned, archive_root(job.project_name))
        try:
            await self.store.put_archive(job.id, output)
        except Exception as e:
            raise _PhaseFailure("Packaging", e) from e

        # The live record stays non-terminal until the completed one is stored
        done = job.model_copy(deep=True)
        done.complete(RESULT_HANDLE_TEMPLATE.format(job_id=job.id))
        try:
            await self._save(done)
        except Exception as e:
            raise _PhaseFailure("Packaging", e) from e
        job_logger.info(
            "Liberation completed",
            extra={
                "event": "job_completed",
                "job_id": done.id,
                "project": done.project_name,
                "status": done.status.value,
                "progress": done.progress,
                "files_processed": clean_result.files_processed,
                "files_cleaned": clean_result.files_cleaned,
                "files_removed": clean_result.files_removed,
                "lines_removed": clean_result.lines_removed,
                "archive_bytes": len(output),
            },
        )
        return done

    async def _enter(self, job: LiberationJob, status: JobStatus, progress: int) -> None:
        job.advance(status, progress)
        await self._save(job)
        job_logger.info(
            f"Job entered {status.value}",
            extra={"event": "job_phase", "job_id": job.id, "status": status.value, "progress": progress},
        )

    async def _save(self, job: LiberationJob) -> None:
        await self.store.put_job(job)
        self._notify(job)

    async def _fail(self, job: LiberationJob, message: str, cause: BaseException | None = None) -> None:
        if job.status.is_terminal:
            logger.error(f"Job {job.id} raised after reaching {job.status.value}: {message}")
            return
        job.fail(message)
        job_logger.error(
            "Liberation failed",
            exc_info=cause if cause is not None and not isinstance(cause, LiberatorError) else None,
            extra={
                "event": "job_failed",
                "job_id": job.id,
                "project": job.project_name,
                "status": job.status.value,
                "progress": job.progress,
                "error": message,
            },
        )
        try:
            await self._save(job)
        except Exception as e:
            logger.error(f"Could not store failure of job {job.id}: {e}")

    async def _record(self, job: LiberationJob) -> None:
        """Durably record a finished job; errors never affect the job outcome."""
        if not self.recorder.enabled:
            return
        try:
            await self.recorder.record(job.model_copy(deep=True))
            job_logger.info("Job recorded", extra={"event": "job_recorded", "job_id": job.id})
        except Exception as e:
            job_logger.warning(
                "Durable job record failed",
                extra={"event": "job_record_failed", "job_id": job.id, "error": str(e)},
            )

    async def _purge_expired(self) -> None:
        try:
            await self.store.purge_expired()
        except Exception as e:
            logger.warning(f"Retention sweep failed: {e}")

    def _notify(self, job: LiberationJob) -> None:
        snapshot = job.model_copy(deep=True)
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Job listener {listener!r} raised: {e}")
