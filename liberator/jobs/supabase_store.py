"""Supabase-backed job storage and durable job records.

Talks to the PostgREST (`/rest/v1`) and Storage (`/storage/v1`) APIs
directly over httpx. Job state lives in a table, archives in a bucket.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from ..core.exceptions import PersistenceError, StorageError
from ..pipeline.models import JobStatus, LiberationJob
from .storage import JobRecorder, JobStore

logger = logging.getLogger(__name__)

# Used for records written without an authenticated user
ANONYMOUS_USER_ID = "00000000-0000-0000-0000-000000000000"


class SupabaseRestClient:
    """Minimal async client for the Supabase REST and Storage APIs."""

    def __init__(self, url: str, service_key: str, timeout: float = 30) -> None:
        self.url = url.rstrip("/")
        self._headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
        }
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=self._headers)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _object_url(self, bucket: str, path: str = "") -> str:
        return f"{self.url}/storage/v1/object/{bucket}" + (f"/{path}" if path else "")

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PersistenceError(f"Supabase request failed: {e}") from e
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_error:
            raise PersistenceError(
                f"Supabase {action} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text[:500],
            )

    async def upsert(self, table: str, row: dict[str, Any]) -> None:
        response = await self._send(
            "POST",
            self._table_url(table),
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        self._raise_for_status(response, f"upsert into {table}")

    async def update(self, table: str, params: dict[str, str], values: dict[str, Any]) -> None:
        response = await self._send(
            "PATCH",
            self._table_url(table),
            params=params,
            json=values,
            headers={"Prefer": "return=minimal"},
        )
        self._raise_for_status(response, f"update of {table}")

    async def select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        response = await self._send("GET", self._table_url(table), params={"select": "*", **params})
        self._raise_for_status(response, f"select from {table}")
        return response.json()

    async def delete(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        response = await self._send(
            "DELETE",
            self._table_url(table),
            params=params,
            headers={"Prefer": "return=representation"},
        )
        self._raise_for_status(response, f"delete from {table}")
        return response.json()

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str = "application/zip") -> None:
        response = await self._send(
            "POST",
            self._object_url(bucket, path),
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        self._raise_for_status(response, f"upload to {bucket}")

    async def download(self, bucket: str, path: str) -> bytes | None:
        response = await self._send("GET", self._object_url(bucket, path))
        # Storage answers 400 for missing objects on some deployments
        if response.status_code in (400, 404):
            return None
        self._raise_for_status(response, f"download from {bucket}")
        return response.content

    async def remove(self, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        response = await self._send("DELETE", self._object_url(bucket), json={"prefixes": paths})
        self._raise_for_status(response, f"remove from {bucket}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SupabaseJobStore(JobStore):
    """Job store shared by several service instances.

    Rows of `table` hold the serialized job plus its expiry timestamps;
    archives are objects named `<job_id>.zip` in `bucket`.
    """

    name = "supabase"

    def __init__(
        self,
        client: SupabaseRestClient,
        table: str = "liberation_job_state",
        bucket: str = "liberated-archives",
        job_retention_seconds: float = 3600,
        archive_retention_seconds: float = 3600,
    ) -> None:
        self.client = client
        self.table = table
        self.bucket = bucket
        self.job_retention = timedelta(seconds=job_retention_seconds)
        self.archive_retention = timedelta(seconds=archive_retention_seconds)

    @staticmethod
    def _archive_path(job_id: str) -> str:
        return f"{job_id}.zip"

    async def _get_row(self, job_id: str) -> dict[str, Any] | None:
        try:
            rows = await self.client.select(self.table, {"id": f"eq.{job_id}"})
        except PersistenceError as e:
            raise StorageError(str(e)) from e
        if not rows:
            return None
        row = rows[0]
        expires_at = _parse_timestamp(row.get("expires_at"))
        if expires_at is not None and expires_at <= _utcnow():
            return None
        return row

    async def put_job(self, job: LiberationJob) -> None:
        row = {
            "id": job.id,
            "status": job.status.value,
            "payload": job.model_dump(mode="json"),
            "created_at": job.created_at.isoformat(),
            "expires_at": (job.created_at + self.job_retention).isoformat(),
        }
        try:
            await self.client.upsert(self.table, row)
        except PersistenceError as e:
            raise StorageError(str(e)) from e

    async def get_job(self, job_id: str) -> LiberationJob | None:
        row = await self._get_row(job_id)
        if row is None:
            return None
        return LiberationJob.model_validate(row["payload"])

    async def list_jobs(self) -> list[LiberationJob]:
        now = _utcnow().isoformat()
        try:
            rows = await self.client.select(self.table, {"expires_at": f"gt.{now}", "order": "created_at.desc"})
        except PersistenceError as e:
            raise StorageError(str(e)) from e
        return [LiberationJob.model_validate(row["payload"]) for row in rows]

    async def put_archive(self, job_id: str, data: bytes) -> None:
        row = await self._get_row(job_id)
        if row is None:
            raise StorageError(f"Cannot store archive for unknown job {job_id}")
        archive_expires = _utcnow() + self.archive_retention
        job_expires = _parse_timestamp(row.get("expires_at"))
        if job_expires is not None:
            archive_expires = min(archive_expires, job_expires)
        try:
            await self.client.upload(self.bucket, self._archive_path(job_id), data)
            await self.client.update(
                self.table,
                {"id": f"eq.{job_id}"},
                {"archive_expires_at": archive_expires.isoformat()},
            )
        except PersistenceError as e:
            raise StorageError(str(e)) from e

    async def get_archive(self, job_id: str) -> bytes | None:
        row = await self._get_row(job_id)
        if row is None:
            return None
        archive_expires = _parse_timestamp(row.get("archive_expires_at"))
        if archive_expires is None or archive_expires <= _utcnow():
            return None
        try:
            return await self.client.download(self.bucket, self._archive_path(job_id))
        except PersistenceError as e:
            raise StorageError(str(e)) from e

    async def purge_expired(self) -> int:
        now = _utcnow().isoformat()
        try:
            expired = await self.client.delete(self.table, {"expires_at": f"lte.{now}"})
            await self.client.remove(self.bucket, [self._archive_path(row["id"]) for row in expired])
        except PersistenceError as e:
            raise StorageError(str(e)) from e
        if expired:
            logger.info(f"Evicted {len(expired)} expired jobs from {self.table}")
        return len(expired)

    async def close(self) -> None:
        await self.client.aclose()


class SupabaseJobRecorder(JobRecorder):
    """Writes finished jobs to the `liberation_jobs` table and reads them back."""

    def __init__(self, client: SupabaseRestClient, table: str = "liberation_jobs") -> None:
        self.client = client
        self.table = table

    async def record(self, job: LiberationJob) -> None:
        report = job.audit_report
        row: dict[str, Any] = {
            "id": job.id,
            "user_id": ANONYMOUS_USER_ID,
            "project_name": job.project_name,
            "source_type": job.source_type.value,
            "status": job.status.value,
            "progress": job.progress,
            "created_at": job.created_at.isoformat(),
            "completed_at": job.completed_at.isoformat() if job.completed_at else None,
            "error": job.error,
        }
        if report is not None:
            row.update(
                audit_score=report.score,
                audit_report=report.model_dump(mode="json"),
                files_count=report.total_files,
            )
        if job.clean_result is not None:
            row["files_cleaned"] = job.clean_result.files_cleaned
        await self.client.upsert(self.table, row)

    async def fetch(self, job_id: str) -> LiberationJob | None:
        rows = await self.client.select(self.table, {"id": f"eq.{job_id}"})
        if not rows:
            return None
        row = rows[0]
        return LiberationJob.model_validate(
            {
                "id": row["id"],
                "status": row.get("status", JobStatus.COMPLETED.value),
                "progress": row.get("progress", 100),
                "project_name": row["project_name"],
                "source_type": row.get("source_type") or "archive",
                "created_at": row.get("created_at") or _utcnow().isoformat(),
                "completed_at": row.get("completed_at"),
                "audit_report": row.get("audit_report"),
                "error": row.get("error"),
            }
        )

    async def close(self) -> None:
        await self.client.aclose()
