"""Tests for the Supabase job store and recorder."""

import json
import re
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from liberator.core.exceptions import PersistenceError, StorageError
from liberator.jobs.supabase_store import (
    ANONYMOUS_USER_ID,
    SupabaseJobRecorder,
    SupabaseJobStore,
    SupabaseRestClient,
)
from liberator.pipeline.models import AuditReport, CleanResult, JobStatus, LiberationJob

BASE = "https://demo.supabase.co"


def _future() -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()


def _past() -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()


@pytest_asyncio.fixture
async def rest_client():
    client = SupabaseRestClient(BASE + "/", "service-key", timeout=5)
    yield client
    await client.aclose()


@pytest.fixture
def store(rest_client):
    return SupabaseJobStore(rest_client, job_retention_seconds=3600, archive_retention_seconds=600)


class TestSupabaseRestClient:
    @pytest.mark.asyncio
    async def test_sends_service_key_headers(self, rest_client, httpx_mock):
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/rest/v1/liberation_jobs?select=*&id=eq.j1",
            match_headers={"apikey": "service-key", "Authorization": "Bearer service-key"},
            json=[{"id": "j1"}],
        )
        assert await rest_client.select("liberation_jobs", {"id": "eq.j1"}) == [{"id": "j1"}]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, rest_client, httpx_mock):
        httpx_mock.add_response(method="POST", url=f"{BASE}/rest/v1/t", status_code=409, text="duplicate")
        with pytest.raises(PersistenceError) as exc_info:
            await rest_client.upsert("t", {"id": 1})
        assert exc_info.value.status_code == 409
        assert exc_info.value.response_body == "duplicate"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, rest_client, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        with pytest.raises(PersistenceError, match="request failed"):
            await rest_client.select("t", {})

    @pytest.mark.asyncio
    async def test_download_missing_object(self, rest_client, httpx_mock):
        httpx_mock.add_response(method="GET", url=f"{BASE}/storage/v1/object/b/x.zip", status_code=404)
        assert await rest_client.download("b", "x.zip") is None

    @pytest.mark.asyncio
    async def test_remove_nothing_sends_nothing(self, rest_client):
        await rest_client.remove("b", [])


class TestSupabaseJobStore:
    @pytest.mark.asyncio
    async def test_put_job_upserts_row(self, store, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE}/rest/v1/liberation_job_state",
            match_headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            status_code=201,
        )
        job = LiberationJob(project_name="Demo")
        await store.put_job(job)

        row = json.loads(httpx_mock.get_request().content)
        assert row["id"] == job.id
        assert row["status"] == "pending"
        assert row["payload"]["project_name"] == "Demo"
        expires = datetime.fromisoformat(row["expires_at"])
        assert expires - job.created_at == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_get_job(self, store, httpx_mock):
        job = LiberationJob(project_name="Demo")
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.{job.id}",
            json=[{"id": job.id, "payload": job.model_dump(mode="json"), "expires_at": _future()}],
        )
        assert await store.get_job(job.id) == job

    @pytest.mark.asyncio
    async def test_expired_row_is_absent(self, store, httpx_mock):
        job = LiberationJob(project_name="Demo")
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.{job.id}",
            json=[{"id": job.id, "payload": job.model_dump(mode="json"), "expires_at": _past()}],
        )
        assert await store.get_job(job.id) is None

    @pytest.mark.asyncio
    async def test_backend_failure_is_storage_error(self, store, httpx_mock):
        httpx_mock.add_response(url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.x", status_code=500)
        with pytest.raises(StorageError):
            await store.get_job("x")

    @pytest.mark.asyncio
    async def test_put_archive_uploads_and_sets_expiry(self, store, httpx_mock):
        job = LiberationJob(project_name="Demo")
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.{job.id}",
            json=[{"id": job.id, "payload": job.model_dump(mode="json"), "expires_at": _future()}],
        )
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE}/storage/v1/object/liberated-archives/{job.id}.zip",
            match_headers={"x-upsert": "true", "Content-Type": "application/zip"},
        )
        httpx_mock.add_response(method="PATCH", url=f"{BASE}/rest/v1/liberation_job_state?id=eq.{job.id}")

        await store.put_archive(job.id, b"PK-data")

        upload, patch = httpx_mock.get_requests()[1:]
        assert upload.content == b"PK-data"
        assert "archive_expires_at" in json.loads(patch.content)

    @pytest.mark.asyncio
    async def test_put_archive_for_unknown_job(self, store, httpx_mock):
        httpx_mock.add_response(url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.nope", json=[])
        with pytest.raises(StorageError, match="unknown job"):
            await store.put_archive("nope", b"x")

    @pytest.mark.asyncio
    async def test_get_archive(self, store, httpx_mock):
        job = LiberationJob(project_name="Demo")
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.{job.id}",
            json=[
                {
                    "id": job.id,
                    "payload": job.model_dump(mode="json"),
                    "expires_at": _future(),
                    "archive_expires_at": _future(),
                }
            ],
        )
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/storage/v1/object/liberated-archives/{job.id}.zip",
            content=b"PK-data",
        )
        assert await store.get_archive(job.id) == b"PK-data"

    @pytest.mark.asyncio
    async def test_expired_archive_is_not_downloaded(self, store, httpx_mock):
        job = LiberationJob(project_name="Demo")
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/liberation_job_state?select=*&id=eq.{job.id}",
            json=[
                {
                    "id": job.id,
                    "payload": job.model_dump(mode="json"),
                    "expires_at": _future(),
                    "archive_expires_at": _past(),
                }
            ],
        )
        assert await store.get_archive(job.id) is None

    @pytest.mark.asyncio
    async def test_purge_expired_removes_rows_and_archives(self, store, httpx_mock):
        httpx_mock.add_response(
            method="DELETE",
            url=re.compile(rf"{re.escape(BASE)}/rest/v1/liberation_job_state\?expires_at=lte\..+"),
            json=[{"id": "a"}, {"id": "b"}],
        )
        httpx_mock.add_response(method="DELETE", url=f"{BASE}/storage/v1/object/liberated-archives")

        assert await store.purge_expired() == 2
        remove = httpx_mock.get_requests()[1]
        assert json.loads(remove.content) == {"prefixes": ["a.zip", "b.zip"]}


class TestSupabaseJobRecorder:
    @pytest.mark.asyncio
    async def test_record_completed_job(self, rest_client, httpx_mock, advance_to):
        httpx_mock.add_response(method="POST", url=f"{BASE}/rest/v1/liberation_jobs", status_code=201)
        job = LiberationJob(project_name="Demo")
        job.audit_report = AuditReport.from_findings([], [], total_files=3, total_lines=12)
        job.clean_result = CleanResult(files_processed=3, files_cleaned=1, files_removed=0, lines_removed=0)
        advance_to(job, JobStatus.REBUILDING, 90)
        job.complete("/api/liberate/download/x")

        await SupabaseJobRecorder(rest_client).record(job)

        row = json.loads(httpx_mock.get_request().content)
        assert row["user_id"] == ANONYMOUS_USER_ID
        assert row["status"] == "completed"
        assert row["audit_score"] == 100
        assert row["files_count"] == 3
        assert row["files_cleaned"] == 1
        assert row["audit_report"]["grade"] == "A"

    @pytest.mark.asyncio
    async def test_fetch(self, rest_client, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/liberation_jobs?select=*&id=eq.j1",
            json=[
                {
                    "id": "j1",
                    "project_name": "Demo",
                    "status": "failed",
                    "progress": 10,
                    "source_type": "archive",
                    "created_at": "2024-05-01T12:00:00+00:00",
                    "completed_at": None,
                    "error": "Extraction failed: bad zip",
                }
            ],
        )
        job = await SupabaseJobRecorder(rest_client).fetch("j1")
        assert job.status == JobStatus.FAILED
        assert job.progress == 10
        assert job.error == "Extraction failed: bad zip"

    @pytest.mark.asyncio
    async def test_fetch_unknown(self, rest_client, httpx_mock):
        httpx_mock.add_response(url=f"{BASE}/rest/v1/liberation_jobs?select=*&id=eq.zz", json=[])
        assert await SupabaseJobRecorder(rest_client).fetch("zz") is None
