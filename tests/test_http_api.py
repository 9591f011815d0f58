"""Tests for the HTTP liberation routes."""

import asyncio
import base64
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.applications import Starlette
from starlette.testclient import TestClient

from liberator.core.zip_handler import decode, encode
from liberator.http_api import build_routes, submit_liberation
from liberator.pipeline.models import JobStatus, LiberationJob


@pytest.fixture
def client(services):
    app = Starlette(routes=build_routes())
    with TestClient(app) as test_client:
        yield test_client


def _seed(services, job: LiberationJob, archive: bytes | None = None) -> None:
    async def seed():
        await services.store.put_job(job)
        if archive is not None:
            await services.store.put_archive(job.id, archive)

    asyncio.run(seed())


def _wait_for(client, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/liberate/audit/{job_id}").json()
        if body["status"] in ("completed", "failed") or time.monotonic() > deadline:
            return body
        time.sleep(0.02)


class TestSubmit:
    def test_json_submission(self, client):
        payload = base64.b64encode(encode({"app.ts": "lovableApi.call()"})).decode()
        response = client.post("/api/liberate", json={"project_name": "Demo", "file": payload})

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert body["status_url"] == f"/api/liberate/audit/{body['id']}"
        assert body["download_url"] == f"/api/liberate/download/{body['id']}"

        status = _wait_for(client, body["id"])
        assert status["status"] == "completed"
        assert status["progress"] == 100
        assert status["audit_report"]["score"] == 95
        assert status["result_url"] == body["download_url"]

        download = client.get(body["download_url"])
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/zip"
        assert 'filename="Demo-liberated.zip"' in download.headers["content-disposition"]
        assert decode(download.content, strip_prefix="Demo-liberated")["app.ts"] == "api.call()"

    def test_camel_case_fields(self, client):
        payload = base64.b64encode(encode({"a.ts": "x"})).decode()
        response = client.post("/api/liberate", json={"projectName": "Demo", "file": payload, "sourceType": "archive"})
        assert response.status_code == 202

    def test_raw_zip_body(self, client):
        response = client.post(
            "/api/liberate?project_name=Raw%20Project",
            content=encode({"a.ts": "x"}),
            headers={"Content-Type": "application/zip"},
        )
        assert response.status_code == 202
        assert _wait_for(client, response.json()["id"])["project_name"] == "Raw Project"

    @pytest.mark.parametrize(
        "body",
        [
            {"file": "UEsDBA=="},
            {"project_name": "../etc", "file": "UEsDBA=="},
            {"project_name": "Demo"},
            {"project_name": "Demo", "file": "abc"},
            {"project_name": "Demo", "file": "UEsDBA==", "source_type": "ftp"},
        ],
    )
    def test_validation_errors(self, client, body):
        response = client.post("/api/liberate", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_non_json_body(self, client):
        response = client.post("/api/liberate", content=b"hello", headers={"Content-Type": "text/plain"})
        assert response.status_code == 400

    def test_oversized_raw_upload(self, services, client):
        services.config.max_upload_bytes = 16
        response = client.post(
            "/api/liberate?project_name=Demo",
            content=b"PK" + b"\x00" * 64,
            headers={"Content-Type": "application/octet-stream"},
        )
        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_declared_oversize_is_refused_before_reading(self, services):
        services.config.max_upload_bytes = 16
        request = MagicMock()
        request.headers = {"content-type": "application/zip", "content-length": "1000"}
        request.query_params = {"project_name": "Demo"}
        request.client.host = "1.2.3.4"
        request.body = AsyncMock(return_value=b"")

        response = await submit_liberation(request)

        assert response.status_code == 413
        request.body.assert_not_awaited()

    def test_rate_limited(self, client):
        for _ in range(3):
            client.post("/api/liberate", json={"project_name": "Demo"})
        response = client.post("/api/liberate", json={"project_name": "Demo"})
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1


class TestStatusAndDownload:
    def test_unknown_job(self, client):
        assert client.get("/api/liberate/audit/nope").status_code == 404
        assert client.get("/api/liberate/download/nope").status_code == 404

    def test_download_before_completion(self, services, client, advance_to):
        job = LiberationJob(project_name="Demo")
        advance_to(job, JobStatus.CLEANING)
        _seed(services, job)

        response = client.get(f"/api/liberate/download/{job.id}")
        assert response.status_code == 409
        assert response.json() == {"error": "Liberation not completed", "status": "cleaning", "progress": 50}

    def test_download_completed_job(self, services, client, advance_to):
        job = LiberationJob(project_name="Shop")
        advance_to(job, JobStatus.REBUILDING, 90)
        job.complete(f"/api/liberate/download/{job.id}")
        _seed(services, job, encode({"a.ts": "x"}, root_prefix="Shop-liberated"))

        response = client.get(f"/api/liberate/download/{job.id}")
        assert response.status_code == 200
        assert 'filename="Shop-liberated.zip"' in response.headers["content-disposition"]

    def test_completed_job_with_evicted_archive(self, services, client, advance_to):
        job = LiberationJob(project_name="Shop")
        advance_to(job, JobStatus.REBUILDING, 90)
        job.complete("/x")
        _seed(services, job)

        response = client.get(f"/api/liberate/download/{job.id}")
        assert response.status_code == 404
        assert response.json()["error"] == "Archive not found"

    def test_failed_job_status(self, services, client):
        job = LiberationJob(project_name="Demo")
        job.advance(JobStatus.SCANNING, 10)
        job.fail("Extraction failed: Invalid or corrupted zip archive")
        _seed(services, job)

        body = client.get(f"/api/liberate/audit/{job.id}").json()
        assert body["status"] == "failed"
        assert body["progress"] == 10
        assert body["error"].startswith("Extraction failed")


class TestListingAndHealth:
    def test_listing_disabled_by_default(self, client):
        assert client.get("/api/liberate/jobs").status_code == 404

    def test_listing_enabled(self, services, client):
        services.config.enable_job_listing = True
        job = LiberationJob(project_name="Demo")
        _seed(services, job)

        response = client.get("/api/liberate/jobs")
        assert response.status_code == 200
        assert [entry["id"] for entry in response.json()] == [job.id]

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["store_backend"] == "memory"
        assert body["active_jobs"] == 0
