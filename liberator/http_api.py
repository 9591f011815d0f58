"""HTTP routes for submitting liberation jobs and fetching their results.

The handlers are plain Starlette endpoints; `server.py` mounts them on the
FastMCP HTTP app with `custom_route`.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .core.exceptions import InvalidInputError, RateLimitError
from .core.service_container import get_service_container
from .core.zip_handler import archive_filename, decode_base64_archive
from .jobs.controller import RESULT_HANDLE_TEMPLATE, STATUS_HANDLE_TEMPLATE
from .jobs.requests import parse_request
from .pipeline.models import JobStatus, LiberationJob

logger = logging.getLogger("liberator.http")

RAW_ARCHIVE_TYPES = ("application/zip", "application/x-zip-compressed", "application/octet-stream")

# Room for the JSON fields around the base64 payload
JSON_ENVELOPE_BYTES = 64 * 1024


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _content_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";")[0].strip().lower()


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _body_limit(request: Request, max_bytes: int) -> int:
    """Largest request body that can carry an archive of max_bytes."""
    if _content_type(request) in RAW_ARCHIVE_TYPES:
        return max_bytes
    return max_bytes * 4 // 3 + JSON_ENVELOPE_BYTES


def _client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def job_status_payload(job: LiberationJob) -> dict[str, Any]:
    """Status document returned by the audit endpoint."""
    return {
        "id": job.id,
        "status": job.status.value,
        "progress": job.progress,
        "project_name": job.project_name,
        "source_type": job.source_type.value,
        "audit_report": job.audit_report.model_dump(mode="json") if job.audit_report else None,
        "clean_result": job.clean_result.model_dump(mode="json") if job.clean_result else None,
        "result_url": job.result_handle,
        "created_at": job.created_at.isoformat(),
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "error": job.error,
    }


async def _read_submission(request: Request, max_bytes: int) -> tuple[bytes, dict[str, Any]]:
    if _content_type(request) in RAW_ARCHIVE_TYPES:
        data = await request.body()
        fields = {key: request.query_params[key] for key in ("project_name", "source_type", "source_url")
                  if key in request.query_params}
        parse_request(fields)
        if not data:
            raise InvalidInputError("An archive is required")
        return data, fields

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidInputError("Request body must be JSON or a zip archive") from None
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")

    # Accept the camelCase field used by older clients
    if "project_name" not in body and "projectName" in body:
        body["project_name"] = body.pop("projectName")
    if "source_type" not in body and "sourceType" in body:
        body["source_type"] = body.pop("sourceType")

    parsed = parse_request(body)
    if not parsed.file:
        raise InvalidInputError("file (base64 zip archive) is required")
    # base64 inflates by 4/3, reject oversized uploads before decoding
    if len(parsed.file) > max_bytes * 4 // 3 + 4:
        raise InvalidInputError("Archive exceeds the upload size limit")
    data = decode_base64_archive(parsed.file)
    fields = parsed.model_dump(exclude={"file"}, exclude_none=True)
    return data, fields


async def submit_liberation(request: Request) -> JSONResponse:
    """POST /api/liberate"""
    services = get_service_container()
    config = services.settings

    try:
        services.rate_limiter.check(_client_id(request))
    except RateLimitError as e:
        headers = {"Retry-After": str(int(e.retry_after or 1))}
        return JSONResponse({"error": str(e)}, status_code=429, headers=headers)

    # Refuse before reading a body the declared length already rules out
    declared = _declared_length(request)
    if declared is not None and declared > _body_limit(request, config.max_upload_bytes):
        return _error("Archive exceeds the upload size limit", 413)

    try:
        data, fields = await _read_submission(request, config.max_upload_bytes)
        if len(data) > config.max_upload_bytes:
            return _error("Archive exceeds the upload size limit", 413)
        job = await services.controller.submit(
            data,
            fields["project_name"],
            source_type=fields.get("source_type", "archive"),
            source_url=fields.get("source_url"),
        )
    except InvalidInputError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Failed to start liberation: {e}")
        return _error("Failed to start liberation", 500)

    return JSONResponse(
        {
            "id": job.id,
            "status": job.status.value,
            "message": "Liberation started",
            "status_url": STATUS_HANDLE_TEMPLATE.format(job_id=job.id),
            "download_url": RESULT_HANDLE_TEMPLATE.format(job_id=job.id),
        },
        status_code=202,
    )


async def get_audit(request: Request) -> JSONResponse:
    """GET /api/liberate/audit/{job_id}"""
    job_id = request.path_params["job_id"]
    job = await get_service_container().controller.get_status(job_id)
    if job is None:
        return _error("Job not found", 404)
    return JSONResponse(job_status_payload(job))


async def download_archive(request: Request) -> Response:
    """GET /api/liberate/download/{job_id}"""
    job_id = request.path_params["job_id"]
    job, archive = await get_service_container().controller.get_archive(job_id)
    if job is None:
        return _error("Job not found", 404)
    if job.status != JobStatus.COMPLETED:
        return _error("Liberation not completed", 409, status=job.status.value, progress=job.progress)
    if archive is None:
        return _error("Archive not found", 404)

    filename = archive_filename(job.project_name)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def list_jobs(request: Request) -> JSONResponse:
    """GET /api/liberate/jobs (diagnostics, disabled by default)"""
    services = get_service_container()
    if not services.settings.enable_job_listing:
        return _error("Not found", 404)
    jobs = await services.controller.list_jobs()
    return JSONResponse([job.summary() for job in jobs])


async def health(request: Request) -> JSONResponse:
    """GET /health"""
    services = get_service_container()
    return JSONResponse(
        {
            "status": "ok",
            "service": "liberator",
            "active_jobs": services.controller.active_jobs,
            **services.settings.summary(),
        }
    )


Endpoint = Callable[[Request], Awaitable[Response]]

ROUTES: tuple[tuple[str, list[str], Endpoint], ...] = (
    ("/api/liberate", ["POST"], submit_liberation),
    ("/api/liberate/audit/{job_id}", ["GET"], get_audit),
    ("/api/liberate/download/{job_id}", ["GET"], download_archive),
    ("/api/liberate/jobs", ["GET"], list_jobs),
    ("/health", ["GET"], health),
)


def build_routes() -> list[Route]:
    """Starlette routes for mounting outside the MCP server."""
    return [Route(path, endpoint, methods=methods) for path, methods, endpoint in ROUTES]
