import asyncio
import logging
import sys
from typing import Annotated

from fastmcp import FastMCP
from pydantic import Field

from .core.config import LiberatorConfig
from .core.exceptions import ConfigurationError, InvalidInputError
from .core.logging_config import configure_job_logging
from .core.service_container import get_service_container
from .core.zip_handler import decode_base64_archive
from .http_api import ROUTES
from .jobs.controller import RESULT_HANDLE_TEMPLATE, STATUS_HANDLE_TEMPLATE
from .pipeline.models import LiberationJob

# Configure logging to stderr to avoid interfering with JSON-RPC on stdout
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(name)s %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger("liberator")

mcp: FastMCP = FastMCP("liberator")

for _path, _methods, _endpoint in ROUTES:
    mcp.custom_route(_path, methods=_methods)(_endpoint)

MAX_FINDINGS_IN_REPORT = 25


def _format_job_report(job: LiberationJob) -> str:
    """Render a job record as a markdown report."""
    lines = [
        "# Liberation Report",
        f"**Project**: {job.project_name}",
        f"**Job ID**: {job.id}",
        f"**Status**: {job.status.value} ({job.progress}%)",
        f"**Submitted**: {job.created_at.strftime('%Y-%m-%d %H:%M')}",
    ]
    if job.completed_at:
        lines.append(f"**Completed**: {job.completed_at.strftime('%Y-%m-%d %H:%M')}")

    if job.error:
        lines.extend(["", f"❌ **Error**: {job.error}"])

    report = job.audit_report
    if report is not None:
        counts = report.issue_counts
        lines.extend(
            [
                "",
                "## Portability Audit",
                f"- **Score**: {report.score}/100 (grade {report.grade})",
                f"- **Files**: {report.total_files} ({report.total_lines} lines)",
                f"- **Critical**: {counts.critical}",
                f"- **Major**: {counts.major}",
                f"- **Minor**: {counts.minor}",
                f"- **Proprietary files**: {len(report.proprietary_files)}",
            ]
        )
        for path in report.proprietary_files:
            lines.append(f"  - `{path}` (removed)")

        if report.findings:
            lines.extend(["", "## Findings"])
            for finding in report.findings[:MAX_FINDINGS_IN_REPORT]:
                lines.append(
                    f"- [{finding.severity.value.upper()}] `{finding.file}:{finding.line}` "
                    f"{finding.pattern_label} - {finding.suggestion}"
                )
            hidden = len(report.findings) - MAX_FINDINGS_IN_REPORT
            if hidden > 0:
                lines.append(f"- ... and {hidden} more")

    if job.clean_result is not None:
        result = job.clean_result
        lines.extend(
            [
                "",
                "## Cleaning",
                f"- Files processed: {result.files_processed}",
                f"- Files rewritten: {result.files_cleaned}",
                f"- Files removed: {result.files_removed}",
                f"- Lines removed: {result.lines_removed}",
            ]
        )

    if job.result_handle:
        lines.extend(["", f"**Download**: {job.result_handle}"])

    return "\n".join(lines)


@mcp.tool
async def liberate_project(
    archive_base64: Annotated[str, Field(description="Base64-encoded zip archive of the project source")],
    project_name: Annotated[
        str,
        Field(description="Project name (letters, digits, spaces, '-' and '_', max 100 characters)"),
    ],
    source_type: Annotated[
        str,
        Field(description="Where the archive came from: 'archive' or 'repo_url'"),
    ] = "archive",
) -> str:
    """Start a liberation job for a zipped project.

    The job scans the project for proprietary platform code, scores its
    portability, rewrites or removes the offending code, adds Docker
    deployment scaffolding and packages the result as a zip archive.

    Returns the job id and the status/download paths. Poll
    get_liberation_status until the job is completed or failed.
    """
    try:
        data = decode_base64_archive(archive_base64)
        job = await get_service_container().controller.submit(data, project_name, source_type=source_type)
    except InvalidInputError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(f"Error starting liberation of {project_name}: {e}")
        return f"Error: {str(e)}"

    return "\n".join(
        [
            "# Liberation Started",
            f"**Job ID**: {job.id}",
            f"**Status**: {job.status.value}",
            f"**Status URL**: {STATUS_HANDLE_TEMPLATE.format(job_id=job.id)}",
            f"**Download URL**: {RESULT_HANDLE_TEMPLATE.format(job_id=job.id)}",
        ]
    )


@mcp.tool
async def get_liberation_status(
    job_id: Annotated[str, Field(description="Job ID returned by liberate_project")],
) -> str:
    """Get the status, progress and audit report of a liberation job."""
    try:
        job = await get_service_container().controller.get_status(job_id)
    except Exception as e:
        logger.error(f"Error fetching liberation job {job_id}: {e}")
        return f"Error: {str(e)}"
    if job is None:
        return f"Error: Job not found: {job_id}"
    return _format_job_report(job)


@mcp.tool
async def list_liberation_jobs() -> str:
    """List known liberation jobs (diagnostics, disabled unless enabled in config)."""
    services = get_service_container()
    if not services.settings.enable_job_listing:
        return "Error: Job listing is disabled (set LIBERATOR_ENABLE_JOB_LISTING=1)"

    jobs = await services.controller.list_jobs()
    if not jobs:
        return "No liberation jobs."

    lines = ["# Liberation Jobs", ""]
    for job in sorted(jobs, key=lambda j: j.created_at, reverse=True):
        lines.append(f"- `{job.id}` {job.project_name}: {job.status.value} ({job.progress}%)")
    return "\n".join(lines)


def main() -> None:
    """Run the Liberator server with HTTP streaming transport."""
    try:
        config = LiberatorConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    configure_job_logging(log_file=config.log_file, log_level=config.log_level)
    get_service_container().config = config

    print("Liberator Server v0.1.0 (HTTP Streaming)", file=sys.stderr)
    print("=" * 50, file=sys.stderr)
    print(f"Job store: {config.store_backend}", file=sys.stderr)
    if config.has_supabase:
        print("Supabase configured (durable job records enabled)", file=sys.stderr)
    else:
        print("No Supabase credentials (job records are in-memory only)", file=sys.stderr)
    if config.enable_job_listing:
        print("WARNING: unauthenticated job listing is enabled", file=sys.stderr)
    print("=" * 50, file=sys.stderr)
    print(f"Liberation API: http://localhost:{config.port}/api/liberate", file=sys.stderr)
    print(f"MCP endpoint: http://localhost:{config.port}/mcp", file=sys.stderr)

    try:
        asyncio.run(mcp.run_http_async(transport="streamable-http", host=config.host, port=config.port))
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"Liberator server error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
