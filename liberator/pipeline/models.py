"""Pydantic models for liberation audits, clean passes and jobs.

This module defines the records produced by the scanner and the rewriter,
and the job record owned by the job controller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..core.exceptions import InvalidTransitionError


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class SourceType(str, Enum):
    ARCHIVE = "archive"
    REPO_URL = "repo_url"


class JobStatus(str, Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    AUDITING = "auditing"
    CLEANING = "cleaning"
    REBUILDING = "rebuilding"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Forward-only order of the successful path
PHASE_ORDER: tuple[JobStatus, ...] = (
    JobStatus.PENDING,
    JobStatus.SCANNING,
    JobStatus.AUDITING,
    JobStatus.CLEANING,
    JobStatus.REBUILDING,
    JobStatus.COMPLETED,
)

# Score penalties per finding severity and per proprietary file
SEVERITY_PENALTY = {Severity.CRITICAL: 10, Severity.MAJOR: 5, Severity.MINOR: 1}
PROPRIETARY_FILE_PENALTY = 15

GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def compute_score(critical: int, major: int, minor: int, proprietary_files: int) -> int:
    """Portability score, clamped to [0, 100]."""
    score = (
        100
        - SEVERITY_PENALTY[Severity.CRITICAL] * critical
        - SEVERITY_PENALTY[Severity.MAJOR] * major
        - SEVERITY_PENALTY[Severity.MINOR] * minor
        - PROPRIETARY_FILE_PENALTY * proprietary_files
    )
    return max(0, min(100, score))


def grade_for_score(score: int) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Finding(BaseModel):
    """A single detected occurrence of a proprietary pattern.

    Attributes:
        file: Relative path of the file inside the project.
        line: 1-based line number of the match.
        pattern_label: Human label of the catalog rule that matched.
        severity: Severity of the rule.
        suggestion: Suggested replacement for the matched code.
    """

    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(ge=1)
    pattern_label: str
    severity: Severity
    suggestion: str


class IssueCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    critical: int = 0
    major: int = 0
    minor: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.major + self.minor


class AuditReport(BaseModel):
    """Aggregate scoring and finding list for one project.

    Attributes:
        score: Portability score between 0 and 100.
        grade: Letter grade derived from the score.
        total_files: Number of files in the project, proprietary ones included.
        total_lines: Number of text lines scanned.
        issue_counts: Findings per severity.
        findings: Every finding in file then line order.
        proprietary_files: Paths of files flagged for removal.
    """

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    grade: str
    total_files: int = 0
    total_lines: int = 0
    issue_counts: IssueCounts = Field(default_factory=IssueCounts)
    findings: list[Finding] = Field(default_factory=list)
    proprietary_files: list[str] = Field(default_factory=list)

    @classmethod
    def from_findings(
        cls,
        findings: list[Finding],
        proprietary_files: list[str],
        total_files: int,
        total_lines: int,
    ) -> AuditReport:
        counts = IssueCounts(
            critical=sum(1 for f in findings if f.severity == Severity.CRITICAL),
            major=sum(1 for f in findings if f.severity == Severity.MAJOR),
            minor=sum(1 for f in findings if f.severity == Severity.MINOR),
        )
        score = compute_score(counts.critical, counts.major, counts.minor, len(proprietary_files))
        return cls(
            score=score,
            grade=grade_for_score(score),
            total_files=total_files,
            total_lines=total_lines,
            issue_counts=counts,
            findings=list(findings),
            proprietary_files=list(proprietary_files),
        )


class CleanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    files_processed: int = 0
    files_cleaned: int = 0
    files_removed: int = 0
    lines_removed: int = 0


class LiberationJob(BaseModel):
    """One run of the scan, audit, clean and rebuild pipeline.

    The record is mutated only by the job controller through `advance`,
    `complete` and `fail`, which enforce the forward-only phase order and
    freeze the record once it reaches a terminal status.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    project_name: str
    source_type: SourceType = SourceType.ARCHIVE
    source_url: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    audit_report: AuditReport | None = None
    clean_result: CleanResult | None = None
    result_handle: str | None = None
    error: str | None = None

    def _ensure_mutable(self, target: JobStatus) -> None:
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Job {self.id} is already {self.status.value}",
                current=self.status.value,
                target=target.value,
            )

    def advance(self, status: JobStatus, progress: int) -> None:
        """Move to the next phase, or stay in the current one with more progress.

        Raises:
            InvalidTransitionError: If the job is terminal, the move skips or
                revisits a phase, or progress does not increase
        """
        self._ensure_mutable(status)
        if status == JobStatus.FAILED:
            raise InvalidTransitionError("Use fail() to fail a job", self.status.value, status.value)
        current_index = PHASE_ORDER.index(self.status)
        target_index = PHASE_ORDER.index(status)
        if target_index not in (current_index, current_index + 1) or progress <= self.progress:
            raise InvalidTransitionError(
                f"Cannot move job {self.id} from {self.status.value} ({self.progress}%) "
                f"to {status.value} ({progress}%)",
                current=self.status.value,
                target=status.value,
            )
        self.status = status
        self.progress = progress

    def complete(self, result_handle: str) -> None:
        self.advance(JobStatus.COMPLETED, 100)
        self.result_handle = result_handle
        self.completed_at = _utcnow()

    def fail(self, error: str) -> None:
        """Fail the job, keeping progress at its last checkpoint."""
        self._ensure_mutable(JobStatus.FAILED)
        self.status = JobStatus.FAILED
        self.error = error

    def summary(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "project_name": self.project_name,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
