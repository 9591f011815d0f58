"""Liberation pipeline: pattern catalog, scanner, rewriter and scaffolding."""

from .models import (
    AuditReport,
    CleanResult,
    Finding,
    JobStatus,
    LiberationJob,
    Severity,
    SourceType,
)
from .patterns import PATTERN_CATALOG, PROPRIETARY_FILES, is_proprietary_file, scan_line
from .rewriter import RegexRewriter, Rewriter, RewriteResult, clean, clean_files
from .scaffold import generate as generate_scaffold
from .scanner import ProjectScanner, scan

__all__ = [
    "AuditReport",
    "CleanResult",
    "Finding",
    "JobStatus",
    "LiberationJob",
    "Severity",
    "SourceType",
    "PATTERN_CATALOG",
    "PROPRIETARY_FILES",
    "is_proprietary_file",
    "scan_line",
    "ProjectScanner",
    "scan",
    "Rewriter",
    "RegexRewriter",
    "RewriteResult",
    "clean",
    "clean_files",
    "generate_scaffold",
]
