"""Scanner producing the portability audit of a project."""

import logging

from ..core.zip_handler import FileMap
from .models import AuditReport, Finding
from .patterns import PATTERN_CATALOG, PatternRule, is_proprietary_file, scan_line

logger = logging.getLogger("liberator.scanner")


class ProjectScanner:
    """Applies the pattern catalog to every text file of a file map."""

    def __init__(self, catalog: tuple[PatternRule, ...] = PATTERN_CATALOG) -> None:
        self.catalog = catalog

    def scan(self, file_map: FileMap) -> AuditReport:
        """Scan a file map and build its audit report.

        Proprietary files are recorded and not scanned. Entries that could
        not be decoded as text are counted but treated as opaque.

        Args:
            file_map: Relative path -> file content

        Returns:
            Immutable audit report with score and grade
        """
        findings: list[Finding] = []
        proprietary_files: list[str] = []
        total_files = 0
        total_lines = 0

        for path, content in file_map.items():
            total_files += 1

            if is_proprietary_file(path):
                proprietary_files.append(path)
                continue

            if not isinstance(content, str):
                continue

            lines = content.split("\n")
            total_lines += len(lines)

            for line_number, line in enumerate(lines, start=1):
                for match in scan_line(line, self.catalog):
                    findings.append(
                        Finding(
                            file=path,
                            line=line_number,
                            pattern_label=match.label,
                            severity=match.severity,
                            suggestion=match.suggestion,
                        )
                    )

        report = AuditReport.from_findings(findings, proprietary_files, total_files, total_lines)
        logger.debug(
            f"Scanned {total_files} files ({total_lines} lines): "
            f"{len(findings)} findings, {len(proprietary_files)} proprietary files, score {report.score}"
        )
        return report


def scan(file_map: FileMap) -> AuditReport:
    """Scan with the default catalog."""
    return ProjectScanner().scan(file_map)
