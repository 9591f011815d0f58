"""Content rewriting for proprietary imports, symbols and marker attributes.

Rewriting is text based: known signature strings are stripped or
substituted, nothing is parsed. `Rewriter` is the seam where a syntax-aware
transformer could be plugged in without touching the job controller.
"""

import logging
import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import NamedTuple

from ..core.zip_handler import FileMap
from .models import CleanResult
from .patterns import basename, is_proprietary_file

logger = logging.getLogger("liberator.rewriter")

REMOVED_IMPORT_MARKER = "// [REMOVED] Proprietary import"

# Only these extensions are rewritten, anything else is copied as is
TEXT_EXTENSIONS = frozenset({"ts", "tsx", "js", "jsx", "json", "css", "html", "md", "yaml", "yml"})

# Line terminator lookahead keeps a trailing \r intact on CRLF files
_EOL = r"[ \t]*(?=\r?$)"

IMPORT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^import[ \t]+.*from[ \t]+['\"]@lovable/.*['\"];?" + _EOL, re.MULTILINE),
    re.compile(r"^import[ \t]+.*from[ \t]+['\"]@agent/.*['\"];?" + _EOL, re.MULTILINE),
    re.compile(r"^import[ \t]+.*from[ \t]+['\"]lovable-tagger['\"];?" + _EOL, re.MULTILINE),
    re.compile(r"^const[ \t]+\{.*\}[ \t]*=[ \t]*require\(['\"]@lovable/.*['\"]\);?" + _EOL, re.MULTILINE),
)


@dataclass(frozen=True)
class Substitution:
    pattern: re.Pattern[str]
    replacement: str


def _sub(pattern: str, replacement: str) -> Substitution:
    return Substitution(re.compile(pattern), replacement)


# Applied in order; no replacement text re-matches a later or earlier pattern
SUBSTITUTIONS: tuple[Substitution, ...] = (
    _sub(r"getAIAssistant\s*\(", "sovereignAI.createAssistant("),
    _sub(r"runAssistant\s*\(", "sovereignAI.run("),
    _sub(r"lovable\.generate\s*\(", "sovereignAI.generateCompletion("),
    _sub(r"lovableApi\.", "api."),
    _sub(r"Pattern\.Template", "createTemplateEngine()"),
    _sub(r"Pattern\.State", "createStateManager()"),
    _sub(r"EventSchema\.", "z."),
)

MARKER_ATTRIBUTES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\s+data-lov-id=(?:\"[^\"]*\"|'[^']*')"),
    re.compile(r"\s+data-lovable-[a-z-]+=(?:\"[^\"]*\"|'[^']*')"),
)

_BLANK_RUN = re.compile(r"\n{4,}")


class RewriteResult(NamedTuple):
    content: str
    modified: bool
    lines_removed: int


class Rewriter(ABC):
    """Transforms the content of one source file."""

    @abstractmethod
    def clean(self, content: str, filename: str) -> RewriteResult:
        """
        Rewrite content of the file called filename.

        Returns:
            RewriteResult with the new content, whether a proprietary
            construct was rewritten, and how many lines disappeared
        """


class RegexRewriter(Rewriter):
    """Regex-based rewriter.

    Steps run in a fixed order: import stripping, symbol substitution,
    marker attribute stripping, blank-line collapsing.
    """

    def __init__(
        self,
        import_patterns: tuple[re.Pattern[str], ...] = IMPORT_PATTERNS,
        substitutions: tuple[Substitution, ...] = SUBSTITUTIONS,
        marker_attributes: tuple[re.Pattern[str], ...] = MARKER_ATTRIBUTES,
    ) -> None:
        self.import_patterns = import_patterns
        self.substitutions = substitutions
        self.marker_attributes = marker_attributes

    def clean(self, content: str, filename: str) -> RewriteResult:
        modified = False
        original_line_count = len(content.split("\n"))

        for pattern in self.import_patterns:
            content, count = pattern.subn(REMOVED_IMPORT_MARKER, content)
            if count:
                modified = True

        for substitution in self.substitutions:
            content, count = substitution.pattern.subn(substitution.replacement, content)
            if count:
                modified = True

        # Marker attributes are cosmetic and do not count as a modification
        for pattern in self.marker_attributes:
            content = pattern.sub("", content)

        content = _BLANK_RUN.sub("\n\n\n", content)

        new_line_count = len(content.split("\n"))
        if modified:
            logger.debug(f"Rewrote {filename}")

        return RewriteResult(content, modified, max(0, original_line_count - new_line_count))


_default_rewriter = RegexRewriter()


def clean(content: str, filename: str) -> RewriteResult:
    """Rewrite content with the default regex rewriter."""
    return _default_rewriter.clean(content, filename)


def is_rewritable(path: str) -> bool:
    extension = posixpath.splitext(basename(path))[1].lstrip(".").lower()
    return extension in TEXT_EXTENSIONS


def clean_files(file_map: FileMap, rewriter: Rewriter | None = None) -> tuple[FileMap, CleanResult]:
    """Run one clean pass over a file map.

    Proprietary files are dropped, whitelisted text files are rewritten and
    every other entry is copied unchanged.

    Args:
        file_map: Decoded project files
        rewriter: Rewriter to use, defaults to the regex rewriter

    Returns:
        Tuple of (new file map, aggregate counters)
    """
    rewriter = rewriter or _default_rewriter
    cleaned: FileMap = {}
    files_processed = 0
    files_cleaned = 0
    files_removed = 0
    lines_removed = 0

    for path, content in file_map.items():
        files_processed += 1

        if is_proprietary_file(path):
            files_removed += 1
            logger.debug(f"Removed proprietary file {path}")
            continue

        if isinstance(content, str) and is_rewritable(path):
            result = rewriter.clean(content, basename(path))
            cleaned[path] = result.content
            if result.modified:
                files_cleaned += 1
            lines_removed += result.lines_removed
        else:
            cleaned[path] = content

    return cleaned, CleanResult(
        files_processed=files_processed,
        files_cleaned=files_cleaned,
        files_removed=files_removed,
        lines_removed=lines_removed,
    )
