"""Catalog of proprietary platform signatures.

Each rule pairs a regular expression with a label, a severity and a
suggested replacement. Rules are evaluated independently, so a single line
can match several of them.
"""

import posixpath
import re
from dataclasses import dataclass
from typing import NamedTuple

from .models import Severity


@dataclass(frozen=True)
class PatternRule:
    """A detection rule for one proprietary signature."""
    matcher: re.Pattern[str]
    label: str
    severity: Severity
    suggestion: str

    def matches(self, line: str) -> bool:
        return self.matcher.search(line) is not None


class PatternMatch(NamedTuple):
    label: str
    severity: Severity
    suggestion: str


def _rule(pattern: str, label: str, severity: Severity, suggestion: str) -> PatternRule:
    return PatternRule(re.compile(pattern), label, severity, suggestion)


PATTERN_CATALOG: tuple[PatternRule, ...] = (
    # Critical
    _rule(r"lovable\.generate\s*\(", "lovable.generate()", Severity.CRITICAL,
          "Replace with sovereignAI.generateCompletion()"),
    _rule(r"getAIAssistant\s*\(", "getAIAssistant()", Severity.CRITICAL,
          "Replace with sovereignAI.createAssistant()"),
    _rule(r"runAssistant\s*\(", "runAssistant()", Severity.CRITICAL,
          "Replace with sovereignAI.run()"),
    _rule(r"@agent/[a-zA-Z-]+", "@agent/* packages", Severity.CRITICAL,
          "Remove agent packages"),

    # Major
    _rule(r"lovableApi\s*[.(]", "lovableApi", Severity.MAJOR,
          "Use a standard REST API client"),
    _rule(r"@lovable/[a-zA-Z-]+", "@lovable/* packages", Severity.MAJOR,
          "Replace with standard npm packages"),
    _rule(r"lovable-tagger", "lovable-tagger", Severity.MAJOR,
          "Remove"),
    _rule(r"from\s+['\"]@/integrations/supabase", "Supabase auto-gen", Severity.MAJOR,
          "Use a standard Supabase client"),
    _rule(r"EventSchema\s*[.(]", "EventSchema", Severity.MAJOR,
          "Use Zod"),
    _rule(r"Pattern\.[A-Z]", "Pattern.*", Severity.MAJOR,
          "Implement locally"),

    # Minor
    _rule(r"data-lov-id", "data-lov-id", Severity.MINOR,
          "Remove attribute"),
    _rule(r"data-lovable-[a-z-]+", "data-lovable-*", Severity.MINOR,
          "Remove attributes"),
    _rule(r"//\s*@lovable-", "@lovable- annotations", Severity.MINOR,
          "Remove comments"),
)

# Vendor lock-in files removed outright, compared case-insensitively
PROPRIETARY_FILES: frozenset[str] = frozenset(
    name.lower()
    for name in (
        "lovable.config.ts",
        "lovable.config.js",
        "lovable.config.json",
        ".lovable",
        ".lovablerc",
        "lovable-lock.json",
        ".agent",
        "agent.config.ts",
        "__lovable__",
    )
)


def scan_line(line: str, catalog: tuple[PatternRule, ...] = PATTERN_CATALOG) -> list[PatternMatch]:
    """Return every rule matching line, in catalog order."""
    return [
        PatternMatch(rule.label, rule.severity, rule.suggestion)
        for rule in catalog
        if rule.matches(line)
    ]


def basename(path: str) -> str:
    return posixpath.basename(path.replace("\\", "/"))


def is_proprietary_file(path: str) -> bool:
    """Check whether a path's basename is a known proprietary file."""
    return basename(path).lower() in PROPRIETARY_FILES
