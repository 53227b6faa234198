"""
Data models for sensitivity rules and their findings.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024


class Severity(IntEnum):
    """Ordered sensitivity levels. Higher is worse."""

    GREEN = 0
    YELLOW = 1
    RED = 2
    BLACK = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


class MatchScope(str, Enum):
    """What part of a file a rule is matched against."""

    FILE_NAME = "file_name"
    FILE_EXTENSION = "file_extension"
    FILE_PATH = "file_path"
    FILE_CONTENT = "file_content"

    @property
    def is_content(self) -> bool:
        return self is MatchScope.FILE_CONTENT


@dataclass(frozen=True)
class SnafflerRule:
    """
    A named classification rule.

    Patterns are compiled once, when the rule is constructed.

    Attributes:
        name: Unique rule name
        description: Human-readable description of what the rule flags
        scope: Part of the file the patterns are matched against
        patterns: Regular expression sources
        severity: Severity assigned to every match
        base_score: Score before content bonuses
        case_sensitive: Whether the patterns are case-sensitive
        max_content_bytes: Files larger than this are not content-scanned
    """

    name: str
    description: str
    scope: MatchScope
    patterns: tuple[str, ...]
    severity: Severity
    base_score: int
    case_sensitive: bool = False
    max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES
    compiled_patterns: tuple[re.Pattern, ...] = field(
        init=False, repr=False, compare=False, default=()
    )

    def __post_init__(self) -> None:
        flags = 0 if self.case_sensitive else re.IGNORECASE
        compiled = tuple(re.compile(p, flags) for p in self.patterns)
        object.__setattr__(self, "compiled_patterns", compiled)


@dataclass(frozen=True)
class MatchResult:
    """One rule firing against one file (and, for content rules, one line)."""

    file_path: str
    rule: SnafflerRule
    matched_pattern: str
    matched_text: str
    severity: Severity
    score: int
    line_number: Optional[int] = None
    context: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def rule_name(self) -> str:
        return self.rule.name

    @property
    def is_content_match(self) -> bool:
        return self.line_number is not None


@dataclass
class RuleMatchSummary:
    """Matches of a single rule within one severity group."""

    rule_name: str
    description: str
    match_count: int
    files: list[str]
    total_score: int


@dataclass
class SeverityFindings:
    """All matches of one severity, grouped per rule."""

    severity: Severity
    count: int
    total_score: int
    rule_matches: list[RuleMatchSummary] = field(default_factory=list)


@dataclass
class SensitivityReport:
    """
    Aggregate over a set of match results.

    Attributes:
        overall_risk_score: 0-100 weighted by severity counts
        total_files: Distinct files with at least one finding
        total_matches: Number of match results
        findings: One entry per severity present, most severe first
        file_max_severity: Highest severity recorded per file
    """

    overall_risk_score: int = 0
    total_files: int = 0
    total_matches: int = 0
    findings: list[SeverityFindings] = field(default_factory=list)
    file_max_severity: dict[str, Severity] = field(default_factory=dict)

    def files_with_severity(self, severity: Severity) -> list[str]:
        """Files whose highest recorded severity is exactly ``severity``."""
        return [f for f, s in self.file_max_severity.items() if s is severity]

    @property
    def risk_rating(self) -> str:
        score = self.overall_risk_score
        if score >= 80:
            return "CRITICAL - Immediate cleanup required"
        if score >= 60:
            return "HIGH - Significant sensitive data found"
        if score >= 40:
            return "MEDIUM - Some sensitive data present"
        if score >= 20:
            return "LOW - Minor sensitive data detected"
        return "MINIMAL - No significant sensitive data"
