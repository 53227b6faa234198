"""
Sensitivity rule engine.

Evaluates the rule registry against a file: name, extension and path rules
always, content rules only for text files under the size ceiling. Content
matches carry a masked preview and a few lines of context.
"""

import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Optional, Union

from scml.core.addresses import LogicalFileAddress
from scml.core.rules.definitions import TEXT_FILE_EXTENSIONS
from scml.core.rules.models import (
    DEFAULT_MAX_CONTENT_BYTES,
    MatchResult,
    MatchScope,
    RuleMatchSummary,
    SensitivityReport,
    Severity,
    SeverityFindings,
    SnafflerRule,
)
from scml.core.rules.registry import RuleRegistry, get_default_rule_registry

logger = logging.getLogger(__name__)

MASK = "***MASKED***"
PREVIEW_LENGTH = 50

_SECRET_ASSIGNMENT = re.compile(r"(password|pwd|key|token|secret)\s*[:=]\s*\S+", re.IGNORECASE)
_QUOTED_VALUE = re.compile(r"['\"].*['\"]")
_ASSIGNED_VALUE = re.compile(r"=\s*\S+")

SEVERITY_WEIGHTS = {
    Severity.BLACK: 100,
    Severity.RED: 50,
    Severity.YELLOW: 20,
    Severity.GREEN: 5,
}


def mask_secret(text: str) -> str:
    """Truncate a matched value and mask anything that looks like a credential."""
    if len(text) > PREVIEW_LENGTH:
        text = text[:PREVIEW_LENGTH] + "..."
    return _SECRET_ASSIGNMENT.sub(lambda m: f"{m.group(1)}={MASK}", text)


def content_score(base_score: int, matched_value: str) -> int:
    """Base score plus bonuses for long, quoted or assigned values, capped at 100."""
    bonus = 0
    if len(matched_value) > 50:
        bonus += 10
    elif len(matched_value) > 30:
        bonus += 5
    if _QUOTED_VALUE.search(matched_value):
        bonus += 5
    if _ASSIGNED_VALUE.search(matched_value):
        bonus += 5
    return min(100, base_score + bonus)


def _extension_of(name: str) -> str:
    """Lower-case extension with its dot, or empty string."""
    suffix = Path(name).suffix
    return suffix.lower()


class SensitivityRuleEngine:
    """Scope-aware pattern matcher and severity scorer."""

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES,
        context_lines: int = 2,
        context_width: int = 100,
        text_extensions: Iterable[str] = TEXT_FILE_EXTENSIONS,
    ):
        """
        Initialize the engine.

        Args:
            registry: Rules to evaluate, defaults to the built-in registry
            max_content_bytes: Files at or above this size are not content-scanned
            context_lines: Lines of context captured either side of a content match
            context_width: Each context line is truncated to this many characters
            text_extensions: Extensions (no dot) whose content is scanned
        """
        self._registry = registry or get_default_rule_registry()
        self._max_content_bytes = max_content_bytes
        self._context_lines = context_lines
        self._context_width = context_width
        self._text_extensions = frozenset(e.lower().lstrip(".") for e in text_extensions)

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def max_content_bytes(self) -> int:
        return self._max_content_bytes

    def is_text_file(self, name: str) -> bool:
        return _extension_of(name).lstrip(".") in self._text_extensions

    def analyse_file(self, path: Path | str) -> list[MatchResult]:
        """
        Analyse a local file.

        Errors reading the file are logged and yield only the path matches
        that could be computed.
        """
        path = Path(path)
        results = self.match_path(str(path), path.name)

        try:
            size = path.stat().st_size
        except OSError as e:
            logger.warning(f"Cannot stat {path}: {e}")
            return results

        if not self.is_text_file(path.name):
            return results
        if size >= self._max_content_bytes:
            logger.debug(f"Skipping content scan of {path} ({size} bytes over ceiling)")
            return results

        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Error reading content of {path}: {e}")
            return results

        results.extend(self.match_content(str(path), text.splitlines(), size))
        return results

    def analyse_remote(
        self,
        address: Union[LogicalFileAddress, str],
        data: Optional[bytes] = None,
    ) -> list[MatchResult]:
        """
        Analyse a remote file from its logical address and in-memory bytes.

        Path rules use the logical address. Content rules only look at ``data``
        when it is given; nothing is fetched here.
        """
        if isinstance(address, str):
            address = LogicalFileAddress.parse(address)
        display = str(address)
        results = self.match_path(display, address.name)

        if data is None or not self.is_text_file(address.name):
            return results
        if len(data) >= self._max_content_bytes:
            logger.debug(f"Skipping content scan of {display} ({len(data)} bytes over ceiling)")
            return results

        text = data.decode("utf-8", errors="replace")
        results.extend(self.match_content(display, text.splitlines(), len(data)))
        return results

    def match_path(self, full_path: str, name: str) -> list[MatchResult]:
        """Evaluate name, extension and path rules."""
        targets = {
            MatchScope.FILE_NAME: name,
            MatchScope.FILE_EXTENSION: _extension_of(name),
            MatchScope.FILE_PATH: full_path,
        }
        results = []
        for rule in self._registry.path_rules:
            target = targets[rule.scope]
            if not target:
                continue
            for pattern in rule.compiled_patterns:
                if pattern.search(target):
                    results.append(
                        MatchResult(
                            file_path=full_path,
                            rule=rule,
                            matched_pattern=pattern.pattern,
                            matched_text=target,
                            severity=rule.severity,
                            score=rule.base_score,
                        )
                    )
                    logger.debug(f"[{rule.severity.name}] {name} matched {rule.name}")
        return results

    def match_content(
        self, file_path: str, lines: Sequence[str], size: int = 0
    ) -> list[MatchResult]:
        """Evaluate content rules line by line. One result per regex match."""
        results = []
        rules = [r for r in self._registry.content_rules if size < r.max_content_bytes]

        for index, line in enumerate(lines):
            for rule in rules:
                for pattern in rule.compiled_patterns:
                    for match in pattern.finditer(line):
                        results.append(
                            self._content_result(file_path, rule, pattern, match, lines, index)
                        )
        return results

    def _content_result(
        self,
        file_path: str,
        rule: SnafflerRule,
        pattern: re.Pattern,
        match: re.Match,
        lines: Sequence[str],
        index: int,
    ) -> MatchResult:
        value = match.group(0)
        return MatchResult(
            file_path=file_path,
            rule=rule,
            matched_pattern=pattern.pattern,
            matched_text=mask_secret(value),
            severity=rule.severity,
            score=content_score(rule.base_score, value),
            line_number=index + 1,
            context=self._context(lines, index),
        )

    def _context(self, lines: Sequence[str], index: int) -> str:
        start = max(0, index - self._context_lines)
        end = min(len(lines) - 1, index + self._context_lines)
        rendered = []
        for i in range(start, end + 1):
            text = lines[i]
            if len(text) > self._context_width:
                text = text[: self._context_width] + "..."
            prefix = ">>> " if i == index else "    "
            rendered.append(f"{prefix}Line {i + 1}: {text}")
        return "\n".join(rendered)


def generate_report(results: Iterable[MatchResult]) -> SensitivityReport:
    """
    Aggregate match results.

    Severity groups are ordered most severe first; rules within a group by
    match count, descending.
    """
    results = list(results)
    report = SensitivityReport()
    if not results:
        return report

    by_severity: dict[Severity, list[MatchResult]] = defaultdict(list)
    for result in results:
        by_severity[result.severity].append(result)
        current = report.file_max_severity.get(result.file_path)
        if current is None or result.severity > current:
            report.file_max_severity[result.file_path] = result.severity

    for severity in sorted(by_severity, reverse=True):
        group = by_severity[severity]
        findings = SeverityFindings(
            severity=severity,
            count=len(group),
            total_score=sum(r.score for r in group),
        )

        by_rule: dict[str, list[MatchResult]] = defaultdict(list)
        for result in group:
            by_rule[result.rule_name].append(result)

        for rule_name, matches in sorted(by_rule.items(), key=lambda kv: len(kv[1]), reverse=True):
            findings.rule_matches.append(
                RuleMatchSummary(
                    rule_name=rule_name,
                    description=matches[0].rule.description,
                    match_count=len(matches),
                    files=list(dict.fromkeys(m.file_path for m in matches)),
                    total_score=sum(m.score for m in matches),
                )
            )
        report.findings.append(findings)

    report.overall_risk_score = overall_risk(results)
    report.total_files = len(report.file_max_severity)
    report.total_matches = len(results)
    return report


def overall_risk(results: Sequence[MatchResult]) -> int:
    """min(100, (100*black + 50*red + 20*yellow + 5*green) / 10)."""
    weighted = sum(SEVERITY_WEIGHTS[r.severity] for r in results)
    return min(100, weighted // 10)
