"""
Batch analysis of a local directory of retrieved files.
"""

import logging
import os
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pathspec

from scml.core.addresses import matches_extensions, normalize_extensions
from scml.core.rules import MatchResult, SensitivityReport, SensitivityRuleEngine, generate_report
from scml.services.download_models import MANIFEST_NAME, PARTIAL_SUFFIX
from scml.services.report_writers import (
    CLEANUP_BAT_NAME,
    CLEANUP_PS1_NAME,
    FINDINGS_CSV_NAME,
    REPORT_NAME,
    write_cleanup_scripts,
    write_findings_csv,
    write_text_report,
)
from scml.services.statistics import RunStatistics

logger = logging.getLogger(__name__)

# Artifacts this package writes into the directories it analyses.
OWN_ARTIFACTS = (
    REPORT_NAME,
    FINDINGS_CSV_NAME,
    CLEANUP_BAT_NAME,
    CLEANUP_PS1_NAME,
    MANIFEST_NAME,
    f"*{PARTIAL_SUFFIX}",
)


@dataclass
class AnalysisResult:
    """
    Outcome of one analysis pass.

    Attributes:
        files_analysed: Files evaluated against the rules
        files_skipped: Files skipped (unreadable, too large, unresolved)
        results: Every match result produced
        report: Aggregate report over ``results``
        output_files: Paths of the reports and scripts written
        duration_seconds: Wall-clock duration
    """

    files_analysed: int = 0
    files_skipped: int = 0
    results: list[MatchResult] = field(default_factory=list)
    report: SensitivityReport = field(default_factory=SensitivityReport)
    output_files: list[Path] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def files_with_findings(self) -> int:
        return self.report.total_files


class BatchAnalysisService:
    """Runs the rule engine over a local tree and writes the reports."""

    def __init__(
        self,
        engine: Optional[SensitivityRuleEngine] = None,
        ignore_patterns: Optional[Iterable[str]] = None,
        statistics: Optional[RunStatistics] = None,
        progress_interval: int = 100,
    ):
        """
        Initialize the batch analyzer.

        Args:
            engine: Rule engine, defaults to one over the built-in rules
            ignore_patterns: Gitignore-style patterns of paths to skip
            statistics: Run statistics to update
            progress_interval: Files between progress log lines
        """
        self._engine = engine or SensitivityRuleEngine()
        self._ignore_patterns = list(dict.fromkeys([*(ignore_patterns or ()), *OWN_ARTIFACTS]))
        self._pathspec = pathspec.PathSpec.from_lines(
            pathspec.patterns.GitWildMatchPattern, self._ignore_patterns
        )
        self._statistics = statistics or RunStatistics()
        self._progress_interval = max(1, progress_interval)

    @property
    def ignore_patterns(self) -> list[str]:
        return list(self._ignore_patterns)

    def iter_files(self, root: Path, extensions: Iterable[str] = ()) -> Iterator[Path]:
        """Walk ``root`` in a stable order, skipping ignored paths."""
        wanted = normalize_extensions(extensions)
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            dirnames[:] = sorted(d for d in dirnames if not self._is_ignored(current / d, root, True))
            for name in sorted(filenames):
                path = current / name
                if self._is_ignored(path, root, False):
                    continue
                if wanted and not matches_extensions(name, wanted):
                    continue
                yield path

    def _is_ignored(self, path: Path, root: Path, is_dir: bool) -> bool:
        rel = path.relative_to(root).as_posix()
        if is_dir:
            return self._pathspec.match_file(rel) or self._pathspec.match_file(rel + "/")
        return self._pathspec.match_file(rel)

    def analyse_directory(
        self,
        directory: Path | str,
        output_dir: Optional[Path | str] = None,
        extensions: Iterable[str] = (),
    ) -> AnalysisResult:
        """
        Analyse every file under ``directory`` and write the reports.

        Args:
            directory: Local directory to analyse
            output_dir: Where reports go, defaults to ``directory``
            extensions: Optional extension filter, empty analyses everything

        Returns:
            AnalysisResult with the report and the paths written

        Raises:
            FileNotFoundError: If ``directory`` does not exist
            OSError: If a report cannot be written
        """
        start = time.monotonic()
        root = Path(directory)
        if not root.is_dir():
            raise FileNotFoundError(f"Directory not found: {root}")
        out = Path(output_dir) if output_dir is not None else root
        out.mkdir(parents=True, exist_ok=True)

        logger.info(f"Analysing files in {root}")
        result = AnalysisResult()
        for path in self.iter_files(root, extensions):
            matches = self._engine.analyse_file(path)
            result.files_analysed += 1
            self._statistics.increment("files_analysed")
            if matches:
                result.results.extend(matches)
                self._statistics.increment("files_with_findings")
                self._statistics.record_matches([m.severity for m in matches])
            if result.files_analysed % self._progress_interval == 0:
                logger.info(f"Analysed {result.files_analysed} files...")

        result.report = generate_report(result.results)
        if result.results:
            result.output_files.append(
                write_text_report(out / REPORT_NAME, result.report, result.results, root)
            )
            result.output_files.append(
                write_findings_csv(out / FINDINGS_CSV_NAME, result.results, root)
            )
            result.output_files.extend(write_cleanup_scripts(out, result.report))
        else:
            logger.info("No sensitive content found")

        result.duration_seconds = time.monotonic() - start
        logger.info(
            f"Analysis complete: {result.files_analysed} files, "
            f"{result.report.total_matches} matches in {result.report.total_files} files, "
            f"risk score {result.report.overall_risk_score}/100",
            extra={"duration_seconds": result.duration_seconds},
        )
        return result
