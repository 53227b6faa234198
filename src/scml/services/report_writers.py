"""
Report writers for analysis results.

Produces the severity-grouped text report, the flat findings CSV, the two
cleanup scripts (generated, never executed) and the incremental writer used
by in-place analysis.
"""

import csv
import logging
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from scml.core.rules import MatchResult, SensitivityReport, Severity

logger = logging.getLogger(__name__)

REPORT_NAME = "snaffler_analysis_report.txt"
FINDINGS_CSV_NAME = "snaffler_analysis_findings.csv"
CLEANUP_BAT_NAME = "cleanup_sensitive_files.bat"
CLEANUP_PS1_NAME = "cleanup_sensitive_files.ps1"

BATCH_CSV_HEADER = ("File", "Severity", "Rule", "Description", "Score", "Line", "MatchedText")
INPLACE_CSV_HEADER = BATCH_CSV_HEADER + ("Context",)

RULE_WIDTH = 70
MAX_CSV_TEXT = 500


def severity_tag(severity: Severity) -> str:
    """Fixed-width tag used in text reports."""
    return f"{severity.name:<6}"


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _display_path(file_path: str, base_dir: Optional[Path]) -> str:
    if base_dir is None:
        return file_path
    try:
        return str(Path(file_path).relative_to(base_dir))
    except ValueError:
        return file_path


def _line_value(result: MatchResult) -> str:
    return str(result.line_number) if result.line_number is not None else ""


def write_text_report(
    path: Path,
    report: SensitivityReport,
    results: Sequence[MatchResult],
    base_dir: Optional[Path] = None,
) -> Path:
    """
    Write the human-readable report.

    The summary lists severity groups most severe first; the detail section
    has one block per file, worst files first.
    """
    with open(path, "w", encoding="utf-8") as out:
        out.write("Content Library Sensitivity Analysis Report\n")
        out.write(f"Generated: {_timestamp()}\n")
        out.write("=" * RULE_WIDTH + "\n\n")
        out.write(f"Overall Risk Score: {report.overall_risk_score}/100\n")
        out.write(f"Risk Assessment: {report.risk_rating}\n")
        out.write(f"Total Files with Findings: {report.total_files}\n")
        out.write(f"Total Sensitivity Matches: {report.total_matches}\n\n")

        for findings in report.findings:
            out.write(
                f"[{severity_tag(findings.severity)}] {findings.count} matches "
                f"(Score: {findings.total_score})\n"
            )
            for rule in findings.rule_matches:
                out.write(
                    f"  - {rule.rule_name}: {rule.match_count} matches "
                    f"in {len(rule.files)} file(s)\n"
                )
        out.write("\n")

        by_file: dict[str, list[MatchResult]] = defaultdict(list)
        for result in results:
            by_file[result.file_path].append(result)

        ordered = sorted(
            by_file.items(),
            key=lambda kv: (max(r.severity for r in kv[1]), sum(r.score for r in kv[1])),
            reverse=True,
        )
        for file_path, matches in ordered:
            out.write("-" * RULE_WIDTH + "\n")
            out.write(f"File: {_display_path(file_path, base_dir)}\n")
            out.write(f"Full Path: {file_path}\n")
            out.write(f"Maximum Severity: {max(r.severity for r in matches).label}\n")
            out.write(f"Total Score: {sum(r.score for r in matches)}\n")
            out.write("Matches:\n")
            for match in sorted(matches, key=lambda r: r.severity, reverse=True):
                _write_match(out, match, indent="  ")
    logger.info(f"Detailed report saved to: {path}")
    return path


def _write_match(out: TextIO, match: MatchResult, indent: str) -> None:
    out.write(f"{indent}[{severity_tag(match.severity)}] Rule: {match.rule_name}\n")
    out.write(f"{indent}     Description: {match.rule.description}\n")
    if match.line_number is not None:
        out.write(f"{indent}     Line: {match.line_number}\n")
        out.write(f"{indent}     Match: {match.matched_text}\n")
        if match.context:
            out.write(f"{indent}     Context:\n")
            for line in match.context.splitlines():
                if line.strip():
                    out.write(f"{indent}       {line.rstrip()}\n")
    out.write("\n")


def _csv_row(result: MatchResult, display: str, with_context: bool) -> list[str]:
    text = result.matched_text
    if len(text) > MAX_CSV_TEXT:
        text = text[:MAX_CSV_TEXT] + "..."
    row = [
        display,
        result.severity.name,
        result.rule_name,
        result.rule.description,
        str(result.score),
        _line_value(result),
        text,
    ]
    if with_context:
        row.append(result.context or "")
    return row


def write_findings_csv(
    path: Path,
    results: Iterable[MatchResult],
    base_dir: Optional[Path] = None,
) -> Path:
    """Write every match as one CSV row, most severe first."""
    ordered = sorted(results, key=lambda r: r.severity, reverse=True)
    with open(path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
        writer.writerow(BATCH_CSV_HEADER)
        for result in ordered:
            writer.writerow(_csv_row(result, _display_path(result.file_path, base_dir), False))
    logger.info(f"CSV findings saved to: {path}")
    return path


def _cleanup_targets(report: SensitivityReport) -> tuple[list[str], list[str]]:
    """Black files to delete and Red files (not also Black) to review."""
    critical = sorted(report.files_with_severity(Severity.BLACK))
    review = sorted(report.files_with_severity(Severity.RED))
    return critical, review


def render_batch_script(report: SensitivityReport) -> str:
    critical, review = _cleanup_targets(report)
    lines = [
        "@echo off",
        "REM Cleanup script for sensitive files",
        f"REM Generated: {_timestamp()}",
        "REM Review before running. Deletions prompt for confirmation.",
        "",
        "echo ========================================",
        "echo    SENSITIVE FILE CLEANUP SCRIPT",
        "echo ========================================",
    ]
    if critical:
        lines += [
            "",
            "echo.",
            "echo [CRITICAL] Files with BLACK severity rating:",
            "echo These files contain highly sensitive data and should be removed!",
            "pause",
        ]
        lines += [f'del /P "{f}"' for f in critical]
    if review:
        lines += [
            "",
            "echo.",
            "echo [HIGH RISK] Files with RED severity rating:",
            "echo These files contain sensitive data and should be reviewed manually.",
        ]
        lines += [f'REM del "{f}"' for f in review]
    lines += ["", "echo Cleanup complete!", "pause", ""]
    return "\r\n".join(lines)


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def render_powershell_script(report: SensitivityReport) -> str:
    critical, review = _cleanup_targets(report)
    lines = [
        "# Sensitive File Cleanup Script",
        f"# Generated: {_timestamp()}",
        "# Review before running. Each deletion asks for confirmation.",
        "",
        "Write-Host '========================================' -ForegroundColor Cyan",
        "Write-Host '   SENSITIVE FILE CLEANUP SCRIPT' -ForegroundColor Cyan",
        "Write-Host '========================================' -ForegroundColor Cyan",
    ]
    if critical:
        lines += [
            "",
            "Write-Host '[CRITICAL FILES - BLACK SEVERITY]' -ForegroundColor Red",
            "$criticalFiles = @(",
        ]
        lines += [f"    {_ps_quote(f)}" for f in critical]
        lines += [
            ")",
            "",
            "foreach ($file in $criticalFiles) {",
            "    if (Test-Path -LiteralPath $file) {",
            "        Write-Host \"Found: $file\" -ForegroundColor Yellow",
            "        $response = Read-Host 'Delete this file? (Y/N)'",
            "        if ($response -eq 'Y') {",
            "            Remove-Item -LiteralPath $file -Force",
            "            Write-Host 'File deleted!' -ForegroundColor Green",
            "        }",
            "    }",
            "}",
        ]
    if review:
        lines += [
            "",
            "Write-Host '[HIGH RISK FILES - RED SEVERITY]' -ForegroundColor DarkRed",
            "Write-Host 'Review these files manually:' -ForegroundColor DarkRed",
        ]
        lines += [f"# Remove-Item -LiteralPath {_ps_quote(f)}" for f in review]
    lines += [
        "",
        "Write-Host 'Cleanup process complete!' -ForegroundColor Green",
        "Read-Host 'Press Enter to exit'",
        "",
    ]
    return "\n".join(lines)


def write_cleanup_scripts(output_dir: Path, report: SensitivityReport) -> tuple[Path, Path]:
    """Write the .bat and .ps1 cleanup scripts. They are never executed here."""
    bat_path = output_dir / CLEANUP_BAT_NAME
    ps1_path = output_dir / CLEANUP_PS1_NAME
    bat_path.write_text(render_batch_script(report), encoding="utf-8", newline="")
    ps1_path.write_text(render_powershell_script(report), encoding="utf-8")
    critical, _ = _cleanup_targets(report)
    if critical:
        logger.warning(f"{len(critical)} critical files found requiring immediate attention")
    logger.info(f"Cleanup scripts generated: {bat_path}, {ps1_path}")
    return bat_path, ps1_path


def derive_results_paths(
    inventory_path: Path, output_path: Optional[Path]
) -> tuple[Path, Path]:
    """
    Pick the in-place results text and CSV paths, never the inventory being read.

    The CSV sits beside the text file with a ``.csv`` suffix. When either
    path would be the inventory, or the two would be the same file,
    ``inventory.txt`` gets ``inventory_snaffler_results.txt`` and
    ``inventory_snaffler_results.csv`` instead.

    Returns:
        (results_path, csv_path)
    """
    inventory = inventory_path.resolve()

    def usable(text_path: Path, csv_path: Path) -> bool:
        text, table = text_path.resolve(), csv_path.resolve()
        return inventory not in (text, table) and text != table

    if output_path is not None:
        paths = (output_path, output_path.with_suffix(".csv"))
        if usable(*paths):
            return paths
        logger.warning(f"Results path {output_path} would overwrite its inputs, using a derived name")

    stem = f"{inventory_path.stem}_snaffler_results"
    while True:
        text_path = inventory_path.with_name(f"{stem}.txt")
        paths = (text_path, text_path.with_suffix(".csv"))
        if usable(*paths):
            return paths
        stem += "_snaffler_results"


class InPlaceResultsWriter:
    """
    Incremental writer for in-place analysis.

    Each file's findings are written and flushed as soon as they are known,
    so an interrupted run keeps everything found so far.
    """

    def __init__(
        self, results_path: Path, inventory_path: Path, csv_path: Optional[Path] = None
    ):
        self.results_path = results_path
        self.csv_path = csv_path or results_path.with_suffix(".csv")
        self._inventory_path = inventory_path
        self._text: Optional[TextIO] = None
        self._csv_handle: Optional[TextIO] = None
        self._csv = None
        self._levels: Counter[str] = Counter()
        self.files_with_findings = 0

    def open(self) -> "InPlaceResultsWriter":
        """
        Open both outputs and write their headers.

        Raises:
            OSError: If either file cannot be opened
        """
        self.results_path.parent.mkdir(parents=True, exist_ok=True)
        self._text = open(self.results_path, "w", encoding="utf-8")
        try:
            self._csv_handle = open(self.csv_path, "w", encoding="utf-8", newline="")
        except OSError:
            self._text.close()
            raise
        self._csv = csv.writer(self._csv_handle, quoting=csv.QUOTE_ALL)

        self._text.write("=== IN-PLACE SENSITIVITY ANALYSIS REPORT ===\n")
        self._text.write(f"Analysis Started: {_timestamp()}\n")
        self._text.write(f"Inventory Source: {self._inventory_path}\n")
        self._text.write("=" * 45 + "\n")
        self._csv.writerow(INPLACE_CSV_HEADER)
        self._flush()
        return self

    def write_file(self, address: str, size: int, results: Sequence[MatchResult]) -> None:
        if not results or self._text is None:
            return
        self.files_with_findings += 1
        self._text.write(f"\n[FILE] {address}\n")
        self._text.write(f"[SIZE] {size} bytes\n")
        for result in sorted(results, key=lambda r: r.severity, reverse=True):
            self._levels[result.severity.name] += 1
            self._text.write(f"  [{result.severity.name}] {result.rule_name}: {result.rule.description}\n")
            self._text.write(f"    Pattern: {result.matched_pattern}\n")
            preview = result.matched_text
            if len(preview) > 100:
                preview = preview[:100] + "..."
            self._text.write(f"    Match: {preview}\n")
            if result.line_number is not None:
                self._text.write(f"    Line: {result.line_number}\n")
            if result.context:
                self._text.write("    Context:\n")
                for line in result.context.splitlines():
                    self._text.write(f"      {line.rstrip()}\n")
            self._csv.writerow(_csv_row(result, address, True))
        self._flush()

    def write_summary(self, files_analysed: int, files_skipped: int) -> None:
        if self._text is None:
            return
        self._text.write("\n" + "=" * 45 + "\n")
        self._text.write("=== ANALYSIS SUMMARY ===\n")
        self._text.write(f"Total Files Analysed: {files_analysed}\n")
        self._text.write(f"Files Skipped: {files_skipped}\n")
        self._text.write(f"Files With Findings: {self.files_with_findings}\n")
        if self._levels:
            self._text.write("\nFindings by Sensitivity Level:\n")
            for level, count in self._levels.most_common():
                self._text.write(f"  {level}: {count}\n")
        self._text.write(f"\nAnalysis Completed: {_timestamp()}\n")
        self._flush()

    def _flush(self) -> None:
        if self._text is not None:
            self._text.flush()
        if self._csv_handle is not None:
            self._csv_handle.flush()

    def close(self) -> None:
        for handle in (self._text, self._csv_handle):
            if handle is not None:
                handle.close()
        self._text = None
        self._csv_handle = None

    def __enter__(self) -> "InPlaceResultsWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
