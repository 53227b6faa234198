"""
UI components module for the SCML command line.

Provides styled terminal output using the Rich library for run summaries,
preset listings and error rendering.
"""

from collections.abc import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from scml.core.extension_presets import ExtensionPreset
from scml.core.rules import SensitivityReport, Severity
from scml.infrastructure.remote_store import AUTH_FAILURE_CHECKLIST
from scml.services.download_models import DownloadResult
from scml.services.statistics import StatisticsSnapshot

SEVERITY_STYLES = {
    Severity.BLACK: "bold white on black",
    Severity.RED: "bold red",
    Severity.YELLOW: "yellow",
    Severity.GREEN: "green",
}


def render_error(message: str, console: Console) -> None:
    """
    Render an error message in a visually distinct red panel.

    Args:
        message: Error message to display.
        console: Rich Console instance for output.
    """
    error_text = Text()
    error_text.append("Error: ", style="bold red")
    error_text.append(message, style="red")

    console.print(
        Panel(
            error_text,
            border_style="red",
            title="[bold red]Error[/bold red]",
            expand=False,
        )
    )


def render_auth_failure(message: str, console: Console) -> None:
    """Render an authentication failure with the remediation checklist."""
    body = Text()
    body.append(f"{message}\n\n", style="red")
    body.append("Troubleshooting:\n", style="bold white")
    for index, item in enumerate(AUTH_FAILURE_CHECKLIST, start=1):
        body.append(f"  {index}. {item}\n", style="white")

    console.print(
        Panel(
            body,
            border_style="red",
            title="[bold red]Authentication Failed[/bold red]",
            expand=False,
        )
    )


def render_warning(message: str, console: Console) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def render_info(message: str, console: Console) -> None:
    console.print(f"[blue]Info:[/blue] {message}")


def render_download_summary(title: str, result: DownloadResult, console: Console) -> None:
    """Summary panel for one retrieval run."""
    summary = Table.grid(padding=1)
    summary.add_column(style="bold")
    summary.add_column()
    summary.add_row("Candidates:", str(result.candidates))
    summary.add_row("Downloaded:", str(result.downloaded))
    summary.add_row("Already Present:", str(result.already_present))
    summary.add_row("Unresolved:", str(result.unresolved))
    if result.failed:
        summary.add_row("Failed:", f"[red]{result.failed}[/red]")
    summary.add_row("Data:", f"{result.bytes_downloaded / (1024 * 1024):.2f} MB")
    summary.add_row("Throughput:", f"{result.throughput_mb_per_second:.2f} MB/s")
    summary.add_row("Duration:", f"{result.duration_seconds:.2f}s")
    if result.output_dir is not None:
        summary.add_row("Output:", str(result.output_dir))

    console.print(
        Panel(
            summary,
            title=f"[bold green]{title}[/bold green]",
            border_style="green",
            expand=False,
        )
    )

    if result.failures:
        console.print("\n[bold red]Failed Files:[/bold red]")
        for address, error in result.failures[:5]:
            console.print(f"  - {address}: {error}")
        if len(result.failures) > 5:
            console.print(f"  ... and {len(result.failures) - 5} more")


def render_report(report: SensitivityReport, console: Console) -> None:
    """Severity table for an analysis report."""
    if not report.total_matches:
        console.print("[green]No sensitive content found.[/green]")
        return

    table = Table(
        title=f"Risk Score {report.overall_risk_score}/100: {report.risk_rating}",
        title_style="bold cyan",
        border_style="blue",
        header_style="bold white",
    )
    table.add_column("Severity", no_wrap=True)
    table.add_column("Matches", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Top Rules", style="dim cyan")

    for findings in report.findings:
        top = ", ".join(
            f"{r.rule_name} ({r.match_count})" for r in findings.rule_matches[:3]
        )
        table.add_row(
            Text(findings.severity.label, style=SEVERITY_STYLES[findings.severity]),
            str(findings.count),
            str(findings.total_score),
            top,
        )
    console.print(table)
    console.print(
        f"{report.total_matches} matches in {report.total_files} files"
    )


def render_statistics(snapshot: StatisticsSnapshot, console: Console) -> None:
    """Run statistics panel. Rows with nothing to report are left out."""
    summary = Table.grid(padding=1)
    summary.add_column(style="bold")
    summary.add_column()

    rows = [
        ("Targets Processed:", snapshot.targets_processed),
        ("Targets Failed:", snapshot.targets_failed),
        ("Files Inventoried:", snapshot.files_inventoried),
        ("Duplicates Removed:", snapshot.duplicates_removed),
        ("Listing Errors:", snapshot.listing_errors),
        ("Files Downloaded:", snapshot.files_downloaded),
        ("Already Present:", snapshot.files_already_present),
        ("Download Failures:", snapshot.download_failures),
        ("Unresolved Hashes:", snapshot.hashes_unresolved),
        ("Files Analysed:", snapshot.files_analysed),
        ("Files Skipped:", snapshot.files_skipped),
        ("Files With Findings:", snapshot.files_with_findings),
        ("Errors:", snapshot.errors),
    ]
    for label, value in rows:
        if value:
            summary.add_row(label, str(value))
    for severity, count in snapshot.matches_by_severity.items():
        summary.add_row(f"{severity.title()} Matches:", str(count))
    if snapshot.bytes_downloaded:
        summary.add_row(
            "Data:",
            f"{snapshot.bytes_downloaded / (1024 * 1024):.2f} MB "
            f"({snapshot.throughput_mb_per_second:.2f} MB/s)",
        )
    summary.add_row("Elapsed:", f"{snapshot.elapsed_seconds:.2f}s")

    console.print(
        Panel(summary, title="[bold cyan]Run Statistics[/bold cyan]", border_style="cyan", expand=False)
    )

    for target, error in snapshot.failed_targets:
        console.print(f"  [red]- {target}: {error}[/red]")


def render_presets(presets: Iterable[ExtensionPreset], console: Console) -> None:
    table = Table(
        title="Extension Presets",
        title_style="bold cyan",
        border_style="blue",
        show_header=True,
        header_style="bold white",
    )
    table.add_column("Preset", style="green", no_wrap=True)
    table.add_column("Sensitivity", no_wrap=True)
    table.add_column("Description", style="white")
    table.add_column("Extensions", style="dim cyan")

    for preset in presets:
        extensions = ", ".join(preset.extensions[:8])
        if len(preset.extensions) > 8:
            extensions += f" (+{len(preset.extensions) - 8})"
        table.add_row(preset.key, preset.sensitivity, preset.description, extensions)

    console.print(table)
    console.print()
