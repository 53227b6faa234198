"""
CLI for SCML.

Provides the command-line interface for inventorying, retrieving and
analysing content library files.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from scml.cli.ui import (
    render_auth_failure,
    render_download_summary,
    render_error,
    render_presets,
    render_report,
    render_statistics,
    render_warning,
)
from scml.core.addresses import LogicalFileAddress
from scml.core.config import SCMLConfig, load_config
from scml.core.extension_presets import get_preset, load_presets, resolve_extensions
from scml.core.targets import Target, parse_target, read_targets_file
from scml.infrastructure.remote_store import (
    AuthenticationError,
    Credentials,
    RemoteStoreError,
    execute_with_retry,
    is_authentication_failure,
)
from scml.services import (
    BatchAnalysisService,
    DownloadResult,
    DownloadService,
    InPlaceAnalysisService,
    ParallelDownloadService,
    ServicesContainer,
    build_inventories,
    create_services,
    fetch_paths,
    iter_inventory,
    read_path_list,
)

# Initialize Rich Console
console = Console()

app = typer.Typer(
    name="scml",
    help="SCML - Content library inventory, retrieval and sensitivity analysis",
    add_completion=False,
)


@dataclass
class CLIState:
    """Options shared by every command."""

    config_path: Optional[Path] = None
    verbose: bool = False
    local_path: Optional[Path] = None
    username: Optional[str] = None
    password: Optional[str] = None
    domain: Optional[str] = None
    current_user: bool = False

    def load_config(self) -> SCMLConfig:
        return load_config(self.config_path)

    def credentials(self, config: SCMLConfig) -> Optional[Credentials]:
        """Credentials from the command line, or None to fall back to configuration."""
        if self.current_user:
            return Credentials(use_current_user=True)
        if not self.username:
            return None
        return Credentials(
            username=self.username,
            password=self.password,
            domain=self.domain or config.connection.domain or None,
        )


def _configure_logging(config: SCMLConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level.upper(), logging.INFO)
    # Verbose output uses the configured format, which carries its own time and level.
    handler = RichHandler(console=console, show_time=False, show_level=not verbose, show_path=False)
    handler.setFormatter(logging.Formatter(config.logging.format if verbose else "%(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def _services(ctx: typer.Context) -> ServicesContainer:
    state: CLIState = ctx.obj
    config = state.load_config()
    _configure_logging(config, state.verbose)
    return create_services(
        credentials=state.credentials(config),
        local_root=state.local_path,
        config=config,
    )


def _extensions(
    extensions: Optional[str], preset: Optional[str], default_preset: str = ""
) -> frozenset[str]:
    if extensions:
        return resolve_extensions(extensions)
    name = preset or default_preset
    if not name:
        return frozenset()
    found = get_preset(name)
    if found is None:
        render_error(f"Unknown preset: {name}. Run 'scml presets' to list them.", console)
        raise typer.Exit(1)
    return frozenset(found.extensions)


def _describe_filter(wanted: frozenset[str]) -> str:
    return ", ".join(sorted(wanted)) if wanted else "all extensions"


@contextmanager
def _command_errors() -> Iterator[None]:
    """Map the error taxonomy onto exit codes and rendered messages."""
    try:
        yield
    except typer.Exit:
        raise
    except AuthenticationError as e:
        render_auth_failure(str(e), console)
        raise typer.Exit(2)
    except (RemoteStoreError, OSError, ValueError) as e:
        render_error(str(e), console)
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Username for authentication"),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="Password for authentication", envvar="SCML_PASSWORD"
    ),
    domain: Optional[str] = typer.Option(None, "--domain", "-d", help="Domain for authentication"),
    current_user: bool = typer.Option(
        False, "--current-user", help="Authenticate as the current user"
    ),
    local_path: Optional[Path] = typer.Option(
        None, "--local-path", help="Audit a local copy laid out as <root>/[<server>/]<share>/..."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file (YAML or JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Audit software-distribution content libraries for sensitive files."""
    load_dotenv()
    ctx.obj = CLIState(
        config_path=config,
        verbose=verbose,
        local_path=local_path,
        username=username,
        password=password,
        domain=domain,
        current_user=current_user,
    )


@app.command()
def inventory(
    ctx: typer.Context,
    host: Optional[list[str]] = typer.Option(
        None, "--host", "-H", help="Target as [[domain\\]user[:password]@]host. Repeatable."
    ),
    targets_file: Optional[Path] = typer.Option(
        None, "--targets-file", "-T", help="File with one target per line"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Inventory file to write"),
    append: bool = typer.Option(False, "--append", help="Append to an existing inventory"),
):
    """Crawl content libraries and write the logical file inventory."""
    targets: list[Target] = [parse_target(h) for h in host or []]
    if targets_file is not None:
        try:
            targets.extend(read_targets_file(targets_file))
        except OSError as e:
            render_error(f"Cannot read targets file: {e}", console)
            raise typer.Exit(1)
    if not targets:
        render_error("Give at least one target with --host or --targets-file", console)
        raise typer.Exit(1)

    with _command_errors():
        services = _services(ctx)
        services.register_targets(targets)
        config = services.config
        inventory_path = output or Path(config.inventory.path)

        console.print(
            f"[bold blue]Inventorying[/bold blue] {len(targets)} target(s) into {inventory_path}"
        )
        result = build_inventories(
            [t.address for t in targets],
            services.create_session,
            inventory_path,
            append=append,
            retry_config=services.retry_config,
            statistics=services.statistics,
            flush_interval=config.inventory.flush_interval,
            sidecar_suffix=config.inventory.sidecar_suffix,
        )

    table = Table(title="Targets", title_style="bold cyan", border_style="blue", header_style="bold white")
    table.add_column("Target", style="green", no_wrap=True)
    table.add_column("Share")
    table.add_column("Entries", justify="right")
    table.add_column("Listing Errors", justify="right")
    table.add_column("Status")
    for outcome in result.outcomes:
        status = "[green]ok[/green]" if outcome.success else f"[red]{outcome.error}[/red]"
        table.add_row(
            outcome.target,
            outcome.share or "-",
            str(outcome.entries_written),
            str(outcome.listing_errors),
            status,
        )
    console.print(table)
    render_statistics(services.statistics.snapshot(), console)

    auth_failures = [o for o in result.failed_targets if is_authentication_failure(Exception(o.error))]
    if auth_failures:
        render_auth_failure(f"{len(auth_failures)} target(s) rejected the credentials", console)
    if result.outcomes and len(result.failed_targets) == len(result.outcomes):
        raise typer.Exit(1)


def _servers_in(inventory_path: Path) -> list[str]:
    servers: dict[str, str] = {}
    for address in iter_inventory(inventory_path):
        servers.setdefault(address.server.lower(), address.server)
    return list(servers.values())


def _download_from(
    services: ServicesContainer,
    server: str,
    inventory_path: Path,
    wanted: frozenset[str],
    output_dir: Path,
    workers: int,
    preserve: bool,
) -> tuple[DownloadResult, str]:
    config = services.config
    if workers > 1:
        service = ParallelDownloadService(
            lambda: services.create_session(server),
            server,
            pool_size=workers,
            statistics=services.statistics,
            retry_config=services.retry_config,
            preserve_filenames=preserve,
            monitor_interval=config.download.monitor_interval,
            sidecar_suffix=config.inventory.sidecar_suffix,
        )
        result = service.download_files(inventory_path, wanted, output_dir)
        return result, f"{server}: Parallel Download Complete ({service.pool_size} sessions)"

    with services.create_session(server) as session:
        execute_with_retry(session.connect, f"Connect to {server}", services.retry_config)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task(f"Downloading from {server}...", total=None)

            def update_progress(current: int, total: int, message: str) -> None:
                progress.update(task, completed=current, total=total, description=message)

            service = DownloadService(
                session,
                statistics=services.statistics,
                retry_config=services.retry_config,
                preserve_filenames=preserve,
                progress_interval=config.download.progress_interval,
                sidecar_suffix=config.inventory.sidecar_suffix,
                progress_callback=update_progress,
            )
            result = service.download_files(inventory_path, wanted, output_dir)
    return result, f"{server}: Download Complete"


@app.command()
def download(
    ctx: typer.Context,
    inventory_file: Optional[Path] = typer.Option(
        None, "--inventory", "-i", help="Inventory file to read"
    ),
    host: Optional[list[str]] = typer.Option(
        None, "--host", "-H", help="Only download from these targets. Repeatable."
    ),
    extensions: Optional[str] = typer.Option(
        None, "--extensions", "-e", help="Extensions to download, comma separated"
    ),
    preset: Optional[str] = typer.Option(None, "--preset", help="Extension preset name"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Download directory"),
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-P", help="Number of parallel sessions (1-10)"
    ),
    preserve_filenames: Optional[bool] = typer.Option(
        None, "--preserve-filenames/--hash-prefix", help="Keep original file names"
    ),
):
    """Download inventory entries through the content hash layer."""
    with _command_errors():
        services = _services(ctx)
        config = services.config
        inventory_path = inventory_file or Path(config.inventory.path)
        if not inventory_path.is_file():
            render_error(f"Inventory not found: {inventory_path}", console)
            raise typer.Exit(1)

        wanted = _extensions(extensions, preset, config.download.default_preset)
        output_dir = output or Path(config.download.output_dir)
        workers = parallel if parallel is not None else config.download.parallel
        preserve = (
            preserve_filenames
            if preserve_filenames is not None
            else config.download.preserve_filenames
        )

        targets = [parse_target(h) for h in host or []]
        services.register_targets(targets)
        servers = [t.address for t in targets] or _servers_in(inventory_path)
        console.print(f"[bold blue]Downloading[/bold blue] {_describe_filter(wanted)} to {output_dir}")

        for server in servers:
            try:
                result, title = _download_from(
                    services, server, inventory_path, wanted, output_dir, workers, preserve
                )
            except AuthenticationError:
                raise
            except RemoteStoreError as e:
                render_error(f"{server}: {e}", console)
                services.statistics.record_target(server, str(e))
                continue
            services.statistics.record_target(server)
            render_download_summary(title, result, console)

    render_statistics(services.statistics.snapshot(), console)


@app.command()
def analyze(
    ctx: typer.Context,
    directory: Path = typer.Argument(..., help="Directory of downloaded files"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory for reports (default: the analysed directory)"
    ),
    extensions: Optional[str] = typer.Option(
        None, "--extensions", "-e", help="Only analyse these extensions"
    ),
    preset: Optional[str] = typer.Option(None, "--preset", help="Extension preset name"),
):
    """Score downloaded files against the sensitivity rules and write reports."""
    if not directory.is_dir():
        render_error(f"Directory not found: {directory}", console)
        raise typer.Exit(1)

    with _command_errors():
        services = _services(ctx)
        wanted = _extensions(extensions, preset)
        service = BatchAnalysisService(
            engine=services.engine,
            ignore_patterns=services.config.analysis.ignore_patterns,
            statistics=services.statistics,
        )
        console.print(f"[bold blue]Analysing[/bold blue] {directory}...")
        result = service.analyse_directory(directory, output, wanted)

    render_report(result.report, console)
    for path in result.output_files:
        console.print(f"  [dim]wrote[/dim] {path}")
    render_statistics(services.statistics.snapshot(), console)


@app.command()
def snaffle(
    ctx: typer.Context,
    inventory_file: Optional[Path] = typer.Option(
        None, "--inventory", "-i", help="Inventory file to read"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Results file (default: <inventory>_snaffler_results.txt)"
    ),
    extensions: Optional[str] = typer.Option(
        None, "--extensions", "-e", help="Only analyse these extensions"
    ),
    preset: Optional[str] = typer.Option(None, "--preset", help="Extension preset name"),
):
    """Analyse inventory entries in place, without saving them locally."""
    with _command_errors():
        services = _services(ctx)
        config = services.config
        inventory_path = inventory_file or Path(config.inventory.path)
        if not inventory_path.is_file():
            render_error(f"Inventory not found: {inventory_path}", console)
            raise typer.Exit(1)

        wanted = _extensions(extensions, preset)
        service = InPlaceAnalysisService(
            services.create_session,
            engine=services.engine,
            statistics=services.statistics,
            retry_config=services.retry_config,
            sidecar_suffix=config.inventory.sidecar_suffix,
        )
        console.print(
            f"[bold blue]Analysing in place[/bold blue] {inventory_path} ({_describe_filter(wanted)})"
        )
        result = service.analyse_inventory(inventory_path, output, wanted)

    render_report(result.report, console)
    for path in result.output_files:
        console.print(f"  [dim]wrote[/dim] {path}")
    render_statistics(services.statistics.snapshot(), console)


@app.command()
def fetch(
    ctx: typer.Context,
    path: Optional[str] = typer.Argument(
        None, help="File to fetch as \\\\server\\share\\path or server/share/path"
    ),
    list_file: Optional[Path] = typer.Option(
        None, "--list", "-l", help="File with one path per line"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Download directory"),
):
    """Download explicit remote paths, keeping their directory layout."""
    if not path and list_file is None:
        render_error("Give a path or --list", console)
        raise typer.Exit(1)

    with _command_errors():
        services = _services(ctx)
        addresses = [LogicalFileAddress.parse(path)] if path else []
        if list_file is not None:
            addresses.extend(read_path_list(list_file))
        if not addresses:
            render_warning("No paths to fetch", console)
            raise typer.Exit(0)

        output_dir = output or Path(services.config.download.output_dir)
        result = fetch_paths(
            addresses,
            services.create_session,
            output_dir,
            retry_config=services.retry_config,
            statistics=services.statistics,
        )

    render_download_summary("Fetch Complete", result, console)
    if result.failed:
        raise typer.Exit(1)


@app.command()
def presets():
    """List the extension presets."""
    render_presets(load_presets().values(), console)


@app.command("generate-config")
def generate_config(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("scml.yaml"), help="Where to write (.yaml, .yml or .json)"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write the effective configuration to a file."""
    if path.exists() and not force:
        render_error(f"{path} already exists (use --force to overwrite)", console)
        raise typer.Exit(1)

    state: CLIState = ctx.obj
    with _command_errors():
        state.load_config().save(path)

    console.print(
        Panel(
            f"Configuration written to {path}",
            border_style="green",
            expand=False,
        )
    )


if __name__ == "__main__":
    app()
