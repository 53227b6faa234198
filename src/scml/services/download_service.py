"""
Single-connection retrieval service.

Reads an inventory, resolves each surviving entry's content hash and copies
the content blob to a local directory over one session. Re-runs skip files
already on disk.
"""

import logging
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Optional

from scml.core.addresses import SIDECAR_SUFFIX, LogicalFileAddress
from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    CorruptDataError,
    RemoteStoreError,
    RemoteStoreSession,
    RetryConfig,
    execute_with_retry,
)
from scml.services.download_models import (
    DownloadItem,
    DownloadManifest,
    DownloadResult,
    group_by_share,
    restrict_to_server,
    write_local_file,
)
from scml.services.hash_resolver import HashResolver
from scml.services.inventory_service import iter_inventory
from scml.services.statistics import RunStatistics

logger = logging.getLogger(__name__)


def plan_item(
    resolver: HashResolver,
    address: LogicalFileAddress,
    preserve_filenames: bool,
) -> Optional[DownloadItem]:
    """Resolve an address into a download item, or None if it has no usable hash."""
    resolution = resolver.resolve(address)
    if not resolution.resolved:
        logger.info(f"Skipping {address}: {resolution.status.value}")
        return None
    return DownloadItem(
        address=address,
        hash_key=resolution.hash_key,
        physical_path=resolution.physical_path,
        local_name=resolution.hash_key.local_name(address.name, preserve_filenames),
        expected_size=resolution.size,
    )


class DownloadService:
    """Retrieves inventory entries over one connected session."""

    def __init__(
        self,
        session: RemoteStoreSession,
        statistics: Optional[RunStatistics] = None,
        retry_config: Optional[RetryConfig] = None,
        preserve_filenames: bool = False,
        progress_interval: int = 10,
        sidecar_suffix: str = SIDECAR_SUFFIX,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ):
        """
        Initialize the download service.

        Args:
            session: A connected session to the target server
            statistics: Run statistics to update
            retry_config: Retry policy for share-open calls
            preserve_filenames: Save files under their original names
            progress_interval: Files between progress log lines
            sidecar_suffix: Suffix marking metadata sidecar files
            progress_callback: Optional callback(current, total, message)
        """
        self._session = session
        self._statistics = statistics or RunStatistics()
        self._retry_config = retry_config
        self._preserve_filenames = preserve_filenames
        self._progress_interval = max(1, progress_interval)
        self._sidecar_suffix = sidecar_suffix
        self._progress_callback = progress_callback

    def download_files(
        self,
        inventory_path: Path | str,
        extensions: Iterable[str],
        output_dir: Path | str,
    ) -> DownloadResult:
        """
        Download every inventory entry matching ``extensions``.

        Args:
            inventory_path: Inventory file to read
            extensions: Extensions to keep, without dots; empty keeps everything
            output_dir: Local directory, created if missing

        Returns:
            DownloadResult with counts for this run
        """
        start = time.monotonic()
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        manifest = DownloadManifest(output_dir)

        addresses = restrict_to_server(
            iter_inventory(inventory_path, extensions), self._session.server
        )
        result = DownloadResult(candidates=len(addresses), output_dir=output_dir)
        logger.info(f"Found {len(addresses)} files matching the filter on {self._session.server}")

        for share, group in group_by_share(addresses).items():
            self._download_share(share, group, output_dir, manifest, result, start)

        result.duration_seconds = time.monotonic() - start
        logger.info(
            f"Download complete: {result.downloaded} downloaded, "
            f"{result.already_present} already present, {result.unresolved} unresolved, "
            f"{result.failed} failed ({result.bytes_downloaded / (1024 * 1024):.2f} MB)",
            extra={"duration_seconds": result.duration_seconds},
        )
        return result

    def _download_share(
        self,
        share: str,
        addresses: list[LogicalFileAddress],
        output_dir: Path,
        manifest: DownloadManifest,
        result: DownloadResult,
        start: float,
    ) -> None:
        pending = []
        for address in addresses:
            if manifest.local_path(address) is not None:
                self._count_present(result)
            else:
                pending.append(address)
        if not pending:
            return

        if (self._session.share_name or "").lower() != share.lower():
            try:
                execute_with_retry(
                    lambda: self._session.open_share(share),
                    f"Open share {share} on {self._session.server}",
                    self._retry_config,
                )
            except AuthenticationError as e:
                if not isinstance(e, AccessDeniedError):
                    raise
                self._skip_share(share, pending, e, result)
                return
            except RemoteStoreError as e:
                self._skip_share(share, pending, e, result)
                return

        resolver = HashResolver(self._session, self._sidecar_suffix)
        for address in pending:
            item = plan_item(resolver, address, self._preserve_filenames)
            if item is None:
                result.unresolved += 1
                self._statistics.increment("hashes_unresolved")
                continue

            local_path = output_dir / item.local_name
            if local_path.is_file():
                manifest.record(address, item.local_name)
                self._count_present(result)
                continue

            self._fetch(item, local_path, manifest, result)
            if self._progress_callback:
                self._progress_callback(
                    result.completed + result.failed, result.candidates, f"Fetched {address.name}"
                )
            if result.completed and result.completed % self._progress_interval == 0:
                self._log_progress(result, start)

    def _fetch(
        self,
        item: DownloadItem,
        local_path: Path,
        manifest: DownloadManifest,
        result: DownloadResult,
    ) -> None:
        try:
            data = self._session.read_file(item.physical_path)
            write_local_file(local_path, data)
        except AuthenticationError as e:
            if not isinstance(e, AccessDeniedError):
                raise
            self._count_failure(item, e, result)
            return
        except (RemoteStoreError, OSError) as e:
            self._count_failure(item, e, result)
            return

        manifest.record(item.address, item.local_name)
        result.downloaded += 1
        result.bytes_downloaded += len(data)
        self._statistics.increment("files_downloaded")
        self._statistics.add_bytes(len(data))
        logger.debug(f"Downloaded {item.address.name} -> {local_path.name} ({len(data)} bytes)")

    def _skip_share(
        self,
        share: str,
        pending: list[LogicalFileAddress],
        error: Exception,
        result: DownloadResult,
    ) -> None:
        logger.error(f"Cannot open share {share}, skipping {len(pending)} files: {error}")
        result.failed += len(pending)
        result.failures.extend((str(a), str(error)) for a in pending)
        self._statistics.increment("download_failures", len(pending))
        self._statistics.increment("errors")

    def _count_present(self, result: DownloadResult) -> None:
        result.already_present += 1
        self._statistics.increment("files_already_present")

    def _count_failure(self, item: DownloadItem, error: Exception, result: DownloadResult) -> None:
        logger.warning(f"Failed to download {item.address}: {error}")
        result.failed += 1
        result.failures.append((str(item.address), str(error)))
        self._statistics.increment("download_failures")

    @staticmethod
    def _log_progress(result: DownloadResult, start: float) -> None:
        elapsed = max(time.monotonic() - start, 1e-6)
        megabytes = result.bytes_downloaded / (1024 * 1024)
        logger.info(
            f"Progress: {result.completed}/{result.candidates} files, "
            f"{megabytes:.2f} MB ({megabytes / elapsed:.2f} MB/s)"
        )


def read_path_list(path: Path | str) -> list[LogicalFileAddress]:
    """Read addresses one per line, skipping blanks, ``#`` comments and malformed lines."""
    addresses = []
    for line_number, line in enumerate(Path(path).read_text(encoding="utf-8").splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            addresses.append(LogicalFileAddress.parse(stripped))
        except CorruptDataError as e:
            logger.warning(f"Skipping line {line_number} of {path}: {e}")
    return addresses


def fetch_paths(
    addresses: Iterable[LogicalFileAddress],
    session_factory: Callable[[str], RemoteStoreSession],
    output_dir: Path | str,
    retry_config: Optional[RetryConfig] = None,
    statistics: Optional[RunStatistics] = None,
) -> DownloadResult:
    """
    Copy explicit remote paths, keeping their layout under ``output_dir``.

    Each path is read as-is, without hash resolution, and saved to
    ``<output_dir>/<server>/<share>/<path>``. Files already on disk are not
    fetched again. A server or share that cannot be opened fails only its
    own entries.

    Raises:
        AuthenticationError: If a server rejects the credentials outright
    """
    start = time.monotonic()
    statistics = statistics or RunStatistics()
    output_dir = Path(output_dir)
    addresses = list(addresses)
    result = DownloadResult(candidates=len(addresses), output_dir=output_dir)

    by_server: dict[str, list[LogicalFileAddress]] = {}
    for address in addresses:
        by_server.setdefault(address.server, []).append(address)

    for server, server_addresses in by_server.items():
        pending = []
        for address in server_addresses:
            if _layout_path(output_dir, address).is_file():
                result.already_present += 1
                statistics.increment("files_already_present")
            else:
                pending.append(address)
        if not pending:
            continue

        session = session_factory(server)
        try:
            execute_with_retry(session.connect, f"Connect to {server}", retry_config)
        except AuthenticationError as e:
            session.close()
            if not isinstance(e, AccessDeniedError):
                raise
            _fail_all(server, pending, e, result, statistics)
            continue
        except (RemoteStoreError, OSError) as e:
            session.close()
            _fail_all(server, pending, e, result, statistics)
            continue

        with session:
            for share, group in group_by_share(pending).items():
                try:
                    _fetch_share(session, share, group, output_dir, retry_config, statistics, result)
                except AuthenticationError as e:
                    if not isinstance(e, AccessDeniedError):
                        raise
                    _fail_all(f"{server}/{share}", group, e, result, statistics)
                except RemoteStoreError as e:
                    _fail_all(f"{server}/{share}", group, e, result, statistics)

    result.duration_seconds = time.monotonic() - start
    logger.info(
        f"Fetch complete: {result.downloaded} downloaded, {result.already_present} already present, "
        f"{result.failed} failed",
        extra={"duration_seconds": result.duration_seconds},
    )
    return result


def _layout_path(output_dir: Path, address: LogicalFileAddress) -> Path:
    return output_dir.joinpath(address.server, address.share, *address.relative_path.split("/"))


def _fetch_share(
    session: RemoteStoreSession,
    share: str,
    addresses: list[LogicalFileAddress],
    output_dir: Path,
    retry_config: Optional[RetryConfig],
    statistics: RunStatistics,
    result: DownloadResult,
) -> None:
    execute_with_retry(
        lambda: session.open_share(share), f"Open share {share} on {session.server}", retry_config
    )
    for address in addresses:
        try:
            data = session.read_file(address.relative_path)
            write_local_file(_layout_path(output_dir, address), data)
        except AuthenticationError as e:
            if not isinstance(e, AccessDeniedError):
                raise
            _fail_one(address, e, result, statistics)
            continue
        except (RemoteStoreError, OSError) as e:
            _fail_one(address, e, result, statistics)
            continue
        result.downloaded += 1
        result.bytes_downloaded += len(data)
        statistics.increment("files_downloaded")
        statistics.add_bytes(len(data))
        logger.info(f"Fetched {address} ({len(data)} bytes)")


def _fail_one(
    address: LogicalFileAddress,
    error: Exception,
    result: DownloadResult,
    statistics: RunStatistics,
) -> None:
    logger.warning(f"Failed to fetch {address}: {error}")
    result.failed += 1
    result.failures.append((str(address), str(error)))
    statistics.increment("download_failures")


def _fail_all(
    server: str,
    addresses: list[LogicalFileAddress],
    error: Exception,
    result: DownloadResult,
    statistics: RunStatistics,
) -> None:
    logger.error(f"Cannot fetch from {server}: {error}")
    result.failed += len(addresses)
    result.failures.extend((str(a), str(error)) for a in addresses)
    statistics.increment("download_failures", len(addresses))
    statistics.increment("errors")
