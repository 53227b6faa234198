"""
Parallel retrieval service.

Uses a pool of independent sessions. One producer resolves hashes up front
over a single pooled session; N workers then drain a shared FIFO queue, each
holding exactly one checked-out session for as long as it runs. Retrieval
order is unspecified; only the final counts and the on-disk set are.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from scml.core.addresses import SIDECAR_SUFFIX, LogicalFileAddress
from scml.infrastructure import SessionPool, clamp_pool_size
from scml.infrastructure.remote_store import (
    AuthenticationError,
    RemoteStoreError,
    RemoteStoreSession,
    RetryConfig,
)
from scml.services.download_models import (
    DownloadItem,
    DownloadManifest,
    DownloadResult,
    group_by_share,
    restrict_to_server,
    write_local_file,
)
from scml.services.download_service import plan_item
from scml.services.hash_resolver import HashResolver
from scml.services.inventory_service import iter_inventory
from scml.services.statistics import RunStatistics

logger = logging.getLogger(__name__)


class DownloadProgress:
    """Counters shared by the workers, guarded by one lock."""

    def __init__(self, expected: int):
        self.expected = expected
        self._lock = threading.Lock()
        self.downloaded = 0
        self.failed = 0
        self.bytes_downloaded = 0
        self.failures: list[tuple[str, str]] = []
        self.claimed: list[str] = []

    def claim(self, item: DownloadItem) -> None:
        with self._lock:
            self.claimed.append(item.address.key)

    def record_success(self, size: int) -> None:
        with self._lock:
            self.downloaded += 1
            self.bytes_downloaded += size

    def record_failure(self, item: DownloadItem, error: Exception) -> None:
        with self._lock:
            self.failed += 1
            self.failures.append((str(item.address), str(error)))

    @property
    def processed(self) -> int:
        with self._lock:
            return self.downloaded + self.failed

    def snapshot(self) -> tuple[int, int, int]:
        with self._lock:
            return self.downloaded, self.failed, self.bytes_downloaded


class ParallelDownloadService:
    """Retrieves inventory entries with a pool of sessions."""

    def __init__(
        self,
        session_factory: Callable[[], RemoteStoreSession],
        server: str,
        pool_size: int = 4,
        statistics: Optional[RunStatistics] = None,
        retry_config: Optional[RetryConfig] = None,
        preserve_filenames: bool = False,
        monitor_interval: float = 5.0,
        sidecar_suffix: str = SIDECAR_SUFFIX,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ):
        """
        Initialize the parallel download service.

        Args:
            session_factory: Creates an unconnected session to the target server
            server: Target label; inventory entries for other servers are ignored
            pool_size: Number of pooled sessions and workers, clamped to 1-10
            statistics: Run statistics to update
            retry_config: Retry policy for connect and share-open calls
            preserve_filenames: Save files under their original names
            monitor_interval: Seconds between progress log lines
            sidecar_suffix: Suffix marking metadata sidecar files
            progress_callback: Optional callback(current, total, message)
        """
        self._session_factory = session_factory
        self._server = server
        self._pool_size = clamp_pool_size(pool_size)
        self._statistics = statistics or RunStatistics()
        self._retry_config = retry_config
        self._preserve_filenames = preserve_filenames
        self._monitor_interval = monitor_interval
        self._sidecar_suffix = sidecar_suffix
        self._progress_callback = progress_callback
        self.last_pool_size: Optional[int] = None
        self.last_pool_available: Optional[int] = None

    @property
    def pool_size(self) -> int:
        return self._pool_size

    def download_files(
        self,
        inventory_path: Path | str,
        extensions: Iterable[str],
        output_dir: Path | str,
    ) -> DownloadResult:
        """
        Download every inventory entry matching ``extensions`` in parallel.

        Raises:
            FatalSetupError: If no pooled session can be established
        """
        start = time.monotonic()
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        manifest = DownloadManifest(output_dir)

        addresses = restrict_to_server(iter_inventory(inventory_path, extensions), self._server)
        result = DownloadResult(candidates=len(addresses), output_dir=output_dir)
        logger.info(
            f"Found {len(addresses)} files matching the filter, "
            f"downloading with {self._pool_size} connections"
        )

        for share, group in group_by_share(addresses).items():
            pending = []
            for address in group:
                if manifest.local_path(address) is not None:
                    self._count_present(result)
                else:
                    pending.append(address)
            if pending:
                self._download_share(share, pending, output_dir, manifest, result)

        result.duration_seconds = time.monotonic() - start
        logger.info(
            f"Parallel download complete: {result.downloaded} downloaded, "
            f"{result.already_present} already present, {result.failed} failed, "
            f"{result.throughput_mb_per_second:.2f} MB/s",
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
    ) -> None:
        with SessionPool.create(
            self._session_factory, self._pool_size, share, self._retry_config
        ) as pool:
            work, shared = self._build_queue(pool, addresses, output_dir, manifest, result)
            expected = work.qsize()
            if expected:
                progress = DownloadProgress(expected)
                self._run_workers(pool, work, output_dir, manifest, progress)

                result.downloaded += progress.downloaded
                result.failed += progress.failed
                result.bytes_downloaded += progress.bytes_downloaded
                result.failures.extend(progress.failures)
            self._settle_shared(shared, output_dir, manifest, result)
            self.last_pool_size = pool.size
            self.last_pool_available = pool.available

    def _build_queue(
        self,
        pool: SessionPool,
        addresses: list[LogicalFileAddress],
        output_dir: Path,
        manifest: DownloadManifest,
        result: DownloadResult,
    ) -> tuple["queue.Queue[DownloadItem]", list[DownloadItem]]:
        """
        Resolve hashes sequentially over one pooled session and queue the work.

        Each local file is queued once. Later entries that map to an already
        queued local name are returned separately and settled after the
        workers finish, so a shared blob is never read twice.
        """
        work: queue.Queue[DownloadItem] = queue.Queue()
        queued: set[str] = set()
        shared: list[DownloadItem] = []
        logger.info(f"Resolving hashes for {len(addresses)} files...")

        with pool.checkout() as session:
            resolver = HashResolver(session, self._sidecar_suffix)
            for address in addresses:
                item = plan_item(resolver, address, self._preserve_filenames)
                if item is None:
                    result.unresolved += 1
                    self._statistics.increment("hashes_unresolved")
                    continue
                if (output_dir / item.local_name).is_file():
                    manifest.record(address, item.local_name)
                    self._count_present(result)
                    continue
                if item.local_name in queued:
                    shared.append(item)
                    continue
                queued.add(item.local_name)
                work.put(item)

        logger.info(f"Queued {work.qsize()} files for download")
        if shared:
            logger.info(f"{len(shared)} entries share a local file with a queued entry")
        return work, shared

    def _settle_shared(
        self,
        shared: list[DownloadItem],
        output_dir: Path,
        manifest: DownloadManifest,
        result: DownloadResult,
    ) -> None:
        """Record entries whose local file was written by another entry."""
        for item in shared:
            if (output_dir / item.local_name).is_file():
                manifest.record(item.address, item.local_name)
                self._count_present(result)
            else:
                result.failed += 1
                result.failures.append(
                    (str(item.address), f"Shared local file {item.local_name} was not written")
                )
                self._statistics.increment("download_failures")

    def _run_workers(
        self,
        pool: SessionPool,
        work: "queue.Queue[DownloadItem]",
        output_dir: Path,
        manifest: DownloadManifest,
        progress: DownloadProgress,
    ) -> None:
        done = threading.Event()
        monitor = threading.Thread(
            target=self._monitor, args=(progress, done), name="download-monitor", daemon=True
        )
        monitor.start()
        try:
            with ThreadPoolExecutor(
                max_workers=pool.size, thread_name_prefix="download-worker"
            ) as executor:
                futures = [
                    executor.submit(
                        self._worker, worker_id, pool, work, output_dir, manifest, progress
                    )
                    for worker_id in range(pool.size)
                ]
                for future in futures:
                    future.result()
        finally:
            done.set()
            monitor.join()

    def _worker(
        self,
        worker_id: int,
        pool: SessionPool,
        work: "queue.Queue[DownloadItem]",
        output_dir: Path,
        manifest: DownloadManifest,
        progress: DownloadProgress,
    ) -> None:
        with pool.checkout() as session:
            logger.debug(f"Worker {worker_id} started on session to {session.server}")
            while True:
                try:
                    item = work.get_nowait()
                except queue.Empty:
                    break
                progress.claim(item)
                self._download_one(session, item, output_dir, manifest, progress)
                work.task_done()
        logger.debug(f"Worker {worker_id} finished")

    def _download_one(
        self,
        session: RemoteStoreSession,
        item: DownloadItem,
        output_dir: Path,
        manifest: DownloadManifest,
        progress: DownloadProgress,
    ) -> None:
        local_path = output_dir / item.local_name
        try:
            data = session.read_file(item.physical_path)
            write_local_file(local_path, data)
        except (AuthenticationError, RemoteStoreError, OSError) as e:
            logger.warning(f"Failed to download {item.address}: {e}")
            progress.record_failure(item, e)
            self._statistics.increment("download_failures")
            return

        manifest.record(item.address, item.local_name)
        progress.record_success(len(data))
        self._statistics.increment("files_downloaded")
        self._statistics.add_bytes(len(data))

        if self._progress_callback:
            self._progress_callback(
                progress.processed, progress.expected, f"Downloaded {item.address.name}"
            )

    def _monitor(self, progress: DownloadProgress, done: threading.Event) -> None:
        start = time.monotonic()
        while not done.wait(self._monitor_interval):
            downloaded, failed, size = progress.snapshot()
            elapsed = max(time.monotonic() - start, 1e-6)
            megabytes = size / (1024 * 1024)
            logger.info(
                f"Progress: {downloaded + failed}/{progress.expected} files "
                f"({failed} failed), {megabytes:.2f} MB ({megabytes / elapsed:.2f} MB/s)"
            )
            if downloaded + failed >= progress.expected:
                break

    def _count_present(self, result: DownloadResult) -> None:
        result.already_present += 1
        self._statistics.increment("files_already_present")
