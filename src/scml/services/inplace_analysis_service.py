"""
In-place analysis of inventory entries.

Evaluates the rules against files still on the server: each entry's hash is
resolved, the blob is read into memory and scored, and nothing is written to
local disk except the results. Findings are flushed per file so an
interrupted run keeps what it found.
"""

import logging
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Optional

from scml.core.addresses import SIDECAR_SUFFIX, LogicalFileAddress
from scml.core.rules import SensitivityRuleEngine, generate_report
from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    RemoteStoreError,
    RemoteStoreSession,
    RetryConfig,
    execute_with_retry,
)
from scml.services.analysis_service import AnalysisResult
from scml.services.hash_resolver import HashResolver
from scml.services.inventory_service import iter_inventory
from scml.services.report_writers import InPlaceResultsWriter, derive_results_paths
from scml.services.statistics import RunStatistics

logger = logging.getLogger(__name__)


class InPlaceAnalysisService:
    """Streams an inventory and scores each file without saving it locally."""

    def __init__(
        self,
        session_factory: Callable[[str], RemoteStoreSession],
        engine: Optional[SensitivityRuleEngine] = None,
        statistics: Optional[RunStatistics] = None,
        retry_config: Optional[RetryConfig] = None,
        sidecar_suffix: str = SIDECAR_SUFFIX,
        progress_interval: int = 50,
    ):
        """
        Initialize the in-place analyzer.

        Args:
            session_factory: Creates an unconnected session for a server label
            engine: Rule engine, defaults to one over the built-in rules
            statistics: Run statistics to update
            retry_config: Retry policy for connect and share-open calls
            sidecar_suffix: Suffix marking metadata sidecar files
            progress_interval: Files between progress log lines
        """
        self._session_factory = session_factory
        self._engine = engine or SensitivityRuleEngine()
        self._statistics = statistics or RunStatistics()
        self._retry_config = retry_config
        self._sidecar_suffix = sidecar_suffix
        self._progress_interval = max(1, progress_interval)

        self._session: Optional[RemoteStoreSession] = None
        self._failed_servers: set[str] = set()
        self._failed_shares: set[tuple[str, str]] = set()

    def analyse_inventory(
        self,
        inventory_path: Path | str,
        output_path: Optional[Path | str] = None,
        extensions: Iterable[str] = (),
    ) -> AnalysisResult:
        """
        Analyse every inventory entry matching ``extensions``.

        Args:
            inventory_path: Inventory file to stream
            output_path: Results text file; a derived name is used when it
                is missing or equal to the inventory
            extensions: Extensions to keep, without dots; empty keeps everything

        Returns:
            AnalysisResult whose output_files are the results text and CSV

        Raises:
            OSError: If the results files cannot be opened
            AuthenticationError: If a server rejects the credentials outright
        """
        start = time.monotonic()
        inventory_path = Path(inventory_path)
        results_path, csv_path = derive_results_paths(
            inventory_path, Path(output_path) if output_path is not None else None
        )
        result = AnalysisResult()
        self._failed_servers.clear()
        self._failed_shares.clear()

        logger.info(f"Starting in-place analysis of {inventory_path}")
        try:
            with InPlaceResultsWriter(results_path, inventory_path, csv_path) as writer:
                for address in iter_inventory(inventory_path, extensions):
                    self._analyse_entry(address, writer, result)
                    total = result.files_analysed + result.files_skipped
                    if total % self._progress_interval == 0:
                        logger.info(
                            f"Progress: {total} entries, {len(result.results)} matches so far"
                        )
                writer.write_summary(result.files_analysed, result.files_skipped)
                result.output_files = [writer.results_path, writer.csv_path]
        finally:
            self._close_session()

        result.report = generate_report(result.results)
        result.duration_seconds = time.monotonic() - start
        logger.info(
            f"In-place analysis complete: {result.files_analysed} analysed, "
            f"{result.files_skipped} skipped, {result.report.total_matches} matches "
            f"in {result.report.total_files} files",
            extra={"duration_seconds": result.duration_seconds},
        )
        logger.info(f"Results saved to: {results_path}")
        return result

    def _analyse_entry(
        self,
        address: LogicalFileAddress,
        writer: InPlaceResultsWriter,
        result: AnalysisResult,
    ) -> None:
        session = self._session_for(address)
        if session is None:
            self._skip(result)
            return

        resolution = HashResolver(session, self._sidecar_suffix).resolve(address)
        if not resolution.resolved:
            self._statistics.increment("hashes_unresolved")
            self._skip(result)
            return

        ceiling = self._engine.max_content_bytes
        size = resolution.size
        if size is None and not self._engine.is_text_file(address.name):
            # Binary blobs are never fetched, so the listing is the only size source.
            size = self._blob_size(session, resolution.physical_path)
            if size is None:
                self._skip(result)
                return
        if size is not None and size >= ceiling:
            logger.warning(f"Skipping {address}: size {size} bytes is too large")
            self._skip(result)
            return

        data: Optional[bytes] = None
        size = size or 0
        if self._engine.is_text_file(address.name):
            try:
                data = session.read_file(resolution.physical_path)
            except AuthenticationError as e:
                if not isinstance(e, AccessDeniedError):
                    raise
                logger.warning(f"Access denied reading {address}: {e}")
                self._skip(result)
                return
            except (RemoteStoreError, OSError) as e:
                logger.warning(f"Error reading {address}: {e}")
                self._skip(result)
                return
            size = len(data)
            if size >= ceiling:
                logger.warning(f"Skipping {address}: {size} bytes is too large")
                self._skip(result)
                return

        matches = self._engine.analyse_remote(address, data)
        result.files_analysed += 1
        self._statistics.increment("files_analysed")
        if matches:
            result.results.extend(matches)
            writer.write_file(str(address), size, matches)
            self._statistics.increment("files_with_findings")
            self._statistics.record_matches([m.severity for m in matches])

    def _blob_size(self, session: RemoteStoreSession, physical_path: str) -> Optional[int]:
        """Size of a content blob from its directory listing, or None if unknown."""
        parent, _, name = physical_path.rpartition("/")
        try:
            entries = session.list_entries(parent)
        except AuthenticationError as e:
            if not isinstance(e, AccessDeniedError):
                raise
            logger.warning(f"Access denied listing {parent}: {e}")
            return None
        except (RemoteStoreError, OSError) as e:
            logger.warning(f"Cannot determine size of {physical_path}: {e}")
            return None
        for entry in entries:
            if not entry.is_directory and entry.name.lower() == name.lower():
                return entry.size
        logger.warning(f"Content blob {physical_path} not found")
        return None

    def _session_for(self, address: LogicalFileAddress) -> Optional[RemoteStoreSession]:
        """Session connected to the entry's server with its share open, or None."""
        server = address.server.lower()
        if server in self._failed_servers or (server, address.share.lower()) in self._failed_shares:
            return None

        session = self._session
        if session is None or session.server.lower() != server:
            self._close_session()
            session = self._session_factory(address.server)
            try:
                execute_with_retry(session.connect, f"Connect to {address.server}", self._retry_config)
            except AuthenticationError as e:
                session.close()
                if not isinstance(e, AccessDeniedError):
                    raise
                self._fail_server(address.server, e)
                return None
            except (RemoteStoreError, OSError) as e:
                session.close()
                self._fail_server(address.server, e)
                return None
            self._session = session

        if (session.share_name or "").lower() != address.share.lower():
            try:
                execute_with_retry(
                    lambda: session.open_share(address.share),
                    f"Open share {address.share} on {address.server}",
                    self._retry_config,
                )
            except AuthenticationError as e:
                if not isinstance(e, AccessDeniedError):
                    raise
                self._fail_share(address, e)
                return None
            except RemoteStoreError as e:
                self._fail_share(address, e)
                return None
        return session

    def _fail_server(self, server: str, error: Exception) -> None:
        logger.error(f"Cannot connect to {server}, skipping its entries: {error}")
        self._failed_servers.add(server.lower())
        self._statistics.increment("errors")

    def _fail_share(self, address: LogicalFileAddress, error: Exception) -> None:
        logger.error(f"Cannot open share {address.share} on {address.server}: {error}")
        self._failed_shares.add((address.server.lower(), address.share.lower()))
        self._statistics.increment("errors")

    def _skip(self, result: AnalysisResult) -> None:
        result.files_skipped += 1
        self._statistics.increment("files_skipped")

    def _close_session(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
