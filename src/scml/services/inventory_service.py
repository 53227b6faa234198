"""
Inventory service for SCML.

Crawls a content library's DataLib tree and writes one logical address per
sidecar file to an inventory file, incrementally, so that a crawl that is
interrupted still leaves usable results behind. Finalization deduplicates
and sorts the file case-insensitively.
"""

import logging
import os
import tempfile
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TextIO

from scml.core.addresses import (
    DATA_LIBRARY_DIR,
    LIBRARY_MARKER_DIRS,
    SIDECAR_SUFFIX,
    LogicalFileAddress,
    matches_extensions,
    normalize_extensions,
)
from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    CorruptDataError,
    DirectoryEntry,
    FatalSetupError,
    NotFoundError,
    RemoteStoreError,
    RemoteStoreSession,
    RetryConfig,
    execute_with_retry,
    join_remote_path,
)
from scml.services.statistics import RunStatistics

logger = logging.getLogger(__name__)

# Share names tried in order. The generic administrative share comes last and
# needs a search for the library inside it.
SHARE_NAME_VARIANTS = (
    "SCCMContentLib$",
    "SCCMContentLib",
    "SMS_DP$",
    "SMS_DistributionPoint$",
    "ContentLib$",
    "SMSPKGD$",
    "SMSPKGE$",
    "SMSPKGF$",
    "SMSSIG$",
    "SMS_CPSC$",
    "ADMIN$",
)
ADMIN_SHARE = "ADMIN$"

# Where a content library usually lives relative to the admin share.
WELL_KNOWN_LIBRARY_PATHS = (
    "SCCMContentLib",
    "SMSPKG",
    "SMS/PKG",
    "SMS_DP/ContentLib",
    "SMS_DistributionPoint/ContentLib",
    "Program Files/Microsoft Configuration Manager/CMContentLib",
    "Program Files (x86)/Microsoft Configuration Manager/CMContentLib",
    "Program Files/SMS_CCM/ServiceData",
)

LIBRARY_NAME_HINTS = ("sccm", "sms", "contentlib")
MAX_FALLBACK_DIRECTORIES = 20
PACKAGE_FOLDER_NAME_LENGTH = 8

SessionFactory = Callable[[str], RemoteStoreSession]


@dataclass(frozen=True)
class ContentRoot:
    """Where a content library was found: a share and a share-relative root."""

    share: str
    path: str = ""

    @property
    def data_library(self) -> str:
        return join_remote_path(self.path, DATA_LIBRARY_DIR)


@dataclass
class TargetOutcome:
    """Result of crawling one target."""

    target: str
    share: Optional[str] = None
    root: Optional[str] = None
    entries_written: int = 0
    listing_errors: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class InventoryRunResult:
    """Result of crawling a batch of targets into one inventory."""

    inventory_path: Path
    outcomes: list[TargetOutcome] = field(default_factory=list)
    total_entries: int = 0
    duplicates_removed: int = 0

    @property
    def failed_targets(self) -> list[TargetOutcome]:
        return [o for o in self.outcomes if not o.success]


class InventoryWriter:
    """Appends addresses to an inventory file, flushing every few entries."""

    def __init__(self, path: Path | str, append: bool = False, flush_interval: int = 10):
        self._path = Path(path)
        self._append = append
        self._flush_interval = max(1, flush_interval)
        self._handle: Optional[TextIO] = None
        self.count = 0

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> "InventoryWriter":
        self._path.parent.mkdir(parents=True, exist_ok=True)
        mode = "a" if self._append else "w"
        self._handle = open(self._path, mode, encoding="utf-8", newline="\n")
        return self

    def write(self, address: LogicalFileAddress | str) -> None:
        if self._handle is None:
            raise RuntimeError("InventoryWriter is not open")
        self._handle.write(f"{address}\n")
        self.count += 1
        if self.count % self._flush_interval == 0:
            self._handle.flush()
            if self.count % 100 == 0:
                logger.info(f"Progress: {self.count} files written to inventory...")

    def close(self) -> None:
        if self._handle is not None:
            self._handle.flush()
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "InventoryWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def finalize_lines(lines: Iterable[str]) -> list[str]:
    """
    Case-insensitive dedup and sort.

    Blank lines are dropped and the first spelling of each duplicate is kept.
    """
    seen: dict[str, str] = {}
    for line in lines:
        entry = line.strip()
        if not entry:
            continue
        seen.setdefault(entry.casefold(), entry)
    return [seen[key] for key in sorted(seen)]


def finalize_inventory(path: Path | str) -> int:
    """
    Deduplicate and sort an inventory file in place, atomically.

    Returns:
        Number of entries removed
    """
    path = Path(path)
    lines = path.read_text(encoding="utf-8").splitlines()
    original = sum(1 for line in lines if line.strip())
    unique = finalize_lines(lines)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            for entry in unique:
                handle.write(f"{entry}\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    removed = original - len(unique)
    logger.info(f"Inventory finalized: {len(unique)} entries, {removed} duplicates removed")
    return removed


def iter_inventory(
    path: Path | str,
    extensions: Iterable[str] = (),
) -> Iterator[LogicalFileAddress]:
    """
    Stream addresses from an inventory file.

    Malformed lines are logged and skipped. An empty extension filter
    yields every entry.
    """
    wanted = normalize_extensions(extensions)
    with open(path, encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                address = LogicalFileAddress.parse(line)
            except CorruptDataError as e:
                logger.warning(f"Skipping inventory line {line_number}: {e}")
                continue
            if matches_extensions(address, wanted):
                yield address


class InventoryBuilder:
    """Locates the content library on a connected session and crawls it."""

    def __init__(
        self,
        session: RemoteStoreSession,
        statistics: Optional[RunStatistics] = None,
        retry_config: Optional[RetryConfig] = None,
        flush_interval: int = 10,
        sidecar_suffix: str = SIDECAR_SUFFIX,
    ):
        """
        Initialize the builder.

        Args:
            session: A connected session to the target server
            statistics: Run statistics to update
            retry_config: Retry policy for share-open calls
            flush_interval: Inventory entries written between flushes
            sidecar_suffix: Suffix marking metadata sidecar files
        """
        self._session = session
        self._statistics = statistics or RunStatistics()
        self._retry_config = retry_config
        self._flush_interval = flush_interval
        self._suffix = sidecar_suffix
        self._listing_errors = 0
        self.inventory_opened = False

    def locate_content_root(self) -> ContentRoot:
        """
        Open the first reachable content share and find the library root on it.

        Raises:
            AuthenticationError: If the credentials are rejected outright
            FatalSetupError: If no content library can be reached
        """
        for share in SHARE_NAME_VARIANTS:
            logger.debug(f"Attempting to connect to share: {share}")
            try:
                execute_with_retry(
                    lambda: self._session.open_share(share),
                    f"Open share {share}",
                    self._retry_config,
                )
            except AccessDeniedError as e:
                logger.debug(f"Access denied to {share}: {e}")
                continue
            except AuthenticationError:
                raise
            except (RemoteStoreError, OSError) as e:
                logger.debug(f"Share {share} unavailable: {e}")
                continue

            if share != ADMIN_SHARE:
                logger.info(f"Access to {share} confirmed")
                return ContentRoot(share=share)

            logger.info(f"Connected to {ADMIN_SHARE}, searching for the content library...")
            path = self._search_admin_share()
            if path is not None:
                logger.info(f"Found content library at {ADMIN_SHARE}/{path}")
                return ContentRoot(share=share, path=path)
            logger.warning(f"Connected to {ADMIN_SHARE} but could not find a content library")

        raise FatalSetupError(
            f"Failed to access any content library share on {self._session.server}. "
            f"Tried: {', '.join(SHARE_NAME_VARIANTS)}"
        )

    def build(
        self,
        target_label: str,
        inventory_path: Path | str,
        append: bool = False,
    ) -> TargetOutcome:
        """
        Crawl the target and write its entries to the inventory file.

        The file is not finalized here; callers finalize once per batch.

        Raises:
            AuthenticationError: If the credentials are rejected
            FatalSetupError: If no content library is reachable
            OSError: If the inventory file cannot be opened
        """
        root = self.locate_content_root()
        outcome = TargetOutcome(target=target_label, share=root.share, root=root.path)
        self._listing_errors = 0

        logger.info("Starting file enumeration, writing to inventory in real time...")
        with InventoryWriter(inventory_path, append, self._flush_interval) as writer:
            self.inventory_opened = True
            top_level = self._list(root.data_library)
            folders = [e for e in top_level if e.is_directory]
            logger.info(f"Found {len(folders)} root folders to scan")
            for folder in folders:
                logger.debug(f"Scanning folder: {folder.name}")
                folder_path = join_remote_path(root.data_library, folder.name)
                self._crawl(target_label, root.share, folder_path, writer)
            outcome.entries_written = writer.count

        outcome.listing_errors = self._listing_errors
        self._statistics.increment("files_inventoried", outcome.entries_written)
        self._statistics.increment("listing_errors", outcome.listing_errors)
        logger.info(
            f"Completed: {outcome.entries_written} files written to inventory",
            extra={"target": target_label, "share": root.share, "errors": outcome.listing_errors},
        )
        return outcome

    def _crawl(self, target: str, share: str, path: str, writer: InventoryWriter) -> None:
        entries = self._list(path)
        suffix = self._suffix.lower()
        for entry in entries:
            if entry.is_directory or entry.size <= 0:
                continue
            if not entry.name.lower().endswith(suffix):
                continue
            name = entry.name[: -len(self._suffix)]
            if not name:
                continue
            writer.write(LogicalFileAddress(target, share, join_remote_path(path, name)))

        for entry in entries:
            if entry.is_directory:
                self._crawl(target, share, join_remote_path(path, entry.name), writer)

    def _list(self, path: str) -> list[DirectoryEntry]:
        """List a directory, treating failures as an empty directory."""
        try:
            return self._session.list_entries(path)
        except AuthenticationError as e:
            if not isinstance(e, AccessDeniedError):
                raise
            logger.warning(f"Access denied listing {path}: {e}")
        except (RemoteStoreError, OSError) as e:
            logger.warning(f"Error listing {path}: {e}")
        self._listing_errors += 1
        return []

    def _search_admin_share(self) -> Optional[str]:
        for path in WELL_KNOWN_LIBRARY_PATHS:
            items = self._probe(path)
            if items is None:
                continue
            if _has_library_markers(items):
                return path
            if "smspkg" in path.lower() and items:
                return path

        root_items = self._probe("") or []
        candidates = [
            e for e in root_items
            if e.is_directory and any(h in e.name.lower() for h in LIBRARY_NAME_HINTS)
        ][:MAX_FALLBACK_DIRECTORIES]

        for candidate in candidates:
            items = self._probe(candidate.name)
            if not items:
                continue
            if _has_library_markers(items):
                return candidate.name
            if any(e.is_directory and len(e.name) == PACKAGE_FOLDER_NAME_LENGTH for e in items):
                logger.info(f"Found potential package folder at {candidate.name}")
                return candidate.name
        return None

    def _probe(self, path: str) -> Optional[list[DirectoryEntry]]:
        try:
            return self._session.list_entries(path)
        except (RemoteStoreError, OSError) as e:
            logger.debug(f"Cannot list {path or '<root>'}: {e}")
            return None


def _has_library_markers(entries: Iterable[DirectoryEntry]) -> bool:
    markers = {m.lower() for m in LIBRARY_MARKER_DIRS}
    return any(e.is_directory and e.name.lower() in markers for e in entries)


def build_inventories(
    targets: Iterable[str],
    session_factory: SessionFactory,
    inventory_path: Path | str,
    append: bool = False,
    retry_config: Optional[RetryConfig] = None,
    statistics: Optional[RunStatistics] = None,
    flush_interval: int = 10,
    sidecar_suffix: str = SIDECAR_SUFFIX,
) -> InventoryRunResult:
    """
    Crawl several targets into one inventory, then finalize it once.

    The first target honours ``append``; later targets always append.
    Connection and share failures abort only the affected target.

    Args:
        targets: Target labels (host names)
        session_factory: Creates an unconnected session for a target label
        inventory_path: Inventory file to write
        append: Whether the first target appends to an existing file
        retry_config: Retry policy for connect and share-open calls
        statistics: Run statistics to update

    Returns:
        InventoryRunResult with one outcome per target

    Raises:
        OSError: If the inventory file cannot be written at all
    """
    statistics = statistics or RunStatistics()
    inventory_path = Path(inventory_path)
    result = InventoryRunResult(inventory_path=inventory_path)
    first = True

    for target in targets:
        logger.info(f"Processing target: {target}")
        outcome = TargetOutcome(target=target)
        session = session_factory(target)
        builder = None
        try:
            execute_with_retry(session.connect, f"Connect to {target}", retry_config)
            builder = InventoryBuilder(
                session,
                statistics=statistics,
                retry_config=retry_config,
                flush_interval=flush_interval,
                sidecar_suffix=sidecar_suffix,
            )
            outcome = builder.build(target, inventory_path, append=append if first else True)
        except (RemoteStoreError, ConnectionError, TimeoutError) as e:
            outcome.error = str(e)
            statistics.increment("errors")
            logger.error(f"Failed to process target {target}: {e}")
        finally:
            session.close()
            # Once a target has opened the file, later targets append to it.
            if builder is not None and builder.inventory_opened:
                first = False

        statistics.record_target(target, outcome.error)
        result.outcomes.append(outcome)
        result.total_entries += outcome.entries_written

    if inventory_path.exists():
        result.duplicates_removed = finalize_inventory(inventory_path)
        statistics.increment("duplicates_removed", result.duplicates_removed)
    return result
