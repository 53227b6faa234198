"""
Shared data models and helpers for the retrieval services.
"""

import logging
import os
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from scml.core.addresses import ContentHashKey, LogicalFileAddress

logger = logging.getLogger(__name__)

MANIFEST_NAME = ".scml_downloads.tsv"
PARTIAL_SUFFIX = ".part"


@dataclass(frozen=True)
class DownloadItem:
    """One resolved file queued for retrieval."""

    address: LogicalFileAddress
    hash_key: ContentHashKey
    physical_path: str
    local_name: str
    expected_size: Optional[int] = None


@dataclass
class DownloadResult:
    """
    Result of a retrieval run.

    Attributes:
        candidates: Inventory entries that passed the filters
        downloaded: Files fetched and written in this run
        already_present: Files found locally and not fetched again
        unresolved: Entries whose sidecar gave no usable hash
        failed: Files whose retrieval failed
        bytes_downloaded: Bytes written in this run
        duration_seconds: Wall-clock duration
        failures: (address, error) pairs for failed entries
    """

    candidates: int = 0
    downloaded: int = 0
    already_present: int = 0
    unresolved: int = 0
    failed: int = 0
    bytes_downloaded: int = 0
    duration_seconds: float = 0.0
    failures: list[tuple[str, str]] = field(default_factory=list)
    output_dir: Optional[Path] = None

    @property
    def completed(self) -> int:
        return self.downloaded + self.already_present

    @property
    def throughput_mb_per_second(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.bytes_downloaded / (1024 * 1024) / self.duration_seconds


class DownloadManifest:
    """
    Record of which logical addresses have been saved to which local files.

    Lets a re-run recognise files already on disk without touching the
    network, even when the local name embeds the content hash.
    """

    def __init__(self, output_dir: Path | str):
        self._output_dir = Path(output_dir)
        self._path = self._output_dir / MANIFEST_NAME
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        for line in self._path.read_text(encoding="utf-8").splitlines():
            key, sep, local_name = line.partition("\t")
            if sep and local_name:
                self._entries[key] = local_name

    def local_path(self, address: LogicalFileAddress) -> Optional[Path]:
        """Local file recorded for ``address``, if it still exists."""
        with self._lock:
            local_name = self._entries.get(address.key)
        if local_name is None:
            return None
        path = self._output_dir / local_name
        return path if path.is_file() else None

    def record(self, address: LogicalFileAddress, local_name: str) -> None:
        with self._lock:
            if self._entries.get(address.key) == local_name:
                return
            self._entries[address.key] = local_name
            self._output_dir.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8", newline="\n") as handle:
                handle.write(f"{address.key}\t{local_name}\n")


def write_local_file(path: Path, data: bytes) -> None:
    """Write through a partial file so an interrupted write never looks complete."""
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + PARTIAL_SUFFIX)
    try:
        partial.write_bytes(data)
        os.replace(partial, path)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise


def restrict_to_server(
    addresses: Iterable[LogicalFileAddress], server: str
) -> list[LogicalFileAddress]:
    """Keep the entries recorded for ``server`` (case-insensitive)."""
    wanted = server.lower()
    kept = [a for a in addresses if a.server.lower() == wanted]
    return kept


def group_by_share(
    addresses: Iterable[LogicalFileAddress],
) -> dict[str, list[LogicalFileAddress]]:
    """Group addresses by share, keeping the first spelling of each share name."""
    groups: dict[str, list[LogicalFileAddress]] = {}
    names: dict[str, str] = {}
    for address in addresses:
        key = address.share.lower()
        names.setdefault(key, address.share)
        groups.setdefault(names[key], []).append(address)
    return groups
