"""
Run statistics accumulator.

One RunStatistics object is created per command and handed to every service
taking part in the run. All mutation goes through methods that hold a single
lock, so the parallel downloader can share it with its workers.
"""

import threading
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from scml.core.rules.models import Severity


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Point-in-time copy of the run statistics."""

    targets_processed: int = 0
    targets_failed: int = 0
    failed_targets: tuple[tuple[str, str], ...] = ()
    files_inventoried: int = 0
    duplicates_removed: int = 0
    listing_errors: int = 0
    files_downloaded: int = 0
    files_skipped: int = 0
    files_already_present: int = 0
    download_failures: int = 0
    bytes_downloaded: int = 0
    hashes_unresolved: int = 0
    files_analysed: int = 0
    files_with_findings: int = 0
    matches_by_severity: dict[str, int] = field(default_factory=dict)
    errors: int = 0
    elapsed_seconds: float = 0.0

    @property
    def throughput_mb_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.bytes_downloaded / (1024 * 1024) / self.elapsed_seconds

    @property
    def total_matches(self) -> int:
        return sum(self.matches_by_severity.values())


class RunStatistics:
    """Thread-safe counters for one run."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._severities: Counter[str] = Counter()
        self._failed_targets: list[tuple[str, str]] = []

    def increment(self, name: str, amount: int = 1) -> None:
        """Add ``amount`` to a named counter."""
        with self._lock:
            self._counters[name] += amount

    def add_bytes(self, amount: int) -> None:
        self.increment("bytes_downloaded", amount)

    def record_target(self, target: str, error: Optional[str] = None) -> None:
        """Record that a target was processed, with the error if it failed."""
        with self._lock:
            self._counters["targets_processed"] += 1
            if error is not None:
                self._counters["targets_failed"] += 1
                self._failed_targets.append((target, error))

    def record_matches(self, severities: list[Severity]) -> None:
        with self._lock:
            for severity in severities:
                self._severities[severity.name] += 1

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> StatisticsSnapshot:
        """Consistent copy of every counter."""
        with self._lock:
            c = self._counters
            return StatisticsSnapshot(
                targets_processed=c["targets_processed"],
                targets_failed=c["targets_failed"],
                failed_targets=tuple(self._failed_targets),
                files_inventoried=c["files_inventoried"],
                duplicates_removed=c["duplicates_removed"],
                listing_errors=c["listing_errors"],
                files_downloaded=c["files_downloaded"],
                files_skipped=c["files_skipped"],
                files_already_present=c["files_already_present"],
                download_failures=c["download_failures"],
                bytes_downloaded=c["bytes_downloaded"],
                hashes_unresolved=c["hashes_unresolved"],
                files_analysed=c["files_analysed"],
                files_with_findings=c["files_with_findings"],
                matches_by_severity={
                    s.name: self._severities[s.name]
                    for s in sorted(Severity, reverse=True)
                    if self._severities[s.name]
                },
                errors=c["errors"],
                elapsed_seconds=self._clock() - self._started,
            )
