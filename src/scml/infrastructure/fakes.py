"""
Fake implementations for testing.

Provides an in-memory content store and sessions over it, so the inventory,
retrieval and analysis services can be exercised without a file server.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Optional

from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    DirectoryEntry,
    NotFoundError,
    RemoteStoreError,
    RemoteStoreSession,
    TransientNetworkError,
    join_remote_path,
)


def _key(path: str) -> str:
    return join_remote_path(path).lower()


class InMemoryFileStore:
    """
    Shared backing data for InMemoryStoreSession instances.

    Several sessions can be opened over one store, which is how the session
    pool is tested. Failures can be injected per path, per share or per
    connect call, and every file read is recorded.
    """

    def __init__(self, server: str = "fake-server"):
        self.server = server
        # share key -> (share display name, {path key -> (path, data)})
        self._shares: dict[str, tuple[str, dict[str, tuple[str, bytes]]]] = {}
        self._directories: dict[str, set[str]] = {}
        self.listing_failures: dict[tuple[str, str], Exception] = {}
        self.read_failures: dict[tuple[str, str], Exception] = {}
        self.denied_shares: set[str] = set()
        # Popped once per connect; None lets that connect succeed.
        self.connect_failures: list[Optional[Exception]] = []
        self.reopen_failures = 0
        self._reads: Counter[str] = Counter()
        self._connect_count = 0
        self._lock = threading.Lock()

    def add_share(self, share: str) -> "InMemoryFileStore":
        self._shares.setdefault(share.lower(), (share, {}))
        self._directories.setdefault(share.lower(), set())
        return self

    def add_file(self, share: str, path: str, data: bytes | str) -> "InMemoryFileStore":
        """Add a file, creating the share and parent directories implicitly."""
        self.add_share(share)
        if isinstance(data, str):
            data = data.encode("utf-8")
        normalized = join_remote_path(path)
        self._shares[share.lower()][1][normalized.lower()] = (normalized, data)
        return self

    def add_directory(self, share: str, path: str) -> "InMemoryFileStore":
        self.add_share(share)
        self._directories[share.lower()].add(join_remote_path(path))
        return self

    def fail_listing(self, share: str, path: str, error: Exception) -> None:
        self.listing_failures[(share.lower(), _key(path))] = error

    def fail_read(self, share: str, path: str, error: Exception) -> None:
        self.read_failures[(share.lower(), _key(path))] = error

    def session(self) -> "InMemoryStoreSession":
        """Create a new session over this store."""
        return InMemoryStoreSession(self)

    @property
    def read_count(self) -> int:
        with self._lock:
            return sum(self._reads.values())

    def reads_of(self, path: str) -> int:
        with self._lock:
            return self._reads[_key(path)]

    @property
    def connect_count(self) -> int:
        with self._lock:
            return self._connect_count

    def _record_connect(self) -> Optional[Exception]:
        with self._lock:
            self._connect_count += 1
            if self.connect_failures:
                return self.connect_failures.pop(0)
        return None

    def _record_read(self, path: str) -> None:
        with self._lock:
            self._reads[_key(path)] += 1

    def _has_share(self, share: str) -> bool:
        return share.lower() in self._shares

    def _share_display(self, share: str) -> str:
        return self._shares[share.lower()][0]

    def _list(self, share: str, path: str) -> list[DirectoryEntry]:
        failure = self.listing_failures.get((share.lower(), _key(path)))
        if failure is not None:
            raise failure

        prefix = _key(path)
        files = self._shares[share.lower()][1]
        children: dict[str, DirectoryEntry] = {}

        def visit(original: str, size: Optional[int]) -> None:
            lowered = original.lower()
            if prefix:
                if not lowered.startswith(prefix + "/"):
                    return
                rest = original[len(prefix) + 1 :]
            else:
                rest = original
            if not rest:
                return
            head, sep, _ = rest.partition("/")
            if sep or size is None:
                children.setdefault(head.lower(), DirectoryEntry(head, True, 0))
            else:
                children[head.lower()] = DirectoryEntry(head, False, size)

        for original, data in files.values():
            visit(original, len(data))
        for directory in self._directories[share.lower()]:
            visit(directory, None)

        if not children and prefix and not self._is_directory(share, prefix):
            raise NotFoundError(f"Directory not found: {path}")
        return sorted(children.values(), key=lambda e: e.name.lower())

    def _is_directory(self, share: str, prefix: str) -> bool:
        if any(d.lower() == prefix for d in self._directories[share.lower()]):
            return True
        files = self._shares[share.lower()][1]
        return any(k.startswith(prefix + "/") for k in files)

    def _read(self, share: str, path: str) -> bytes:
        failure = self.read_failures.get((share.lower(), _key(path)))
        if failure is not None:
            raise failure
        entry = self._shares[share.lower()][1].get(_key(path))
        if entry is None:
            raise NotFoundError(f"File not found: {path}")
        self._record_read(path)
        return entry[1]


class InMemoryStoreSession(RemoteStoreSession):
    """
    In-memory session for testing.

    Implements RemoteStoreSession over an InMemoryFileStore. Call drop() to
    simulate a connection that silently died while idle.
    """

    def __init__(self, store: InMemoryFileStore):
        self._store = store
        self._share: Optional[str] = None
        self._connected = False
        self._alive = False
        self.closed = False

    @property
    def store(self) -> InMemoryFileStore:
        return self._store

    @property
    def server(self) -> str:
        return self._store.server

    @property
    def share_name(self) -> Optional[str]:
        return self._share

    def connect(self) -> None:
        failure = self._store._record_connect()
        if failure is not None:
            raise failure
        self._connected = True
        self.closed = False

    def open_share(self, name: str) -> None:
        if not self._connected:
            raise RemoteStoreError("Session is not connected")
        if name.lower() in {s.lower() for s in self._store.denied_shares}:
            raise AccessDeniedError(f"Access denied to share {name}")
        if not self._store._has_share(name):
            raise NotFoundError(f"Share not found: {name}")
        self._share = self._store._share_display(name)
        self._alive = True

    def list_entries(self, path: str) -> list[DirectoryEntry]:
        return self._store._list(self._require_share(), path)

    def read_file(self, path: str) -> bytes:
        return self._store._read(self._require_share(), path)

    def is_alive(self) -> bool:
        return self._connected and self._alive

    def reopen(self) -> None:
        if self._store.reopen_failures > 0:
            self._store.reopen_failures -= 1
            raise TransientNetworkError("Connection reset by peer")
        if self._share is not None:
            self._alive = True

    def drop(self) -> None:
        self._alive = False

    def close(self) -> None:
        self._connected = False
        self._alive = False
        self.closed = True

    def _require_share(self) -> str:
        if not self._connected:
            raise AuthenticationError("Session is not authenticated")
        if self._share is None:
            raise RemoteStoreError("No share is open")
        if not self._alive:
            raise TransientNetworkError("Connection to server was lost")
        return self._share
