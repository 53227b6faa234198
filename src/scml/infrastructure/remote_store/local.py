"""
Filesystem-backed remote store session.

Serves a directory laid out as ``<root>/<share>/...`` through the session
interface, so a content library copied off a server (or mounted locally)
can be audited with the same pipeline as a live one.
"""

import logging
from pathlib import Path
from typing import Optional

from .errors import AccessDeniedError, NotFoundError, RemoteStoreError
from .interface import DirectoryEntry, RemoteStoreSession, join_remote_path

logger = logging.getLogger(__name__)


class LocalStoreSession(RemoteStoreSession):
    """RemoteStoreSession over a local directory tree."""

    def __init__(self, root: Path | str, server: Optional[str] = None):
        self._root = Path(root)
        self._server = server or self._root.name or "localhost"
        self._share_name: Optional[str] = None
        self._share_path: Optional[Path] = None
        self._connected = False

    @property
    def server(self) -> str:
        return self._server

    @property
    def share_name(self) -> Optional[str]:
        return self._share_name

    def connect(self) -> None:
        if not self._root.is_dir():
            raise NotFoundError(f"Local store root not found: {self._root}")
        self._connected = True
        logger.debug(f"Opened local store at {self._root}")

    def open_share(self, name: str) -> None:
        if not self._connected:
            raise RemoteStoreError("Session is not connected")
        share_path = self._find_child(self._root, name)
        if share_path is None or not share_path.is_dir():
            raise NotFoundError(f"Share not found: {name}")
        self._share_name = name
        self._share_path = share_path

    def list_entries(self, path: str) -> list[DirectoryEntry]:
        directory = self._resolve(path)
        if not directory.is_dir():
            raise NotFoundError(f"Directory not found: {path}")

        entries = []
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name.lower())
        except PermissionError as e:
            raise AccessDeniedError(f"Access denied listing {path}: {e}") from e

        for child in children:
            if child.name in (".", ".."):
                continue
            is_dir = child.is_dir()
            size = 0 if is_dir else child.stat().st_size
            entries.append(DirectoryEntry(name=child.name, is_directory=is_dir, size=size))
        return entries

    def read_file(self, path: str) -> bytes:
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {path}")
        try:
            return file_path.read_bytes()
        except PermissionError as e:
            raise AccessDeniedError(f"Access denied reading {path}: {e}") from e

    def is_alive(self) -> bool:
        return self._connected and self._share_path is not None and self._share_path.is_dir()

    def reopen(self) -> None:
        if self._share_name is None:
            return
        self.open_share(self._share_name)

    def close(self) -> None:
        self._connected = False
        self._share_path = None

    def _resolve(self, path: str) -> Path:
        if self._share_path is None:
            raise RemoteStoreError("No share is open")
        current = self._share_path
        for segment in join_remote_path(path).split("/"):
            if not segment:
                continue
            if segment in (".", ".."):
                raise NotFoundError(f"Invalid path segment in {path!r}")
            child = self._find_child(current, segment)
            if child is None:
                raise NotFoundError(f"Path not found: {path}")
            current = child
        return current

    @staticmethod
    def _find_child(parent: Path, name: str) -> Optional[Path]:
        """Case-insensitive child lookup, like the share semantics it stands in for."""
        exact = parent / name
        if exact.exists():
            return exact
        if not parent.is_dir():
            return None
        lowered = name.lower()
        for child in parent.iterdir():
            if child.name.lower() == lowered:
                return child
        return None
