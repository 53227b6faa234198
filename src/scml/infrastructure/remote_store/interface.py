"""
Abstract interface for remote store sessions.

A session is one authenticated connection to one server with at most one
share open at a time. Paths passed to a session are share-relative and use
forward slashes; the empty string is the share root.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class DirectoryEntry:
    """One item returned by a directory listing."""

    name: str
    is_directory: bool
    size: int = 0


@dataclass(frozen=True)
class Credentials:
    """
    Credentials for a remote store.

    When ``use_current_user`` is set, username and password are ignored and
    the ambient identity of the process is used.
    """

    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    domain: Optional[str] = None
    use_current_user: bool = False

    @property
    def qualified_username(self) -> Optional[str]:
        """Username in DOMAIN\\user form when a domain is known."""
        if not self.username:
            return None
        if self.domain and "\\" not in self.username and "@" not in self.username:
            return f"{self.domain}\\{self.username}"
        return self.username


def join_remote_path(*parts: str) -> str:
    """Join share-relative path segments with forward slashes."""
    cleaned = [p.replace("\\", "/").strip("/") for p in parts]
    return "/".join(p for p in cleaned if p)


class RemoteStoreSession(ABC):
    """Abstract interface for a stateful remote file-sharing session."""

    @property
    @abstractmethod
    def server(self) -> str:
        """Server address or label this session talks to."""
        pass

    @property
    @abstractmethod
    def share_name(self) -> Optional[str]:
        """Name of the currently open share, if any."""
        pass

    @abstractmethod
    def connect(self) -> None:
        """
        Authenticate against the server.

        Raises:
            AuthenticationError: If the credentials are rejected
            TransientNetworkError: If the server cannot be reached
        """
        pass

    @abstractmethod
    def open_share(self, name: str) -> None:
        """
        Open a share, replacing any share opened before.

        Raises:
            NotFoundError: If the share does not exist
            AccessDeniedError: If the share cannot be opened with these credentials
        """
        pass

    @abstractmethod
    def list_entries(self, path: str) -> list[DirectoryEntry]:
        """List a directory on the open share. "." and ".." are never returned."""
        pass

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Read a whole file from the open share."""
        pass

    @abstractmethod
    def is_alive(self) -> bool:
        """Cheap health probe. Must not raise."""
        pass

    @abstractmethod
    def reopen(self) -> None:
        """Re-establish the handle to the open share. Idempotent."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the share handle and the connection."""
        pass

    def __enter__(self) -> "RemoteStoreSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
