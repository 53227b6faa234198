"""
SMB implementation of the remote store session, built on smbprotocol.

Each session owns a private smbclient connection cache, so sessions never
share sockets or tree handles with each other. That is what makes a pool
of them safe to hand out to parallel workers.
"""

import errno
import logging
from typing import Optional

import smbclient
from smbprotocol.exceptions import (
    AccessDenied,
    BadNetworkName,
    LogonFailure,
    SMBAuthenticationError,
    SMBException,
    SMBOSError,
)

from .errors import (
    AccessDeniedError,
    AuthenticationError,
    NotFoundError,
    RemoteStoreError,
    TransientNetworkError,
)
from .interface import Credentials, DirectoryEntry, RemoteStoreSession, join_remote_path
from .retry import ErrorClass, classify_error

logger = logging.getLogger(__name__)


def _translate(error: Exception, context: str) -> RemoteStoreError:
    """Map smbprotocol and socket errors onto the remote store taxonomy."""
    message = f"{context}: {error}"

    if isinstance(error, (SMBAuthenticationError, LogonFailure)):
        return AuthenticationError(message)
    if isinstance(error, AccessDenied):
        return AccessDeniedError(message)
    if isinstance(error, BadNetworkName):
        return NotFoundError(message)
    if isinstance(error, SMBOSError):
        if error.errno == errno.ENOENT:
            return NotFoundError(message)
        if error.errno == errno.EACCES:
            return AccessDeniedError(message)

    classification = classify_error(error)
    if classification is ErrorClass.AUTHENTICATION:
        return AuthenticationError(message)
    if classification is ErrorClass.TRANSIENT or isinstance(error, OSError):
        return TransientNetworkError(message)
    return RemoteStoreError(message)


class SmbStoreSession(RemoteStoreSession):
    """RemoteStoreSession speaking SMB2/3 through smbclient."""

    def __init__(
        self,
        server: str,
        credentials: Optional[Credentials] = None,
        port: int = 445,
        timeout: float = 30.0,
    ):
        """
        Initialize the session. Nothing touches the network until connect().

        Args:
            server: Host name or address of the file server
            credentials: Credentials, or None to use the current identity
            port: SMB port
            timeout: Connection timeout in seconds
        """
        self._server = server
        self._credentials = credentials or Credentials(use_current_user=True)
        self._port = port
        self._timeout = timeout
        self._cache: dict = {}
        self._share_name: Optional[str] = None
        self._connected = False

    @property
    def server(self) -> str:
        return self._server

    @property
    def share_name(self) -> Optional[str]:
        return self._share_name

    def connect(self) -> None:
        creds = self._credentials
        username = None if creds.use_current_user else creds.qualified_username
        password = None if creds.use_current_user else creds.password
        logger.info(
            f"Connecting to {self._server}:{self._port} as "
            f"{username or 'current user'}"
        )
        try:
            smbclient.register_session(
                self._server,
                username=username,
                password=password,
                port=self._port,
                connection_timeout=int(self._timeout),
                connection_cache=self._cache,
            )
        except (SMBException, OSError, ValueError) as e:
            raise _translate(e, f"Connect to {self._server}") from e
        self._connected = True

    def open_share(self, name: str) -> None:
        if not self._connected:
            raise RemoteStoreError("Session is not connected")
        try:
            smbclient.stat(self._unc(share=name), connection_cache=self._cache)
        except (SMBException, OSError, ValueError) as e:
            raise _translate(e, f"Open share {name} on {self._server}") from e
        self._share_name = name
        logger.debug(f"Opened share \\\\{self._server}\\{name}")

    def list_entries(self, path: str) -> list[DirectoryEntry]:
        target = self._unc(path)
        entries = []
        try:
            for item in smbclient.scandir(target, connection_cache=self._cache):
                if item.name in (".", ".."):
                    continue
                is_dir = item.is_dir()
                size = 0 if is_dir else item.stat().st_size
                entries.append(DirectoryEntry(name=item.name, is_directory=is_dir, size=size))
        except (SMBException, OSError, ValueError) as e:
            raise _translate(e, f"List {target}") from e
        return entries

    def read_file(self, path: str) -> bytes:
        target = self._unc(path)
        try:
            with smbclient.open_file(target, mode="rb", connection_cache=self._cache) as fd:
                return fd.read()
        except (SMBException, OSError, ValueError) as e:
            raise _translate(e, f"Read {target}") from e

    def is_alive(self) -> bool:
        if not self._connected or self._share_name is None:
            return False
        try:
            smbclient.stat(self._unc(), connection_cache=self._cache)
            return True
        except (SMBException, OSError, ValueError) as e:
            logger.debug(f"Health probe on {self._unc()} failed: {e}")
            return False

    def reopen(self) -> None:
        if self._share_name is None:
            return
        share = self._share_name
        self._reset_cache()
        self._connected = False
        self.connect()
        self.open_share(share)

    def close(self) -> None:
        self._reset_cache()
        self._connected = False
        self._share_name = None

    def _reset_cache(self) -> None:
        try:
            smbclient.reset_connection_cache(fail_on_error=False, connection_cache=self._cache)
        finally:
            self._cache = {}

    def _unc(self, path: str = "", share: Optional[str] = None) -> str:
        share = share or self._share_name
        if share is None:
            raise RemoteStoreError("No share is open")
        relative = join_remote_path(path).replace("/", "\\")
        base = f"\\\\{self._server}\\{share}"
        return f"{base}\\{relative}" if relative else base
