"""
Bounded pool of ready-to-use remote store sessions.

Checkout is exclusive: a session handed to one worker is not visible to any
other until it is returned. Checkout order is unspecified.
"""

import logging
import queue
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Optional

from scml.infrastructure.remote_store import (
    AuthenticationError,
    FatalSetupError,
    RemoteStoreError,
    RemoteStoreSession,
    RetryConfig,
    execute_with_retry,
)

logger = logging.getLogger(__name__)

MIN_POOL_SIZE = 1
MAX_POOL_SIZE = 10

SessionFactory = Callable[[], RemoteStoreSession]


def clamp_pool_size(requested: int) -> int:
    """Clamp a requested pool size to the supported range."""
    return max(MIN_POOL_SIZE, min(MAX_POOL_SIZE, requested))


def open_session(
    factory: SessionFactory,
    share_name: str,
    retry_config: Optional[RetryConfig] = None,
) -> RemoteStoreSession:
    """
    Create a session, connect it and open a share, each step under retry.

    The session is closed again if any step fails.
    """
    session = factory()
    try:
        execute_with_retry(session.connect, f"Connect to {session.server}", retry_config)
        execute_with_retry(
            lambda: session.open_share(share_name),
            f"Open share {share_name} on {session.server}",
            retry_config,
        )
    except Exception:
        session.close()
        raise
    return session


class SessionPool:
    """Fixed set of connected sessions shared by a group of workers."""

    def __init__(self, sessions: list[RemoteStoreSession]):
        if not sessions:
            raise FatalSetupError("A session pool needs at least one session")
        self._sessions = list(sessions)
        self._available: queue.Queue[RemoteStoreSession] = queue.Queue()
        for session in self._sessions:
            self._available.put(session)

    @classmethod
    def create(
        cls,
        factory: SessionFactory,
        size: int,
        share_name: str,
        retry_config: Optional[RetryConfig] = None,
    ) -> "SessionPool":
        """
        Build a pool of up to ``size`` sessions opened on ``share_name``.

        Sessions that fail to connect are skipped. Creation stops at the first
        authentication failure, since every further attempt would use the same
        credentials.

        Raises:
            FatalSetupError: If no session could be established
        """
        target = clamp_pool_size(size)
        if target != size:
            logger.warning(f"Pool size {size} out of range, using {target}")

        logger.info(f"Initializing session pool with {target} connections")
        sessions: list[RemoteStoreSession] = []
        last_error: Optional[Exception] = None

        for index in range(target):
            try:
                sessions.append(open_session(factory, share_name, retry_config))
                logger.debug(f"Pooled session {index + 1}/{target} ready")
            except AuthenticationError as e:
                last_error = e
                logger.error(f"Pooled session {index + 1} failed authentication: {e}")
                break
            except (RemoteStoreError, OSError) as e:
                last_error = e
                logger.warning(f"Pooled session {index + 1} failed: {e}")

        if not sessions:
            raise FatalSetupError(
                f"Failed to establish any pooled session: {last_error}"
            ) from last_error

        if len(sessions) < target:
            logger.warning(f"Session pool running with {len(sessions)} of {target} sessions")
        else:
            logger.info(f"Session pool ready with {len(sessions)} sessions")
        return cls(sessions)

    @property
    def size(self) -> int:
        """Number of sessions owned by the pool."""
        return len(self._sessions)

    @property
    def available(self) -> int:
        """Number of sessions currently checked in."""
        return self._available.qsize()

    def acquire(self, timeout: Optional[float] = None) -> RemoteStoreSession:
        """Take a session out of the pool, blocking until one is free."""
        try:
            return self._available.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError("No pooled session became available") from e

    def release(self, session: RemoteStoreSession) -> None:
        """Return a session previously obtained with acquire()."""
        self._available.put(session)

    @contextmanager
    def checkout(self, timeout: Optional[float] = None) -> Iterator[RemoteStoreSession]:
        """Context manager form of acquire()/release()."""
        session = self.acquire(timeout)
        try:
            yield session
        finally:
            self.release(session)

    def close_all(self) -> None:
        """Close every session owned by the pool."""
        for session in self._sessions:
            try:
                session.close()
            except (RemoteStoreError, OSError) as e:
                logger.debug(f"Error closing pooled session to {session.server}: {e}")
        logger.info("Session pool cleaned up")

    def __enter__(self) -> "SessionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_all()
