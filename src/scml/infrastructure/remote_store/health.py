"""
Session health management.

ManagedSession wraps a RemoteStoreSession backend with the keep-alive and
reconnect contract shared by every caller:

    FRESH -> ACTIVE            connect succeeded
    ACTIVE -> IDLE             unused for longer than the keep-alive window
    IDLE -> ACTIVE             health probe succeeded
    IDLE -> RECONNECTING       health probe failed
    RECONNECTING -> ACTIVE     share handle re-established
    RECONNECTING -> DEAD       reconnect attempts exhausted
    any -> DEAD                close()
"""

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Optional

from .errors import AuthenticationError, RemoteStoreError, SessionLostError
from .interface import DirectoryEntry, RemoteStoreSession

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of a managed session."""

    FRESH = "fresh"
    ACTIVE = "active"
    IDLE = "idle"
    RECONNECTING = "reconnecting"
    DEAD = "dead"


class AuthenticationThrottle:
    """
    Enforces a minimum gap between authentication attempts to one address.

    Rapid repeated logons are what trips account lockout policies, so a
    second attempt inside the window waits out the remainder.
    """

    def __init__(
        self,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_attempt: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, address: str) -> float:
        """
        Block until an authentication attempt to ``address`` is allowed.

        Returns:
            Seconds spent waiting
        """
        key = address.lower()
        # Reserve the slot under the lock and sleep outside it, so a wait for
        # one address never holds up another.
        with self._lock:
            now = self._clock()
            last = self._last_attempt.get(key)
            slot = now if last is None else max(now, last + self._min_interval)
            self._last_attempt[key] = slot

        waited = slot - now
        if waited > 0:
            logger.info(
                f"Throttling authentication to {address} for {waited:.1f}s "
                "to avoid account lockout"
            )
            self._sleep(waited)
        return waited


class ManagedSession(RemoteStoreSession):
    """RemoteStoreSession decorator adding keep-alive probing and reconnects."""

    def __init__(
        self,
        backend: RemoteStoreSession,
        keepalive_seconds: float = 30.0,
        reconnect_attempts: int = 3,
        reconnect_pause: float = 1.0,
        auth_throttle: Optional[AuthenticationThrottle] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the managed session.

        Args:
            backend: The session doing the actual I/O
            keepalive_seconds: Idle time after which the session is probed
            reconnect_attempts: Reopen attempts before the session is declared dead
            reconnect_pause: Seconds to wait between reopen attempts
            auth_throttle: Throttle shared by authentication attempts
            clock: Monotonic clock, injectable for tests
            sleep: Sleep function, injectable for tests
        """
        self._backend = backend
        self._keepalive_seconds = keepalive_seconds
        self._reconnect_attempts = max(1, reconnect_attempts)
        self._reconnect_pause = reconnect_pause
        self._throttle = auth_throttle or AuthenticationThrottle(clock=clock, sleep=sleep)
        self._clock = clock
        self._sleep = sleep
        self._state = SessionState.FRESH
        self._last_activity = clock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def backend(self) -> RemoteStoreSession:
        return self._backend

    @property
    def server(self) -> str:
        return self._backend.server

    @property
    def share_name(self) -> Optional[str]:
        return self._backend.share_name

    def connect(self) -> None:
        if self._state is SessionState.DEAD:
            raise SessionLostError(f"Session to {self.server} is closed")
        self._throttle.wait(self.server)
        self._backend.connect()
        self._transition(SessionState.ACTIVE)
        self._touch()

    def open_share(self, name: str) -> None:
        self._ensure_usable()
        self._backend.open_share(name)
        self._transition(SessionState.ACTIVE)
        self._touch()

    def list_entries(self, path: str) -> list[DirectoryEntry]:
        self._ensure_healthy()
        try:
            return self._backend.list_entries(path)
        finally:
            self._touch()

    def read_file(self, path: str) -> bytes:
        self._ensure_healthy()
        try:
            return self._backend.read_file(path)
        finally:
            self._touch()

    def is_alive(self) -> bool:
        if self._state is SessionState.DEAD:
            return False
        return self._backend.is_alive()

    def reopen(self) -> None:
        self._ensure_usable()
        self._reconnect()

    def close(self) -> None:
        if self._state is SessionState.DEAD:
            return
        try:
            self._backend.close()
        finally:
            self._transition(SessionState.DEAD)

    def _touch(self) -> None:
        self._last_activity = self._clock()

    def _transition(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug(f"Session {self.server}: {self._state.value} -> {state.value}")
            self._state = state

    def _ensure_usable(self) -> None:
        if self._state is SessionState.DEAD:
            raise SessionLostError(f"Session to {self.server} is dead")

    def _ensure_healthy(self) -> None:
        self._ensure_usable()

        idle_for = self._clock() - self._last_activity
        if self._state is SessionState.ACTIVE and idle_for > self._keepalive_seconds:
            self._transition(SessionState.IDLE)

        if self._state is SessionState.IDLE:
            if self._backend.is_alive():
                self._transition(SessionState.ACTIVE)
                self._touch()
            else:
                logger.warning(
                    f"Session to {self.server} failed health check after "
                    f"{idle_for:.0f}s idle, reconnecting"
                )
                self._reconnect()

    def _reconnect(self) -> None:
        self._transition(SessionState.RECONNECTING)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._reconnect_attempts + 1):
            try:
                self._backend.reopen()
                if self._backend.is_alive():
                    logger.info(f"Reconnected to {self.server} on attempt {attempt}")
                    self._transition(SessionState.ACTIVE)
                    self._touch()
                    return
            except AuthenticationError:
                self._transition(SessionState.DEAD)
                raise
            except (RemoteStoreError, OSError) as e:
                last_error = e
                logger.debug(f"Reconnect attempt {attempt} to {self.server} failed: {e}")

            if attempt < self._reconnect_attempts:
                self._sleep(self._reconnect_pause)

        self._transition(SessionState.DEAD)
        raise SessionLostError(
            f"Could not re-establish session to {self.server} after "
            f"{self._reconnect_attempts} attempts"
        ) from last_error
