"""
Remote store module for SCML.

Session interface, backends, health management and retry policy for talking
to a hash-addressed content library over a file-sharing protocol.
"""

from .errors import (
    AUTH_FAILURE_CHECKLIST,
    AccessDeniedError,
    AuthenticationError,
    CorruptDataError,
    FatalSetupError,
    NotFoundError,
    RemoteStoreError,
    SessionLostError,
    TransientNetworkError,
)
from .health import AuthenticationThrottle, ManagedSession, SessionState
from .interface import Credentials, DirectoryEntry, RemoteStoreSession, join_remote_path
from .local import LocalStoreSession
from .retry import (
    ErrorClass,
    RetryConfig,
    classify_error,
    execute_with_retry,
    is_authentication_failure,
)

__all__ = [
    # Interface
    "RemoteStoreSession",
    "DirectoryEntry",
    "Credentials",
    "join_remote_path",
    # Backends
    "LocalStoreSession",
    # Health
    "ManagedSession",
    "SessionState",
    "AuthenticationThrottle",
    # Retry
    "RetryConfig",
    "ErrorClass",
    "classify_error",
    "execute_with_retry",
    "is_authentication_failure",
    # Errors
    "RemoteStoreError",
    "AuthenticationError",
    "AccessDeniedError",
    "TransientNetworkError",
    "SessionLostError",
    "NotFoundError",
    "CorruptDataError",
    "FatalSetupError",
    "AUTH_FAILURE_CHECKLIST",
]
