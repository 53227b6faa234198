"""
Infrastructure Layer - Remote store sessions, health management and pooling.
"""

from scml.infrastructure.fakes import InMemoryFileStore, InMemoryStoreSession
from scml.infrastructure.remote_store import (
    AUTH_FAILURE_CHECKLIST,
    AccessDeniedError,
    AuthenticationError,
    AuthenticationThrottle,
    CorruptDataError,
    Credentials,
    DirectoryEntry,
    ErrorClass,
    FatalSetupError,
    LocalStoreSession,
    ManagedSession,
    NotFoundError,
    RemoteStoreError,
    RemoteStoreSession,
    RetryConfig,
    SessionLostError,
    SessionState,
    TransientNetworkError,
    classify_error,
    execute_with_retry,
    is_authentication_failure,
    join_remote_path,
)
from scml.infrastructure.session_pool import (
    SessionFactory,
    SessionPool,
    clamp_pool_size,
    open_session,
)

__all__ = [
    # Sessions
    "RemoteStoreSession",
    "DirectoryEntry",
    "Credentials",
    "LocalStoreSession",
    "ManagedSession",
    "SessionState",
    "AuthenticationThrottle",
    "join_remote_path",
    # Pool
    "SessionPool",
    "SessionFactory",
    "clamp_pool_size",
    "open_session",
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
    # Fakes
    "InMemoryFileStore",
    "InMemoryStoreSession",
]
