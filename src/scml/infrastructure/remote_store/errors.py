"""Exception types for remote store sessions."""


class RemoteStoreError(Exception):
    """Base exception for remote store errors."""

    pass


class AuthenticationError(RemoteStoreError):
    """Credentials were rejected, or the account is locked, disabled or expired.

    Never retried: repeating a bad logon against a domain account is how
    lockouts happen.
    """

    pass


class AccessDeniedError(AuthenticationError):
    """The session is authenticated but not allowed to touch the resource."""

    pass


class TransientNetworkError(RemoteStoreError):
    """Timeouts, dropped connections and busy servers. Safe to retry."""

    pass


class SessionLostError(TransientNetworkError):
    """The share handle died and could not be re-established."""

    pass


class NotFoundError(RemoteStoreError):
    """A share, directory or file does not exist."""

    pass


class CorruptDataError(RemoteStoreError):
    """Remote data was readable but did not have the expected shape."""

    pass


class FatalSetupError(RemoteStoreError):
    """A target could not be prepared at all (no content root, no sessions)."""

    pass


AUTH_FAILURE_CHECKLIST = (
    "Verify the username and password are correct",
    "Check that the account is not locked out or disabled",
    "Confirm the password has not expired",
    "Make sure the domain name is right (use DOMAIN\\user or user@domain)",
    "Confirm the account has read access to the content share",
    "Wait before retrying: repeated failures can trigger an account lockout",
)
