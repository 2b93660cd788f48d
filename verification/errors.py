"""
Verification error taxonomy.

Structural and lookup failures (checksum mismatch, unknown code) are business
outcomes and are returned as results, not raised. Only infrastructure
failures propagate to the transport layer.
"""


class VerificationError(Exception):
    """Base class for errors raised by the verification core."""


class InvalidBrandPrefix(VerificationError, ValueError):
    """Generation requested with an unregistered or malformed brand prefix. Not retryable."""


class StorageUnavailable(VerificationError):
    """
    The datastore could not confirm the atomic update (down, locked or timed out).

    Retryable: the caller must not assume any state changed and may retry the
    whole verification attempt.
    """

    retryable = True


class AuditLogWriteFailed(VerificationError):
    """Appending a Verification Attempt failed. Logged and swallowed by the verifier."""
