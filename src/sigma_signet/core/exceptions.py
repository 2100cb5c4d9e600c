"""Domain-specific exceptions.

All exceptions raised inside sigma_signet inherit from SigmaSignetError.
IdP-facing components never let these escape; they convert failures into
``None`` at their boundary and the flow controller turns that into a
user-facing error page.
"""

from __future__ import annotations


class SigmaSignetError(Exception):
    """Base exception for all sigma_signet errors."""

    pass


class ConfigurationError(SigmaSignetError):
    """The IdP integration is not configured well enough to proceed."""

    pass


class AccountExistsError(SigmaSignetError):
    """An account with the requested username already exists.

    Raised by account stores when a concurrent first login created the
    account between lookup and insert. Callers re-read and update instead.
    """

    def __init__(self, username: str) -> None:
        """Initialize with the conflicting username."""
        super().__init__(f"Account already exists: {username}")
        self.username = username


class StoreError(SigmaSignetError):
    """A backing store could not complete an operation."""

    pass
