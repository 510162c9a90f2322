"""Exception hierarchy for the scan pipeline."""

from __future__ import annotations


class ScanError(Exception):
    """Base class for all scan failures."""


class AuthorizationError(ScanError):
    """No usable mailbox credential for the user.

    Fatal: the scan is aborted and the caller must ask the user to
    re-authorize.
    """


class TransportError(ScanError):
    """A mailbox or remote-service request failed."""


class RateLimitedError(TransportError):
    """The remote service asked us to slow down."""


class MalformedVerdictError(ScanError):
    """The semantic validator returned something we could not parse."""


class PersistenceError(ScanError):
    """A subscription record could not be written to the store."""
