"""Domain errors raised by the reconciliation engine.

Every error the orchestrator can surface derives from :class:`SyncError`,
so the request boundary only has to catch one type to build an
``{"error": ...}`` response.
"""

from typing import Any


class SyncError(Exception):
    """Base exception for sync failures."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(SyncError):
    """A request field is missing or malformed."""

    pass


class InvalidRangeError(ValidationError):
    """End date falls before start date."""

    pass


class ConfigurationError(SyncError):
    """A required credential or setting is absent."""

    pass


class ResourceNotFoundError(SyncError):
    """A company, connection or account could not be found."""

    pass


class CompanyNotFoundError(ResourceNotFoundError):
    """No ledger company matches the requested name."""

    pass


class ConnectionNotFoundError(ResourceNotFoundError):
    """The ledger company has no data connection."""

    pass


class InvalidCategoryError(SyncError):
    """An account classification is not accepted by the connection."""

    pass


class AccountResolutionError(SyncError):
    """A required ledger account could not be found or created."""

    pass


class DuplicateResourceError(SyncError):
    """Account creation raced with another creator."""

    pass


class TransientUpstreamError(SyncError):
    """Upstream asked us to retry later (rate limit, not-yet-visible)."""

    pass


class UnbalancedJournalError(SyncError):
    """Journal credits and debits do not net to zero."""

    pass


class JournalSubmissionError(SyncError):
    """A journal push operation failed or timed out."""

    pass
