"""
Resolution engine error taxonomy

- Duplicate orders are NOT errors (successful no-op, or the completion of an
  announcement an earlier delivery left unfinished).
- RetryableError: transient write-path failure. The webhook must not be
  acknowledged, so the storefront redelivers.
- CatalogIntegrityError: bad catalog data, surfaced at load time.
- StorefrontError: the external storefront API failed.

Read-path failures are not represented here: read views degrade to empty
results instead of raising.
"""


class CrimeLabError(Exception):
    """Base class for all resolution engine errors."""
    pass


class RetryableError(CrimeLabError):
    """Transient write failure; the triggering event should be retried."""
    pass


class LedgerWriteError(RetryableError):
    """Raised when an evidence unit could not be durably recorded."""
    pass


class ResolutionCommitError(RetryableError):
    """Raised when the order transaction (solve + receipt) could not commit."""
    pass


class ActivityWriteError(RetryableError):
    """Raised when an activity event could not be appended to the log."""
    pass


class AnnouncementPendingError(RetryableError):
    """Raised when another delivery of the same order is still announcing it."""
    pass


class CatalogIntegrityError(CrimeLabError):
    """Raised when the case catalog violates its invariants."""
    pass


class StorefrontError(CrimeLabError):
    """Raised when the storefront API returns an error."""
    pass


class ActivityReadError(CrimeLabError):
    """Raised when the activity log cannot be read (read views degrade on it)."""
    pass
