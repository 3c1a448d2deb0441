"""Error taxonomy for the FAQ core.

Each error carries the HTTP status the web layer reports it with, so the
Flask error handler does not need to know about individual classes.
"""


class FaqError(Exception):
    """Base class for errors reported to the caller."""

    status_code = 500
    retryable = False


class InvalidInput(FaqError):
    """Blank or malformed input. No state was changed."""

    status_code = 400


class NotFound(FaqError):
    """Missing (or already consumed) pending question or knowledge entry."""

    status_code = 404


class InvalidTransition(FaqError):
    """Attempt to move a pending question out of a terminal status."""

    status_code = 409


class UpstreamUnavailable(FaqError):
    """Embedding or generation provider failed. Safe to retry."""

    status_code = 503
    retryable = True


class StoreError(FaqError):
    """Underlying persistence failure for the current request."""

    status_code = 500
