"""
Error taxonomy shared by the lifecycle engines.

Every engine operation either returns the updated record or raises one of
these; main.py maps them onto HTTP status codes.
"""


class LifecycleError(Exception):
    """Base class for per-operation, recoverable engine failures."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LifecycleError):
    """Referenced order, subscription or progress record does not exist."""

    status_code = 404


class InvalidState(LifecycleError):
    """Operation is not permitted from the record's current state."""

    status_code = 409


class ValidationError(LifecycleError):
    """Required input missing or malformed; raised before any write."""

    status_code = 422


class TransactionConflict(LifecycleError):
    """Store kept aborting on concurrent modification; caller should retry."""

    status_code = 503
