"""Error taxonomy for the revenue engine.

Only whole-request preconditions escape ``scan_group``; per-provider errors are
captured into the group result.
"""


class RevenueEngineError(Exception):
    """Base class for all engine errors."""


class InvalidIdentifier(RevenueEngineError):
    """The provider identifier is not exactly 10 numeric digits."""

    def __init__(self, npi: object):
        self.npi = npi
        super().__init__(f"Invalid NPI {npi!r}: must be a 10-digit number")


class NotFound(RevenueEngineError):
    """No record exists for the identifier. Resolved internally by synthesis."""


class UpstreamUnavailable(RevenueEngineError):
    """A provider or benchmark source could not be reached or timed out."""


class BatchTooLarge(RevenueEngineError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} providers exceeds the limit of {limit}")


class RateLimitExceeded(RevenueEngineError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InvalidRecord(RevenueEngineError, ValueError):
    """External data failed validation at the point it entered the engine."""
