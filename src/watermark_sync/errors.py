"""Exception hierarchy for the watermark synchronizer.

Only configuration errors are fatal. Everything raised while resolving the
watermark or streaming rows is contained inside a single cycle and reported
through its CycleOutcome.
"""


class WatermarkSyncError(Exception):
    """Base class for all synchronizer errors."""


class ConfigurationError(WatermarkSyncError):
    """Raised when configuration is invalid or missing."""


class WatermarkResolutionError(WatermarkSyncError):
    """Base class for failures while resolving the destination watermark."""

    phase: str = "resolve"

    def __init__(self, message: str, phase: str | None = None):
        super().__init__(message)
        if phase is not None:
            self.phase = phase


class DestinationDegraded(WatermarkResolutionError):
    """Raised when the destination cluster health is below the usable threshold."""

    phase = "health"


class DestinationRefreshFailed(WatermarkResolutionError):
    """Raised when the destination index could not be refreshed."""

    phase = "refresh"


class UnexpectedResolverError(WatermarkResolutionError):
    """Raised for any other resolution failure (transport, malformed response)."""

    phase = "query"


class SourceQueryFailed(WatermarkSyncError):
    """Raised when executing or fetching the source statement fails."""


class ResolverAbortLimitExceeded(WatermarkSyncError):
    """Raised when too many consecutive cycles aborted under a fail-closed policy."""

    def __init__(self, consecutive_aborts: int, last_reason: str):
        self.consecutive_aborts = consecutive_aborts
        self.last_reason = last_reason
        super().__init__(
            f"Watermark resolution aborted {consecutive_aborts} consecutive times: {last_reason}"
        )
