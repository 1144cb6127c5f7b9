"""Exception types for the scoring pipeline.

Only ``InvalidInput`` reaches callers of ``ScanCoordinator.scan``; the other
types are raised and handled inside the pipeline.
"""


class ThreatLensError(Exception):
    """Base class for pipeline errors."""


class InvalidInput(ThreatLensError, ValueError):
    """The scan target is malformed (bad URL, missing host, unsupported scheme)."""


class AnalyzerUnavailable(ThreatLensError):
    """An analyzer has nothing to contribute for this target."""

    def __init__(self, kind: str, reason: str):
        super().__init__(f"{kind}: {reason}")
        self.kind = kind
        self.reason = reason


class PersistenceFailure(ThreatLensError):
    """A best-effort write to the scan store failed."""


class AggregationInvariantViolation(ThreatLensError):
    """A value escaped its documented bounds during aggregation."""
