"""
Error taxonomy for the replenishment engine.

Only SourceUnavailableError and AssessmentCancelled are meant to reach the
caller of a single assessment. Everything else is either degraded into
"no data" fields or collected as a per-product failure in batch mode.
"""


class ReplenishmentError(Exception):
    """Base class for all engine errors."""


class ResolutionError(ReplenishmentError):
    """A size or product code could not be canonicalized."""

    def __init__(self, full_code: str, base_code: str | None = None):
        self.full_code = full_code
        self.base_code = base_code
        super().__init__(f"Could not resolve {full_code!r} against base {base_code!r}")


class DataFetchError(ReplenishmentError):
    """One fact source was unavailable or timed out."""

    def __init__(self, source: str, message: str, required: bool = False):
        self.source = source
        self.required = required
        super().__init__(f"{source}: {message}")


class ConfigError(ReplenishmentError):
    """An override in the semaphore configuration is invalid."""


class ComputationError(ReplenishmentError):
    """Unexpected arithmetic failure while evaluating a single product."""


class SourceUnavailableError(ReplenishmentError):
    """Every upstream fact source is unreachable."""


class AssessmentCancelled(ReplenishmentError):
    """The caller cancelled the request; partial results were discarded."""
