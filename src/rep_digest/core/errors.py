"""
Error taxonomy for the digest pipeline.

Only FatalInputError aborts a run. Unit and partition errors are retried by
the scheduler and then recorded in the execution summary; observation errors
are logged and dropped.
"""


class DigestError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(DigestError):
    """Raised when settings cannot be loaded or fail validation."""


class FatalInputError(DigestError):
    """Raised when the input query cannot be issued or returns malformed rows."""


class UnitTransformError(DigestError):
    """Raised when a single raw row cannot be mapped."""

    def __init__(self, unit_id: str, message: str):
        self.unit_id = unit_id
        self.message = message
        super().__init__(f"[{unit_id}] {message}")


class PartitionDispatchError(DigestError):
    """Raised when the artifact or notification for one partition fails."""

    def __init__(self, key: str, message: str):
        self.key = key
        self.message = message
        super().__init__(f"[{key}] {message}")


class ObservationError(DigestError):
    """Raised when statistics cannot be recorded. Never escalated."""
