"""Error taxonomy for reconciliation, cohort and window operations."""


class CurationError(Exception):
    """Base class for errors raised by the curation engines."""


class ConfigurationError(CurationError):
    """A required column or parameter is missing, unknown, or has the wrong cardinality."""


class InvalidWindowError(CurationError):
    """A time window has negative or non-monotonic offsets."""


class OperationCancelledError(CurationError):
    """A cancellation token was triggered or its deadline passed."""


class AmbiguousPriorityWarning(UserWarning):
    """Two sources share the winning priority for a patient but disagree on the values."""


class EmptyInputResult(UserWarning):
    """An operation produced an empty or fully defaulted result. Valid output, never raised."""
