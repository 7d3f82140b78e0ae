"""Error taxonomy for the mic gain manager.

Validation errors are raised before any state mutation. Apply and persist
errors happen while effects run and are recorded into run state by the
scheduler loop before being surfaced to the caller that triggered them.
"""


class MicGainError(Exception):
    """Base class for all mic gain manager errors."""
    pass


class ConfigValidationError(MicGainError):
    """A configuration was rejected by normalization."""
    pass


class OutOfRangeValue(ConfigValidationError):
    """Target value outside of [0, 100]."""
    pass


class IntervalTooShort(ConfigValidationError):
    """Re-apply interval shorter than the enforced floor."""
    pass


class ApplyError(MicGainError):
    """Raised when the external applier fails to set the gain."""
    pass


class PersistError(MicGainError):
    """Raised when the store cannot load or save the record."""
    pass


class SchedulerStopped(MicGainError):
    """Raised for requests submitted to a scheduler that is not running."""
    pass
