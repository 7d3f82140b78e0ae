"""Gain Configuration — the user-declared target the scheduler re-asserts."""

from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict

DEFAULT_TARGET_VALUE = 50
DEFAULT_INTERVAL = timedelta(seconds=90)

MIN_TARGET_VALUE = 0
MAX_TARGET_VALUE = 100


class ApplyOutcome(str, Enum):
    NEVER = "never"
    SUCCESS = "ok"
    FAILURE = "error"


class GainConfig(BaseModel):
    """
    Immutable configuration record.

    Ranges are not enforced here. Normalization is the single gate that
    decides whether a GainConfig may enter the scheduler.
    """

    model_config = ConfigDict(frozen=True)

    target_value: int = DEFAULT_TARGET_VALUE    # Input gain percentage
    interval: timedelta = DEFAULT_INTERVAL      # Re-apply period
    enabled: bool = True                        # Timer-driven applies on/off

    @property
    def interval_seconds(self) -> int:
        return int(self.interval.total_seconds())
