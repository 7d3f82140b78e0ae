"""
Configuration normalization.

Behavioral Contract:
- Validation only, never coercion. A config that passes is returned unchanged.
- Callers that need defaulting do it before calling.
- No side effects; normalize(normalize(x)) == normalize(x).
"""

from datetime import timedelta

from micgain_manager.errors import IntervalTooShort, OutOfRangeValue
from micgain_manager.models.config import (
    MAX_TARGET_VALUE,
    MIN_TARGET_VALUE,
    GainConfig,
)

# Enforced floor unless the operator lowers it.
MIN_INTERVAL = timedelta(seconds=5)
# Nothing below this is ever accepted, whatever the settings say.
ABSOLUTE_MIN_INTERVAL = timedelta(seconds=1)


def is_valid_target(value: int) -> bool:
    return MIN_TARGET_VALUE <= value <= MAX_TARGET_VALUE


def normalize(cfg: GainConfig, min_interval: timedelta = MIN_INTERVAL) -> GainConfig:
    """Return cfg if it is legal, raise a ConfigValidationError otherwise."""
    if not is_valid_target(cfg.target_value):
        raise OutOfRangeValue(
            f"target value must be between {MIN_TARGET_VALUE} and "
            f"{MAX_TARGET_VALUE}, got {cfg.target_value}"
        )

    floor = max(min_interval, ABSOLUTE_MIN_INTERVAL)
    if cfg.interval < floor:
        raise IntervalTooShort(
            f"interval must be at least {floor.total_seconds():g}s, "
            f"got {cfg.interval.total_seconds():g}s"
        )

    return cfg
