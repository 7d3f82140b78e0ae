"""Mic gain manager data models."""

from micgain_manager.models.config import (
    DEFAULT_INTERVAL,
    DEFAULT_TARGET_VALUE,
    MAX_TARGET_VALUE,
    MIN_TARGET_VALUE,
    ApplyOutcome,
    GainConfig,
)
from micgain_manager.models.events import (
    ApplyOnce,
    ApplyValue,
    Effect,
    Event,
    PersistState,
    Tick,
    UpdateConfiguration,
)
from micgain_manager.models.snapshot import Snapshot
from micgain_manager.models.state import RunState, SchedulerState

__all__ = [
    "ApplyOnce",
    "ApplyOutcome",
    "ApplyValue",
    "DEFAULT_INTERVAL",
    "DEFAULT_TARGET_VALUE",
    "Effect",
    "Event",
    "GainConfig",
    "MAX_TARGET_VALUE",
    "MIN_TARGET_VALUE",
    "PersistState",
    "RunState",
    "SchedulerState",
    "Snapshot",
    "Tick",
    "UpdateConfiguration",
]
