"""
Scheduler core — a pure state machine.

    Idle ──(Tick due | ApplyOnce | Update+apply)──▶ Applying ──(result)──▶ Idle

transition() takes the current state, one event and the current time, and
returns the next state plus the effects the loop must execute. It performs no
I/O, so every rule here is unit-testable without fakes.

fold_apply_result() is the second half of the machine: the loop calls it once
an ApplyValue effect has finished, to collapse Applying back to Idle.

Enabled/disabled is a field, not a mode. A disabled config never produces an
ApplyValue from Tick, but a manual ApplyOnce is always honored.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from micgain_manager.errors import MicGainError
from micgain_manager.models.config import ApplyOutcome
from micgain_manager.models.events import (
    ApplyOnce,
    ApplyValue,
    Effect,
    Event,
    PersistState,
    Tick,
    UpdateConfiguration,
)
from micgain_manager.models.state import SchedulerState
from micgain_manager.scheduler.validation import MIN_INTERVAL, is_valid_target, normalize


class Transition(NamedTuple):
    state: SchedulerState
    effects: List[Effect]


def transition(
    state: SchedulerState,
    event: Event,
    now: datetime,
    min_interval: timedelta = MIN_INTERVAL,
) -> Transition:
    """Compute the next state and effects for one event."""
    if isinstance(event, Tick):
        return _on_tick(state, now)
    if isinstance(event, UpdateConfiguration):
        return _on_update_configuration(state, event, now, min_interval)
    if isinstance(event, ApplyOnce):
        return _on_apply_once(state, event)
    raise MicGainError(f"Unknown event type: {type(event).__name__}")


def _on_tick(state: SchedulerState, now: datetime) -> Transition:
    run = state.run

    if not state.config.enabled:
        if run.next_run_at is None and not run.is_running:
            return Transition(state, [])
        cleared = run.model_copy(update={"next_run_at": None, "is_running": False})
        return Transition(state.model_copy(update={"run": cleared}), [])

    if run.next_run_at is not None and now < run.next_run_at:
        # Not yet due
        return Transition(state, [])

    applying = run.model_copy(update={
        "is_running": True,
        "next_run_at": now + state.config.interval,
    })
    return Transition(
        state.model_copy(update={"run": applying}),
        [ApplyValue(value=state.config.target_value), PersistState()],
    )


def _on_update_configuration(
    state: SchedulerState,
    event: UpdateConfiguration,
    now: datetime,
    min_interval: timedelta,
) -> Transition:
    # Raises before anything is touched
    config = normalize(event.config, min_interval)

    run_update = {"next_run_at": now + config.interval}
    effects: List[Effect] = [PersistState()]

    if event.apply_immediately:
        run_update["is_running"] = True
        # Config is saved first; the second persist records the apply outcome.
        effects += [ApplyValue(value=config.target_value), PersistState()]

    return Transition(
        state.model_copy(update={
            "config": config,
            "run": state.run.model_copy(update=run_update),
        }),
        effects,
    )


def _on_apply_once(state: SchedulerState, event: ApplyOnce) -> Transition:
    value = event.value
    if value is None or not is_valid_target(value):
        value = state.config.target_value

    # next_run_at is left alone: a manual apply is not the scheduled cycle.
    applying = state.run.model_copy(update={"is_running": True})
    return Transition(
        state.model_copy(update={"run": applying}),
        [ApplyValue(value=value), PersistState()],
    )


def fold_apply_result(
    state: SchedulerState,
    now: datetime,
    error: Optional[str] = None,
) -> SchedulerState:
    """Record the outcome of an ApplyValue effect and return to Idle."""
    if error is None:
        run = state.run.model_copy(update={
            "last_outcome": ApplyOutcome.SUCCESS,
            "last_applied_at": now,
            "last_error": None,
            "is_running": False,
        })
    else:
        # last_applied_at keeps the previous success
        run = state.run.model_copy(update={
            "last_outcome": ApplyOutcome.FAILURE,
            "last_error": error,
            "is_running": False,
        })
    return state.model_copy(update={"run": run})
