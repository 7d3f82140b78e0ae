"""Tests for the pure scheduler core."""

from datetime import datetime, timedelta, timezone

import pytest

from micgain_manager.errors import IntervalTooShort, OutOfRangeValue
from micgain_manager.models import (
    ApplyOnce,
    ApplyOutcome,
    ApplyValue,
    GainConfig,
    PersistState,
    RunState,
    SchedulerState,
    Tick,
    UpdateConfiguration,
)
from micgain_manager.scheduler.transition import fold_apply_result, transition

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _make_state(
    target_value: int = 50,
    interval_seconds: int = 90,
    enabled: bool = True,
    next_run_at=None,
    **run_fields,
) -> SchedulerState:
    return SchedulerState(
        config=GainConfig(
            target_value=target_value,
            interval=timedelta(seconds=interval_seconds),
            enabled=enabled,
        ),
        run=RunState(next_run_at=next_run_at, **run_fields),
    )


class TestTick:
    def test_first_tick_applies(self):
        """Unscheduled + enabled: apply the target and schedule the next run."""
        state = _make_state()
        new_state, effects = transition(state, Tick(), T0)

        assert effects == [ApplyValue(value=50), PersistState()]
        assert new_state.run.is_running is True
        assert new_state.run.next_run_at == T0 + timedelta(seconds=90)

    def test_tick_then_successful_fold(self):
        state = _make_state()
        new_state, _ = transition(state, Tick(), T0)
        folded = fold_apply_result(new_state, T0)

        assert folded.run.last_outcome == ApplyOutcome.SUCCESS
        assert folded.run.last_applied_at == T0
        assert folded.run.is_running is False
        assert folded.run.next_run_at == T0 + timedelta(seconds=90)

    def test_not_yet_due(self):
        state = _make_state(next_run_at=T0 + timedelta(seconds=30))
        new_state, effects = transition(state, Tick(), T0)
        assert effects == []
        assert new_state == state

    def test_due_exactly_at_next_run(self):
        state = _make_state(next_run_at=T0)
        _, effects = transition(state, Tick(), T0)
        assert effects[0] == ApplyValue(value=50)

    def test_overdue(self):
        state = _make_state(next_run_at=T0 - timedelta(minutes=5))
        new_state, effects = transition(state, Tick(), T0)
        assert len(effects) == 2
        assert new_state.run.next_run_at == T0 + timedelta(seconds=90)

    def test_disabled_clears_schedule(self):
        state = _make_state(enabled=False, next_run_at=T0, is_running=True)
        new_state, effects = transition(state, Tick(), T0)
        assert effects == []
        assert new_state.run.next_run_at is None
        assert new_state.run.is_running is False

    def test_disabled_never_applies(self):
        state = _make_state(enabled=False)
        for i in range(10):
            state, effects = transition(state, Tick(), T0 + timedelta(minutes=i * 5))
            assert not any(isinstance(e, ApplyValue) for e in effects)

    def test_tick_keeps_configuration(self):
        state = _make_state(target_value=33)
        new_state, _ = transition(state, Tick(), T0)
        assert new_state.config == state.config


class TestUpdateConfiguration:
    def test_update_replaces_config_and_persists(self):
        state = _make_state()
        new_config = GainConfig(target_value=70, interval=timedelta(seconds=30))
        new_state, effects = transition(
            state, UpdateConfiguration(config=new_config), T0
        )
        assert new_state.config == new_config
        assert effects == [PersistState()]
        assert new_state.run.is_running is False

    def test_interval_change_reschedules(self):
        """next_run_at moves to now + new interval, not the old deadline."""
        old_deadline = T0 + timedelta(seconds=60)
        state = _make_state(next_run_at=old_deadline)
        now = T0 + timedelta(seconds=10)
        new_state, _ = transition(
            state,
            UpdateConfiguration(config=GainConfig(interval=timedelta(seconds=300))),
            now,
        )
        assert new_state.run.next_run_at == now + timedelta(seconds=300)
        assert new_state.run.next_run_at != old_deadline

    def test_apply_immediately(self):
        state = _make_state()
        new_state, effects = transition(
            state,
            UpdateConfiguration(config=GainConfig(target_value=80), apply_immediately=True),
            T0,
        )
        assert effects == [PersistState(), ApplyValue(value=80), PersistState()]
        assert new_state.run.is_running is True

    def test_out_of_range_rejected(self):
        state = _make_state()
        with pytest.raises(OutOfRangeValue):
            transition(
                state,
                UpdateConfiguration(config=GainConfig(target_value=130)),
                T0,
            )
        # Input state object is untouched
        assert state.config.target_value == 50

    def test_interval_too_short_rejected(self):
        with pytest.raises(IntervalTooShort):
            transition(
                _make_state(),
                UpdateConfiguration(config=GainConfig(interval=timedelta(seconds=1))),
                T0,
            )

    def test_custom_min_interval(self):
        new_state, _ = transition(
            _make_state(),
            UpdateConfiguration(config=GainConfig(interval=timedelta(seconds=1))),
            T0,
            min_interval=timedelta(seconds=1),
        )
        assert new_state.config.interval == timedelta(seconds=1)

    def test_update_keeps_last_outcome(self):
        state = _make_state(last_outcome=ApplyOutcome.FAILURE, last_error="boom")
        new_state, _ = transition(
            state, UpdateConfiguration(config=GainConfig(target_value=60)), T0
        )
        assert new_state.run.last_outcome == ApplyOutcome.FAILURE
        assert new_state.run.last_error == "boom"


class TestApplyOnce:
    def test_configured_value(self):
        state = _make_state(target_value=40)
        new_state, effects = transition(state, ApplyOnce(), T0)
        assert effects == [ApplyValue(value=40), PersistState()]
        assert new_state.run.is_running is True

    def test_explicit_value_does_not_touch_config(self):
        state = _make_state(target_value=50)
        new_state, effects = transition(state, ApplyOnce(value=70), T0)
        assert effects[0] == ApplyValue(value=70)

        folded = fold_apply_result(new_state, T0)
        assert folded.run.last_applied_at == T0
        assert folded.config.target_value == 50

    def test_out_of_range_falls_back_to_configured(self):
        state = _make_state(target_value=50)
        _, effects = transition(state, ApplyOnce(value=-1), T0)
        assert effects[0] == ApplyValue(value=50)
        _, effects = transition(state, ApplyOnce(value=101), T0)
        assert effects[0] == ApplyValue(value=50)

    def test_does_not_reschedule(self):
        deadline = T0 + timedelta(seconds=45)
        state = _make_state(next_run_at=deadline)
        new_state, _ = transition(state, ApplyOnce(), T0)
        assert new_state.run.next_run_at == deadline

    def test_allowed_while_disabled(self):
        state = _make_state(enabled=False)
        _, effects = transition(state, ApplyOnce(value=10), T0)
        assert effects == [ApplyValue(value=10), PersistState()]


class TestFoldApplyResult:
    def test_failure_preserves_last_success(self):
        earlier = T0 - timedelta(minutes=3)
        state = _make_state(
            last_applied_at=earlier,
            last_outcome=ApplyOutcome.SUCCESS,
            is_running=True,
        )
        folded = fold_apply_result(state, T0, error="osascript failed")
        assert folded.run.last_outcome == ApplyOutcome.FAILURE
        assert folded.run.last_error == "osascript failed"
        assert folded.run.last_applied_at == earlier
        assert folded.run.is_running is False

    def test_success_clears_error(self):
        state = _make_state(
            last_outcome=ApplyOutcome.FAILURE, last_error="boom", is_running=True
        )
        folded = fold_apply_result(state, T0)
        assert folded.run.last_error is None
        assert folded.run.last_outcome == ApplyOutcome.SUCCESS
