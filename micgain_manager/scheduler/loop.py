"""
Schedule Manager — the effect executor and the only writer of scheduler state.

Two event sources feed one serialized inbox:
  - a repeating interval timer, which produces Tick events
  - callers (CLI, web), which submit UpdateConfiguration / ApplyOnce

Each event is taken end-to-end before the next one:
  transition() → swap state (and move the timer onto next_run_at) →
  execute effects → fold results → resolve the caller's future.

That total ordering is what rules out overlapping applies and lost updates;
there is no lock on the write path. State objects are frozen and replaced
wholesale, so get_snapshot() can be called from anywhere without waiting on
a slow apply.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union

from micgain_manager.errors import (
    ApplyError,
    ConfigValidationError,
    MicGainError,
    PersistError,
    SchedulerStopped,
)
from micgain_manager.execution.appliers import Applier
from micgain_manager.models.config import GainConfig
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
from micgain_manager.models.state import SchedulerState
from micgain_manager.scheduler.transition import fold_apply_result, transition
from micgain_manager.scheduler.validation import MIN_INTERVAL, normalize
from micgain_manager.store.base import Store

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntervalTimer:
    """
    Repeating deadline on the event loop's monotonic clock.
    Missed periods are dropped rather than replayed.
    """

    def __init__(self, interval_seconds: float, time_fn: Callable[[], float]):
        self._time = time_fn
        self.interval_seconds = interval_seconds
        self.deadline = time_fn() + interval_seconds

    def rearm(self, interval_seconds: float) -> None:
        self.interval_seconds = interval_seconds
        self.deadline = self._time() + interval_seconds

    def remaining(self) -> float:
        return max(0.0, self.deadline - self._time())

    def advance(self) -> None:
        now = self._time()
        self.deadline += self.interval_seconds
        if self.deadline <= now:
            self.deadline = now + self.interval_seconds

    def align(self, seconds_until_due: float, interval_seconds: float) -> None:
        """Move the deadline to a due time expressed relative to now."""
        self.interval_seconds = interval_seconds
        self.deadline = self._time() + max(0.0, seconds_until_due)


# Builds the event from the state current when the request is dequeued.
EventFactory = Callable[[SchedulerState], Event]

_PATCHABLE_FIELDS = frozenset({"target_value", "interval", "enabled"})

# A timer tick landing this close before next_run_at counts as due.
_TIMER_SLACK = timedelta(milliseconds=50)


class _Request:
    """An event waiting in the inbox, plus the caller's future (if any)."""

    def __init__(
        self,
        event: Union[Event, EventFactory],
        future: Optional[asyncio.Future] = None,
    ):
        self.event = event
        self.future = future

    @property
    def origin(self) -> str:
        return "timer" if self.future is None else "request"

    def event_for(self, state: SchedulerState) -> Event:
        if callable(self.event):
            return self.event(state)
        return self.event

    def resolve(self, snapshot: Snapshot, error: Optional[Exception] = None) -> None:
        if self.future is None or self.future.done():
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(snapshot)


class ScheduleManager:
    """
    Owns configuration + run state for the process lifetime.

    Construct one explicitly and hand it to the adapters; there is no
    module-level instance.
    """

    def __init__(
        self,
        store: Store,
        applier: Applier,
        state: Optional[SchedulerState] = None,
        clock: Optional[Callable[[], datetime]] = None,
        min_interval: timedelta = MIN_INTERVAL,
    ):
        self.store = store
        self.applier = applier
        self.min_interval = min_interval
        self._clock = clock or _utcnow
        self._state = state or SchedulerState()

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._timer: Optional[IntervalTimer] = None
        self._running = False
        self._stopped = False

    @classmethod
    def load(
        cls,
        store: Store,
        applier: Applier,
        clock: Optional[Callable[[], datetime]] = None,
        min_interval: timedelta = MIN_INTERVAL,
    ) -> "ScheduleManager":
        """Build a manager from the store's record. Rejects an invalid record."""
        config, run_state = store.load()
        config = normalize(config, min_interval)
        # Scheduling fields never survive a restart.
        run_state = run_state.model_copy(update={"next_run_at": None, "is_running": False})
        return cls(
            store,
            applier,
            state=SchedulerState(config=config, run=run_state),
            clock=clock,
            min_interval=min_interval,
        )

    # --- Read side ---

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def state(self) -> SchedulerState:
        return self._state

    def get_snapshot(self) -> Snapshot:
        """Point-in-time copy. Never blocks on an in-flight effect."""
        return Snapshot.from_state(self._state)

    # --- Caller-facing operations ---

    async def update_configuration(
        self, config: GainConfig, apply_immediately: bool = False
    ) -> Snapshot:
        """Replace the configuration. Raises the first error of this request."""
        return await self._submit(
            UpdateConfiguration(config=config, apply_immediately=apply_immediately)
        )

    async def patch_configuration(
        self, apply_immediately: bool = False, **changes
    ) -> Snapshot:
        """
        Change some configuration fields, keeping the rest.

        The merge happens inside the loop against the configuration current
        at that point, so concurrent patches of different fields all land.
        """
        unknown = set(changes) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown configuration fields: {sorted(unknown)}")

        def build(state: SchedulerState) -> Event:
            return UpdateConfiguration(
                config=state.config.model_copy(update=changes),
                apply_immediately=apply_immediately,
            )

        return await self._submit(build)

    async def apply_once(self, value: Optional[int] = None) -> Snapshot:
        """Apply value (or the configured target) once, outside the schedule."""
        return await self._submit(ApplyOnce(value=value))

    async def tick(self) -> Snapshot:
        """Run a due-check now, as if the timer had fired."""
        return await self._submit(Tick())

    async def _submit(self, event: Union[Event, EventFactory]) -> Snapshot:
        if self._stopped:
            raise SchedulerStopped("scheduler loop has stopped")
        future = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Request(event, future))
        return await future

    # --- The loop ---

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Process events until stop_event is set."""
        if self._running:
            raise MicGainError("scheduler loop is already running")
        if stop_event is None:
            stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        self._timer = IntervalTimer(self._state.config.interval.total_seconds(), loop.time)
        self._running = True
        self._stopped = False
        logger.info(
            "Scheduler started: target=%d interval=%ss enabled=%s",
            self._state.config.target_value,
            self._state.config.interval_seconds,
            self._state.config.enabled,
        )

        stop_waiter = asyncio.ensure_future(stop_event.wait())
        getter: Optional[asyncio.Future] = None
        try:
            while not stop_event.is_set():
                if getter is None:
                    getter = asyncio.ensure_future(self._inbox.get())

                done, _ = await asyncio.wait(
                    {getter, stop_waiter},
                    timeout=self._timer.remaining(),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if getter in done:
                    # A dequeued request is always finished, even during shutdown.
                    request = getter.result()
                    getter = None
                    await self._process_to_completion(request)
                    continue

                if stop_waiter in done:
                    break

                if self._timer.remaining() > 0:
                    # Woke up early
                    continue
                self._timer.advance()
                await self._process_to_completion(_Request(Tick()))
        finally:
            if getter is not None:
                if getter.done() and not getter.cancelled():
                    self._inbox.put_nowait(getter.result())
                else:
                    getter.cancel()
            stop_waiter.cancel()
            self._running = False
            self._stopped = True
            self._reject_pending()
            logger.info("Scheduler stopped")

    async def _process_to_completion(self, request: _Request) -> None:
        # Cancelling the loop task must not cut an effect in half.
        task = asyncio.ensure_future(self._process(request))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await task
            raise

    async def _process(self, request: _Request) -> None:
        now = self._clock()
        event = request.event_for(self._state)
        if request.origin == "timer":
            due = self._state.run.next_run_at
            if due is not None and now < due <= now + _TIMER_SLACK:
                # The timer and the wall clock drift by a hair; the timer wins.
                now = due
        try:
            new_state, effects = transition(self._state, event, now, self.min_interval)
        except ConfigValidationError as e:
            logger.warning("Rejected %s: %s", event.kind, e)
            request.resolve(self.get_snapshot(), e)
            return
        except MicGainError as e:
            logger.error("Cannot handle %s: %s", event.kind, e)
            request.resolve(self.get_snapshot(), e)
            return

        self._state = new_state
        self._sync_timer(now)
        if isinstance(event, UpdateConfiguration):
            logger.info(
                "Configuration updated: target=%d interval=%ss enabled=%s",
                new_state.config.target_value,
                new_state.config.interval_seconds,
                new_state.config.enabled,
            )

        error = await self._execute(effects, now, request.origin)
        request.resolve(self.get_snapshot(), error)

    def _sync_timer(self, now: datetime) -> None:
        """Keep the timer deadline on next_run_at, converted to loop time."""
        interval = self._state.config.interval.total_seconds()
        due = self._state.run.next_run_at
        if due is not None:
            self._timer.align((due - now).total_seconds(), interval)
        elif self._timer.interval_seconds != interval:
            self._timer.rearm(interval)

    async def _execute(
        self, effects: List[Effect], now: datetime, origin: str
    ) -> Optional[MicGainError]:
        """Run effects in order. Returns the first error; never raises it."""
        first_error: Optional[MicGainError] = None

        for effect in effects:
            if isinstance(effect, ApplyValue):
                error = await self._apply(effect.value, origin)
                self._state = fold_apply_result(
                    self._state, now, None if error is None else str(error)
                )
            elif isinstance(effect, PersistState):
                error = await self._persist(origin)
            else:
                error = MicGainError(f"Unknown effect type: {type(effect).__name__}")
                logger.error("%s", error)

            if first_error is None:
                first_error = error

        return first_error

    async def _apply(self, value: int, origin: str) -> Optional[ApplyError]:
        logger.debug("Applying value %d (%s)", value, origin)
        try:
            await asyncio.to_thread(self.applier.apply, value)
        except ApplyError as e:
            error = e
        except Exception as e:
            error = ApplyError(f"{type(e).__name__}: {e}")
        else:
            logger.info("Applied value %d (%s)", value, origin)
            return None

        if origin == "timer":
            logger.warning("Scheduled apply of %d failed: %s", value, error)
        else:
            logger.info("Apply of %d failed: %s", value, error)
        return error

    async def _persist(self, origin: str) -> Optional[PersistError]:
        state = self._state
        try:
            await asyncio.to_thread(self.store.save, state.config, state.run)
        except PersistError as e:
            error = e
        except Exception as e:
            error = PersistError(f"{type(e).__name__}: {e}")
        else:
            return None

        logger.error("Failed to persist state (%s): %s", origin, error)
        return error

    def _reject_pending(self) -> None:
        while True:
            try:
                request = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            request.resolve(self.get_snapshot(), SchedulerStopped("scheduler loop has stopped"))
        # A fresh queue so a later run() is not tied to this event loop.
        self._inbox = asyncio.Queue()
