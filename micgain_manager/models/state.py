"""Run State — what the scheduler has done and what it will do next."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from micgain_manager.models.config import ApplyOutcome, GainConfig


class RunState(BaseModel):
    """Outcome of the most recent apply plus scheduling info."""

    model_config = ConfigDict(frozen=True)

    last_applied_at: Optional[datetime] = None   # Last *successful* apply
    last_outcome: ApplyOutcome = ApplyOutcome.NEVER
    last_error: Optional[str] = None
    next_run_at: Optional[datetime] = None       # None = not scheduled
    is_running: bool = False                     # Between dispatch and result


class SchedulerState(BaseModel):
    """The single mutable record owned by the scheduler loop."""

    model_config = ConfigDict(frozen=True)

    config: GainConfig = GainConfig()
    run: RunState = RunState()

    @property
    def idle(self) -> bool:
        return not self.run.is_running
