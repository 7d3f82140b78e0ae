"""Snapshot — read-only projection of scheduler state for CLI and web."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from micgain_manager.models.config import GainConfig
from micgain_manager.models.state import RunState, SchedulerState


class Snapshot(BaseModel):
    """Point-in-time copy of configuration and run state."""

    model_config = ConfigDict(frozen=True)

    config: GainConfig
    run_state: RunState
    idle: bool
    next_run: Optional[datetime] = None     # Only set while enabled and scheduled

    @classmethod
    def from_state(cls, state: SchedulerState) -> "Snapshot":
        next_run = state.run.next_run_at if state.config.enabled else None
        return cls(
            config=state.config.model_copy(),
            run_state=state.run.model_copy(),
            idle=not state.run.is_running,
            next_run=next_run,
        )

    def to_view(self) -> dict:
        """JSON shape shared by `config get` and `GET /api/config`."""
        config = {
            "targetValue": self.config.target_value,
            "intervalSeconds": self.config.interval_seconds,
            "enabled": self.config.enabled,
            "lastApplyStatus": self.run_state.last_outcome.value,
        }
        if self.run_state.last_applied_at is not None:
            config["lastApplied"] = self.run_state.last_applied_at.isoformat()
        if self.run_state.last_error:
            config["lastError"] = self.run_state.last_error

        return {
            "config": config,
            "nextRun": self.next_run.isoformat() if self.next_run else None,
            "idle": self.idle,
        }
