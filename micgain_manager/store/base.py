"""Store protocol and the in-memory store."""

from typing import Optional, Protocol, Tuple

from micgain_manager.errors import PersistError
from micgain_manager.models.config import GainConfig
from micgain_manager.models.state import RunState


class Store(Protocol):
    """
    Persistence for the single flat config + run-state record.
    Only ever called from the scheduler loop.
    """

    def load(self) -> Tuple[GainConfig, RunState]: ...

    def save(self, config: GainConfig, run_state: RunState) -> None: ...


class MemoryStore:
    """
    In-memory store for tests and ephemeral runs.
    Set fail_saves to make save() raise PersistError.
    """

    def __init__(
        self,
        config: Optional[GainConfig] = None,
        run_state: Optional[RunState] = None,
    ):
        self.config = config or GainConfig()
        self.run_state = run_state or RunState()
        self.save_count = 0
        self.fail_saves = False

    def load(self) -> Tuple[GainConfig, RunState]:
        return self.config, self.run_state

    def save(self, config: GainConfig, run_state: RunState) -> None:
        if self.fail_saves:
            raise PersistError("save failed: store is read-only")
        self.config = config
        self.run_state = run_state
        self.save_count += 1
