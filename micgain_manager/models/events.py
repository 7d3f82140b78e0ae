"""Events consumed and effects produced by the pure scheduler core."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from micgain_manager.models.config import GainConfig


class Tick(BaseModel):
    """Fired by the scheduler's timer. No payload."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tick"] = "tick"


class UpdateConfiguration(BaseModel):
    """Replace the configuration, optionally applying the new target at once."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["update_configuration"] = "update_configuration"
    config: GainConfig
    apply_immediately: bool = False


class ApplyOnce(BaseModel):
    """Manual apply. value=None means use the configured target."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["apply_once"] = "apply_once"
    value: Optional[int] = None


Event = Union[Tick, UpdateConfiguration, ApplyOnce]


class ApplyValue(BaseModel):
    """Set the external gain to `value`."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["apply_value"] = "apply_value"
    value: int


class PersistState(BaseModel):
    """Save the scheduler's current config + run state to the store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["persist_state"] = "persist_state"


Effect = Union[ApplyValue, PersistState]
