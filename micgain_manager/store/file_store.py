"""
JSON File Store — persists the config + last-apply record to disk.

Behavioral Contract:
- A missing file loads as defaults; it is not created until the first save.
- A missing target loads as 50 and a missing or zero interval as 90s. A
  stored target of 0 is kept.
- Saves are atomic: write a sibling temp file, then os.replace() it over the
  target, so a crash never leaves a half-written record.
- Scheduling fields (next run, running flag) are process-local and never saved.

Record shape:
    {"targetValue": 50, "intervalSeconds": 90, "enabled": true,
     "lastApplied": "2026-01-01T00:00:00+00:00", "lastApplyStatus": "ok",
     "lastError": "..."}
"""

import json
import logging
import math
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Tuple

from micgain_manager.errors import PersistError
from micgain_manager.models.config import (
    DEFAULT_INTERVAL,
    DEFAULT_TARGET_VALUE,
    ApplyOutcome,
    GainConfig,
)
from micgain_manager.models.state import RunState

logger = logging.getLogger(__name__)

APP_DIR_NAME = "micgain-manager"


def default_config_path() -> Path:
    """~/.config/micgain-manager/config.json, or ./micgain-manager-config.json."""
    try:
        home = Path.home()
    except RuntimeError:
        home = None
    if home is not None and str(home) not in ("", "/"):
        return home / ".config" / APP_DIR_NAME / "config.json"
    return Path.cwd() / f"{APP_DIR_NAME}-config.json"


class JsonFileStore:
    """Single-record JSON store. Not safe for concurrent writers."""

    def __init__(self, path: os.PathLike):
        if not str(path):
            raise ValueError("path is required")
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistError(f"create config dir: {e}") from e

    def load(self) -> Tuple[GainConfig, RunState]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No config at %s, using defaults", self.path)
            return GainConfig(), RunState()
        except OSError as e:
            raise PersistError(f"read config: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistError(f"unmarshal config {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistError(f"unmarshal config {self.path}: expected an object")

        return _config_from_record(data), _run_state_from_record(data)

    def save(self, config: GainConfig, run_state: RunState) -> None:
        record = _to_record(config, run_state)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(json.dumps(record, indent=2) + "\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistError(f"write config {self.path}: {e}") from e
        logger.debug("Saved config to %s", self.path)


def _to_record(config: GainConfig, run_state: RunState) -> dict:
    record = {
        "targetValue": config.target_value,
        "intervalSeconds": config.interval_seconds,
        "enabled": config.enabled,
        "lastApplyStatus": run_state.last_outcome.value,
    }
    if run_state.last_applied_at is not None:
        record["lastApplied"] = run_state.last_applied_at.isoformat()
    if run_state.last_error:
        record["lastError"] = run_state.last_error
    return record


def _config_from_record(data: dict) -> GainConfig:
    # 0 is a valid gain, so only a missing target falls back. Out-of-range
    # values are kept for normalize() to reject on load.
    target = _as_int(data.get("targetValue"))
    if target is None:
        target = DEFAULT_TARGET_VALUE

    # A zero or missing interval falls back.
    seconds = _as_int(data.get("intervalSeconds"))
    interval = timedelta(seconds=seconds) if seconds and seconds > 0 else DEFAULT_INTERVAL

    return GainConfig(
        target_value=target,
        interval=interval,
        enabled=bool(data.get("enabled", True)),
    )


def _run_state_from_record(data: dict) -> RunState:
    try:
        outcome = ApplyOutcome(data.get("lastApplyStatus", ApplyOutcome.NEVER.value))
    except ValueError:
        outcome = ApplyOutcome.NEVER

    last_applied = None
    raw_applied = data.get("lastApplied")
    if raw_applied:
        try:
            last_applied = datetime.fromisoformat(raw_applied)
        except (TypeError, ValueError):
            logger.warning("Ignoring unparseable lastApplied %r", raw_applied)

    return RunState(
        last_applied_at=last_applied,
        last_outcome=outcome,
        last_error=data.get("lastError") or None,
    )


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None
