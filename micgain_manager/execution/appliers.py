"""
Appliers — the side-effecting half of an ApplyValue effect.

Behavioral Contract:
- apply(value) either sets the input gain to value or raises ApplyError.
- Calls may be slow and block; the scheduler runs them off the event loop.
- Appliers hold no scheduling state. Retrying is the scheduler's business.
"""

import logging
import shutil
import subprocess
from typing import Dict, List, Protocol, Type

from micgain_manager.errors import ApplyError
from micgain_manager.scheduler.validation import is_valid_target

logger = logging.getLogger(__name__)


class Applier(Protocol):
    """Protocol for gain appliers — pluggable backend."""

    def apply(self, value: int) -> None: ...


class OsaScriptApplier:
    """
    Sets the macOS microphone input volume through AppleScript.

    Other applications (conferencing tools in particular) like to lower the
    input gain on their own; re-running this on a timer undoes that.
    """

    def __init__(self, executable: str = "osascript", timeout_seconds: float = 10.0):
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    def apply(self, value: int) -> None:
        if not is_valid_target(value):
            raise ApplyError(f"volume must be between 0 and 100, got {value}")

        if shutil.which(self.executable) is None:
            raise ApplyError(f"{self.executable} not found; is this macOS?")

        script = f"set volume input volume {value}"
        logger.debug("Running %s -e %r", self.executable, script)
        try:
            result = subprocess.run(
                [self.executable, "-e", script],
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise ApplyError(
                f"{self.executable} timed out after {self.timeout_seconds:g}s"
            ) from e
        except OSError as e:
            raise ApplyError(f"{self.executable} failed to start: {e}") from e

        if result.returncode != 0:
            output = (result.stdout + result.stderr).strip()
            raise ApplyError(
                f"{self.executable} failed with exit code {result.returncode}, "
                f"output: {output}"
            )


class NoopApplier:
    """Records values without touching the OS. For dry runs and non-macOS hosts."""

    def __init__(self):
        self.applied: List[int] = []

    def apply(self, value: int) -> None:
        if not is_valid_target(value):
            raise ApplyError(f"volume must be between 0 and 100, got {value}")
        logger.info("noop applier: would set input volume to %d", value)
        self.applied.append(value)


_APPLIERS: Dict[str, Type] = {
    "osascript": OsaScriptApplier,
    "noop": NoopApplier,
}


def build_applier(name: str) -> Applier:
    """Create an applier by its settings name."""
    try:
        factory = _APPLIERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown applier {name!r}; expected one of {sorted(_APPLIERS)}"
        ) from None
    return factory()
