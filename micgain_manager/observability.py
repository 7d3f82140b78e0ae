"""Logging setup — text for terminals, JSON for log collectors.

setup_logging() is called once by the CLI before any command runs.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

# -v count → level; more than two -v stays at DEBUG.
_VERBOSITY_LEVELS = ["WARNING", "INFO", "DEBUG"]

_handler: Optional[logging.Handler] = None


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def level_for_verbosity(count: int, default: str = "WARNING") -> str:
    """Map a -v count to a level name. 0 keeps the default."""
    if count <= 0:
        return default.upper()
    return _VERBOSITY_LEVELS[min(count, len(_VERBOSITY_LEVELS) - 1)]


def setup_logging(level: str = "WARNING", fmt: str = "text") -> None:
    """Configure the root logger. A second call replaces the first one's handler."""
    global _handler

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    if _handler is not None:
        logging.root.removeHandler(_handler)
    _handler = handler
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.WARNING))
