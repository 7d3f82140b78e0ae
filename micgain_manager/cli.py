"""Mic Gain Manager CLI

Command line front end. Every command talks to a ScheduleManager; one-shot
commands (config set, apply) start a short-lived scheduler loop, submit their
request, and stop it again.
"""

import argparse
import asyncio
import json
import logging
import re
import signal
import sys
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from micgain_manager.errors import MicGainError
from micgain_manager.models.snapshot import Snapshot
from micgain_manager.models.state import SchedulerState
from micgain_manager.observability import level_for_verbosity, setup_logging
from micgain_manager.scheduler.loop import ScheduleManager
from micgain_manager.settings import Settings, get_settings
from micgain_manager.store.file_store import JsonFileStore

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")


def parse_duration(text: str) -> timedelta:
    """Parse "90", "90s", "2m", "1m30s" or "1h" into a timedelta."""
    text = text.strip().lower()
    try:
        return timedelta(seconds=float(text))
    except (ValueError, OverflowError):
        pass

    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise argparse.ArgumentTypeError(f"invalid duration: {text!r} (e.g. 45s, 2m)")

    scale = {"h": 3600, "m": 60, "s": 1}
    return timedelta(seconds=sum(float(n) * scale[u] for n, u in parts))


def parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in ("true", "on", "yes", "1"):
        return True
    if lowered in ("false", "off", "no", "0"):
        return False
    raise argparse.ArgumentTypeError("specify true or false")


def parse_value(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if not 0 <= value <= 100:
        raise argparse.ArgumentTypeError("value must be between 0 and 100")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mic Gain Manager - keeps the microphone input gain pinned",
        prog="micgain-manager",
    )
    parser.add_argument("--config", dest="config_path", type=Path, help="Path to the config file")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More logging (-v info, -vv debug)",
    )
    parser.add_argument(
        "--applier",
        choices=["osascript", "noop"],
        help="How the gain is set (noop for dry runs)",
    )
    parser.add_argument("--log-format", choices=["text", "json"], help="Log output format")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # daemon
    subparsers.add_parser("daemon", help="Run the scheduler only (no web server)")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the web API and the scheduler")
    serve_parser.add_argument("--host", help="Host to bind")
    serve_parser.add_argument("--port", type=int, help="Port number")

    # config get / set
    config_parser = subparsers.add_parser("config", help="Show or change the configuration")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("get", help="Print the stored configuration as JSON")
    set_parser = config_sub.add_parser("set", help="Change the configuration")
    set_parser.add_argument("--value", type=parse_value, help="Input gain (0-100)")
    set_parser.add_argument(
        "--interval", type=parse_duration, help="Re-apply interval, e.g. 45s, 2m"
    )
    set_parser.add_argument("--enabled", type=parse_bool, help="Turn the scheduler on/off")
    set_parser.add_argument(
        "--apply-now", action="store_true", help="Apply right after saving"
    )

    # apply
    apply_parser = subparsers.add_parser("apply", help="Apply the configured or given value now")
    apply_parser.add_argument(
        "--value", type=parse_value, help="0-100; defaults to the configured value"
    )

    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment, overridden by CLI flags."""
    overrides = {}
    if args.config_path:
        overrides["config_path"] = args.config_path
    if args.applier:
        overrides["applier"] = args.applier
    if args.log_format:
        overrides["log_format"] = args.log_format
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    settings = get_settings()
    return settings.model_copy(update=overrides) if overrides else settings


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None or (args.command == "config" and args.config_command is None):
        parser.print_help()
        return 1

    settings = resolve_settings(args)
    setup_logging(level_for_verbosity(args.verbose, settings.log_level), settings.log_format)

    try:
        if args.command == "daemon":
            run_daemon(settings)
        elif args.command == "serve":
            run_serve(settings)
        elif args.command == "config" and args.config_command == "get":
            run_config_get(settings)
        elif args.command == "config" and args.config_command == "set":
            run_config_set(settings, args)
        elif args.command == "apply":
            run_apply(settings, args)
    except MicGainError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def _build_manager(settings: Settings) -> ScheduleManager:
    from micgain_manager.api.app import build_manager

    return build_manager(settings)


async def _one_shot(
    manager: ScheduleManager,
    submit: Callable[[ScheduleManager], Awaitable[Snapshot]],
) -> Snapshot:
    """Run the loop just long enough to process one request."""
    stop_event = asyncio.Event()
    task = asyncio.create_task(manager.run(stop_event))
    try:
        return await submit(manager)
    finally:
        stop_event.set()
        await task


def run_daemon(settings: Settings) -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    manager = _build_manager(settings)

    async def _run():
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                pass
        await manager.run(stop_event)

    print("Mic Gain Manager daemon started")
    logger.info("Scheduler daemon started, config at %s", settings.config_path)
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass
    print("Daemon shutting down...")


def run_serve(settings: Settings) -> None:
    """Run the web API with the scheduler in the background."""
    import uvicorn

    from micgain_manager.api.app import create_app

    app = create_app(_build_manager(settings), settings)
    print(f"Mic Gain Manager API running at http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


def run_config_get(settings: Settings) -> None:
    """Print the persisted record."""
    config, run_state = JsonFileStore(settings.config_path).load()
    snapshot = Snapshot.from_state(SchedulerState(config=config, run=run_state))
    print(json.dumps(snapshot.to_view()["config"], indent=2))


def run_config_set(settings: Settings, args: argparse.Namespace) -> None:
    """Merge the given flags into the stored configuration."""
    manager = _build_manager(settings)

    changes = {}
    if args.value is not None:
        changes["target_value"] = args.value
    if args.interval is not None:
        changes["interval"] = args.interval
    if args.enabled is not None:
        changes["enabled"] = args.enabled

    snapshot = asyncio.run(_one_shot(
        manager,
        lambda m: m.patch_configuration(apply_immediately=args.apply_now, **changes),
    ))

    config = snapshot.config
    print(
        f"Saved: value={config.target_value} interval={config.interval_seconds}s "
        f"enabled={str(config.enabled).lower()}"
    )
    if args.apply_now:
        print("Applied")


def run_apply(settings: Settings, args: argparse.Namespace) -> None:
    """Apply once, outside the schedule."""
    manager = _build_manager(settings)
    print("Applying...")
    snapshot = asyncio.run(_one_shot(manager, lambda m: m.apply_once(args.value)))
    print(f"Done ({snapshot.run_state.last_outcome.value})")


if __name__ == "__main__":
    sys.exit(main())
