"""
Mic Gain Manager API — FastAPI endpoints.

Exposes the schedule manager to web clients:
- Snapshot inspection
- Configuration updates (optionally applying at once)
- Manual applies

The scheduler loop runs as a background task for the lifetime of the app.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from micgain_manager.errors import ConfigValidationError, MicGainError, SchedulerStopped
from micgain_manager.execution.appliers import build_applier
from micgain_manager.scheduler.loop import ScheduleManager
from micgain_manager.settings import Settings, get_settings
from micgain_manager.store.file_store import JsonFileStore

logger = logging.getLogger(__name__)

MAX_INTERVAL_SECONDS = 24 * 60 * 60


# --- Request Models ---

class ConfigUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their current values."""

    model_config = ConfigDict(populate_by_name=True)

    target_value: Optional[int] = Field(default=None, alias="targetValue")
    interval_seconds: Optional[int] = Field(
        default=None, ge=1, le=MAX_INTERVAL_SECONDS, alias="intervalSeconds"
    )
    enabled: Optional[bool] = None
    apply_now: bool = Field(default=False, alias="applyNow")


class ApplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_value: Optional[int] = Field(default=None, ge=0, le=100, alias="targetValue")


# --- Application Factory ---

def build_manager(settings: Settings) -> ScheduleManager:
    """Wire the file store and applier named in settings into a manager."""
    return ScheduleManager.load(
        JsonFileStore(settings.config_path),
        build_applier(settings.applier),
        min_interval=settings.min_interval,
    )


def create_app(
    manager: Optional[ScheduleManager] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()
    manager = manager or build_manager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop_event = asyncio.Event()
        task = asyncio.create_task(manager.run(stop_event))
        app.state.stop_event = stop_event
        try:
            yield
        finally:
            stop_event.set()
            await task

    app = FastAPI(
        title="Mic Gain Manager API",
        description="Keeps the microphone input gain pinned to a target value",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.manager = manager
    app.state.settings = settings

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - start) * 1000,
        )
        return response

    def _raise_http(e: MicGainError):
        if isinstance(e, ConfigValidationError):
            raise HTTPException(400, str(e))
        if isinstance(e, SchedulerStopped):
            raise HTTPException(503, str(e))
        raise HTTPException(500, str(e))

    # === STATUS ===

    @app.get("/health")
    async def health():
        return {"status": "ok", "scheduler": manager.status}

    # === CONFIGURATION ===

    @app.get("/api/config")
    async def get_config():
        """Current configuration and run state."""
        return manager.get_snapshot().to_view()

    @app.put("/api/config")
    async def update_config(req: ConfigUpdateRequest):
        """Update the configuration, optionally applying it immediately."""
        changes = {}
        if req.target_value is not None:
            changes["target_value"] = req.target_value
        if req.interval_seconds is not None:
            changes["interval"] = timedelta(seconds=req.interval_seconds)
        if req.enabled is not None:
            changes["enabled"] = req.enabled

        try:
            snapshot = await manager.patch_configuration(
                apply_immediately=req.apply_now, **changes
            )
        except MicGainError as e:
            _raise_http(e)
        return snapshot.to_view()

    # === APPLY ===

    @app.post("/api/apply")
    async def apply_now(req: Optional[ApplyRequest] = None):
        """Apply the configured (or given) value once."""
        value = req.target_value if req is not None else None
        try:
            snapshot = await manager.apply_once(value)
        except MicGainError as e:
            _raise_http(e)
        return snapshot.to_view()

    return app
