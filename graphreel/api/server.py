"""
FastAPI control surface for the graphreel resolver.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Path as PathParam
from fastapi.middleware.cors import CORSMiddleware

from ..cache import RenderSettings
from ..config import EngineConfig, read_profiles
from ..errors import (
    DuplicateEvent,
    HostNotReady,
    InvalidCommand,
    InvalidEvent,
    MalformedSnapshot,
    RevisionMismatch,
)
from ..events import event_from_dict, event_to_dict
from ..host import InMemoryHost
from ..playback import PlaybackScheduler
from ..resolver import TimelineResolver
from . import schemas

LOG = logging.getLogger(__name__)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, HostNotReady):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (MalformedSnapshot, InvalidEvent)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (DuplicateEvent, RevisionMismatch)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (InvalidCommand, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    raise exc


def _frame_payload(resolved) -> Dict[str, Any]:
    return {
        "frame": resolved.frame,
        "partial": resolved.partial,
        "failures": [str(failure) for failure in resolved.failures],
        "image": resolved.image.handle if resolved.image is not None else None,
        "state": resolved.state,
    }


def create_app(
    *,
    resolver: Optional[TimelineResolver] = None,
    config: Optional[EngineConfig] = None,
    lifespan: Optional[Callable[..., object]] = None,
) -> FastAPI:
    engine_config = config or EngineConfig()
    timeline = resolver or TimelineResolver(
        render_settings=engine_config.render,
        apply_timeout=engine_config.apply_timeout,
    )
    if timeline.compute_host is None:
        timeline.set_compute_host(InMemoryHost(name="compute"))
    if timeline.display_host is None:
        timeline.set_display_host(InMemoryHost(name="display"))

    scheduler = PlaybackScheduler(
        timeline.apply_frame,
        fps=engine_config.fps,
        duration_frames=engine_config.duration_frames,
    )

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        LOG.info("graphreel API starting (profile %s)", engine_config.profile)
        try:
            if lifespan is not None:
                async with lifespan(app):
                    yield
            else:
                yield
        finally:
            await scheduler.stop()
            LOG.info("graphreel API shutting down")

    app = FastAPI(title="graphreel API", lifespan=app_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.resolver = timeline
    app.state.scheduler = scheduler
    app.state.config = engine_config

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", "profile": engine_config.profile}

    @app.get("/profiles")
    async def list_profiles() -> dict:
        return {"profiles": read_profiles(), "active": engine_config.to_dict()}

    # ------------------------------------------------------------------ timeline events

    @app.get("/timeline/events")
    async def list_events() -> dict:
        return {"events": [event_to_dict(event) for event in timeline.list_events()]}

    @app.post("/timeline/events", status_code=201)
    async def add_event(payload: schemas.EventCreateRequest) -> dict:
        try:
            event = timeline.add_event(event_from_dict(payload.to_event_fields()))
        except (InvalidEvent, DuplicateEvent) as exc:
            raise _http_error(exc) from exc
        return {"event": event_to_dict(event)}

    @app.patch("/timeline/events/{event_id}")
    async def update_event(payload: Dict[str, Any], event_id: str = PathParam(...)) -> dict:
        try:
            found = timeline.update_event(event_id, payload)
        except InvalidEvent as exc:
            raise _http_error(exc) from exc
        if not found:
            raise HTTPException(status_code=404, detail=f"unknown event '{event_id}'")
        return {"event": event_to_dict(timeline.get_event(event_id))}

    @app.delete("/timeline/events/{event_id}")
    async def remove_event(event_id: str = PathParam(...)) -> dict:
        if not timeline.remove_event(event_id):
            raise HTTPException(status_code=404, detail=f"unknown event '{event_id}'")
        return {"removed": event_id}

    @app.delete("/timeline/events")
    async def clear_timeline() -> dict:
        timeline.clear_timeline()
        return {"cleared": True}

    # ------------------------------------------------------------------ snapshots

    @app.get("/timeline/snapshots")
    async def list_snapshots() -> dict:
        return {"snapshots": [event_to_dict(snapshot) for snapshot in timeline.list_snapshots()]}

    @app.post("/timeline/snapshots", status_code=201)
    async def add_snapshot(payload: schemas.SnapshotCreateRequest) -> dict:
        try:
            if payload.state is None:
                snapshot = await timeline.add_snapshot(payload.frame, payload.description)
            else:
                snapshot = timeline.add_snapshot_payload(payload.frame, payload.state, payload.description)
        except (HostNotReady, MalformedSnapshot, InvalidEvent) as exc:
            raise _http_error(exc) from exc
        return {"snapshot": event_to_dict(snapshot)}

    @app.patch("/timeline/snapshots/{snapshot_id}")
    async def update_snapshot(payload: schemas.SnapshotUpdateRequest, snapshot_id: str = PathParam(...)) -> dict:
        try:
            found = timeline.update_snapshot(snapshot_id, payload.changes())
        except (MalformedSnapshot, InvalidEvent) as exc:
            raise _http_error(exc) from exc
        if not found:
            raise HTTPException(status_code=404, detail=f"unknown snapshot '{snapshot_id}'")
        return {"updated": snapshot_id}

    @app.delete("/timeline/snapshots/{snapshot_id}")
    async def remove_snapshot(snapshot_id: str = PathParam(...)) -> dict:
        if not timeline.remove_snapshot(snapshot_id):
            raise HTTPException(status_code=404, detail=f"unknown snapshot '{snapshot_id}'")
        return {"removed": snapshot_id}

    @app.delete("/timeline/snapshots")
    async def clear_snapshots() -> dict:
        timeline.clear_snapshots()
        return {"cleared": True}

    # ------------------------------------------------------------------ resolution

    @app.get("/state/{frame}")
    async def get_state(frame: int = PathParam(..., ge=0)) -> dict:
        try:
            resolved = await timeline.resolve_frame(frame)
        except HostNotReady as exc:
            raise _http_error(exc) from exc
        return _frame_payload(resolved)

    @app.get("/debug/events/{frame}")
    async def describe_events(frame: int = PathParam(..., ge=0)) -> dict:
        return {"frame": frame, "events": timeline.describe_events_up_to(frame)}

    @app.get("/cache")
    async def cache_info() -> dict:
        return timeline.debug_info()

    @app.delete("/cache")
    async def clear_cache() -> dict:
        timeline.clear_cache()
        return {"cleared": True}

    @app.put("/render-settings")
    async def update_render_settings(payload: schemas.RenderSettingsModel) -> dict:
        settings = RenderSettings(
            width=payload.width,
            height=payload.height,
            pixel_density=payload.pixel_density,
            background=payload.background,
        )
        timeline.set_render_settings(settings)
        return {"renderSettings": settings.to_dict()}

    # ------------------------------------------------------------------ transport

    @app.get("/transport")
    async def get_transport_state() -> dict:
        return scheduler.snapshot().to_dict()

    @app.post("/transport/command")
    async def apply_transport(payload: schemas.PlaybackCommandRequest) -> dict:
        try:
            snapshot = await scheduler.apply(
                payload.op,
                expected_rev=payload.expected_rev,
                frame=payload.frame,
            )
        except (RevisionMismatch, InvalidCommand) as exc:
            raise _http_error(exc) from exc
        return {"transport": snapshot.to_dict(), "displayedFrame": timeline.displayed_frame}

    return app
