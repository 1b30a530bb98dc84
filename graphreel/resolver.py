"""
Timeline resolver.

Owns the event store, replay engine and cache for one project, plus the two
hosts: the compute host (private replay scratch space) and the display host
(what the author sees).  The display host only ever receives fully resolved
states.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .cache import CacheEntry, RenderSettings, StateCache
from .document import parse_document
from .errors import EventApplicationFailure, HostNotReady, InvalidEvent
from .events import (
    DocumentState,
    SnapshotEvent,
    TimelineEvent,
    event_from_dict,
    new_event_id,
)
from .host import DocumentHost, RenderedImage, maybe_await
from .replay import ReplayEngine
from .store import EventStore

LOG = logging.getLogger(__name__)

# replays of one query before a result behind the store is handed back as is
MAX_REPLAYS = 3


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    SUPERSEDED = "superseded"
    STALE = "stale"


@dataclass(frozen=True)
class ResolvedFrame:
    frame: int
    state: DocumentState
    failures: Tuple[EventApplicationFailure, ...] = ()
    image: Optional[RenderedImage] = None
    revision: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.failures)


@dataclass(frozen=True)
class ApplyResult:
    frame: int
    generation: int
    status: ApplyStatus
    partial: bool = False

    def to_dict(self) -> dict:
        return {
            "frame": self.frame,
            "generation": self.generation,
            "status": self.status.value,
            "partial": self.partial,
        }


def _check_query_frame(frame: int) -> int:
    if isinstance(frame, bool) or not isinstance(frame, int) or frame < 0:
        raise ValueError(f"frame must be a non-negative integer, got {frame!r}")
    return frame


class TimelineResolver:
    """
    Resolve document state at arbitrary frames.

    All compute-host work is serialised through one lock, so replays never
    overlap.  Display updates are generation-tagged: a result that finishes
    after a newer :meth:`apply_frame` was issued is discarded.
    """

    def __init__(
        self,
        store: Optional[EventStore] = None,
        *,
        compute_host: Optional[DocumentHost] = None,
        display_host: Optional[DocumentHost] = None,
        render_settings: Optional[RenderSettings] = None,
        apply_timeout: Optional[float] = None,
        capture_images: bool = True,
    ) -> None:
        self.store = store if store is not None else EventStore()
        self.engine = ReplayEngine(self.store, compute_host)
        self.cache = StateCache(self.store)
        self._display_host = display_host
        self._render_settings = render_settings or RenderSettings()
        self.apply_timeout = apply_timeout
        self.capture_images = capture_images

        self._compute_lock = asyncio.Lock()
        self._display_lock = asyncio.Lock()
        self._generation = 0
        self._displayed_frame: Optional[int] = None

    # ------------------------------------------------------------------ hosts & settings

    @property
    def compute_host(self) -> Optional[DocumentHost]:
        return self.engine.host

    def set_compute_host(self, host: Optional[DocumentHost]) -> None:
        self.engine.set_host(host)
        self.cache.clear()

    @property
    def display_host(self) -> Optional[DocumentHost]:
        return self._display_host

    def set_display_host(self, host: Optional[DocumentHost]) -> None:
        self._display_host = host
        self._displayed_frame = None

    @property
    def render_settings(self) -> RenderSettings:
        return self._render_settings

    def set_render_settings(self, settings: RenderSettings) -> None:
        if settings == self._render_settings:
            return
        self._render_settings = settings
        self.cache.clear_images()
        LOG.debug("Render settings updated: %s", settings)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def displayed_frame(self) -> Optional[int]:
        return self._displayed_frame

    # ------------------------------------------------------------------ editing layer

    def add_event(self, event: Union[TimelineEvent, Mapping[str, Any]]) -> TimelineEvent:
        if isinstance(event, Mapping):
            event = event_from_dict(event)
        self.store.add(event)
        return event

    def update_event(self, event_id: str, partial: Mapping[str, Any]) -> bool:
        return self.store.update(event_id, partial)

    def remove_event(self, event_id: str) -> bool:
        return self.store.remove(event_id)

    def get_event(self, event_id: str) -> Optional[TimelineEvent]:
        return self.store.get(event_id)

    def list_events(self) -> List[TimelineEvent]:
        return self.store.timeline()

    async def add_snapshot(
        self,
        frame: int,
        description: Optional[str] = None,
        state: Optional[Mapping[str, Any]] = None,
    ) -> SnapshotEvent:
        """
        Insert a snapshot at ``frame``.

        Without an explicit ``state`` the display host's current state is
        captured.
        """

        if state is None:
            if self._display_host is None:
                raise HostNotReady("display host not set; cannot capture a snapshot")
            state = await maybe_await(self._display_host.get_state())
        snapshot = SnapshotEvent(
            id=new_event_id("state"),
            frame=frame,
            state=dict(state),
            description=description or f"State at frame {frame}",
        )
        self.store.add_snapshot(snapshot)
        return snapshot

    def add_snapshot_payload(
        self,
        frame: int,
        payload: Union[str, bytes, Mapping[str, Any]],
        description: Optional[str] = None,
    ) -> SnapshotEvent:
        """Parse a hand-edited snapshot and insert it; the store is untouched on failure."""

        state = parse_document(payload)
        snapshot = SnapshotEvent(
            id=new_event_id("state"),
            frame=frame,
            state=state,
            description=description or f"State at frame {frame}",
        )
        self.store.add_snapshot(snapshot)
        return snapshot

    def update_snapshot(self, snapshot_id: str, partial: Mapping[str, Any]) -> bool:
        changes = dict(partial)
        if "state" in changes:
            changes["state"] = parse_document(changes["state"])
        unknown = set(changes) - {"frame", "state", "description"}
        if unknown:
            raise InvalidEvent(f"snapshots cannot update {sorted(unknown)}")
        return self.store.update_snapshot(snapshot_id, changes)

    def remove_snapshot(self, snapshot_id: str) -> bool:
        return self.store.remove_snapshot(snapshot_id)

    def list_snapshots(self) -> List[SnapshotEvent]:
        return self.store.snapshots()

    def clear_timeline(self) -> None:
        self.store.clear()

    def clear_snapshots(self) -> None:
        self.store.clear_snapshots()

    def clear_cache(self) -> None:
        self.cache.clear()

    # ------------------------------------------------------------------ queries

    async def resolve_frame(self, frame: int) -> ResolvedFrame:
        """
        Return the state at ``frame`` with its partial tag.

        Cache hits never touch a host.  Misses replay under the compute lock
        and, when the compute host can render, capture an image for the
        rendered layer.
        """

        frame = _check_query_frame(frame)
        entry = self.cache.get(frame)
        if entry is not None:
            LOG.debug("Cache hit for frame %d", frame)
            return self._from_cache(entry)

        host = self.engine.require_host()
        async with self._compute_lock:
            entry = self.cache.get(frame)
            if entry is not None:
                return self._from_cache(entry)

            LOG.debug("Computing state at frame %d", frame)
            for attempt in range(1, MAX_REPLAYS + 1):
                result = await self.engine.compute_state_at(frame)
                if result.revision == self.store.revision:
                    break
                LOG.debug(
                    "Store moved from rev %d to %d while replaying frame %d (attempt %d)",
                    result.revision,
                    self.store.revision,
                    frame,
                    attempt,
                )
            else:
                LOG.warning("Frame %d is still behind the event store after %d replays", frame, MAX_REPLAYS)
                return ResolvedFrame(frame, result.state, result.failures, None, result.revision)

            image = None
            if self.capture_images:
                image = await self._capture(host)
                if image is not None:
                    self.cache.put_image(frame, result.revision, image)
            if result.partial:
                LOG.warning(
                    "Frame %d resolved with %d skipped event(s); cached as partial",
                    frame,
                    len(result.failures),
                )
            self.cache.put(result)
            return ResolvedFrame(frame, result.state, result.failures, image, result.revision)

    def _from_cache(self, entry: CacheEntry) -> ResolvedFrame:
        image = self.cache.get_image(entry.frame)
        return ResolvedFrame(entry.frame, entry.state, entry.failures, image, entry.revision)

    async def get_state_at_frame(self, frame: int) -> DocumentState:
        resolved = await self.resolve_frame(frame)
        return resolved.state

    async def get_image_at_frame(self, frame: int) -> Optional[RenderedImage]:
        """
        Rendered image for ``frame``, recapturing from the cached state when
        only the rendered layer was invalidated.
        """

        for _ in range(MAX_REPLAYS):
            resolved = await self.resolve_frame(frame)
            if resolved.image is not None:
                return resolved.image
            host = self.engine.require_host()
            if not callable(getattr(host, "capture_image", None)):
                return None
            async with self._compute_lock:
                image = self.cache.get_image(frame)
                if image is not None:
                    return image
                if resolved.revision != self.store.revision:
                    # edited while waiting for the host; resolve again
                    continue
                await maybe_await(host.set_state(resolved.state))
                image = await self._capture(host)
                if image is not None:
                    self.cache.put_image(frame, resolved.revision, image)
                return image
        LOG.warning("No image for frame %d; the event store kept changing", frame)
        return None

    async def _capture(self, host: DocumentHost) -> Optional[RenderedImage]:
        capture = getattr(host, "capture_image", None)
        if not callable(capture):
            return None
        settings = self._render_settings
        try:
            await maybe_await(host.update_settings({"backgroundColor": settings.background}))
            return await maybe_await(capture(settings.width, settings.height, settings.pixel_density))
        except Exception:
            LOG.warning("Image capture failed; continuing without an image", exc_info=True)
            return None

    def list_cached_frames(self) -> List[int]:
        return self.cache.frames()

    def describe_events_up_to(self, frame: int) -> List[Dict[str, Any]]:
        return self.engine.describe_events_up_to(_check_query_frame(frame))

    def debug_info(self) -> Dict[str, Any]:
        return {
            "timelineEvents": len(self.store.timeline()),
            "stateEvents": len(self.store.snapshots()),
            "revision": self.store.revision,
            "cachedFrames": self.cache.frames(),
            "cachedImages": len(self.cache.image_frames()),
            "replayCount": self.engine.replay_count,
            "generation": self._generation,
            "displayedFrame": self._displayed_frame,
            "computeHostSet": self.engine.host is not None,
            "displayHostSet": self._display_host is not None,
            "renderSettings": self._render_settings.to_dict(),
        }

    # ------------------------------------------------------------------ display

    async def apply_frame(self, frame: int) -> ApplyResult:
        """
        Resolve ``frame`` and show it on the display host.

        Results superseded by a newer call are dropped.  With
        :attr:`apply_timeout` set, a replay that takes longer is abandoned and
        reported as stale instead of blocking the caller.
        """

        frame = _check_query_frame(frame)
        display = self._display_host
        if display is None:
            raise HostNotReady("display host not set")

        self._generation += 1
        generation = self._generation

        try:
            if self.apply_timeout is not None:
                resolved = await asyncio.wait_for(self.resolve_frame(frame), timeout=self.apply_timeout)
            else:
                resolved = await self.resolve_frame(frame)
        except asyncio.TimeoutError:
            LOG.warning("Resolving frame %d timed out after %.3fs", frame, self.apply_timeout)
            return ApplyResult(frame, generation, ApplyStatus.STALE)

        if generation != self._generation:
            LOG.debug("Discarding frame %d (generation %d superseded by %d)", frame, generation, self._generation)
            return ApplyResult(frame, generation, ApplyStatus.SUPERSEDED, resolved.partial)

        async with self._display_lock:
            if generation != self._generation:
                return ApplyResult(frame, generation, ApplyStatus.SUPERSEDED, resolved.partial)
            if resolved.revision != self.store.revision:
                LOG.warning(
                    "Not showing frame %d: computed at rev %d, store is at rev %d",
                    frame,
                    resolved.revision,
                    self.store.revision,
                )
                return ApplyResult(frame, generation, ApplyStatus.STALE, resolved.partial)
            await maybe_await(display.set_state(resolved.state))
            self._displayed_frame = frame
        return ApplyResult(frame, generation, ApplyStatus.APPLIED, resolved.partial)

    async def seek_to(self, frame: int) -> ApplyResult:
        return await self.apply_frame(frame)

    def close(self) -> None:
        self.cache.close()
