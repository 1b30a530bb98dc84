"""
Playback scheduler for deterministic transport control.

Converts wall-clock time into frames at a fixed rate and asks the resolver to
display them.  Frames are the only unit outside this module.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import InvalidCommand, RevisionMismatch

LOG = logging.getLogger(__name__)

MonotonicCallable = Callable[[], int]
ApplyCallable = Callable[[int], Awaitable[Any]]
SleepCallable = Callable[[float], Awaitable[Any]]


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True, slots=True)
class PlaybackSnapshot:
    """
    Immutable snapshot of the scheduler state.
    """

    rev: int
    state: PlaybackState
    frame: int
    start_frame: int
    t0_us: int
    last_applied_frame: Optional[int]
    fps: float
    duration_frames: int

    @property
    def playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def at_end(self) -> bool:
        return self.state is PlaybackState.IDLE and self.frame >= self.duration_frames

    def to_dict(self) -> dict:
        return {
            "rev": int(self.rev),
            "state": self.state.value,
            "playing": self.playing,
            "frame": int(self.frame),
            "startFrame": int(self.start_frame),
            "t0_us": int(self.t0_us),
            "lastAppliedFrame": self.last_applied_frame,
            "fps": float(self.fps),
            "durationFrames": int(self.duration_frames),
            "atEnd": self.at_end,
        }


class PlaybackScheduler:
    """
    Frame clock driving the display host during playback.

    On every tick ``target = start_frame + round(elapsed_seconds * fps)``.
    Reaching ``duration_frames`` clamps, stops and applies the final frame;
    otherwise the frame advances and an apply is requested once the target is
    at least ``threshold_frames`` away from the last applied frame.
    """

    def __init__(
        self,
        apply: ApplyCallable,
        *,
        fps: float = 30.0,
        duration_frames: int = 300,
        threshold_frames: int = 1,
        monotonic: Optional[MonotonicCallable] = None,
        sleep: Optional[SleepCallable] = None,
    ) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        self._apply_frame = apply
        self._lock = threading.RLock()
        self._rev = 0
        self._state = PlaybackState.IDLE
        self._fps = float(fps)
        self._duration = max(0, int(duration_frames))
        self._threshold = max(1, int(threshold_frames))
        self._frame = 0
        self._start_frame = 0
        self._last_applied: Optional[int] = None
        self._monotonic: MonotonicCallable = (
            monotonic if monotonic is not None else lambda: time.monotonic_ns() // 1000
        )
        self._sleep: SleepCallable = sleep if sleep is not None else asyncio.sleep
        self._t0_us = self._monotonic()
        self._task: Optional[asyncio.Task] = None

        self._observer_counter = 0
        self._observers: Dict[int, Callable[[PlaybackSnapshot], None]] = {}

    # ------------------------------------------------------------------ helpers

    def _snapshot_locked(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            rev=self._rev,
            state=self._state,
            frame=self._frame,
            start_frame=self._start_frame,
            t0_us=self._t0_us,
            last_applied_frame=self._last_applied,
            fps=self._fps,
            duration_frames=self._duration,
        )

    def _target_frame_locked(self, now_us: int) -> int:
        elapsed_s = max(0, int(now_us) - int(self._t0_us)) / 1_000_000
        # half-up so that x.5 frames always advance
        return self._start_frame + int(math.floor(elapsed_s * self._fps + 0.5))

    def _check_revision(self, expected_rev: Optional[int]) -> None:
        if expected_rev is None:
            return
        if int(expected_rev) != self._rev:
            raise RevisionMismatch(f"expected rev {expected_rev}, current {self._rev}")

    def _commit_locked(self, *, state: PlaybackState, frame: int, start_frame: int, t0_us: int) -> PlaybackSnapshot:
        self._rev += 1
        self._state = state
        self._frame = max(0, min(int(frame), self._duration))
        self._start_frame = max(0, min(int(start_frame), self._duration))
        self._t0_us = max(0, int(t0_us))
        return self._snapshot_locked()

    def _notify(self, snapshot: PlaybackSnapshot) -> None:
        with self._lock:
            observers = dict(self._observers)
        if not observers:
            return
        for token, callback in observers.items():
            try:
                callback(snapshot)
            except Exception:  # pragma: no cover - observer failures should not kill playback
                LOG.exception("Playback observer %s failed.", token)

    async def _apply(self, frame: int) -> bool:
        try:
            await self._apply_frame(frame)
        except Exception:
            LOG.exception("Failed to apply frame %d during playback.", frame)
            return False
        with self._lock:
            self._last_applied = frame
        return True

    def _halt(self) -> None:
        with self._lock:
            if self._state is not PlaybackState.PLAYING:
                return
            snapshot = self._commit_locked(
                state=PlaybackState.PAUSED,
                frame=self._frame,
                start_frame=self._frame,
                t0_us=self._monotonic(),
            )
        LOG.warning("Playback paused at frame %d after an apply failure.", snapshot.frame)
        self._notify(snapshot)

    def _cancel_task(self) -> Optional[asyncio.Task]:
        task = self._task
        self._task = None
        current = asyncio.current_task()
        if task is not None and task is not current and not task.done():
            task.cancel()
            return task
        return None

    async def _run(self) -> None:
        interval = 1.0 / self._fps
        try:
            while self._state is PlaybackState.PLAYING:
                await self._sleep(interval)
                if self._state is not PlaybackState.PLAYING:
                    break
                await self.tick()
        except Exception:  # pragma: no cover
            LOG.exception("Playback tick loop failed.")

    # ------------------------------------------------------------------ public API

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def duration_frames(self) -> int:
        return self._duration

    def frame_to_seconds(self, frame: int) -> float:
        return int(frame) / self._fps

    def seconds_to_frame(self, seconds: float) -> int:
        return int(math.floor(float(seconds) * self._fps + 0.5))

    def set_duration(self, duration_frames: int) -> PlaybackSnapshot:
        with self._lock:
            self._duration = max(0, int(duration_frames))
            snapshot = self._commit_locked(
                state=self._state,
                frame=self._frame,
                start_frame=self._start_frame,
                t0_us=self._t0_us,
            )
        self._notify(snapshot)
        return snapshot

    def subscribe(self, callback: Callable[[PlaybackSnapshot], None]) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._observer_counter += 1
            token = self._observer_counter
            self._observers[token] = callback
            snapshot = self._snapshot_locked()
        # Deliver the current snapshot outside the lock
        try:
            callback(snapshot)
        except Exception:  # pragma: no cover
            LOG.exception("Playback observer %s failed during initial snapshot.", token)
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._observers.pop(token, None)

    def snapshot(self) -> PlaybackSnapshot:
        with self._lock:
            return self._snapshot_locked()

    async def tick(self) -> PlaybackSnapshot:
        """Advance one scheduling step; a no-op unless playing."""

        with self._lock:
            if self._state is not PlaybackState.PLAYING:
                return self._snapshot_locked()
            now_us = self._monotonic()
            target = self._target_frame_locked(now_us)
            if target >= self._duration:
                snapshot = self._commit_locked(
                    state=PlaybackState.IDLE,
                    frame=self._duration,
                    start_frame=self._duration,
                    t0_us=now_us,
                )
                final = True
            else:
                self._frame = target
                snapshot = self._snapshot_locked()
                final = False
            last = self._last_applied

        if final:
            self._notify(snapshot)
            await self._apply(snapshot.frame)
            return self.snapshot()

        if last is None or abs(target - last) >= self._threshold:
            if not await self._apply(target):
                self._halt()
        return self.snapshot()

    async def play(self, *, expected_rev: Optional[int] = None) -> PlaybackSnapshot:
        with self._lock:
            self._check_revision(expected_rev)
            if self._state is PlaybackState.PLAYING:
                return self._snapshot_locked()
            start = 0 if self._frame >= self._duration else self._frame
            snapshot = self._commit_locked(
                state=PlaybackState.PLAYING,
                frame=start,
                start_frame=start,
                t0_us=self._monotonic(),
            )
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._notify(snapshot)
        return snapshot

    async def pause(self, *, expected_rev: Optional[int] = None) -> PlaybackSnapshot:
        with self._lock:
            self._check_revision(expected_rev)
            state = PlaybackState.PAUSED if self._state is PlaybackState.PLAYING else self._state
            snapshot = self._commit_locked(
                state=state,
                frame=self._frame,
                start_frame=self._frame,
                t0_us=self._monotonic(),
            )
        task = self._cancel_task()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._notify(snapshot)
        return snapshot

    async def seek(self, frame: int, *, expected_rev: Optional[int] = None) -> PlaybackSnapshot:
        frame = max(0, int(frame))
        with self._lock:
            self._check_revision(expected_rev)
            frame = min(frame, self._duration)
            snapshot = self._commit_locked(
                state=self._state,
                frame=frame,
                start_frame=frame,
                t0_us=self._monotonic(),
            )
        self._notify(snapshot)
        await self._apply(frame)
        return self.snapshot()

    async def stop(self) -> None:
        task = self._cancel_task()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        with self._lock:
            if self._state is PlaybackState.PLAYING:
                snapshot = self._commit_locked(
                    state=PlaybackState.PAUSED,
                    frame=self._frame,
                    start_frame=self._frame,
                    t0_us=self._monotonic(),
                )
            else:
                snapshot = None
        if snapshot is not None:
            self._notify(snapshot)

    async def apply(
        self,
        op: str,
        *,
        expected_rev: Optional[int] = None,
        frame: Optional[int] = None,
    ) -> PlaybackSnapshot:
        command = str(op or "").strip().lower()
        if command == "play":
            return await self.play(expected_rev=expected_rev)
        if command in {"pause", "stop"}:
            return await self.pause(expected_rev=expected_rev)
        if command in {"seek", "scrub"}:
            if frame is None:
                raise InvalidCommand("seek requires frame")
            return await self.seek(frame, expected_rev=expected_rev)
        raise InvalidCommand(f"Unsupported playback op '{op}'")
