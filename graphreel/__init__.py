"""
graphreel: frame-exact temporal state resolver for animated graph documents.

An author places discrete edits, full-state snapshots and timed animations on
an integer frame axis.  :class:`~graphreel.resolver.TimelineResolver` replays
that event log against a private compute host to reconstruct the document at
any frame, memoises the result and feeds the playback scheduler and export
loop.
"""

from __future__ import annotations

from .config import EngineConfig, load_config
from .errors import (
    DuplicateEvent,
    EventApplicationFailure,
    ExportAborted,
    GraphreelError,
    HostNotReady,
    InvalidCommand,
    InvalidEvent,
    MalformedSnapshot,
    PlaybackError,
    RevisionMismatch,
)
from .events import (
    AnimationEvent,
    AnimationKind,
    BoundsEvent,
    Easing,
    ExpressionEvent,
    SnapshotEvent,
)
from .host import InMemoryHost
from .playback import PlaybackScheduler, PlaybackState
from .resolver import ApplyStatus, TimelineResolver

__all__ = [
    "AnimationEvent",
    "AnimationKind",
    "ApplyStatus",
    "BoundsEvent",
    "DuplicateEvent",
    "Easing",
    "EngineConfig",
    "EventApplicationFailure",
    "ExportAborted",
    "ExpressionEvent",
    "GraphreelError",
    "HostNotReady",
    "InMemoryHost",
    "InvalidCommand",
    "InvalidEvent",
    "MalformedSnapshot",
    "PlaybackError",
    "PlaybackScheduler",
    "PlaybackState",
    "RevisionMismatch",
    "SnapshotEvent",
    "TimelineResolver",
    "load_config",
]
