"""
Exception hierarchy shared by the resolver components.
"""

from __future__ import annotations


class GraphreelError(RuntimeError):
    """Base class for resolver related errors."""


class HostNotReady(GraphreelError):
    """Raised when an operation needs a host that has not been attached."""


class EventApplicationFailure(GraphreelError):
    """
    A single event could not be applied to the compute host.

    Replays never raise this; it is recorded on the result so the cache entry
    is tagged partial.
    """

    def __init__(self, event_id: str, frame: int, message: str) -> None:
        super().__init__(f"event {event_id!r} at frame {frame} failed: {message}")
        self.event_id = event_id
        self.frame = frame


class MalformedSnapshot(GraphreelError, ValueError):
    """Raised when a snapshot payload cannot be parsed into a document state."""


class InvalidEvent(GraphreelError, ValueError):
    """Raised when an event is constructed or updated with invalid fields."""


class DuplicateEvent(GraphreelError):
    """Raised when an id is added twice to the same collection."""


class ExportAborted(GraphreelError):
    """Raised by a strict export when a frame stays partial after retries."""

    def __init__(self, frame: int, attempts: int) -> None:
        super().__init__(f"frame {frame} still partial after {attempts} attempt(s)")
        self.frame = frame
        self.attempts = attempts


class PlaybackError(GraphreelError):
    """Base class for transport command errors."""


class RevisionMismatch(PlaybackError):
    """Raised when a command carries a stale transport revision."""


class InvalidCommand(PlaybackError):
    """Raised when an unsupported transport command is requested."""
