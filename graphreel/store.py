"""
Frame-sorted event store.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import DuplicateEvent
from .events import (
    AnimationEvent,
    BoundsEvent,
    ExpressionEvent,
    SnapshotEvent,
    TimelineEvent,
    with_changes,
)
from .interpolation import AnimationSample, sample

LOG = logging.getLogger(__name__)

EffectiveEntry = Union[SnapshotEvent, ExpressionEvent, BoundsEvent, AnimationSample]


def _order_key(event) -> Tuple[str, str]:
    return ("snapshot" if isinstance(event, SnapshotEvent) else "timeline", event.id)


class EventStore:
    """
    Holds timeline events and snapshot events, each kept frame-ascending.

    Ties keep insertion order.  Every mutation bumps :attr:`revision` and
    notifies subscribers with the new revision.
    """

    def __init__(
        self,
        timeline: Iterable[TimelineEvent] = (),
        snapshots: Iterable[SnapshotEvent] = (),
    ) -> None:
        self._lock = threading.RLock()
        self._rev = 0
        self._seq = 0
        # (collection, id) -> insertion sequence, used as the tie breaker
        self._order: Dict[Tuple[str, str], int] = {}
        self._timeline: List[TimelineEvent] = []
        self._snapshots: List[SnapshotEvent] = []

        self._observer_counter = 0
        self._observers: Dict[int, Callable[[int], None]] = {}

        for event in timeline:
            self._insert_locked(self._timeline, event)
        for snapshot in snapshots:
            self._insert_locked(self._snapshots, snapshot)

    # ------------------------------------------------------------------ helpers

    def _next_seq_locked(self) -> int:
        self._seq += 1
        return self._seq

    def _sort_locked(self, collection: list) -> None:
        collection.sort(key=lambda item: (item.frame, self._order[_order_key(item)]))

    def _insert_locked(self, collection: list, event) -> None:
        if any(existing.id == event.id for existing in collection):
            raise DuplicateEvent(f"event id {event.id!r} already present")
        self._order[_order_key(event)] = self._next_seq_locked()
        collection.append(event)
        self._sort_locked(collection)

    def _index_locked(self, collection: list, event_id: str) -> int:
        for index, event in enumerate(collection):
            if event.id == event_id:
                return index
        return -1

    def _commit_locked(self) -> int:
        self._rev += 1
        return self._rev

    def _notify(self, revision: int) -> None:
        with self._lock:
            observers = dict(self._observers)
        for token, callback in observers.items():
            try:
                callback(revision)
            except Exception:  # pragma: no cover - observer failures should not break edits
                LOG.exception("Event store observer %s failed.", token)

    def _update(self, collection: list, event_id: str, partial: Mapping[str, Any]) -> bool:
        with self._lock:
            index = self._index_locked(collection, event_id)
            if index == -1:
                LOG.debug("Event not found for update: %s", event_id)
                return False
            updated = with_changes(collection[index], partial)
            collection[index] = updated
            if "frame" in partial:
                self._sort_locked(collection)
            revision = self._commit_locked()
        self._notify(revision)
        return True

    def _remove(self, collection: list, event_id: str) -> bool:
        with self._lock:
            index = self._index_locked(collection, event_id)
            if index == -1:
                return False
            removed = collection.pop(index)
            self._order.pop(_order_key(removed), None)
            revision = self._commit_locked()
        self._notify(revision)
        return True

    # ------------------------------------------------------------------ observers

    def subscribe(self, callback: Callable[[int], None]) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._observer_counter += 1
            token = self._observer_counter
            self._observers[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._observers.pop(token, None)

    # ------------------------------------------------------------------ timeline events

    @property
    def revision(self) -> int:
        with self._lock:
            return self._rev

    def add(self, event: TimelineEvent) -> None:
        with self._lock:
            self._insert_locked(self._timeline, event)
            revision = self._commit_locked()
        LOG.debug("Added %s %s at frame %s", type(event).__name__, event.id, event.frame)
        self._notify(revision)

    def update(self, event_id: str, partial: Mapping[str, Any]) -> bool:
        return self._update(self._timeline, event_id, partial)

    def remove(self, event_id: str) -> bool:
        return self._remove(self._timeline, event_id)

    def clear(self) -> None:
        with self._lock:
            for event in self._timeline:
                self._order.pop(_order_key(event), None)
            self._timeline = []
            revision = self._commit_locked()
        self._notify(revision)

    def get(self, event_id: str) -> Optional[TimelineEvent]:
        with self._lock:
            index = self._index_locked(self._timeline, event_id)
            return self._timeline[index] if index != -1 else None

    def timeline(self) -> List[TimelineEvent]:
        with self._lock:
            return list(self._timeline)

    # ------------------------------------------------------------------ snapshots

    def add_snapshot(self, snapshot: SnapshotEvent) -> None:
        with self._lock:
            self._insert_locked(self._snapshots, snapshot)
            revision = self._commit_locked()
        LOG.debug("Added snapshot %s at frame %s", snapshot.id, snapshot.frame)
        self._notify(revision)

    def update_snapshot(self, snapshot_id: str, partial: Mapping[str, Any]) -> bool:
        return self._update(self._snapshots, snapshot_id, partial)

    def remove_snapshot(self, snapshot_id: str) -> bool:
        return self._remove(self._snapshots, snapshot_id)

    def clear_snapshots(self) -> None:
        with self._lock:
            for snapshot in self._snapshots:
                self._order.pop(_order_key(snapshot), None)
            self._snapshots = []
            revision = self._commit_locked()
        self._notify(revision)

    def snapshots(self) -> List[SnapshotEvent]:
        with self._lock:
            return list(self._snapshots)

    # ------------------------------------------------------------------ queries

    def effective_events_up_to(self, frame: int) -> List[EffectiveEntry]:
        """
        Entries a replay to ``frame`` must apply, in application order.

        Animations started at or before ``frame`` are replaced by their sample
        at ``frame``.  Ordering is by frame, snapshots before timeline events
        on the same frame, then insertion order.
        """

        with self._lock:
            keyed: List[tuple] = []
            for snapshot in self._snapshots:
                if snapshot.frame <= frame:
                    keyed.append(((snapshot.frame, 0, self._order[_order_key(snapshot)]), snapshot))
            for event in self._timeline:
                entry: Optional[EffectiveEntry]
                if isinstance(event, AnimationEvent):
                    entry = sample(event, frame)
                elif event.frame <= frame:
                    entry = event
                else:
                    entry = None
                if entry is not None:
                    keyed.append(((event.frame, 1, self._order[_order_key(event)]), entry))
        keyed.sort(key=lambda pair: pair[0])
        return [entry for _, entry in keyed]
