"""
Per-frame memoisation of replay results.

Two independent layers keyed by frame:

* the logical layer holds document states and is invalidated by event store
  mutations only;
* the rendered layer holds image handles and is additionally invalidated when
  render settings change.

Every entry remembers the store revision it was computed against, and a
lookup against a newer revision is treated as a miss.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import EventApplicationFailure
from .events import DocumentState
from .host import RenderedImage
from .replay import ReplayResult
from .store import EventStore

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RenderSettings:
    width: int = 1920
    height: int = 1080
    pixel_density: float = 1.0
    background: str = "#ffffff"

    def __post_init__(self) -> None:
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError("render width and height must be positive")
        if float(self.pixel_density) <= 0:
            raise ValueError("pixel_density must be positive")

    def to_dict(self) -> dict:
        return {
            "width": int(self.width),
            "height": int(self.height),
            "pixelDensity": float(self.pixel_density),
            "background": self.background,
        }


@dataclass(frozen=True)
class CacheEntry:
    frame: int
    state: DocumentState
    revision: int
    failures: Tuple[EventApplicationFailure, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.failures)


@dataclass(frozen=True, slots=True)
class _ImageEntry:
    revision: int
    image: RenderedImage


class StateCache:
    """Logical-state and rendered-image caches bound to one event store."""

    def __init__(self, store: EventStore) -> None:
        self._store = store
        self._lock = threading.RLock()
        self._states: Dict[int, CacheEntry] = {}
        self._images: Dict[int, _ImageEntry] = {}
        self._subscription: Optional[int] = store.subscribe(self._handle_store_mutation)

    def _handle_store_mutation(self, revision: int) -> None:
        self.clear()
        LOG.debug("Cache cleared after store mutation (rev %d)", revision)

    def close(self) -> None:
        if self._subscription is not None:
            self._store.unsubscribe(self._subscription)
            self._subscription = None

    # ------------------------------------------------------------------ logical layer

    def get(self, frame: int) -> Optional[CacheEntry]:
        """Return a private copy of the entry for ``frame``, or ``None`` on a miss."""

        revision = self._store.revision
        with self._lock:
            entry = self._states.get(frame)
            if entry is None:
                return None
            if entry.revision != revision:
                self._states.pop(frame, None)
                self._images.pop(frame, None)
                return None
            return dataclasses.replace(entry, state=copy.deepcopy(entry.state))

    def put(self, result: ReplayResult) -> bool:
        """
        Store ``result`` unless the event store moved on while it was computed.
        """

        with self._lock:
            if result.revision != self._store.revision:
                LOG.debug(
                    "Dropping replay of frame %d computed at rev %d (current rev %d)",
                    result.frame,
                    result.revision,
                    self._store.revision,
                )
                return False
            self._states[result.frame] = CacheEntry(
                frame=result.frame,
                state=copy.deepcopy(result.state),
                revision=result.revision,
                failures=tuple(result.failures),
            )
            return True

    def discard(self, frame: int) -> None:
        with self._lock:
            self._states.pop(frame, None)
            self._images.pop(frame, None)

    def frames(self) -> List[int]:
        with self._lock:
            return sorted(self._states)

    def clear(self) -> None:
        with self._lock:
            self._states.clear()
            self._images.clear()

    # ------------------------------------------------------------------ rendered layer

    def get_image(self, frame: int) -> Optional[RenderedImage]:
        revision = self._store.revision
        with self._lock:
            entry = self._images.get(frame)
            if entry is None:
                return None
            if entry.revision != revision:
                self._images.pop(frame, None)
                return None
            return entry.image

    def put_image(self, frame: int, revision: int, image: RenderedImage) -> bool:
        with self._lock:
            if revision != self._store.revision:
                return False
            self._images[frame] = _ImageEntry(revision=revision, image=image)
            return True

    def image_frames(self) -> List[int]:
        with self._lock:
            return sorted(self._images)

    def clear_images(self) -> None:
        with self._lock:
            self._images.clear()
