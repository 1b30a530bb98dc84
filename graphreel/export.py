"""
Frame export loop.

The video encoder is an external consumer; this module only feeds it resolved
frames in strictly increasing order and decides what to do with partial ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from .errors import ExportAborted
from .events import DocumentState
from .host import RenderedImage
from .resolver import TimelineResolver

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportedFrame:
    frame: int
    state: DocumentState
    image: Optional[RenderedImage]
    partial: bool
    attempts: int


async def export_frames(
    resolver: TimelineResolver,
    frame_count: int,
    *,
    start: int = 0,
    max_retries: int = 1,
    strict: bool = False,
) -> AsyncIterator[ExportedFrame]:
    """
    Yield ``frame_count`` frames starting at ``start``.

    A partial frame is dropped from the cache and resolved again up to
    ``max_retries`` times.  If it is still partial it is yielded with
    ``partial=True``, or :class:`ExportAborted` is raised when ``strict``.
    """

    if frame_count < 0:
        raise ValueError("frame_count must be non-negative")

    for frame in range(start, start + frame_count):
        attempts = 1
        resolved = await resolver.resolve_frame(frame)
        while resolved.partial and attempts <= max_retries:
            LOG.info("Frame %d is partial; retrying (attempt %d)", frame, attempts + 1)
            resolver.cache.discard(frame)
            resolved = await resolver.resolve_frame(frame)
            attempts += 1

        if resolved.partial:
            if strict:
                raise ExportAborted(frame, attempts)
            LOG.warning("Exporting frame %d as partial after %d attempt(s)", frame, attempts)

        image = resolved.image
        if image is None and resolver.capture_images:
            image = await resolver.get_image_at_frame(frame)

        yield ExportedFrame(
            frame=frame,
            state=resolved.state,
            image=image,
            partial=resolved.partial,
            attempts=attempts,
        )
