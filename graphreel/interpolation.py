"""
Animation interpolation.

Pure functions mapping an animation and a query frame to a point sample.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from .events import AnimationEvent, AnimationKind, Easing


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def ease(progress: float, easing: Easing = Easing.LINEAR) -> float:
    p = clamp01(progress)
    if easing is Easing.EASE_IN:
        return p * p
    if easing is Easing.EASE_OUT:
        return 1 - (1 - p) * (1 - p)
    if easing is Easing.EASE_IN_OUT:
        if p < 0.5:
            return 2 * p * p
        return 1 - ((-2 * p + 2) ** 2) / 2
    return p


def progress_at(start_frame: int, duration_frames: int, frame: int) -> float:
    return clamp01((frame - start_frame) / max(duration_frames, 1))


@dataclass(frozen=True, slots=True)
class AnimationSample:
    """
    Value of one animation at one query frame.

    ``value`` is set for variable and property animations, ``steps`` for
    action animations.  ``frame`` is the animation start frame so samples
    sort with the events they replace.
    """

    event: AnimationEvent
    query_frame: int = field(compare=False)
    progress: float
    eased: float
    completed: bool
    value: Optional[float] = None
    steps: Optional[int] = None

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def frame(self) -> int:
        return self.event.frame


def sample(animation: AnimationEvent, frame: int) -> Optional[AnimationSample]:
    """
    Sample ``animation`` at ``frame``.

    Returns ``None`` before the start frame.  Once progress reaches 1 the
    sample carries the literal end value (or total step count), so every frame
    at or past the end yields an identical terminal sample.
    """

    if frame < animation.frame:
        return None

    progress = progress_at(animation.frame, animation.duration_frames, frame)
    completed = progress >= 1.0
    eased = 1.0 if completed else ease(progress, animation.easing)

    if animation.kind is AnimationKind.ACTION:
        steps = animation.steps if completed else int(math.floor(animation.steps * eased))
        return AnimationSample(
            event=animation,
            query_frame=frame,
            progress=progress,
            eased=eased,
            completed=completed,
            steps=steps,
        )

    if completed:
        value = animation.end_value
    else:
        value = animation.start_value + (animation.end_value - animation.start_value) * eased
    return AnimationSample(
        event=animation,
        query_frame=frame,
        progress=progress,
        eased=eased,
        completed=completed,
        value=value,
    )
