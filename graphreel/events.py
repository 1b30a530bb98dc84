"""
Timeline event model.

Events are immutable records.  The three timeline kinds form the closed union
:data:`TimelineEvent`; snapshots live in their own collection and act as hard
reset points during replay.
"""

from __future__ import annotations

import copy
import dataclasses
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .errors import InvalidEvent

DocumentState = Dict[str, Any]


class AnimationKind(str, Enum):
    """What an animation drives on the host."""

    VARIABLE = "variable"
    PROPERTY = "property"
    ACTION = "action"


class Easing(str, Enum):
    """Supported easing curves."""

    LINEAR = "linear"
    EASE_IN = "ease-in"
    EASE_OUT = "ease-out"
    EASE_IN_OUT = "ease-in-out"


def new_event_id(prefix: str = "event") -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _check_frame(value: object, name: str = "frame") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEvent(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidEvent(f"{name} must be non-negative, got {value}")
    return value


def _coerce_enum(enum_cls, value, name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidEvent(f"unsupported {name} {value!r} (expected one of: {allowed})") from None


@dataclass(frozen=True, slots=True)
class ExpressionEvent:
    """Upsert ``properties`` onto the entity ``entity_id``."""

    id: str
    frame: int
    entity_id: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_frame(self.frame)
        if not self.entity_id:
            raise InvalidEvent("expression events need an entity_id")
        object.__setattr__(self, "properties", copy.deepcopy(dict(self.properties)))

    def patch(self) -> Dict[str, Any]:
        payload = copy.deepcopy(self.properties)
        payload["id"] = self.entity_id
        return payload


@dataclass(frozen=True, slots=True)
class BoundsEvent:
    """Replace the viewport with the given edges."""

    id: str
    frame: int
    left: float
    right: float
    top: float
    bottom: float

    def __post_init__(self) -> None:
        _check_frame(self.frame)
        for name in ("left", "right", "top", "bottom"):
            try:
                object.__setattr__(self, name, float(getattr(self, name)))
            except (TypeError, ValueError):
                raise InvalidEvent(f"bounds edge {name} must be numeric") from None

    def edges(self) -> Dict[str, float]:
        return {"left": self.left, "right": self.right, "top": self.top, "bottom": self.bottom}


@dataclass(frozen=True, slots=True)
class AnimationEvent:
    """
    Timed mutation starting at ``frame`` and lasting ``duration_frames``.

    ``start_value``/``end_value`` drive variable and property animations,
    ``steps`` drives action animations.
    """

    id: str
    frame: int
    kind: AnimationKind
    target_id: Optional[str] = None
    duration_frames: int = 0
    start_value: float = 0.0
    end_value: float = 0.0
    steps: int = 0
    easing: Easing = Easing.LINEAR
    variable_name: Optional[str] = None
    auto_detect: bool = False
    property_name: Optional[str] = None

    def __post_init__(self) -> None:
        _check_frame(self.frame)
        _check_frame(self.duration_frames, "duration_frames")
        object.__setattr__(self, "kind", _coerce_enum(AnimationKind, self.kind, "animation kind"))
        object.__setattr__(self, "easing", _coerce_enum(Easing, self.easing, "easing"))
        try:
            object.__setattr__(self, "start_value", float(self.start_value))
            object.__setattr__(self, "end_value", float(self.end_value))
        except (TypeError, ValueError):
            raise InvalidEvent("animation values must be numeric") from None

        if self.kind is AnimationKind.VARIABLE:
            if not self.variable_name and not (self.auto_detect and self.target_id):
                raise InvalidEvent("variable animations need variable_name or auto_detect with a target")
        elif self.kind is AnimationKind.PROPERTY:
            if not self.target_id or not self.property_name:
                raise InvalidEvent("property animations need target_id and property_name")
        elif self.kind is AnimationKind.ACTION:
            if not self.target_id:
                raise InvalidEvent("action animations need target_id")
            _check_frame(self.steps, "steps")

    @property
    def end_frame(self) -> int:
        return self.frame + self.duration_frames


@dataclass(frozen=True, slots=True)
class SnapshotEvent:
    """Full captured document state; replay restarts from it."""

    id: str
    frame: int
    state: DocumentState
    description: Optional[str] = None

    def __post_init__(self) -> None:
        _check_frame(self.frame)
        if not isinstance(self.state, Mapping):
            raise InvalidEvent("snapshot state must be a mapping")
        object.__setattr__(self, "state", copy.deepcopy(dict(self.state)))


TimelineEvent = Union[ExpressionEvent, BoundsEvent, AnimationEvent]

EVENT_TYPES: Dict[str, type] = {
    "expression": ExpressionEvent,
    "bounds": BoundsEvent,
    "animation": AnimationEvent,
}


def event_type_name(event: TimelineEvent) -> str:
    for name, cls in EVENT_TYPES.items():
        if isinstance(event, cls):
            return name
    raise TypeError(f"not a timeline event: {event!r}")


def with_changes(event, partial: Mapping[str, Any]):
    """
    Return a copy of ``event`` with ``partial`` applied.

    The id cannot be changed and unknown field names are rejected.
    """

    changes = dict(partial)
    if "id" in changes and changes["id"] != event.id:
        raise InvalidEvent("event ids are immutable")
    changes.pop("id", None)
    try:
        return dataclasses.replace(event, **changes)
    except TypeError as exc:
        raise InvalidEvent(f"invalid update for {type(event).__name__}: {exc}") from exc


def event_from_dict(payload: Mapping[str, Any]) -> TimelineEvent:
    """Build a timeline event from its wire form (``type`` discriminator)."""

    data = dict(payload)
    kind = str(data.pop("type", "") or "").strip().lower()
    cls = EVENT_TYPES.get(kind)
    if cls is None:
        raise InvalidEvent(f"unsupported event type {kind!r}")
    data.setdefault("id", new_event_id(kind))
    try:
        return cls(**data)
    except TypeError as exc:
        raise InvalidEvent(f"invalid {kind} event: {exc}") from exc


def event_to_dict(event: Union[TimelineEvent, SnapshotEvent]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for item in dataclasses.fields(event):
        value = getattr(event, item.name)
        if isinstance(value, Enum):
            value = value.value
        result[item.name] = copy.deepcopy(value)
    result["type"] = "snapshot" if isinstance(event, SnapshotEvent) else event_type_name(event)
    return result
