"""
Document host capability interface.

The graphical host (a graphing calculator or similar engine) is an external
collaborator.  Any of its methods may return an awaitable because the host
schedules its own rendering; callers go through :func:`maybe_await`.
:class:`InMemoryHost` is a headless implementation used by the control API and
the test-suite.
"""

from __future__ import annotations

import copy
import inspect
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, TypeVar, Union, runtime_checkable

from .document import blank_document_state, entity_list
from .events import DocumentState

LOG = logging.getLogger(__name__)

T = TypeVar("T")
MaybeAwaitable = Union[T, Awaitable[T]]


async def maybe_await(value: MaybeAwaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True, slots=True)
class RenderedImage:
    """Opaque handle for a host-rendered frame."""

    handle: str
    width: int
    height: int
    pixel_density: float


@runtime_checkable
class DocumentHost(Protocol):
    def set_entity(self, patch: Mapping[str, Any]) -> MaybeAwaitable[None]: ...

    def remove_entity(self, entity_id: str) -> MaybeAwaitable[None]: ...

    def set_bounds(self, edges: Mapping[str, float]) -> MaybeAwaitable[None]: ...

    def get_entities(self) -> MaybeAwaitable[List[Dict[str, Any]]]: ...

    def get_state(self) -> MaybeAwaitable[DocumentState]: ...

    def set_state(self, state: DocumentState) -> MaybeAwaitable[None]: ...

    def update_settings(self, partial: Mapping[str, Any]) -> MaybeAwaitable[None]: ...

    def step(self, entity_id: str) -> MaybeAwaitable[None]: ...

    def capture_image(
        self, width: int, height: int, pixel_density: float
    ) -> MaybeAwaitable[Optional[RenderedImage]]: ...


class InMemoryHost:
    """
    Headless document host backed by a plain dict.

    Entity patches merge into existing entities, bounds map onto the viewport
    and ``step`` counts single-step actions in ``actionCount``.
    """

    _handles = itertools.count(1)

    def __init__(self, state: Optional[DocumentState] = None, *, name: str = "memory") -> None:
        self.name = name
        self._state: DocumentState = copy.deepcopy(state) if state is not None else blank_document_state()
        self.settings: Dict[str, Any] = {}

    def _entities(self) -> List[Dict[str, Any]]:
        expressions = self._state.setdefault("expressions", {})
        return expressions.setdefault("list", [])

    def set_entity(self, patch: Mapping[str, Any]) -> None:
        entity_id = patch.get("id")
        if not isinstance(entity_id, str) or not entity_id:
            raise ValueError("entity patch needs a string id")
        entities = self._entities()
        for entity in entities:
            if entity.get("id") == entity_id:
                entity.update(copy.deepcopy(dict(patch)))
                return
        entities.append(copy.deepcopy(dict(patch)))

    def remove_entity(self, entity_id: str) -> None:
        expressions = self._state.setdefault("expressions", {})
        expressions["list"] = [entity for entity in self._entities() if entity.get("id") != entity_id]

    def set_bounds(self, edges: Mapping[str, float]) -> None:
        left = float(edges["left"])
        right = float(edges["right"])
        top = float(edges["top"])
        bottom = float(edges["bottom"])
        if not left < right or not bottom < top:
            raise ValueError(f"invalid bounds: {dict(edges)}")
        graph = self._state.setdefault("graph", {})
        graph["viewport"] = {"xmin": left, "ymin": bottom, "xmax": right, "ymax": top}

    def get_entities(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(entity_list(self._state))

    def get_state(self) -> DocumentState:
        return copy.deepcopy(self._state)

    def set_state(self, state: DocumentState) -> None:
        self._state = copy.deepcopy(state)

    def update_settings(self, partial: Mapping[str, Any]) -> None:
        self.settings.update(partial)

    def step(self, entity_id: str) -> None:
        for entity in self._entities():
            if entity.get("id") == entity_id:
                entity["actionCount"] = int(entity.get("actionCount", 0)) + 1
                return
        raise KeyError(f"no entity {entity_id!r} to step")

    def capture_image(self, width: int, height: int, pixel_density: float) -> RenderedImage:
        handle = f"{self.name}-frame-{next(self._handles)}"
        return RenderedImage(
            handle=handle,
            width=int(round(width * pixel_density)),
            height=int(round(height * pixel_density)),
            pixel_density=float(pixel_density),
        )
