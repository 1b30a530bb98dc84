"""
Replay engine.

Reconstructs the document at a frame by resetting the compute host to the
blank baseline and applying every effective event in order.  Events must be
applied sequentially: later events may read state written by earlier ones.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, assert_never

from .document import blank_document_state
from .errors import EventApplicationFailure, HostNotReady
from .events import AnimationEvent, AnimationKind, BoundsEvent, DocumentState, ExpressionEvent, SnapshotEvent
from .host import DocumentHost, maybe_await
from .interpolation import AnimationSample
from .store import EffectiveEntry, EventStore

LOG = logging.getLogger(__name__)


def format_number(value: float) -> str:
    return f"{float(value):.12g}"


@dataclass(frozen=True)
class ReplayResult:
    frame: int
    state: DocumentState
    revision: int
    applied: int
    failures: Tuple[EventApplicationFailure, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def entry_kind(entry: EffectiveEntry) -> str:
    match entry:
        case SnapshotEvent():
            return "snapshot"
        case ExpressionEvent():
            return "expression"
        case BoundsEvent():
            return "bounds"
        case AnimationSample():
            return f"animation:{entry.event.kind.value}"
        case _:
            assert_never(entry)


class ReplayEngine:
    """
    Replays an :class:`EventStore` against a private compute host.

    The host is scratch space: it is reset at the start of every replay and
    must never be the host the author is looking at.
    """

    def __init__(self, store: EventStore, host: Optional[DocumentHost] = None) -> None:
        self.store = store
        self._host = host
        self.replay_count = 0

    @property
    def host(self) -> Optional[DocumentHost]:
        return self._host

    def set_host(self, host: Optional[DocumentHost]) -> None:
        self._host = host
        LOG.debug("Compute host %s", "set" if host is not None else "cleared")

    def require_host(self) -> DocumentHost:
        if self._host is None:
            raise HostNotReady("compute host not set; call set_compute_host() first")
        return self._host

    async def compute_state_at(self, frame: int) -> ReplayResult:
        host = self.require_host()
        self.replay_count += 1
        revision = self.store.revision

        await maybe_await(host.set_state(blank_document_state()))
        entries = self.store.effective_events_up_to(frame)
        LOG.debug("Replaying %d entries up to frame %d (rev %d)", len(entries), frame, revision)

        failures: List[EventApplicationFailure] = []
        applied = 0
        for entry in entries:
            try:
                await self._apply_entry(host, entry)
            except Exception as exc:
                LOG.warning(
                    "Skipping %s %s at frame %d while replaying to frame %d: %s",
                    entry_kind(entry),
                    entry.id,
                    entry.frame,
                    frame,
                    exc,
                    exc_info=True,
                )
                failure = EventApplicationFailure(entry.id, entry.frame, f"{type(exc).__name__}: {exc}")
                failure.__cause__ = exc
                failures.append(failure)
            else:
                applied += 1

        state = await maybe_await(host.get_state())
        return ReplayResult(
            frame=frame,
            state=copy.deepcopy(state),
            revision=revision,
            applied=applied,
            failures=tuple(failures),
        )

    def describe_events_up_to(self, frame: int) -> List[Dict[str, Any]]:
        described: List[Dict[str, Any]] = []
        for entry in self.store.effective_events_up_to(frame):
            item: Dict[str, Any] = {"id": entry.id, "frame": entry.frame, "kind": entry_kind(entry)}
            if isinstance(entry, AnimationSample):
                item.update(
                    progress=entry.progress,
                    completed=entry.completed,
                    value=entry.value,
                    steps=entry.steps,
                )
            described.append(item)
        return described

    # ------------------------------------------------------------------ application

    async def _apply_entry(self, host: DocumentHost, entry: EffectiveEntry) -> None:
        match entry:
            case SnapshotEvent():
                await maybe_await(host.set_state(copy.deepcopy(entry.state)))
            case ExpressionEvent():
                await maybe_await(host.set_entity(entry.patch()))
            case BoundsEvent():
                await maybe_await(host.set_bounds(entry.edges()))
            case AnimationSample():
                await self._apply_sample(host, entry)
            case _:
                assert_never(entry)

    async def _apply_sample(self, host: DocumentHost, sample: AnimationSample) -> None:
        animation = sample.event
        match animation.kind:
            case AnimationKind.VARIABLE:
                name = await self._variable_name(host, animation)
                entity_id = animation.target_id or f"__animation_{name}"
                latex = f"{name} = {format_number(sample.value)}"
                await maybe_await(host.set_entity({"id": entity_id, "latex": latex}))
            case AnimationKind.PROPERTY:
                patch = {"id": animation.target_id, animation.property_name: sample.value}
                await maybe_await(host.set_entity(patch))
            case AnimationKind.ACTION:
                for _ in range(sample.steps or 0):
                    await maybe_await(host.step(animation.target_id))
            case _:
                assert_never(animation.kind)

    async def _variable_name(self, host: DocumentHost, animation: AnimationEvent) -> str:
        if animation.auto_detect and animation.target_id:
            entities = await maybe_await(host.get_entities())
            for entity in entities:
                if entity.get("id") != animation.target_id:
                    continue
                latex = str(entity.get("latex") or "")
                if "=" in latex:
                    candidate = latex.split("=", 1)[0].strip()
                    if candidate:
                        return candidate
                break
        if animation.variable_name:
            return animation.variable_name
        raise ValueError(f"cannot detect a variable name on entity {animation.target_id!r}")
