import asyncio

import pytest

from graphreel.document import DEFAULT_VIEWPORT, blank_document_state, find_entity
from graphreel.errors import HostNotReady
from graphreel.events import AnimationEvent, BoundsEvent, ExpressionEvent, SnapshotEvent
from graphreel.host import InMemoryHost
from graphreel.replay import ReplayEngine
from graphreel.store import EventStore


class AsyncHost(InMemoryHost):
    """Host whose calls complete asynchronously, like a real renderer."""

    async def set_entity(self, patch):
        await asyncio.sleep(0)
        super().set_entity(patch)

    async def get_entities(self):
        await asyncio.sleep(0)
        return super().get_entities()

    async def get_state(self):
        await asyncio.sleep(0)
        return super().get_state()


def _replay(store: EventStore, frame: int, host=None):
    engine = ReplayEngine(store, host or InMemoryHost())
    return asyncio.run(engine.compute_state_at(frame))


def _scenario_store() -> EventStore:
    store = EventStore()
    store.add(BoundsEvent(id="bounds", frame=3, left=-5, right=5, top=5, bottom=-5))
    store.add(ExpressionEvent(id="show-a", frame=5, entity_id="a", properties={"hidden": False}))
    return store


def test_scenario_bounds_then_visibility() -> None:
    store = _scenario_store()

    at_zero = _replay(store, 0)
    assert at_zero.state == blank_document_state()

    at_four = _replay(store, 4)
    assert at_four.state["graph"]["viewport"] == {"xmin": -5.0, "ymin": -5.0, "xmax": 5.0, "ymax": 5.0}
    assert find_entity(at_four.state, "a") is None

    at_five = _replay(store, 5)
    assert at_five.state["graph"]["viewport"]["xmax"] == 5.0
    assert find_entity(at_five.state, "a") == {"id": "a", "hidden": False}
    assert at_five.partial is False
    assert at_five.applied == 2


def test_replay_resets_the_compute_host() -> None:
    host = InMemoryHost()
    host.set_entity({"id": "leftover", "latex": "y=x"})

    result = _replay(EventStore(), 10, host)
    assert result.state == blank_document_state()
    assert result.state["graph"]["viewport"] == DEFAULT_VIEWPORT


def test_snapshot_replaces_earlier_edits() -> None:
    store = EventStore()
    store.add(ExpressionEvent(id="early", frame=2, entity_id="early", properties={"latex": "y=1"}))
    store.add(ExpressionEvent(id="after", frame=16, entity_id="b", properties={"latex": "y=2"}))
    snapshot_state = blank_document_state()
    snapshot_state["expressions"]["list"] = [{"id": "c", "latex": "y=3"}]
    store.add_snapshot(SnapshotEvent(id="snap", frame=15, state=snapshot_state))

    state = _replay(store, 16).state
    ids = [entity["id"] for entity in state["expressions"]["list"]]
    assert ids == ["c", "b"]


def test_failing_event_is_skipped_and_tagged() -> None:
    store = EventStore()
    store.add(ExpressionEvent(id="before", frame=1, entity_id="a", properties={"latex": "y=x"}))
    # inverted edges make the host reject the bounds
    store.add(BoundsEvent(id="broken", frame=2, left=5, right=-5, top=5, bottom=-5))
    store.add(ExpressionEvent(id="after", frame=3, entity_id="b", properties={"latex": "y=2x"}))

    result = _replay(store, 3)
    assert result.partial is True
    assert [failure.event_id for failure in result.failures] == ["broken"]
    assert result.failures[0].frame == 2
    assert find_entity(result.state, "b") == {"id": "b", "latex": "y=2x"}
    assert result.applied == 2


def test_missing_host_raises() -> None:
    engine = ReplayEngine(EventStore())
    with pytest.raises(HostNotReady):
        asyncio.run(engine.compute_state_at(0))
    assert engine.replay_count == 0


def test_variable_animation_auto_detects_name() -> None:
    store = EventStore()
    store.add(ExpressionEvent(id="def", frame=0, entity_id="slider", properties={"latex": "k = 1"}))
    store.add(
        AnimationEvent(
            id="sweep",
            frame=0,
            kind="variable",
            target_id="slider",
            duration_frames=10,
            start_value=1,
            end_value=3,
            auto_detect=True,
        )
    )

    result = _replay(store, 5, AsyncHost())
    assert find_entity(result.state, "slider")["latex"] == "k = 2"
    assert _replay(store, 50).state == _replay(store, 10).state


def test_variable_animation_without_target_uses_hidden_entity() -> None:
    store = EventStore()
    store.add(AnimationEvent(id="t", frame=0, kind="variable", duration_frames=4, end_value=1, variable_name="t"))

    state = _replay(store, 1).state
    assert find_entity(state, "__animation_t") == {"id": "__animation_t", "latex": "t = 0.25"}


def test_property_and_action_animations() -> None:
    store = EventStore()
    store.add(ExpressionEvent(id="def", frame=0, entity_id="p", properties={"latex": "(1,1)"}))
    store.add(
        AnimationEvent(
            id="fade",
            frame=0,
            kind="property",
            target_id="p",
            property_name="opacity",
            duration_frames=10,
            start_value=0,
            end_value=1,
        )
    )
    store.add(AnimationEvent(id="tick", frame=0, kind="action", target_id="p", duration_frames=10, steps=4))

    state = _replay(store, 5).state
    entity = find_entity(state, "p")
    assert entity["opacity"] == 0.5
    assert entity["actionCount"] == 2


def test_replay_is_deterministic() -> None:
    store = _scenario_store()
    store.add(AnimationEvent(id="a", frame=1, kind="variable", duration_frames=7, end_value=9, variable_name="q"))
    engine = ReplayEngine(store, AsyncHost())

    first = asyncio.run(engine.compute_state_at(6))
    second = asyncio.run(engine.compute_state_at(6))
    assert first.state == second.state
    assert engine.replay_count == 2


def test_describe_events_reports_animation_progress() -> None:
    store = _scenario_store()
    store.add(AnimationEvent(id="a", frame=2, kind="variable", duration_frames=4, end_value=8, variable_name="q"))
    engine = ReplayEngine(store)

    described = engine.describe_events_up_to(4)
    assert [item["kind"] for item in described] == ["animation:variable", "bounds"]
    assert described[0]["progress"] == 0.5
    assert described[0]["value"] == 4.0
