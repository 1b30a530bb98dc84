import pytest

from graphreel.errors import DuplicateEvent, InvalidEvent
from graphreel.events import (
    AnimationEvent,
    BoundsEvent,
    ExpressionEvent,
    SnapshotEvent,
    event_from_dict,
    event_to_dict,
)
from graphreel.interpolation import AnimationSample
from graphreel.store import EventStore


def _expr(event_id: str, frame: int, **properties) -> ExpressionEvent:
    return ExpressionEvent(id=event_id, frame=frame, entity_id="a", properties=properties)


def test_timeline_stays_sorted_with_stable_ties() -> None:
    store = EventStore()
    store.add(_expr("late", 9))
    store.add(_expr("first", 2))
    store.add(_expr("tie-1", 5))
    store.add(_expr("tie-2", 5))

    assert [event.id for event in store.timeline()] == ["first", "tie-1", "tie-2", "late"]


def test_update_reorders_and_reports_found() -> None:
    store = EventStore()
    store.add(_expr("x", 1))
    store.add(_expr("y", 4))

    assert store.update("x", {"frame": 8}) is True
    assert [event.id for event in store.timeline()] == ["y", "x"]
    assert store.get("x").frame == 8
    assert store.update("missing", {"frame": 1}) is False


def test_update_rejects_id_change_and_unknown_fields() -> None:
    store = EventStore()
    store.add(_expr("x", 1))

    with pytest.raises(InvalidEvent):
        store.update("x", {"id": "other"})
    with pytest.raises(InvalidEvent):
        store.update("x", {"colour": "red"})
    with pytest.raises(InvalidEvent):
        store.update("x", {"frame": -3})
    assert store.get("x").frame == 1


def test_remove_and_clear() -> None:
    store = EventStore()
    store.add(_expr("x", 1))
    store.add(_expr("y", 2))

    assert store.remove("x") is True
    assert store.remove("x") is False
    store.clear()
    assert store.timeline() == []


def test_duplicate_ids_are_rejected_per_collection() -> None:
    store = EventStore()
    store.add(_expr("shared", 1))
    with pytest.raises(DuplicateEvent):
        store.add(_expr("shared", 3))

    # the snapshot collection is independent
    store.add_snapshot(SnapshotEvent(id="shared", frame=0, state={}))
    store.remove_snapshot("shared")
    assert store.get("shared") is not None


def test_revision_and_observers() -> None:
    store = EventStore()
    seen = []
    token = store.subscribe(seen.append)

    store.add(_expr("x", 1))
    store.update("x", {"properties": {"hidden": True}})
    store.add_snapshot(SnapshotEvent(id="s", frame=0, state={}))
    store.remove("nope")

    assert store.revision == 3
    assert seen == [1, 2, 3]

    store.unsubscribe(token)
    store.clear()
    assert seen == [1, 2, 3]
    assert store.revision == 4


def test_effective_events_put_snapshot_first_on_shared_frame() -> None:
    store = EventStore()
    store.add(_expr("edit-15", 15))
    store.add(_expr("edit-16", 16))
    store.add(_expr("edit-3", 3))
    store.add_snapshot(SnapshotEvent(id="snap-15", frame=15, state={}))

    entries = store.effective_events_up_to(16)
    assert [entry.id for entry in entries] == ["edit-3", "snap-15", "edit-15", "edit-16"]
    assert [entry.id for entry in store.effective_events_up_to(14)] == ["edit-3"]


def test_effective_events_sample_animations() -> None:
    store = EventStore()
    store.add(
        AnimationEvent(
            id="grow",
            frame=10,
            kind="variable",
            duration_frames=20,
            end_value=100,
            variable_name="r",
        )
    )
    store.add(BoundsEvent(id="bounds", frame=12, left=-1, right=1, top=1, bottom=-1))

    assert store.effective_events_up_to(9) == []

    entries = store.effective_events_up_to(20)
    assert [entry.id for entry in entries] == ["grow", "bounds"]
    assert isinstance(entries[0], AnimationSample)
    assert entries[0].value == 50.0


def test_event_dict_round_trip_keeps_type() -> None:
    event = event_from_dict(
        {"type": "animation", "frame": 3, "kind": "property", "target_id": "a", "property_name": "opacity"}
    )
    payload = event_to_dict(event)
    assert payload["type"] == "animation"
    assert payload["kind"] == "property"
    assert payload["id"].startswith("animation_")

    with pytest.raises(InvalidEvent):
        event_from_dict({"type": "teleport", "frame": 1})
