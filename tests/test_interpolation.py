import pytest

from graphreel.errors import InvalidEvent
from graphreel.events import AnimationEvent, AnimationKind, Easing
from graphreel.interpolation import ease, progress_at, sample


def _variable(easing: Easing = Easing.LINEAR, **overrides) -> AnimationEvent:
    fields = dict(
        id="anim",
        frame=10,
        kind=AnimationKind.VARIABLE,
        duration_frames=20,
        start_value=0.0,
        end_value=100.0,
        easing=easing,
        variable_name="a",
    )
    fields.update(overrides)
    return AnimationEvent(**fields)


def test_excluded_before_start() -> None:
    assert sample(_variable(), 9) is None


@pytest.mark.parametrize(
    "frame, expected",
    [(10, 0.0), (20, 50.0), (30, 100.0), (100, 100.0)],
)
def test_linear_boundaries(frame: int, expected: float) -> None:
    result = sample(_variable(), frame)
    assert result is not None
    assert result.value == expected


def test_terminal_sample_is_identical_past_the_end() -> None:
    animation = _variable(start_value=0.1, end_value=0.7, easing=Easing.EASE_IN_OUT)
    at_end = sample(animation, 30)
    far_past = sample(animation, 10_000)
    assert at_end == far_past
    assert at_end.completed is True
    assert at_end.value == 0.7
    assert at_end.query_frame == 30
    assert far_past.query_frame == 10_000


def test_ease_in_at_quarter_progress() -> None:
    result = sample(_variable(Easing.EASE_IN), 15)
    assert result.progress == 0.25
    assert result.value == pytest.approx(6.25)


@pytest.mark.parametrize(
    "easing, progress, expected",
    [
        (Easing.LINEAR, 0.25, 0.25),
        (Easing.EASE_OUT, 0.25, 0.4375),
        (Easing.EASE_IN_OUT, 0.25, 0.125),
        (Easing.EASE_IN_OUT, 0.75, 0.875),
        (Easing.EASE_IN_OUT, 0.5, 0.5),
    ],
)
def test_easing_curves(easing: Easing, progress: float, expected: float) -> None:
    assert ease(progress, easing) == pytest.approx(expected)


def test_progress_clamps_and_guards_zero_duration() -> None:
    assert progress_at(10, 20, 50) == 1.0
    assert progress_at(10, 0, 10) == 0.0
    assert progress_at(10, 0, 11) == 1.0


def test_action_steps_floor_and_complete() -> None:
    animation = AnimationEvent(
        id="steps",
        frame=10,
        kind=AnimationKind.ACTION,
        target_id="ticker",
        duration_frames=4,
        steps=10,
    )
    assert sample(animation, 10).steps == 0
    assert sample(animation, 11).steps == 2
    assert sample(animation, 12).steps == 5
    assert sample(animation, 14).steps == 10
    assert sample(animation, 99).steps == 10
    assert sample(animation, 14).value is None


def test_property_animation_needs_target_and_property() -> None:
    with pytest.raises(InvalidEvent):
        AnimationEvent(id="p", frame=0, kind="property", target_id="a")


def test_unknown_easing_is_rejected() -> None:
    with pytest.raises(InvalidEvent):
        _variable(easing="bounce")
