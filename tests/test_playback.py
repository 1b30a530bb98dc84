import asyncio

import pytest

from graphreel.playback import InvalidCommand, PlaybackScheduler, PlaybackState, RevisionMismatch


class FakeClock:
    def __init__(self) -> None:
        self.value = 0

    def now(self) -> int:
        return self.value

    def advance_us(self, delta: int) -> None:
        self.value += int(delta)


class Recorder:
    def __init__(self, fail_on=None) -> None:
        self.frames = []
        self.fail_on = fail_on

    async def __call__(self, frame: int) -> None:
        if frame == self.fail_on:
            raise RuntimeError(f"host rejected frame {frame}")
        self.frames.append(frame)


async def _never(_interval: float) -> None:
    # ticks are driven by hand in these tests
    await asyncio.Event().wait()


def _scheduler(clock: FakeClock, recorder: Recorder, **kwargs) -> PlaybackScheduler:
    kwargs.setdefault("fps", 10.0)
    kwargs.setdefault("duration_frames", 50)
    return PlaybackScheduler(recorder, monotonic=clock.now, sleep=_never, **kwargs)


def test_initial_snapshot() -> None:
    scheduler = _scheduler(FakeClock(), Recorder())

    snapshot = scheduler.snapshot()
    assert snapshot.rev == 0
    assert snapshot.state is PlaybackState.IDLE
    assert snapshot.playing is False
    assert snapshot.frame == 0
    assert snapshot.t0_us == 0
    assert snapshot.last_applied_frame is None


def test_ticks_follow_the_clock() -> None:
    clock = FakeClock()
    recorder = Recorder()
    scheduler = _scheduler(clock, recorder)

    async def scenario():
        await scheduler.play()
        clock.advance_us(1_000_000)
        first = await scheduler.tick()
        clock.advance_us(40_000)
        second = await scheduler.tick()
        clock.advance_us(20_000)
        third = await scheduler.tick()
        await scheduler.pause()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first.frame == 10
    # 1.04s rounds to frame 10, already applied
    assert second.frame == 10
    # 1.06s rounds half-up to frame 11
    assert third.frame == 11
    assert recorder.frames == [10, 11]


def test_reaching_the_end_clamps_and_applies_once() -> None:
    clock = FakeClock()
    recorder = Recorder()
    scheduler = _scheduler(clock, recorder, duration_frames=20)

    async def scenario():
        await scheduler.play()
        clock.advance_us(9_000_000)
        end = await scheduler.tick()
        clock.advance_us(1_000_000)
        idle = await scheduler.tick()
        return end, idle

    end, idle = asyncio.run(scenario())
    assert end.state is PlaybackState.IDLE
    assert end.frame == 20
    assert end.at_end is True
    assert idle.rev == end.rev
    assert recorder.frames == [20]


def test_play_at_end_restarts_from_zero() -> None:
    clock = FakeClock()
    scheduler = _scheduler(clock, Recorder(), duration_frames=5)

    async def scenario():
        await scheduler.seek(5)
        restarted = await scheduler.play()
        await scheduler.stop()
        return restarted

    restarted = asyncio.run(scenario())
    assert restarted.frame == 0
    assert restarted.start_frame == 0


def test_pause_preserves_frame_and_resume_measures_from_it() -> None:
    clock = FakeClock()
    recorder = Recorder()
    scheduler = _scheduler(clock, recorder)

    async def scenario():
        await scheduler.play()
        clock.advance_us(2_000_000)
        await scheduler.tick()
        paused = await scheduler.pause()
        clock.advance_us(5_000_000)
        still = await scheduler.tick()
        resumed = await scheduler.play(expected_rev=paused.rev)
        clock.advance_us(500_000)
        moved = await scheduler.tick()
        await scheduler.pause()
        return paused, still, resumed, moved

    paused, still, resumed, moved = asyncio.run(scenario())
    assert paused.state is PlaybackState.PAUSED
    assert paused.frame == 20
    assert paused.t0_us == 2_000_000
    assert still.frame == 20
    assert resumed.start_frame == 20
    assert moved.frame == 25
    assert recorder.frames == [20, 25]


def test_seek_resets_the_baseline() -> None:
    clock = FakeClock()
    recorder = Recorder()
    scheduler = _scheduler(clock, recorder)

    async def scenario():
        await scheduler.play()
        clock.advance_us(1_000_000)
        await scheduler.tick()
        sought = await scheduler.seek(40)
        clock.advance_us(300_000)
        after = await scheduler.tick()
        await scheduler.pause()
        return sought, after

    sought, after = asyncio.run(scenario())
    assert sought.state is PlaybackState.PLAYING
    assert sought.frame == 40
    assert after.frame == 43
    assert recorder.frames == [10, 40, 43]


def test_apply_failure_pauses_playback() -> None:
    clock = FakeClock()
    scheduler = _scheduler(clock, Recorder(fail_on=3))

    async def scenario():
        await scheduler.play()
        clock.advance_us(300_000)
        return await scheduler.tick()

    snapshot = asyncio.run(scenario())
    assert snapshot.state is PlaybackState.PAUSED
    assert snapshot.frame == 3
    assert snapshot.last_applied_frame is None


def test_cancelling_the_tick_loop_propagates() -> None:
    scheduler = _scheduler(FakeClock(), Recorder())

    async def scenario():
        await scheduler.play()
        task = scheduler._task
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()


def test_frame_time_conversion() -> None:
    scheduler = _scheduler(FakeClock(), Recorder(), fps=30.0)
    assert scheduler.frame_to_seconds(45) == 1.5
    assert scheduler.seconds_to_frame(1.5) == 45
    assert scheduler.seconds_to_frame(0.05) == 2


def test_revision_mismatch() -> None:
    scheduler = _scheduler(FakeClock(), Recorder())
    with pytest.raises(RevisionMismatch):
        asyncio.run(scheduler.pause(expected_rev=42))


def test_invalid_command() -> None:
    scheduler = _scheduler(FakeClock(), Recorder())
    with pytest.raises(InvalidCommand):
        asyncio.run(scheduler.apply("rewind"))
    with pytest.raises(InvalidCommand):
        asyncio.run(scheduler.apply("seek"))


def test_apply_dispatches_commands() -> None:
    recorder = Recorder()
    scheduler = _scheduler(FakeClock(), recorder)

    snapshot = asyncio.run(scheduler.apply("scrub", frame=12))
    assert snapshot.frame == 12
    assert recorder.frames == [12]

    stopped = asyncio.run(scheduler.apply("stop", expected_rev=snapshot.rev))
    assert stopped.state is PlaybackState.IDLE


def test_subscribe_receives_updates() -> None:
    clock = FakeClock()
    scheduler = _scheduler(clock, Recorder())

    received = []

    def observer(snapshot):
        received.append(snapshot.rev)

    token = scheduler.subscribe(observer)
    assert received == [0]

    async def scenario():
        await scheduler.play()
        await scheduler.pause()

    asyncio.run(scenario())
    assert received == [0, 1, 2]

    scheduler.unsubscribe(token)
    asyncio.run(scheduler.seek(4))
    assert received == [0, 1, 2]
