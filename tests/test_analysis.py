from __future__ import annotations

import asyncio

import pytest
from conftest import FakeBackend, FakeClock, FakeDevices, success, wait_until

from thirdeye.errors import BackendRequestFailed
from thirdeye.live.analysis import (
    ANALYZING_STATUS,
    BUSY_MESSAGE,
    FAILURE_STATUS,
    QUERY_STATUS,
    UNAVAILABLE_MESSAGE,
    AnalysisLoop,
)
from thirdeye.live.backends import BackendChain, BackendFailure, BackendSuccess
from thirdeye.live.modes import Mode, ModeState
from thirdeye.live.speech import SpeechArbiter
from thirdeye.schemas import AnalysisResult, BoundingBox


class RecordingSink:
    def __init__(self) -> None:
        self.text = ""
        self.results: list[AnalysisResult] = []
        self.statuses: list[str] = []

    def show_result(self, result: AnalysisResult) -> bool:
        self.results.append(result)
        changed = result.text != self.text
        self.text = result.text
        return changed

    def show_status(self, text: str) -> None:
        self.statuses.append(text)


def build_loop(
    backend,
    devices: FakeDevices,
    clock: FakeClock,
    *,
    mode: Mode = Mode.SCAN,
    timeout: float | None = 1.0,
) -> tuple[AnalysisLoop, ModeState, RecordingSink]:
    state = ModeState(mode=mode, epoch=1)
    sink = RecordingSink()
    arbiter = SpeechArbiter(devices, clock=clock)
    loop = AnalysisLoop(state, backend, devices, arbiter, sink, interval_seconds=0.01, timeout_seconds=timeout)
    return loop, state, sink


def rate_limited() -> BackendFailure:
    return BackendFailure(BackendRequestFailed("Rate limit exceeded", status=429), "fake")


@pytest.mark.asyncio
async def test_run_once_publishes_and_speaks_result(devices: FakeDevices, clock: FakeClock) -> None:
    box = BoundingBox(label="bardak", xmin=10, ymin=10, xmax=30, ymax=40)
    backend = FakeBackend([success("Masada bir bardak var", [box])])
    loop, _state, sink = build_loop(backend, devices, clock)

    outcome = await loop.run_once(Mode.SCAN)

    assert isinstance(outcome, BackendSuccess)
    assert backend.calls == [(Mode.SCAN, None)]
    assert sink.statuses == [ANALYZING_STATUS]
    assert sink.results[0].boxes == [box]
    assert devices.spoken == ["Masada bir bardak var"]
    assert loop.in_flight is False


@pytest.mark.asyncio
async def test_question_uses_query_status(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend([success("Bu bir kalem")])
    loop, _state, sink = build_loop(backend, devices, clock)

    await loop.run_once(Mode.SCAN, "bu ne")

    assert backend.calls == [(Mode.SCAN, "bu ne")]
    assert sink.statuses == [QUERY_STATUS]


@pytest.mark.asyncio
async def test_run_once_without_frame_is_skipped(devices: FakeDevices, clock: FakeClock) -> None:
    devices.frame = None
    backend = FakeBackend()
    loop, _state, sink = build_loop(backend, devices, clock)

    assert await loop.run_once(Mode.SCAN) is None
    assert backend.calls == []
    assert sink.statuses == []


@pytest.mark.asyncio
async def test_only_one_request_is_in_flight(devices: FakeDevices, clock: FakeClock) -> None:
    gate = asyncio.Event()
    backend = FakeBackend([success("Kapı açık")], gate=gate)
    loop, _state, _sink = build_loop(backend, devices, clock)

    first = asyncio.create_task(loop.run_once(Mode.SCAN))
    await wait_until(lambda: len(backend.calls) == 1)

    assert loop.in_flight is True
    assert await loop.run_once(Mode.SCAN, "bu ne") is None

    gate.set()
    await first

    assert backend.calls == [(Mode.SCAN, None)]
    assert loop.in_flight is False


@pytest.mark.asyncio
async def test_repeated_text_updates_boxes_but_is_spoken_once(devices: FakeDevices, clock: FakeClock) -> None:
    first_box = BoundingBox(label="masa", xmin=0, ymin=0, xmax=50, ymax=50)
    second_box = BoundingBox(label="masa", xmin=10, ymin=10, xmax=60, ymax=60)
    backend = FakeBackend([success("Önünde bir masa var", [first_box]), success("Önünde bir masa var", [second_box])])
    loop, _state, sink = build_loop(backend, devices, clock)

    await loop.run_once(Mode.SCAN)
    devices.on_speech_done()
    clock.advance(5)
    await loop.run_once(Mode.SCAN)

    assert devices.spoken == ["Önünde bir masa var"]
    assert [result.boxes for result in sink.results] == [[first_box], [second_box]]


class CountingArbiter(SpeechArbiter):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.requested: list[str] = []

    def speak(self, text: str) -> bool:
        self.requested.append(text)
        return super().speak(text)


@pytest.mark.asyncio
async def test_unchanged_text_is_offered_to_the_arbiter_once(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend([success("Önünde bir masa var")])
    state = ModeState(mode=Mode.SCAN, epoch=1)
    arbiter = CountingArbiter(devices, clock=clock)
    loop = AnalysisLoop(state, backend, devices, arbiter, RecordingSink(), interval_seconds=0.01, timeout_seconds=1.0)
    arbiter.speak("Bakıyorum")

    await loop.run_once(Mode.SCAN)
    clock.advance(3)
    await loop.run_once(Mode.SCAN)

    assert arbiter.requested == ["Bakıyorum", "Önünde bir masa var"]
    assert devices.spoken == ["Bakıyorum"]


@pytest.mark.asyncio
async def test_result_from_a_previous_mode_is_discarded(devices: FakeDevices, clock: FakeClock) -> None:
    gate = asyncio.Event()
    backend = FakeBackend([success("Eski sonuç")], gate=gate)
    loop, state, sink = build_loop(backend, devices, clock)

    pending = asyncio.create_task(loop.run_once(Mode.SCAN))
    await wait_until(lambda: len(backend.calls) == 1)
    state.mode = Mode.READ
    state.epoch += 1
    gate.set()
    outcome = await pending

    assert isinstance(outcome, BackendSuccess)
    assert sink.results == []
    assert devices.spoken == []


@pytest.mark.asyncio
async def test_failure_sets_status_without_speaking(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend([BackendFailure(BackendRequestFailed("Bad gateway", status=502), "fake")])
    loop, _state, sink = build_loop(backend, devices, clock)

    await loop.run_once(Mode.SCAN)

    assert sink.statuses[-1] == FAILURE_STATUS
    assert devices.spoken == []


@pytest.mark.asyncio
async def test_rate_limit_is_announced_once_per_failure_streak(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend([rate_limited(), rate_limited(), success("Yol açık"), rate_limited()])
    loop, _state, _sink = build_loop(backend, devices, clock)

    for _ in range(4):
        await loop.run_once(Mode.SCAN)
        devices.on_speech_done()

    assert devices.spoken == [BUSY_MESSAGE, "Yol açık", BUSY_MESSAGE]


@pytest.mark.asyncio
async def test_timeout_becomes_a_failure(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend(gate=asyncio.Event())
    loop, _state, sink = build_loop(backend, devices, clock, timeout=0.01)

    outcome = await loop.run_once(Mode.SCAN)

    assert isinstance(outcome, BackendFailure)
    assert isinstance(outcome.error, BackendRequestFailed)
    assert sink.statuses[-1] == FAILURE_STATUS
    assert loop.in_flight is False


@pytest.mark.asyncio
async def test_continuous_loop_keeps_going_after_a_failure(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend([BackendFailure(BackendRequestFailed("boom", status=500), "fake"), success("Yol açık")])
    loop, _state, _sink = build_loop(backend, devices, clock)

    loop.start(Mode.SCAN)
    await wait_until(lambda: "Yol açık" in devices.spoken)
    loop.stop()

    assert len(backend.calls) >= 2


@pytest.mark.asyncio
async def test_continuous_loop_stops_when_no_backend_is_configured(devices: FakeDevices, clock: FakeClock) -> None:
    loop, _state, sink = build_loop(BackendChain([]), devices, clock)

    loop.start(Mode.SCAN)
    await wait_until(lambda: not loop.running)

    assert devices.spoken == [UNAVAILABLE_MESSAGE]
    assert sink.statuses[-1] == UNAVAILABLE_MESSAGE


@pytest.mark.asyncio
async def test_question_during_continuous_request_runs_next(devices: FakeDevices, clock: FakeClock) -> None:
    gate = asyncio.Event()
    backend = FakeBackend([success("Masa var")], gate=gate)
    loop, _state, _sink = build_loop(backend, devices, clock)

    loop.start(Mode.SCAN)
    await wait_until(lambda: len(backend.calls) == 1)
    await loop.schedule_once(Mode.SCAN, "bu ne")
    gate.set()
    await wait_until(lambda: (Mode.SCAN, "bu ne") in backend.calls)
    loop.stop()

    assert backend.calls[0] == (Mode.SCAN, None)
    assert backend.calls[1] == (Mode.SCAN, "bu ne")


@pytest.mark.asyncio
async def test_stop_cancels_scheduled_requests(devices: FakeDevices, clock: FakeClock) -> None:
    backend = FakeBackend([success("Masa var")])
    loop, _state, _sink = build_loop(backend, devices, clock)

    task = loop.schedule_once(Mode.SCAN, "bu ne", delay=10)
    loop.stop()
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()
    assert backend.calls == []


@pytest.mark.asyncio
async def test_rate_limit_behind_other_failures_is_announced(devices: FakeDevices, clock: FakeClock) -> None:
    limited = FakeBackend([rate_limited()])
    missing = FakeBackend([BackendFailure(BackendRequestFailed("not found", status=404), "fake")])
    loop, _state, sink = build_loop(BackendChain([limited, missing]), devices, clock)

    await loop.run_once(Mode.SCAN)

    assert sink.statuses[-1] == FAILURE_STATUS
    assert devices.spoken == [BUSY_MESSAGE]


@pytest.mark.asyncio
async def test_question_waits_for_an_outstanding_one_shot(devices: FakeDevices, clock: FakeClock) -> None:
    gate = asyncio.Event()
    backend = FakeBackend([success("Sandalye"), success("Bir kalem")], gate=gate)
    loop, _state, _sink = build_loop(backend, devices, clock)

    loop.schedule_once(Mode.SCAN)
    await wait_until(lambda: loop.in_flight)
    question = loop.schedule_once(Mode.SCAN, "bu ne")
    await asyncio.sleep(0.03)

    assert backend.calls == [(Mode.SCAN, None)]

    gate.set()
    await question

    assert backend.calls == [(Mode.SCAN, None), (Mode.SCAN, "bu ne")]
    assert loop.running is False
