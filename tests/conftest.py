from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from thirdeye.errors import DeviceUnsupported
from thirdeye.live.backends import BackendOutcome, BackendSuccess
from thirdeye.live.modes import Mode
from thirdeye.schemas import AnalysisResult, BoundingBox


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDevices:
    """Records every device call; capabilities can be switched off."""

    def __init__(self, *, torch: bool = True, vibrate: bool = True, geolocation: bool = True) -> None:
        self.speaking = False
        self.spoken: list[str] = []
        self.cancels = 0
        self.listening: list[bool] = []
        self.frame: bytes | None = b"jpeg"
        self.luma: float | None = None
        self.torch_calls: list[bool] = []
        self.vibrations: list[tuple[int, ...]] = []
        self.opened: list[str] = []
        self.location_requests = 0
        self.camera_switches = 0
        self.displays: list[dict] = []
        self._supports = {"torch": torch, "vibrate": vibrate, "geolocation": geolocation}

    def speak(self, text: str, locale: str, rate: float, pitch: float) -> None:
        self.speaking = True
        self.spoken.append(text)

    def cancel(self) -> None:
        self.speaking = False
        self.cancels += 1

    def start(self) -> None:
        self.listening.append(True)

    def stop(self) -> None:
        self.listening.append(False)

    def current_frame(self) -> bytes | None:
        return self.frame

    def brightness(self) -> float | None:
        return self.luma

    def update_frame(self, jpeg_bytes: bytes) -> None:
        self.frame = jpeg_bytes

    def update_brightness(self, value: float) -> None:
        self.luma = value

    def on_speech_done(self) -> None:
        self.speaking = False

    def set_torch(self, on: bool) -> None:
        self._require("torch")
        self.torch_calls.append(on)

    def switch_camera(self) -> None:
        self.camera_switches += 1

    def vibrate(self, pattern) -> None:
        self._require("vibrate")
        self.vibrations.append(tuple(pattern))

    def open_url(self, url: str) -> None:
        self.opened.append(url)

    def request_location(self) -> None:
        self._require("geolocation")
        self.location_requests += 1

    def show(self, payload: dict) -> None:
        self.displays.append(payload)

    def _require(self, capability: str) -> None:
        if not self._supports[capability]:
            raise DeviceUnsupported(capability)


def success(text: str, boxes: list[BoundingBox] | None = None) -> BackendSuccess:
    return BackendSuccess(AnalysisResult(text=text, boxes=boxes or []), "fake")


class FakeBackend:
    """Returns queued outcomes in order, repeating the last one.

    With a ``gate`` every call waits until the event is set.
    """

    name = "fake"

    def __init__(self, outcomes: list[BackendOutcome] | None = None, *, gate: asyncio.Event | None = None) -> None:
        self.outcomes = list(outcomes or [success("")])
        self.gate = gate
        self.calls: list[tuple[Mode, str | None]] = []
        self.cancelled = 0

    async def analyze(self, image: bytes, mode: Mode, query: str | None = None) -> BackendOutcome:
        self.calls.append((mode, query))
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def devices() -> FakeDevices:
    return FakeDevices()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(100.0)
