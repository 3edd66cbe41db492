from __future__ import annotations

import pytest
from conftest import FakeClock, FakeDevices

from thirdeye.live.light import DARK_ANNOUNCEMENT, LightController
from thirdeye.live.modes import Mode, ModeState
from thirdeye.live.speech import SpeechArbiter


def build_light(devices: FakeDevices, clock: FakeClock, mode: Mode = Mode.SCAN) -> LightController:
    state = ModeState(mode=mode)
    arbiter = SpeechArbiter(devices, clock=clock)
    return LightController(devices, state, arbiter, low=160, high=220)


def test_hysteresis_band_leaves_torch_unchanged(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)

    for sample in (150, 200, 230, 200, 150):
        light.on_brightness_sample(sample)

    assert devices.torch_calls == [True, False, True]
    assert light.is_on is True


def test_automatic_on_is_announced(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)

    light.on_brightness_sample(90)

    assert devices.spoken == [DARK_ANNOUNCEMENT]


def test_manual_off_blocks_automatic_on_until_cleared(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)
    light.on_brightness_sample(100)

    assert light.toggle(False) is False
    light.on_brightness_sample(100)
    light.on_brightness_sample(50)

    assert devices.torch_calls == [True, False]
    assert light.torch.manual_override is True

    light.clear_override()
    light.on_brightness_sample(100)

    assert devices.torch_calls == [True, False, True]


def test_manual_on_clears_override(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)
    light.toggle(False)

    assert light.toggle() is True
    assert light.torch.manual_override is False
    assert light.torch.held_on is True


def test_restore_off_switches_off_an_automatic_torch(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)
    light.on_brightness_sample(100)

    light.restore_off()

    assert devices.torch_calls == [True, False]
    assert light.is_on is False


def test_restore_off_keeps_a_torch_the_user_switched_on(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)
    light.toggle(True)

    light.restore_off()

    assert devices.torch_calls == [True]
    assert light.is_on is True


def test_samples_are_ignored_while_idle(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock, mode=Mode.IDLE)

    light.on_brightness_sample(10)

    assert devices.torch_calls == []


def test_unsupported_torch_leaves_state_off_and_silent(clock: FakeClock) -> None:
    devices = FakeDevices(torch=False)
    light = build_light(devices, clock)

    light.on_brightness_sample(10)

    assert light.is_on is False
    assert devices.spoken == []
    assert light.toggle(True) is False


def test_thresholds_must_be_ordered(devices: FakeDevices) -> None:
    with pytest.raises(ValueError):
        LightController(devices, ModeState(), low=220, high=160)


def test_brightness_sequence_from_off(devices: FakeDevices, clock: FakeClock) -> None:
    light = build_light(devices, clock)

    light.on_brightness_sample(200)
    assert devices.torch_calls == []
    light.on_brightness_sample(140)
    assert devices.torch_calls == [True]
    light.on_brightness_sample(170)
    assert devices.torch_calls == [True]
    light.on_brightness_sample(230)
    assert devices.torch_calls == [True, False]
