"""Torch control with brightness hysteresis and a manual override."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import DeviceUnsupported
from .devices import DeviceControls
from .modes import ModeState
from .speech import SpeechArbiter


logger = logging.getLogger("third-eye")

DARK_ANNOUNCEMENT = "Ortam karanlık, ışık açıldı."


@dataclass
class TorchState:
    is_on: bool = False
    manual_override: bool = False
    held_on: bool = False


class LightController:
    """Only component that commands the torch.

    Automatic control switches the torch on below ``low`` and off above
    ``high``; samples in between change nothing. A manual OFF sets
    ``manual_override``, which blocks automatic ON until the next mode
    entry or a manual ON.
    """

    def __init__(
        self,
        devices: DeviceControls,
        state: ModeState,
        arbiter: SpeechArbiter | None = None,
        *,
        low: float = 160.0,
        high: float = 220.0,
    ) -> None:
        if low >= high:
            raise ValueError("low threshold must be below high threshold")
        self.devices = devices
        self.state = state
        self.arbiter = arbiter
        self.low = low
        self.high = high
        self.torch = TorchState()

    @property
    def is_on(self) -> bool:
        return self.torch.is_on

    def on_brightness_sample(self, value: float) -> None:
        if self.state.idle:
            return
        if not self.torch.is_on and value < self.low:
            if self.torch.manual_override:
                return
            if self._apply(True) and self.arbiter is not None:
                self.arbiter.speak(DARK_ANNOUNCEMENT)
        elif self.torch.is_on and value > self.high:
            self._apply(False)

    def toggle(self, forced: bool | None = None) -> bool:
        """Explicit user action; always wins over the automatic policy."""
        new_state = (not self.torch.is_on) if forced is None else forced
        self.torch.manual_override = not new_state
        self.torch.held_on = new_state
        self._set_device(new_state)
        return self.torch.is_on

    def clear_override(self) -> None:
        self.torch.manual_override = False

    def restore_off(self) -> None:
        if not self.torch.is_on or self.torch.held_on:
            return
        self._apply(False)

    def _apply(self, on: bool) -> bool:
        self.torch.manual_override = False
        self.torch.held_on = False
        return self._set_device(on)

    def _set_device(self, on: bool) -> bool:
        try:
            self.devices.set_torch(on)
        except DeviceUnsupported as exc:
            logger.debug("Torch command ignored: %s", exc)
            return False
        self.torch.is_on = on
        return True
