"""Device collaborators and their websocket-backed implementation.

The orchestration core only sees the narrow protocols below. In the live
service every device lives in the browser, so ``ClientDevices`` turns each
call into a server event on an outgoing queue; the websocket handler drains
that queue. Core code therefore never awaits the socket.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Protocol, Sequence

from ..errors import DeviceUnsupported
from .protocol import (
    SERVER_CAMERA_SWITCH,
    SERVER_DISPLAY,
    SERVER_LISTEN,
    SERVER_LOCATION_REQUEST,
    SERVER_OPEN_URL,
    SERVER_SPEAK,
    SERVER_SPEECH_CANCEL,
    SERVER_TORCH,
    SERVER_VIBRATE,
)


logger = logging.getLogger("third-eye")


class SpeechOutput(Protocol):
    @property
    def speaking(self) -> bool: ...

    def speak(self, text: str, locale: str, rate: float, pitch: float) -> None: ...

    def cancel(self) -> None: ...


class SpeechInput(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class FrameSource(Protocol):
    def current_frame(self) -> bytes | None: ...

    def brightness(self) -> float | None: ...


class DeviceControls(Protocol):
    def set_torch(self, on: bool) -> None: ...

    def switch_camera(self) -> None: ...

    def vibrate(self, pattern: Sequence[int]) -> None: ...

    def open_url(self, url: str) -> None: ...

    def request_location(self) -> None: ...


class DisplaySink(Protocol):
    def show(self, payload: dict[str, Any]) -> None: ...


class ClientRoles(SpeechOutput, SpeechInput, FrameSource, DeviceControls, DisplaySink, Protocol):
    """Every role at once, plus the inbound updates a session forwards."""

    def update_frame(self, jpeg_bytes: bytes) -> None: ...

    def update_brightness(self, value: float) -> None: ...

    def on_speech_done(self) -> None: ...


class ClientDevices:
    """All device roles for one connected browser client."""

    def __init__(self, capabilities: Sequence[str] | None = None) -> None:
        self.capabilities = set(capabilities) if capabilities is not None else None
        self._events: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._frame: bytes | None = None
        self._brightness: float | None = None
        self._speaking = False
        self._closed = False

    # -- inbound updates from the client ---------------------------------

    def update_frame(self, jpeg_bytes: bytes) -> None:
        self._frame = jpeg_bytes

    def update_brightness(self, value: float) -> None:
        self._brightness = value

    def on_speech_done(self) -> None:
        self._speaking = False

    # -- FrameSource -------------------------------------------------------

    def current_frame(self) -> bytes | None:
        return self._frame

    def brightness(self) -> float | None:
        return self._brightness

    # -- SpeechOutput ------------------------------------------------------

    @property
    def speaking(self) -> bool:
        return self._speaking

    def speak(self, text: str, locale: str, rate: float, pitch: float) -> None:
        self._speaking = True
        self._emit({"type": SERVER_SPEAK, "text": text, "locale": locale, "rate": rate, "pitch": pitch})

    def cancel(self) -> None:
        self._speaking = False
        self._emit({"type": SERVER_SPEECH_CANCEL})

    # -- SpeechInput -------------------------------------------------------

    def start(self) -> None:
        self._emit({"type": SERVER_LISTEN, "active": True})

    def stop(self) -> None:
        self._emit({"type": SERVER_LISTEN, "active": False})

    # -- DeviceControls ----------------------------------------------------

    def set_torch(self, on: bool) -> None:
        self._require("torch")
        self._emit({"type": SERVER_TORCH, "on": on})

    def switch_camera(self) -> None:
        self._emit({"type": SERVER_CAMERA_SWITCH})

    def vibrate(self, pattern: Sequence[int]) -> None:
        self._require("vibrate")
        self._emit({"type": SERVER_VIBRATE, "pattern": list(pattern)})

    def open_url(self, url: str) -> None:
        self._emit({"type": SERVER_OPEN_URL, "url": url})

    def request_location(self) -> None:
        self._require("geolocation")
        self._emit({"type": SERVER_LOCATION_REQUEST})

    # -- DisplaySink -------------------------------------------------------

    def show(self, payload: dict[str, Any]) -> None:
        self._emit({"type": SERVER_DISPLAY, **payload})

    # -- outgoing queue ----------------------------------------------------

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._events.put_nowait(None)

    def _emit(self, event: dict[str, Any]) -> None:
        if self._closed:
            logger.debug("Dropping %s for a closed client", event.get("type"))
            return
        self._events.put_nowait(event)

    def _require(self, capability: str) -> None:
        if self.capabilities is not None and capability not in self.capabilities:
            raise DeviceUnsupported(capability)
