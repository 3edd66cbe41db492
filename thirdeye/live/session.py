"""Per-connection assistant session.

``AssistantSession`` wires the core components for one client and is the
place where router commands, device notices and user taps turn into mode
changes, analysis requests and spoken acknowledgements.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Sequence
from urllib.parse import quote

from ..errors import DeviceUnsupported, RecognitionFailed
from ..schemas import BoundingBox, parse_boxes
from ..settings import Settings
from .analysis import AnalysisLoop
from .backends import VisionBackend
from .controller import ModeController
from .devices import ClientRoles
from .intents import Command, IntentRouter, Query, Repeat, Stop, SwitchCamera, SwitchMode, ToggleLight, Unknown
from .light import LightController
from .modes import MODE_NAMES, Mode, ModeState
from .speech import SpeechArbiter


logger = logging.getLogger("third-eye")

EMERGENCY_ACTIVATED = "Acil durum modu aktif. Konumunuz alınıyor."
EMERGENCY_LOCATED = (
    "Konumunuz belirlendi. WhatsApp ile göndermek için bu mesajı bekleyin."
)
EMERGENCY_NO_NUMBER = (
    "Konumunuz bulundu fakat kayıtlı acil durum numarası yok. Lütfen ayarlardan numara ekleyin."
)
EMERGENCY_LOCATION_FAILED = "Konumunuz alınamadı. Lütfen konum iznini kontrol edin."
GEOLOCATION_UNSUPPORTED = "Cihazınız konum özelliğini desteklemiyor."
NO_SPEECH_HEARD = "Ses duyamadım, tekrar dene"
MODE_OFF = "Mod kapatıldı"
LIGHT_ON = "Işık açıldı"
LIGHT_OFF = "Işık kapatıldı"
CAMERA_SWITCHED = "Kamera değiştirildi"
STOPPED = "Tamam, durdum"
REPEATING = "Tekrar bakıyorum"
PICK_A_MODE = "Önce bir mod seç veya soru sor"
LOOKING = "Bakıyorum"
UNDERSTOOD = "Anlaşıldı"

MODE_SELECT_VIBRATION = (50,)
NEAR_VIBRATION = (100,)
CLOSE_VIBRATION = (100, 50, 100)


class AssistantSession:
    """Composition root for one connected client."""

    def __init__(self, settings: Settings, backend: VisionBackend, devices: ClientRoles) -> None:
        self.settings = settings
        self.devices = devices
        self.state = ModeState()
        self.arbiter = SpeechArbiter(
            devices,
            locale=settings.speech_locale,
            rate=settings.speech_rate,
            pitch=settings.speech_pitch,
            quiescence_seconds=settings.quiescence_seconds,
        )
        self.light = LightController(
            devices,
            self.state,
            self.arbiter,
            low=settings.torch_low_threshold,
            high=settings.torch_high_threshold,
        )
        self.controller = ModeController(
            self.state,
            backend,
            devices,
            self.arbiter,
            self.light,
            devices,
            interval_seconds=settings.loop_interval_seconds,
            timeout_seconds=settings.analysis_timeout_seconds,
        )
        self.router = IntentRouter()
        self.listening = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def mode(self) -> Mode:
        return self.state.mode

    @property
    def loop(self) -> AnalysisLoop:
        return self.controller.loop

    # -- mode selection ----------------------------------------------------

    def select(self, mode: Mode) -> Mode:
        self._vibrate(MODE_SELECT_VIBRATION)
        target = self.controller.select(mode)
        if target is Mode.EMERGENCY:
            self._start_emergency()
        return target

    # -- voice -------------------------------------------------------------

    def toggle_listening(self) -> bool:
        self.listening = not self.listening
        if self.listening:
            self.devices.start()
        else:
            self.devices.stop()
        return self.listening

    def handle_utterance(self, transcript: str, confidence: float = 1.0) -> Command:
        self.listening = False
        command = self.router.route(transcript, confidence, self.mode)
        self.execute(command)
        return command

    def handle_recognition_error(self, error: RecognitionFailed) -> None:
        self.listening = False
        logger.warning("Speech recognition failed: %s", error.reason)
        if error.no_speech:
            self.arbiter.speak(NO_SPEECH_HEARD)

    def execute(self, command: Command) -> None:
        delay = self.settings.query_delay_seconds
        if isinstance(command, SwitchMode):
            target = self.select(command.mode)
            if target is not Mode.EMERGENCY:
                self.arbiter.speak(MODE_NAMES[target] if target is not Mode.IDLE else MODE_OFF)
        elif isinstance(command, Query):
            if self.state.idle:
                self.controller.select(command.mode)
            self.arbiter.speak(command.ack)
            self.loop.schedule_once(command.mode, command.prompt, delay)
        elif isinstance(command, ToggleLight):
            on = self.light.toggle(command.on)
            self.arbiter.speak(LIGHT_ON if on else LIGHT_OFF)
        elif isinstance(command, SwitchCamera):
            self.devices.switch_camera()
            self.arbiter.speak(CAMERA_SWITCHED)
        elif isinstance(command, Stop):
            self.controller.transition(Mode.IDLE)
            self.arbiter.speak(STOPPED)
        elif isinstance(command, Repeat):
            if self.state.idle:
                self.arbiter.speak(PICK_A_MODE)
            else:
                self.arbiter.speak(REPEATING)
                self.loop.schedule_once(self.mode)
        elif isinstance(command, Unknown):
            if self.state.idle:
                self.controller.select(Mode.SCAN)
                self.arbiter.speak(LOOKING)
            else:
                self.arbiter.speak(UNDERSTOOD)
            self.loop.schedule_once(self.mode, command.text, delay)

    # -- device notices ----------------------------------------------------

    def on_frame(self, jpeg_bytes: bytes) -> None:
        self.devices.update_frame(jpeg_bytes)

    def on_brightness(self, value: float) -> None:
        self.devices.update_brightness(value)
        self.light.on_brightness_sample(value)

    def on_speech_done(self) -> None:
        self.devices.on_speech_done()

    def on_detections(self, raw_boxes: Sequence[Any]) -> list[BoundingBox]:
        boxes = parse_boxes(list(raw_boxes))
        self.controller.show_detections(boxes)
        if boxes:
            largest = max(box.area for box in boxes)
            if largest > self.settings.proximity_close_area:
                self._vibrate(CLOSE_VIBRATION)
            elif largest > self.settings.proximity_near_area:
                self._vibrate(NEAR_VIBRATION)
        return boxes

    def on_box_tap(self, label: str) -> None:
        self.arbiter.speak(label)
        if not self.state.idle:
            self.loop.schedule_once(self.mode, None, self.settings.box_tap_delay_seconds)

    def toggle_light(self, on: bool | None = None) -> bool:
        return self.light.toggle(on)

    def toggle_mute(self) -> bool:
        return self.arbiter.toggle_mute()

    def switch_camera(self) -> None:
        self.devices.switch_camera()

    # -- emergency ---------------------------------------------------------

    def _start_emergency(self) -> None:
        try:
            self.devices.request_location()
        except DeviceUnsupported:
            self.arbiter.speak(GEOLOCATION_UNSUPPORTED)
            return
        self.arbiter.speak(EMERGENCY_ACTIVATED)

    def on_location(self, latitude: float, longitude: float) -> str | None:
        number = re.sub(r"\D", "", self.settings.emergency_number)
        if not number:
            self.arbiter.speak(EMERGENCY_NO_NUMBER)
            return None
        map_url = f"https://www.google.com/maps?q={latitude},{longitude}"
        link = f"https://wa.me/{number}?text={quote('Acil durum! Konumum: ' + map_url, safe='')}"
        self.arbiter.speak(EMERGENCY_LOCATED)
        self._spawn(self._open_later(link, self.settings.emergency_link_delay_seconds))
        return link

    def on_location_error(self, reason: str) -> None:
        logger.warning("Location request failed: %s", reason)
        self.arbiter.speak(EMERGENCY_LOCATION_FAILED)

    async def _open_later(self, url: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self.devices.open_url(url)

    # -- lifecycle ---------------------------------------------------------

    async def close(self) -> None:
        self.controller.loop.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.arbiter.stop()

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _vibrate(self, pattern: Sequence[int]) -> None:
        try:
            self.devices.vibrate(pattern)
        except DeviceUnsupported:
            logger.debug("Vibration not supported; skipping")
