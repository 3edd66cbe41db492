"""Mode state machine and the side effects of each transition."""

from __future__ import annotations

import logging

from ..schemas import AnalysisResult, BoundingBox
from .analysis import AnalysisLoop
from .backends import VisionBackend
from .devices import DisplaySink, FrameSource
from .light import LightController
from .modes import Mode, ModeState
from .speech import SpeechArbiter


logger = logging.getLogger("third-eye")

IDLE_STATUS = "Mod seçin."


class ModeController:
    """Single-selection mode control that owns the analysis loop.

    Selecting the active mode again returns to ``IDLE``; selecting another
    mode switches to it directly. Analysis and speech are always stopped
    before the next loop starts, so a new loop never overlaps a request
    from the previous one.
    """

    def __init__(
        self,
        state: ModeState,
        backend: VisionBackend,
        frames: FrameSource,
        arbiter: SpeechArbiter,
        light: LightController,
        display: DisplaySink | None = None,
        *,
        interval_seconds: float = 0.05,
        timeout_seconds: float | None = 20.0,
    ) -> None:
        self.state = state
        self.arbiter = arbiter
        self.light = light
        self.display = display
        self.loop = AnalysisLoop(
            state,
            backend,
            frames,
            arbiter,
            self,
            interval_seconds=interval_seconds,
            timeout_seconds=timeout_seconds,
        )

    @property
    def mode(self) -> Mode:
        return self.state.mode

    def select(self, mode: Mode) -> Mode:
        target = Mode.IDLE if mode is self.state.mode else mode
        self.transition(target)
        return target

    def transition(self, target: Mode) -> None:
        previous = self.state.mode
        self.loop.stop()
        self.arbiter.stop()
        self.state.mode = target
        self.state.epoch += 1
        self.state.boxes = []
        self.state.text = ""

        if target is Mode.IDLE:
            self.state.detected_boxes = []
            self.state.status = IDLE_STATUS
            self.light.restore_off()
        else:
            self.state.status = ""
            self.light.clear_override()
            self.loop.start(target)

        logger.info("Mode %s -> %s", previous.value, target.value)
        self._push()

    def show_result(self, result: AnalysisResult) -> bool:
        """Replace boxes; replace text only when it changed."""
        self.state.boxes = list(result.boxes)
        changed = result.text != self.state.text
        if changed:
            self.state.text = result.text
        self.state.status = ""
        self._push()
        return changed

    def show_status(self, text: str) -> None:
        if text == self.state.status:
            return
        self.state.status = text
        self._push()

    def show_detections(self, boxes: list[BoundingBox]) -> None:
        self.state.detected_boxes = list(boxes)
        self._push()

    def _push(self) -> None:
        if self.display is not None:
            self.display.show(self.state.display_payload())
