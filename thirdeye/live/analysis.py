"""Continuous and one-shot frame analysis with a single request in flight."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..errors import BackendRequestFailed, BackendUnavailable
from ..schemas import AnalysisResult
from .backends import BackendFailure, BackendOutcome, BackendSuccess, VisionBackend
from .devices import FrameSource
from .modes import Mode, ModeState
from .speech import SpeechArbiter


logger = logging.getLogger("third-eye")

UNAVAILABLE_MESSAGE = "API anahtarı bulunamadı. Lütfen ayarlardan ekleyin."
BUSY_MESSAGE = "Şu an yoğunum, lütfen biraz sonra tekrar dene."
FAILURE_STATUS = "Bağlantı hatası: Modeller yanıt vermedi."
ANALYZING_STATUS = "Analiz ediliyor..."
QUERY_STATUS = "Soru analizi..."


class ResultSink(Protocol):
    def show_result(self, result: AnalysisResult) -> bool: ...

    def show_status(self, text: str) -> None: ...


class AnalysisLoop:
    """Drives the vision backend for the active mode.

    ``_in_flight`` guards every request, whether it comes from the
    continuous loop or from ``run_once``; a request attempted while another
    is outstanding is skipped rather than queued, while a scheduled query
    waits its turn. Results are published only if the mode epoch they
    started in is still current.
    """

    def __init__(
        self,
        state: ModeState,
        backend: VisionBackend,
        frames: FrameSource,
        arbiter: SpeechArbiter,
        sink: ResultSink,
        *,
        interval_seconds: float = 0.05,
        timeout_seconds: float | None = 20.0,
    ) -> None:
        self.state = state
        self.backend = backend
        self.frames = frames
        self.arbiter = arbiter
        self.sink = sink
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._task: asyncio.Task[None] | None = None
        self._one_shots: set[asyncio.Task] = set()
        self._pending: tuple[Mode, str | None] | None = None
        self._in_flight = False
        self._busy_announced = False
        self._unavailable_announced = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, mode: Mode) -> None:
        self.stop()
        if mode is Mode.IDLE:
            return
        self._task = asyncio.create_task(self._run(mode, self.state.epoch), name=f"analysis-{mode.value}")

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        for one_shot in list(self._one_shots):
            one_shot.cancel()
        self._one_shots.clear()
        self._pending = None

    def schedule_once(self, mode: Mode, query: str | None = None, delay: float = 0.0) -> asyncio.Task:
        task = asyncio.create_task(self._delayed_once(mode, query, delay))
        self._one_shots.add(task)
        task.add_done_callback(self._one_shots.discard)
        return task

    async def run_once(self, mode: Mode, query: str | None = None) -> BackendOutcome | None:
        """Run exactly one analysis cycle; returns None if it was skipped."""
        if self._in_flight:
            logger.debug("Analysis already in flight; skipping %s request", mode.value)
            return None
        frame = self.frames.current_frame()
        if frame is None:
            logger.debug("No camera frame available for %s analysis", mode.value)
            return None

        epoch = self.state.epoch
        self._in_flight = True
        self.sink.show_status(QUERY_STATUS if query else ANALYZING_STATUS)
        try:
            outcome = await self._call_backend(frame, mode, query)
        finally:
            self._in_flight = False

        if self.state.epoch != epoch:
            logger.debug("Discarding stale %s result", mode.value)
            return outcome
        self._apply(outcome)
        return outcome

    async def _call_backend(self, frame: bytes, mode: Mode, query: str | None) -> BackendOutcome:
        try:
            return await asyncio.wait_for(self.backend.analyze(frame, mode, query), self.timeout_seconds)
        except asyncio.TimeoutError:
            return BackendFailure(
                BackendRequestFailed(f"Vision request timed out after {self.timeout_seconds}s"),
                getattr(self.backend, "name", "backend"),
            )

    def _apply(self, outcome: BackendOutcome) -> None:
        if isinstance(outcome, BackendSuccess):
            self._busy_announced = False
            self._unavailable_announced = False
            if self.sink.show_result(outcome.result):
                self.arbiter.speak(outcome.result.text)
            return

        error = outcome.error
        if isinstance(error, BackendUnavailable):
            self.sink.show_status(UNAVAILABLE_MESSAGE)
            if not self._unavailable_announced:
                self._unavailable_announced = True
                self.arbiter.speak(UNAVAILABLE_MESSAGE)
            return

        logger.warning("Analysis failed via %s: %r", outcome.backend, error)
        self.sink.show_status(FAILURE_STATUS)
        if error.rate_limited and not self._busy_announced:
            self._busy_announced = True
            self.arbiter.speak(BUSY_MESSAGE)

    async def _run(self, mode: Mode, epoch: int) -> None:
        while self.state.epoch == epoch:
            cycle_mode, query = self._pending or (mode, None)
            self._pending = None
            try:
                outcome = await self.run_once(cycle_mode, query)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Analysis cycle failed: %s", exc)
                outcome = None
            if outcome is None and query is not None and self._pending is None:
                self._pending = (cycle_mode, query)
            if isinstance(outcome, BackendFailure) and isinstance(outcome.error, BackendUnavailable):
                logger.error("No vision backend configured; stopping continuous analysis")
                return
            await asyncio.sleep(self.interval_seconds)

    async def _delayed_once(self, mode: Mode, query: str | None, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        while self._in_flight:
            if self.running:
                # the continuous loop picks this up on its next cycle
                self._pending = (mode, query)
                return
            await asyncio.sleep(self.interval_seconds)
        try:
            await self.run_once(mode, query)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("One-shot analysis failed: %s", exc)

