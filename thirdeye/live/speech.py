"""Speech output arbitration.

Everything the user hears goes through ``SpeechArbiter.speak``. Model
output arrives every cycle, so the arbiter keeps one utterance active at a
time: urgent warnings cut in immediately, anything else waits until the
current sentence has had time to finish and is dropped otherwise.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from time import monotonic
from typing import Callable

from .devices import SpeechOutput
from .text import collapse_whitespace, turkish_lower


logger = logging.getLogger("third-eye")

URGENT_KEYWORDS = (
    "dikkat",
    "tehlike",
    "dur",
    "stop",
    "warning",
)

# keyword stems that continue into ordinary words
NON_URGENT_SUFFIXES = {
    "dur": ("um", "ak", "ağ", "uş"),
    "tehlike": ("siz",),
}


def _keyword_pattern(keyword: str) -> str:
    suffixes = NON_URGENT_SUFFIXES.get(keyword)
    if not suffixes:
        return keyword
    return keyword + "(?!" + "|".join(suffixes) + ")"


_URGENT_PATTERN = re.compile(r"(?<!\w)(?:" + "|".join(_keyword_pattern(k) for k in URGENT_KEYWORDS) + ")")
_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_STRUCTURAL = re.compile(r"[{}\[\]\"']")
_FIELD_TOKENS = re.compile(r"\b(?:speech|boxes|label|text):", re.IGNORECASE)

MIN_SPOKEN_LENGTH = 2


def normalize_speech(text: str) -> str:
    """Strip JSON leftovers from model output so only prose is spoken."""
    clean = _CODE_FENCE.sub("", text or "")
    clean = _STRUCTURAL.sub("", clean)
    clean = _FIELD_TOKENS.sub("", clean)
    return collapse_whitespace(clean.replace("\n", " "))


def is_urgent(text: str) -> bool:
    return bool(_URGENT_PATTERN.search(turkish_lower(text)))


@dataclass(frozen=True)
class SpeechRequest:
    text: str
    urgent: bool
    timestamp: float


class SpeechArbiter:
    """Single owner of speech output with preempt-or-drop policy."""

    def __init__(
        self,
        output: SpeechOutput,
        *,
        locale: str = "tr-TR",
        rate: float = 1.3,
        pitch: float = 1.0,
        quiescence_seconds: float = 2.5,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.output = output
        self.locale = locale
        self.rate = rate
        self.pitch = pitch
        self.quiescence_seconds = quiescence_seconds
        self.muted = False
        self.active: SpeechRequest | None = None
        self._clock = clock

    def speak(self, text: str) -> bool:
        """Speak ``text`` if policy allows; returns whether it was issued."""
        if self.muted or not text:
            return False
        clean = normalize_speech(text)
        if len(clean) < MIN_SPOKEN_LENGTH:
            return False

        request = SpeechRequest(text=clean, urgent=is_urgent(clean), timestamp=self._clock())
        if self.output.speaking:
            if not request.urgent and not self._quiet_long_enough(request.timestamp):
                logger.debug("Dropping speech while another utterance plays: %s", clean)
                return False
            self.output.cancel()

        self.output.speak(clean, self.locale, self.rate, self.pitch)
        self.active = request
        return True

    def stop(self) -> None:
        self.output.cancel()
        self.active = None

    def set_muted(self, muted: bool) -> None:
        self.muted = muted
        if muted:
            self.stop()

    def toggle_mute(self) -> bool:
        self.set_muted(not self.muted)
        return self.muted

    def _quiet_long_enough(self, now: float) -> bool:
        if self.active is None:
            return True
        return now - self.active.timestamp >= self.quiescence_seconds
