"""Operating modes and the per-session state cell they live in."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..schemas import BoundingBox


class Mode(str, Enum):
    IDLE = "IDLE"
    SCAN = "SCAN"
    READ = "READ"
    NAVIGATE = "NAVIGATE"
    EMERGENCY = "EMERGENCY"

    @classmethod
    def parse(cls, value: str | None) -> "Mode":
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            raise ValueError(f"Unknown mode: {value}") from None


MODE_NAMES = {
    Mode.IDLE: "Bekleme",
    Mode.SCAN: "Tarama modu",
    Mode.READ: "Okuma modu",
    Mode.NAVIGATE: "Yol tarifi modu",
    Mode.EMERGENCY: "Acil durum modu",
}


@dataclass
class ModeState:
    """Mode plus what is on screen for it.

    ``ModeController`` is the only writer. Everything else reads, and
    compares ``epoch`` to detect that the mode changed while it was
    waiting on something.
    """

    mode: Mode = Mode.IDLE
    epoch: int = 0
    text: str = ""
    status: str = ""
    boxes: list[BoundingBox] = field(default_factory=list)
    detected_boxes: list[BoundingBox] = field(default_factory=list)

    @property
    def idle(self) -> bool:
        return self.mode is Mode.IDLE

    def display_boxes(self) -> list[BoundingBox]:
        return [*self.boxes, *self.detected_boxes]

    def display_payload(self) -> dict:
        return {
            "mode": self.mode.value,
            "text": self.text,
            "status": self.status,
            "boxes": [box.model_dump() for box in self.display_boxes()],
        }
