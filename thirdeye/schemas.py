"""Pydantic schemas for analysis results and the client config endpoint.

Vision models answer with loosely shaped JSON: the spoken text may be
named ``speech`` or ``text`` and boxes may be missing fields or use
out-of-range coordinates. These schemas normalise that into the shapes
the orchestration layer works with. Box coordinates live in a 0-100
space.
"""

import logging
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator


logger = logging.getLogger("third-eye")


class BoundingBox(BaseModel):
    """One labelled region, either model-reported or from a local detector."""

    label: str = ""
    xmin: float = 0.0
    ymin: float = 0.0
    xmax: float = 100.0
    ymax: float = 100.0
    confidence: Optional[float] = None

    @field_validator("xmin", "ymin", "xmax", "ymax")
    @classmethod
    def clamp_coordinate(cls, value: float) -> float:
        return min(100.0, max(0.0, float(value)))

    @field_validator("label", mode="before")
    @classmethod
    def coerce_label(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @property
    def area(self) -> float:
        return max(0.0, self.xmax - self.xmin) * max(0.0, self.ymax - self.ymin)


class AnalysisResult(BaseModel):
    """Text to speak plus the boxes to draw for one analysis cycle."""

    text: str = Field(default="", validation_alias=AliasChoices("text", "speech"))
    boxes: list[BoundingBox] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("boxes", mode="before")
    @classmethod
    def drop_invalid_boxes(cls, value: Any) -> list[BoundingBox]:
        return parse_boxes(value)


def parse_boxes(raw: Any) -> list[BoundingBox]:
    """Validate each entry on its own, skipping the ones that do not parse."""
    if not isinstance(raw, list):
        return []
    boxes: list[BoundingBox] = []
    for item in raw:
        if isinstance(item, BoundingBox):
            boxes.append(item)
            continue
        if not isinstance(item, dict):
            continue
        try:
            boxes.append(BoundingBox.model_validate(item))
        except ValidationError:
            logger.debug("Skipping malformed box: %s", item)
    return boxes


class ClientConfig(BaseModel):
    """Non-secret settings the browser client needs."""

    locale: str
    speech_rate: float
    speech_pitch: float
    backends_configured: bool
    backends: list[str]
    modes: list[str]
