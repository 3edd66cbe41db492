"""Small text helpers shared by the speech arbiter and the intent router."""

from __future__ import annotations

import re


_WHITESPACE = re.compile(r"\s+")


def turkish_lower(text: str) -> str:
    """Lowercase with Turkish dotted/dotless I rules."""
    return text.replace("I", "ı").replace("İ", "i").lower()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def words(text: str) -> list[str]:
    return [word for word in collapse_whitespace(text).split(" ") if word]
