"""Voice command classification.

``IntentRouter.route`` maps one recognized utterance to a command without
touching any state; the session executes the command. Rules are checked in
a fixed order and the first match wins, which is how overlapping
vocabularies are resolved (a danger question also contains environment
words, but danger is checked first).

Recognizers mishear, so question categories use ``fuzzy_match`` in
addition to plain substring checks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from ..prompts import DANGER_QUERY, MONEY_QUERY, finder_query
from .modes import Mode
from .text import collapse_whitespace, turkish_lower, words


logger = logging.getLogger("third-eye")


NAVIGATION_QUESTIONS = (
    "nereye gideyim", "nereye gitsem", "nasıl gideyim", "nasıl gitsem",
    "yol göster", "yolu göster", "yol tarif et", "beni yönlendir",
    "hangi yöne", "hangi tarafa", "ne tarafa gideyim", "nereye gidiyorum",
    "sağa mı sola mı", "düz mü gideyim", "nasıl ilerleyeyim",
    "yol", "git", "gideyim", "tarif", "yön",
)

DANGER_QUESTIONS = (
    "tehlike var mı", "tehlikeli mi", "güvenli mi", "geçebilir miyim",
    "çarpabilir miyim", "engel var mı", "dikkat etmeli miyim",
    "tehlike", "güvenli", "engel", "dikkat",
)

ENVIRONMENT_QUESTIONS = (
    "önümde ne var", "etrafımda ne var", "çevremde ne var", "burada ne var",
    "ne görüyorsun", "neler var", "ortamı anlat", "çevreyi anlat",
    "etrafı anlat", "bak bakalım", "bir bak", "kontrol et",
    "ne var", "görüyor", "bak", "anlat", "çevre", "etraf", "önüm",
)

OBJECT_QUESTIONS = (
    "bu ne", "şu ne", "o ne", "bunlar ne", "ne tutuyor",
    "elimde ne var", "önümdeki ne", "yanımdaki ne",
    "nedir", "bu nedir",
)

MONEY_QUESTIONS = (
    "bu kaç para", "kaç para", "kaç lira", "elimde kaç lira",
    "bu kaç tl", "kaç tl", "para tanı", "parayı tanı",
    "bu ne kadar", "ne kadar para", "toplam kaç", "banknot",
    "para var mı", "kaç kuruş", "para", "lira", "tl",
)

FINDER_QUESTIONS = (
    "anahtar nerede", "anahtarımı bul", "anahtar var mı", "anahtar",
    "cüzdan nerede", "cüzdanımı bul", "cüzdan var mı", "cüzdan",
    "telefon nerede", "telefonumu bul", "telefon var mı", "telefon",
    "kapı nerede", "kapıyı bul", "çıkış nerede", "çıkış",
)

READ_QUESTIONS = (
    "ne yazıyor", "oku", "yazıyı oku", "burada ne yazıyor",
    "tabelada ne yazıyor", "etikette ne yazıyor",
    "yazı", "yaz", "okuyor",
)

# (stem in the utterance, accusative form used in the prompt and the ack)
FINDER_TARGETS = (
    ("anahtar", "anahtarı"),
    ("cüzdan", "cüzdanı"),
    ("telefon", "telefonu"),
    ("kapı", "kapıyı"),
    ("çıkış", "kapıyı"),
)

EMERGENCY_WORDS = ("acil", "yardım", "imdat")
LIGHT_WORDS = ("ışık", "ışığ", "fener", "flaş")
LIGHT_ON_WORDS = ("aç", "yak")
LIGHT_OFF_WORDS = ("kapat", "söndür", "kapa")
CAMERA_WORDS = ("kamera",)
CAMERA_ACTION_WORDS = ("değiştir", "çevir", "döndür")
STOP_EXACT = ("dur", "sus", "kapat")
STOP_WORDS = ("durdur", "sessiz")
REPEAT_WORDS = ("tekrar", "bir daha")
REPEAT_EXACT = ("yenile",)


@dataclass(frozen=True)
class SwitchMode:
    mode: Mode


@dataclass(frozen=True)
class Query:
    mode: Mode
    prompt: str
    ack: str
    category: str


@dataclass(frozen=True)
class ToggleLight:
    on: Optional[bool] = None


@dataclass(frozen=True)
class SwitchCamera:
    pass


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class Repeat:
    pass


@dataclass(frozen=True)
class Unknown:
    text: str


Command = Union[SwitchMode, Query, ToggleLight, SwitchCamera, Stop, Repeat, Unknown]


def normalize_utterance(utterance: str) -> str:
    return collapse_whitespace(turkish_lower(utterance or ""))


def fuzzy_match(text: str, phrases: Iterable[str]) -> bool:
    """True if any phrase is in ``text`` literally or by word overlap.

    For word overlap, at least ``min(2, n)`` of a phrase's ``n`` distinct
    words must each be a substring of some utterance word, or contain one.
    """
    text_words = words(text)
    for phrase in phrases:
        if phrase in text:
            return True
        phrase_words = list(dict.fromkeys(words(phrase)))
        if not phrase_words:
            continue
        matched = sum(
            1
            for phrase_word in phrase_words
            if any(phrase_word in word or word in phrase_word for word in text_words)
        )
        if matched >= min(2, len(phrase_words)):
            return True
    return False


@dataclass(frozen=True)
class _Category:
    name: str
    phrases: Sequence[str]
    mode: Mode
    ack: str


CATEGORIES = (
    _Category("navigation", NAVIGATION_QUESTIONS, Mode.NAVIGATE, "Yol tarifi veriyorum"),
    _Category("danger", DANGER_QUESTIONS, Mode.SCAN, "Kontrol ediyorum"),
    _Category("environment", ENVIRONMENT_QUESTIONS, Mode.SCAN, "Bakıyorum"),
    _Category("object", OBJECT_QUESTIONS, Mode.SCAN, "Bakıyorum"),
    _Category("money", MONEY_QUESTIONS, Mode.SCAN, "Paraya bakıyorum"),
    _Category("finder", FINDER_QUESTIONS, Mode.SCAN, "arıyorum"),
    _Category("read", READ_QUESTIONS, Mode.READ, "Okuyorum"),
)


class IntentRouter:
    """Ordered, pure classification of recognized utterances."""

    def route(self, utterance: str, confidence: float = 1.0, mode: Mode = Mode.IDLE) -> Command:
        text = normalize_utterance(utterance)
        logger.info("Voice command %r (confidence %.0f%%, mode %s)", text, confidence * 100, mode.value)

        switch = self._mode_keyword(text)
        if switch is not None:
            return SwitchMode(switch)

        for category in CATEGORIES:
            if fuzzy_match(text, category.phrases):
                return self._query(category, text)

        if _contains_any(text, LIGHT_WORDS):
            if _contains_any(text, LIGHT_ON_WORDS):
                return ToggleLight(True)
            if _contains_any(text, LIGHT_OFF_WORDS):
                return ToggleLight(False)
            return ToggleLight(None)

        if _contains_any(text, CAMERA_WORDS) and _contains_any(text, CAMERA_ACTION_WORDS):
            return SwitchCamera()

        if text in STOP_EXACT or _contains_any(text, STOP_WORDS):
            return Stop()

        if _contains_any(text, REPEAT_WORDS) or text in REPEAT_EXACT:
            return Repeat()

        return Unknown(text)

    @staticmethod
    def _mode_keyword(text: str) -> Mode | None:
        tokens = words(text)
        short = len(tokens) <= 2
        if "okuma modu" in text or text in ("oku", "okuma") or (
            short and any(token.startswith("oku") for token in tokens)
        ):
            return Mode.READ
        if "tarama modu" in text or text in ("tara", "tarama") or (
            short and any(token.startswith("tara") for token in tokens)
        ):
            return Mode.SCAN
        if "yol modu" in text or "navigasyon" in text or (
            short and any(token in ("yol", "navigasyon") for token in tokens)
        ):
            return Mode.NAVIGATE
        if _contains_any(text, EMERGENCY_WORDS):
            return Mode.EMERGENCY
        return None

    @staticmethod
    def _query(category: _Category, text: str) -> Query:
        if category.name == "danger":
            return Query(category.mode, DANGER_QUERY, category.ack, category.name)
        if category.name == "money":
            return Query(category.mode, MONEY_QUERY, category.ack, category.name)
        if category.name == "finder":
            target = next((obj for stem, obj in FINDER_TARGETS if stem in text), "nesneyi")
            return Query(category.mode, finder_query(target), f"{target} {category.ack}", category.name)
        return Query(category.mode, text, category.ack, category.name)


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(needle in text for needle in needles)
