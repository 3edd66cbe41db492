"""Vision backends for Third Eye.

Each backend sends one JPEG frame plus a prompt to a hosted vision-language
model and returns a tagged outcome: ``BackendSuccess`` with the parsed
result, or ``BackendFailure`` carrying a ``BackendError``. ``BackendChain``
tries the configured backends in order and stops at the first success, so
callers branch on the outcome type instead of catching provider
exceptions.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Union

import httpx
from pydantic import ValidationError

from ..errors import BackendError, BackendRequestFailed, BackendUnavailable
from ..prompts import build_prompt
from ..schemas import AnalysisResult
from ..settings import Settings
from .modes import Mode


logger = logging.getLogger("third-eye")

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_STRUCTURAL = re.compile(r"[{}\[\]\"']")


@dataclass(frozen=True)
class BackendSuccess:
    result: AnalysisResult
    backend: str


@dataclass(frozen=True)
class BackendFailure:
    error: BackendError
    backend: str


BackendOutcome = Union[BackendSuccess, BackendFailure]


class VisionBackend(Protocol):
    name: str

    async def analyze(self, image: bytes, mode: Mode, query: str | None = None) -> BackendOutcome: ...


def parse_model_content(content: str) -> AnalysisResult:
    """Parse a model reply into an ``AnalysisResult``.

    Models wrap their JSON in prose or code fences often enough that the
    first ``{...}`` span is used; if that does not parse, the reply is
    treated as plain speech without boxes.
    """
    text = _CODE_FENCE.sub("", content or "").strip()
    match = _JSON_OBJECT.search(text)
    candidate = match.group(0) if match else text
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict):
        try:
            result = AnalysisResult.model_validate(payload)
        except ValidationError:
            result = None
        if result is not None:
            if not result.text:
                result.text = text
            return result
    return AnalysisResult(text=_STRUCTURAL.sub("", text).strip(), boxes=[])


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return f"HTTP {response.status_code}"


class _ChatCompletionsBackend:
    """OpenAI-compatible chat completions endpoint (OpenRouter, Groq)."""

    def __init__(
        self,
        *,
        provider: str,
        url: str,
        api_key: str,
        model: str,
        client: httpx.AsyncClient,
        extra_headers: dict[str, str] | None = None,
        json_mode: bool = False,
        max_tokens: int = 800,
    ) -> None:
        self.provider = provider
        self.name = f"{provider}:{model}"
        self.url = url
        self.api_key = api_key.strip()
        self.model = model
        self.client = client
        self.extra_headers = extra_headers or {}
        self.json_mode = json_mode
        self.max_tokens = max_tokens

    async def analyze(self, image: bytes, mode: Mode, query: str | None = None) -> BackendOutcome:
        image_b64 = base64.b64encode(image).decode("ascii")
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(mode, query)},
                        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"}},
                    ],
                }
            ],
            "temperature": 0.1,
            "max_tokens": self.max_tokens,
        }
        if self.json_mode:
            body["response_format"] = {"type": "json_object"}
        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}

        try:
            response = await self.client.post(self.url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            return BackendFailure(BackendRequestFailed(f"{self.name} request failed: {exc}"), self.name)

        if response.status_code >= 400:
            return BackendFailure(
                BackendRequestFailed(_error_message(response), status=response.status_code),
                self.name,
            )
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            return BackendFailure(BackendRequestFailed(f"{self.name} returned a malformed payload"), self.name)
        if not content:
            return BackendFailure(BackendRequestFailed(f"{self.name} returned no content"), self.name)
        return BackendSuccess(parse_model_content(str(content)), self.name)


class _GeminiBackend:
    """Gemini ``generateContent`` with an API key."""

    def __init__(self, *, api_key: str, model: str, client: httpx.AsyncClient) -> None:
        self.name = f"gemini:{model}"
        self.api_key = api_key.strip()
        self.model = model
        self.client = client

    async def analyze(self, image: bytes, mode: Mode, query: str | None = None) -> BackendOutcome:
        body = {
            "contents": [
                {
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": "image/jpeg",
                                "data": base64.b64encode(image).decode("ascii"),
                            }
                        },
                        {"text": build_prompt(mode, query)},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 800,
                "responseMimeType": "application/json",
            },
        }
        try:
            response = await self.client.post(
                GEMINI_URL.format(model=self.model),
                params={"key": self.api_key},
                json=body,
            )
        except httpx.HTTPError as exc:
            return BackendFailure(BackendRequestFailed(f"{self.name} request failed: {exc}"), self.name)

        if response.status_code >= 400:
            return BackendFailure(
                BackendRequestFailed(_error_message(response), status=response.status_code),
                self.name,
            )
        try:
            content = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            return BackendFailure(BackendRequestFailed(f"{self.name} returned a malformed payload"), self.name)
        if not content:
            return BackendFailure(BackendRequestFailed(f"{self.name} returned no content"), self.name)
        return BackendSuccess(parse_model_content(str(content)), self.name)


class BackendChain:
    """Ordered list of backends; the first success wins."""

    name = "chain"

    def __init__(self, backends: Iterable[VisionBackend]) -> None:
        self.backends = list(backends)

    @property
    def configured(self) -> bool:
        return bool(self.backends)

    @property
    def names(self) -> list[str]:
        return [backend.name for backend in self.backends]

    async def analyze(self, image: bytes, mode: Mode, query: str | None = None) -> BackendOutcome:
        if not self.backends:
            return BackendFailure(BackendUnavailable("No vision backend is configured."), self.name)

        failures: list[BackendFailure] = []
        for backend in self.backends:
            outcome = await backend.analyze(image, mode, query)
            if isinstance(outcome, BackendSuccess):
                return outcome
            logger.warning("Vision backend %s failed: %r", backend.name, outcome.error)
            failures.append(outcome)
        # a rate limit anywhere in the chain is reported over later errors
        rate_limited = [failure for failure in failures if failure.error.rate_limited]
        return (rate_limited or failures)[-1]


def build_backends(settings: Settings, client: httpx.AsyncClient) -> BackendChain:
    """Create the configured backends in ``settings.backend_order``."""
    backends: list[VisionBackend] = []
    for provider in settings.backend_order:
        if provider == "openrouter" and settings.openrouter_api_key.strip():
            for model in settings.openrouter_models:
                backends.append(
                    _ChatCompletionsBackend(
                        provider="openrouter",
                        url=OPENROUTER_URL,
                        api_key=settings.openrouter_api_key,
                        model=model,
                        client=client,
                        extra_headers={"X-Title": "Third Eye"},
                    )
                )
        elif provider == "gemini" and settings.gemini_api_key.strip():
            backends.append(_GeminiBackend(api_key=settings.gemini_api_key, model=settings.gemini_model, client=client))
        elif provider == "groq" and settings.groq_api_key.strip():
            for model in settings.groq_models:
                backends.append(
                    _ChatCompletionsBackend(
                        provider="groq",
                        url=GROQ_URL,
                        api_key=settings.groq_api_key,
                        model=model,
                        client=client,
                        json_mode=True,
                        max_tokens=512,
                    )
                )
    return BackendChain(backends)
