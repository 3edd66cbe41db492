"""Main FastAPI application entry point."""

from __future__ import annotations

import asyncio
import base64
import binascii
import contextlib
import logging

import httpx
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from .errors import RecognitionFailed
from .live.backends import build_backends
from .live.devices import ClientDevices
from .live.modes import Mode
from .live.protocol import (
    CLIENT_BOX_TAP,
    CLIENT_BRIGHTNESS,
    CLIENT_CAMERA,
    CLIENT_DETECTIONS,
    CLIENT_LISTEN,
    CLIENT_LOCATION,
    CLIENT_LOCATION_ERROR,
    CLIENT_MODE,
    CLIENT_MUTE,
    CLIENT_RECOGNITION_ERROR,
    CLIENT_SPEECH_DONE,
    CLIENT_STOP,
    CLIENT_TORCH,
    CLIENT_TRANSCRIPT,
    CLIENT_VIDEO,
    SERVER_ERROR,
    SERVER_STATUS,
)
from .live.session import AssistantSession
from .schemas import ClientConfig
from .settings import settings


logger = logging.getLogger("third-eye")

app = FastAPI(title="Third Eye Backend", version="0.3.0")


@app.on_event("startup")
async def startup_event() -> None:
    """Create the shared HTTP client used by every vision backend."""
    app.state.http_client = httpx.AsyncClient(timeout=settings.analysis_timeout_seconds)
    chain = build_backends(settings, app.state.http_client)
    logger.info("Vision backends configured: %s", ", ".join(chain.names) or "none")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health endpoint to confirm the service is up."""
    return {"status": "ok"}


@app.get("/api/client-config")
async def client_config() -> ClientConfig:
    """Expose non-secret settings the browser client needs."""
    chain = build_backends(settings, app.state.http_client)
    return ClientConfig(
        locale=settings.speech_locale,
        speech_rate=settings.speech_rate,
        speech_pitch=settings.speech_pitch,
        backends_configured=chain.configured,
        backends=chain.names,
        modes=[mode.value for mode in Mode if mode is not Mode.IDLE],
    )


def _decode_b64_payload(message: dict, field_name: str = "data_b64") -> bytes:
    data_b64 = message.get(field_name)
    if not isinstance(data_b64, str) or not data_b64:
        raise ValueError(f"Missing {field_name}")
    try:
        return base64.b64decode(data_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 payload in {field_name}") from exc


def _number(message: dict, field_name: str) -> float:
    value = message.get(field_name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    return float(value)


def _capabilities(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def _dispatch(session: AssistantSession, message_type: str, message: dict) -> None:
    """Apply one client message to the session; raises ValueError on bad input."""
    if message_type == CLIENT_VIDEO:
        session.on_frame(_decode_b64_payload(message))
    elif message_type == CLIENT_BRIGHTNESS:
        session.on_brightness(_number(message, "value"))
    elif message_type == CLIENT_MODE:
        session.select(Mode.parse(message.get("mode")))
    elif message_type == CLIENT_TRANSCRIPT:
        transcript = message.get("transcript")
        if not isinstance(transcript, str) or not transcript.strip():
            raise ValueError("Missing transcript")
        confidence = message.get("confidence", 1.0)
        session.handle_utterance(transcript, float(confidence) if isinstance(confidence, (int, float)) else 1.0)
    elif message_type == CLIENT_RECOGNITION_ERROR:
        session.handle_recognition_error(RecognitionFailed(str(message.get("error", "unknown"))))
    elif message_type == CLIENT_SPEECH_DONE:
        session.on_speech_done()
    elif message_type == CLIENT_DETECTIONS:
        boxes = message.get("boxes", [])
        if not isinstance(boxes, list):
            raise ValueError("boxes must be a list")
        session.on_detections(boxes)
    elif message_type == CLIENT_BOX_TAP:
        label = str(message.get("label", "")).strip()
        if not label:
            raise ValueError("Missing label")
        session.on_box_tap(label)
    elif message_type == CLIENT_TORCH:
        on = message.get("on")
        session.toggle_light(on if isinstance(on, bool) else None)
    elif message_type == CLIENT_MUTE:
        session.toggle_mute()
    elif message_type == CLIENT_CAMERA:
        session.switch_camera()
    elif message_type == CLIENT_LISTEN:
        session.toggle_listening()
    elif message_type == CLIENT_LOCATION:
        session.on_location(_number(message, "latitude"), _number(message, "longitude"))
    elif message_type == CLIENT_LOCATION_ERROR:
        session.on_location_error(str(message.get("error", "unknown")))
    else:
        raise ValueError(f"Unsupported message type: {message_type}")


async def _forward_device_events(ws: WebSocket, devices: ClientDevices) -> None:
    async for event in devices.events():
        await ws.send_json(event)


@app.websocket("/ws/live")
async def websocket_endpoint(ws: WebSocket) -> None:
    """Handle live websocket connections for one camera client."""
    await ws.accept()

    devices = ClientDevices(_capabilities(ws.query_params.get("capabilities")))
    chain = build_backends(settings, ws.app.state.http_client)
    session = AssistantSession(settings, chain, devices)
    forward_task: asyncio.Task | None = None

    try:
        await ws.send_json(
            {
                "type": SERVER_STATUS,
                "state": "connected",
                "mode": session.mode.value,
                "backends": chain.names,
            }
        )
        forward_task = asyncio.create_task(_forward_device_events(ws, devices))

        while True:
            try:
                message = await ws.receive_json()
            except WebSocketDisconnect:
                break
            except (ValueError, TypeError):
                await ws.send_json({"type": SERVER_ERROR, "message": "Malformed JSON message"})
                continue

            if not isinstance(message, dict):
                await ws.send_json({"type": SERVER_ERROR, "message": "Messages must be JSON objects"})
                continue

            message_type = str(message.get("type", "")).strip()
            if message_type == CLIENT_STOP:
                break
            try:
                _dispatch(session, message_type, message)
            except ValueError as exc:
                await ws.send_json({"type": SERVER_ERROR, "message": str(exc)})
            except Exception as exc:
                logger.exception("Live websocket message handling failed: %s", exc)
                await ws.send_json({"type": SERVER_ERROR, "message": "Failed to process live message"})
                break
    except Exception as exc:
        logger.exception("Unexpected error in /ws/live: %s", exc)
        with contextlib.suppress(RuntimeError):
            await ws.send_json({"type": SERVER_ERROR, "message": f"Live session error: {exc}"})
    finally:
        await session.close()
        devices.close()
        if forward_task is not None:
            try:
                await asyncio.wait_for(forward_task, timeout=1.0)
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.debug("Stopped forwarding device events: %r", exc)
        with contextlib.suppress(RuntimeError):
            await ws.close()
