"""Message protocol definitions for the Third Eye WebSocket.

This module defines constants and dataclasses for the messages exchanged
over the client WebSocket connection. The browser owns the camera, the
microphone, speech synthesis, the torch and vibration, so client messages
carry frames, brightness samples, recognized utterances and device
notices, while server messages are commands for those devices plus
display updates.

The dataclasses document the expected payload shapes; the handler in
``thirdeye.main`` works on plain dicts.
"""

from dataclasses import dataclass, field
from typing import List


# Types of events sent by the client
CLIENT_VIDEO = "client.video"
CLIENT_BRIGHTNESS = "client.brightness"
CLIENT_MODE = "client.mode"
CLIENT_TRANSCRIPT = "client.transcript"
CLIENT_RECOGNITION_ERROR = "client.recognition_error"
CLIENT_SPEECH_DONE = "client.speech_done"
CLIENT_DETECTIONS = "client.detections"
CLIENT_BOX_TAP = "client.box_tap"
CLIENT_TORCH = "client.torch"
CLIENT_MUTE = "client.mute"
CLIENT_CAMERA = "client.camera"
CLIENT_LISTEN = "client.listen"
CLIENT_LOCATION = "client.location"
CLIENT_LOCATION_ERROR = "client.location_error"
CLIENT_STOP = "client.stop"

# Types of events sent by the server
SERVER_STATUS = "server.status"
SERVER_DISPLAY = "server.display"
SERVER_SPEAK = "server.speak"
SERVER_SPEECH_CANCEL = "server.speech_cancel"
SERVER_TORCH = "server.torch"
SERVER_CAMERA_SWITCH = "server.camera_switch"
SERVER_VIBRATE = "server.vibrate"
SERVER_OPEN_URL = "server.open_url"
SERVER_LOCATION_REQUEST = "server.location_request"
SERVER_LISTEN = "server.listen"
SERVER_ERROR = "error"


@dataclass
class ClientVideo:
    """A base64 encoded JPEG camera frame."""

    data_b64: str


@dataclass
class ClientBrightness:
    """Mean luminance of the current frame, 0-255."""

    value: float


@dataclass
class ClientTranscript:
    """One recognized utterance from a listening activation.

    ``confidence`` is the recognizer's own score between 0 and 1.
    """

    transcript: str
    confidence: float = 1.0


@dataclass
class ClientDetections:
    """Boxes from the client's real-time local object detector."""

    boxes: List[dict] = field(default_factory=list)


@dataclass
class ClientLocation:
    """Device position answering a ``server.location_request``."""

    latitude: float
    longitude: float


@dataclass
class ServerSpeak:
    """Text the client should speak with the given voice settings."""

    text: str
    locale: str
    rate: float
    pitch: float


@dataclass
class ServerDisplay:
    """What the client should render: mode, text, status line and boxes."""

    mode: str
    text: str
    status: str
    boxes: List[dict] = field(default_factory=list)


@dataclass
class ServerStatus:
    """Connection status, sent once after the session is ready."""

    state: str
    mode: str
    backends: List[str] = field(default_factory=list)


@dataclass
class ServerError:
    """Represents an error message to the client."""

    message: str
