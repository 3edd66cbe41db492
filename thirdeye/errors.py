"""Error taxonomy for the Third Eye backend.

Provider failures travel as values inside ``BackendFailure`` rather than
being raised through the analysis loop; the classes below carry the
details. Device and recognition errors are raised by device adapters and
handled where the device is owned.
"""

from __future__ import annotations


class ThirdEyeError(Exception):
    """Base class for all Third Eye errors."""


class BackendError(ThirdEyeError):
    """A vision backend could not produce a result."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    @property
    def rate_limited(self) -> bool:
        return self.status == 429

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, message={self.message!r})"


class BackendUnavailable(BackendError):
    """No backend is configured, so retrying is pointless."""


class BackendRequestFailed(BackendError):
    """Transport failure, non-2xx response, or an unusable payload."""


class RecognitionFailed(ThirdEyeError):
    """Speech recognition produced no usable utterance."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    @property
    def no_speech(self) -> bool:
        return self.reason == "no-speech"


class DeviceUnsupported(ThirdEyeError):
    """A device capability (torch, vibration, geolocation) is absent."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"{capability} is not supported on this device")
        self.capability = capability
