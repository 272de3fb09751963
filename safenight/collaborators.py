"""External collaborators consumed by the core.

Location, geocoding, notification, recording and transcription are I/O the
core never performs itself; callers plug in concrete implementations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from safenight.errors import LocationUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Transcription:
    text: str
    confidence: float = 0.0


@runtime_checkable
class LocationProvider(Protocol):
    async def get_current_position(self, accuracy: str = "high") -> Position: ...

    async def reverse_geocode(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Return ``street``, ``city`` and ``region`` keys when known."""
        ...


@runtime_checkable
class ContactNotifier(Protocol):
    async def compose_and_send(self, phone: str, message: str) -> bool: ...


@runtime_checkable
class AudioRecorder(Protocol):
    async def start(self) -> Any: ...

    async def stop(self, handle: Any) -> Any:
        """Finish a recording and return an audio reference for transcription."""
        ...

    async def discard(self, handle: Any) -> None:
        """Release an in-flight recording without producing audio."""
        ...


@runtime_checkable
class Transcriber(Protocol):
    async def transcribe(self, audio: Any) -> Transcription: ...


class NullLocationProvider:
    """Used when location sharing is off or no provider is wired in."""

    async def get_current_position(self, accuracy: str = "high") -> Position:
        raise LocationUnavailable("no location provider configured")

    async def reverse_geocode(self, latitude: float, longitude: float) -> dict[str, Any]:
        return {}


class LoggingNotifier:
    """Records outgoing alerts in the log instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def compose_and_send(self, phone: str, message: str) -> bool:
        logger.info("Alert composed for contact (%d chars)", len(message))
        logger.debug("Alert to %s: %s", phone, message)
        self.sent.append((phone, message))
        return True
