"""
Stream request types.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

from stream_core.exceptions import InvalidRequest

SECURE_SCHEMES = {"rtmps"}


@dataclass(frozen=True)
class Destination:
    """A streaming-platform ingest URL."""

    url: str
    label: Optional[str] = None

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def is_secure(self) -> bool:
        """True for the TLS-wrapped publish protocol."""
        return self.scheme in SECURE_SCHEMES

    def __str__(self) -> str:
        return self.label or self.url


@dataclass
class StreamRequest:
    """Capture devices plus the ordered list of destinations to publish to."""

    video_device: str
    audio_device: str
    destinations: List[Destination] = field(default_factory=list)

    @classmethod
    def from_urls(
        cls,
        video_device: str,
        audio_device: str,
        urls: Iterable[str],
    ) -> "StreamRequest":
        """Build a request from bare URL strings, skipping blank entries."""
        destinations = [Destination(url=u.strip()) for u in urls if u and u.strip()]
        return cls(video_device=video_device, audio_device=audio_device, destinations=destinations)

    @property
    def input_source(self) -> str:
        """Device-mode input string for the capture backend."""
        return f"video={self.video_device}:audio={self.audio_device}"

    def validate(self) -> None:
        """
        Check the request invariants.

        Raises:
            InvalidRequest: If a device name is empty or there are no destinations
        """
        if not self.video_device or not self.video_device.strip():
            raise InvalidRequest("Missing video device")
        if not self.audio_device or not self.audio_device.strip():
            raise InvalidRequest("Missing audio device")
        if not self.destinations:
            raise InvalidRequest("Missing RTMP destinations")
        for destination in self.destinations:
            if not destination.url or not destination.url.strip():
                raise InvalidRequest("Destination URL cannot be empty")
