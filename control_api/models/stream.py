"""Stream control and destination models."""

from typing import List, Optional

from pydantic import BaseModel, Field

from stream_core.request import StreamRequest


class StartCommand(BaseModel):
    """Start request, as sent by the browser client."""

    video: str = Field("", description="Video capture device name")
    audio: str = Field("", description="Audio capture device name")
    rtmps: List[str] = Field(default_factory=list, description="Destination ingest URLs")

    def to_request(self) -> StreamRequest:
        """Convert to a core StreamRequest (validated later, at start)."""
        return StreamRequest.from_urls(self.video, self.audio, self.rtmps)


class DestinationEntry(BaseModel):
    """One saved destination."""

    url: str
    label: Optional[str] = None


class DestinationConfig(BaseModel):
    """Persisted destination list."""

    destinations: List[DestinationEntry] = Field(default_factory=list)
