"""
Encoder configuration and encoding profiles.

Provides the settings used to locate and drive the encoder binary, and the
bitrate ladder used for single-destination and fan-out streaming.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_BUNDLED_BINARY = PROJECT_ROOT / "ffmpeg" / ("ffmpeg.exe" if os.name == "nt" else "ffmpeg")


class ProfileName(str, Enum):
    """Available encoding profiles."""

    SINGLE = "single"
    MULTI_PRIMARY = "multi_primary"
    MULTI_SECONDARY = "multi_secondary"


@dataclass(frozen=True)
class EncodingProfile:
    """Encoding settings applied to one output group."""

    name: str
    video_bitrate_kbps: int
    audio_bitrate_kbps: int
    resolution: str  # e.g., "1280x720"
    preset: str  # x264 preset
    frame_rate: int
    keyframe_interval: int  # GOP size in frames
    rtbuf_size: str  # capture real-time buffer, e.g. "300M"

    @property
    def video_bitrate(self) -> str:
        return f"{self.video_bitrate_kbps}k"

    @property
    def audio_bitrate(self) -> str:
        return f"{self.audio_bitrate_kbps}k"

    @property
    def buffer_size(self) -> str:
        """Rate-control buffer, twice the target bitrate."""
        return f"{self.video_bitrate_kbps * 2}k"


# Bitrate ladder. Fan-out tiers stay below the single-output profile so the
# aggregate CPU and upload bandwidth remain bounded.
ENCODING_PROFILES: Dict[ProfileName, EncodingProfile] = {
    ProfileName.SINGLE: EncodingProfile(
        name="Single output (low latency)",
        video_bitrate_kbps=800,
        audio_bitrate_kbps=128,
        resolution="1280x720",
        preset="veryfast",
        frame_rate=25,
        keyframe_interval=50,
        rtbuf_size="300M",
    ),
    ProfileName.MULTI_PRIMARY: EncodingProfile(
        name="Fan-out primary",
        video_bitrate_kbps=700,
        audio_bitrate_kbps=96,
        resolution="1280x720",
        preset="ultrafast",
        frame_rate=25,
        keyframe_interval=50,
        rtbuf_size="200M",
    ),
    ProfileName.MULTI_SECONDARY: EncodingProfile(
        name="Fan-out secondary",
        video_bitrate_kbps=500,
        audio_bitrate_kbps=64,
        resolution="960x540",
        preset="ultrafast",
        frame_rate=25,
        keyframe_interval=50,
        rtbuf_size="200M",
    ),
}


class EncoderConfig(BaseSettings):
    """Encoder supervisor configuration from environment variables."""

    # Encoder binary
    binary: str = Field(
        default="ffmpeg",
        description="Encoder executable name resolved through PATH",
    )

    bundled_binary: Path = Field(
        default=DEFAULT_BUNDLED_BINARY,
        description="Bundled encoder path, preferred over PATH when it exists",
    )

    # Capture
    capture_format: str = Field(
        default="dshow",
        description="Capture backend used for device input (-f)",
    )

    thread_queue_size: int = Field(
        default=2048,
        description="Thread queue size for the capture input",
        ge=64,
        le=8192,
    )

    audio_sample_rate: int = Field(
        default=44100,
        description="Output audio sample rate",
    )

    # Logging
    log_level: str = Field(
        default="info",
        description="Encoder log level (quiet, panic, fatal, error, warning, info, verbose, debug)",
    )

    # Output resilience
    reconnect_delay_max: int = Field(
        default=5,
        description="Maximum delay between output reconnect attempts (seconds)",
        ge=1,
        le=60,
    )

    # Process management
    liveness_window: float = Field(
        default=2.0,
        description="Time a new process must survive to count as started (seconds)",
        ge=0.0,
        le=30.0,
    )

    grace_period: float = Field(
        default=3.0,
        description="Time allowed after SIGTERM before the process is killed (seconds)",
        ge=0.0,
        le=30.0,
    )

    kill_timeout: float = Field(
        default=5.0,
        description="Time to wait for exit after a forced kill (seconds)",
        ge=0.0,
        le=60.0,
    )

    drain_timeout: float = Field(
        default=1.0,
        description="Time exit handling waits for trailing output (seconds)",
        ge=0.0,
        le=10.0,
    )

    diagnostic_tail_chars: int = Field(
        default=1000,
        description="Characters of stderr kept as the diagnostic tail in failures",
        ge=100,
    )

    diagnostic_max_lines: int = Field(
        default=5000,
        description="Non-progress stderr lines kept per process for classification",
        ge=100,
    )

    # Debugging
    debug_record_path: Optional[Path] = Field(
        default=None,
        description="When set, also record the first 10 seconds to this MP4 file",
    )

    model_config = ConfigDict(
        env_prefix="ENCODER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def get_config() -> EncoderConfig:
    """
    Get encoder configuration from environment variables.

    Returns:
        EncoderConfig: Configuration instance
    """
    return EncoderConfig()


def get_profile(name: ProfileName) -> EncodingProfile:
    """
    Get an encoding profile.

    Args:
        name: Profile name

    Returns:
        EncodingProfile: Profile settings

    Raises:
        KeyError: If the profile is not defined
    """
    if name not in ENCODING_PROFILES:
        raise KeyError(f"Unknown encoding profile: {name}")
    return ENCODING_PROFILES[name]


def profile_for_output(index: int, total: int) -> EncodingProfile:
    """
    Pick the profile for one output of a request.

    Args:
        index: Zero-based destination index
        total: Number of destinations in the request

    Returns:
        EncodingProfile for that output
    """
    if total <= 1:
        return ENCODING_PROFILES[ProfileName.SINGLE]
    if index == 0:
        return ENCODING_PROFILES[ProfileName.MULTI_PRIMARY]
    return ENCODING_PROFILES[ProfileName.MULTI_SECONDARY]
