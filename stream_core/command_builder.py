"""
Encoder command builder.

Constructs FFmpeg argument vectors that capture one video/audio device pair
and publish it to one or more RTMP(S) destinations from a single process.
"""

import logging
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from stream_core.config import EncoderConfig, EncodingProfile, profile_for_output
from stream_core.request import Destination, StreamRequest

logger = logging.getLogger(__name__)

DEBUG_RECORD_SECONDS = 10


class OutputMode(str, Enum):
    """How destinations are fed."""

    SINGLE = "single"
    MULTI_OUTPUT = "multi_output"


@dataclass
class OutputGroup:
    """Arguments for one output, ending with its URL."""

    destination: Destination
    profile: EncodingProfile
    args: List[str]


@dataclass
class CommandPlan:
    """A fully resolved encoder invocation."""

    mode: OutputMode
    binary: str
    global_args: List[str]
    input_args: List[str]
    outputs: List[OutputGroup] = field(default_factory=list)
    extra_outputs: List[List[str]] = field(default_factory=list)

    @property
    def argv(self) -> List[str]:
        cmd = [self.binary]
        cmd.extend(self.global_args)
        cmd.extend(self.input_args)
        for extra in self.extra_outputs:
            cmd.extend(extra)
        for output in self.outputs:
            cmd.extend(output.args)
        return cmd


class FFmpegCommandBuilder:
    """
    Builds FFmpeg commands for capture-device streaming.

    One destination gets a single low-latency output. Several destinations
    share one capture input and each gets its own mapped output group, so the
    device is opened once no matter how many platforms are fed.
    """

    def __init__(self, config: EncoderConfig):
        """
        Initialize command builder.

        Args:
            config: Encoder configuration
        """
        self.config = config

    def build(self, request: StreamRequest, binary: Optional[str] = None) -> List[str]:
        """
        Build the complete argument vector for a stream request.

        Args:
            request: Devices and destinations to stream to
            binary: Encoder executable (defaults to the configured name)

        Returns:
            List of command arguments for process creation

        Raises:
            InvalidRequest: If a device name is empty or there are no destinations
        """
        cmd = self.plan(request, binary).argv
        logger.debug(f"Built FFmpeg command: {shlex.join(cmd)}")
        return cmd

    def plan(self, request: StreamRequest, binary: Optional[str] = None) -> CommandPlan:
        """
        Resolve a request into its output mode and per-output groups.

        Args:
            request: Devices and destinations to stream to
            binary: Encoder executable (defaults to the configured name)

        Returns:
            CommandPlan describing the invocation

        Raises:
            InvalidRequest: If a device name is empty or there are no destinations
        """
        request.validate()

        total = len(request.destinations)
        mode = OutputMode.SINGLE if total == 1 else OutputMode.MULTI_OUTPUT
        first_profile = profile_for_output(0, total)

        plan = CommandPlan(
            mode=mode,
            binary=binary or self.config.binary,
            global_args=self._build_global_options(),
            input_args=self._build_capture_input(request, first_profile),
        )

        if self.config.debug_record_path:
            plan.extra_outputs.append(self._build_debug_recording(first_profile))

        for index, destination in enumerate(request.destinations):
            profile = profile_for_output(index, total)
            plan.outputs.append(
                OutputGroup(
                    destination=destination,
                    profile=profile,
                    args=self._build_output_group(destination, profile),
                )
            )

        logger.debug(f"Planned {mode.value} command with {total} output(s)")
        return plan

    def _build_global_options(self) -> List[str]:
        """Build global FFmpeg options."""
        return [
            "-y",  # Never prompt for overwrite
            "-hide_banner",
            "-loglevel",
            self.config.log_level,
        ]

    def _build_capture_input(self, request: StreamRequest, profile: EncodingProfile) -> List[str]:
        """Build the device input options."""
        return [
            "-f",
            self.config.capture_format,
            "-rtbufsize",
            profile.rtbuf_size,
            "-thread_queue_size",
            str(self.config.thread_queue_size),
            "-i",
            request.input_source,
        ]

    def _build_video_encoding(self, profile: EncodingProfile) -> List[str]:
        """Build x264 options for one output."""
        return [
            "-c:v", "libx264",
            "-preset", profile.preset,
            "-tune", "zerolatency",
            "-profile:v", "baseline",
            "-b:v", profile.video_bitrate,
            "-maxrate", profile.video_bitrate,
            "-bufsize", profile.buffer_size,
            # Fixed GOP so ingest servers get regular keyframes
            "-g", str(profile.keyframe_interval),
            "-keyint_min", str(profile.keyframe_interval),
            "-sc_threshold", "0",
            "-r", str(profile.frame_rate),
            "-s", profile.resolution,
            "-pix_fmt", "yuv420p",
        ]

    def _build_audio_encoding(self, profile: EncodingProfile) -> List[str]:
        """Build AAC options for one output."""
        return [
            "-c:a", "aac",
            "-b:a", profile.audio_bitrate,
            "-ar", str(self.config.audio_sample_rate),
            "-ac", "2",
        ]

    def _build_reconnect_options(self) -> List[str]:
        """Ask the muxer to reconnect dropped network sinks."""
        return [
            "-reconnect", "1",
            "-reconnect_streamed", "1",
            "-reconnect_delay_max", str(self.config.reconnect_delay_max),
        ]

    def _build_output_group(self, destination: Destination, profile: EncodingProfile) -> List[str]:
        """Build the full option group for one destination."""
        options = ["-map", "0:v", "-map", "0:a"]
        options.extend(self._build_video_encoding(profile))
        options.extend(self._build_audio_encoding(profile))
        options.extend(self._build_reconnect_options())
        options.extend(["-f", "flv"])

        if destination.is_secure:
            options.extend(["-rtmp_conn", "S:allowPublish"])

        options.append(destination.url)
        return options

    def _build_debug_recording(self, profile: EncodingProfile) -> List[str]:
        """Build a short local MP4 output used when debugging capture."""
        options = ["-map", "0:v", "-map", "0:a"]
        options.extend(self._build_video_encoding(profile))
        options.extend(self._build_audio_encoding(profile))
        options.extend([
            "-t", str(DEBUG_RECORD_SECONDS),
            "-f", "mp4",
            str(self.config.debug_record_path),
        ])
        return options

    def get_command_string(self, request: StreamRequest, binary: Optional[str] = None) -> str:
        """
        Get the command as a shell-quoted string (for logging only).

        Args:
            request: Devices and destinations to stream to
            binary: Encoder executable

        Returns:
            Shell-quoted command string
        """
        return shlex.join(self.build(request, binary))


def create_command_builder(config: Optional[EncoderConfig] = None) -> FFmpegCommandBuilder:
    """
    Factory function to create a command builder.

    Args:
        config: Optional encoder configuration (creates default if not provided)

    Returns:
        FFmpegCommandBuilder instance
    """
    if config is None:
        from stream_core.config import get_config
        config = get_config()

    return FFmpegCommandBuilder(config)
