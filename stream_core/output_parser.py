"""
Encoder output parser.

Turns FFmpeg stdout/stderr lines into display lines and progress samples,
collapsing the capture buffer overflow diagnostic that FFmpeg repeats while
the camera buffer is under pressure.
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

BUFFER_WARNING = "Camera buffer warning - consider reducing quality if persistent"

LINE_SPLIT = re.compile(r"\r\n|\r|\n")


@dataclass
class ProgressSample:
    """Throughput metrics from one progress line. Any field may be missing."""

    frame: Optional[int] = None
    fps: Optional[float] = None
    bitrate_kbps: Optional[float] = None
    elapsed_seconds: Optional[int] = None
    size_kb: Optional[int] = None
    speed_factor: Optional[float] = None

    def to_dict(self) -> Dict:
        """Present fields only."""
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class ParsedLine:
    """Result of feeding one line: what to display, and any progress found."""

    display: Optional[str] = None
    progress: Optional[ProgressSample] = None

    @property
    def suppressed(self) -> bool:
        return self.display is None


class FFmpegOutputParser:
    """
    Line-oriented parser for FFmpeg output.

    Progress tokens are matched independently, so field order and partial
    lines do not matter. The only state kept between lines is whether the
    current buffer-overflow streak has already been reported.
    """

    FRAME_PATTERN = re.compile(r"\bframe=\s*(\d+)")
    FPS_PATTERN = re.compile(r"\bfps=\s*(\d+(?:\.\d+)?)")
    BITRATE_PATTERN = re.compile(r"\bbitrate=\s*(\d+(?:\.\d+)?)\s*kbits/s")
    TIME_PATTERN = re.compile(r"\btime=\s*-?(\d+):(\d{2}):(\d{2})(?:\.\d+)?")
    SIZE_PATTERN = re.compile(r"\b(?:L?size)=\s*(\d+)\s*(?:kB|KiB)")
    SPEED_PATTERN = re.compile(r"\bspeed=\s*(\d+(?:\.\d+)?)x")

    BUFFER_PATTERN = re.compile(r"real-time buffer.*too full", re.IGNORECASE)
    REPEAT_PATTERN = re.compile(r"Last message repeated \d+ times?", re.IGNORECASE)

    def __init__(self):
        """Initialize output parser."""
        self._buffer_streak = False
        self.suppressed_count = 0

    def feed(self, line: str) -> ParsedLine:
        """
        Parse a single line of encoder output.

        Args:
            line: One decoded line from stdout or stderr

        Returns:
            ParsedLine with the display text (None when suppressed) and an
            optional progress sample
        """
        line = line.strip()
        if not line:
            return ParsedLine()

        if self.REPEAT_PATTERN.search(line):
            self.suppressed_count += 1
            return ParsedLine()

        if self.BUFFER_PATTERN.search(line):
            if self._buffer_streak:
                self.suppressed_count += 1
                return ParsedLine()
            self._buffer_streak = True
            logger.debug(f"Capture buffer pressure: {line}")
            return ParsedLine(display=BUFFER_WARNING)

        progress = self.parse_progress(line)
        if progress is None:
            # Any other diagnostic ends the overflow streak
            self._buffer_streak = False

        return ParsedLine(display=line, progress=progress)

    def parse_progress(self, line: str) -> Optional[ProgressSample]:
        """
        Extract progress tokens from a line.

        Args:
            line: Line of encoder output

        Returns:
            ProgressSample if fps, bitrate or time was found, None otherwise
        """
        sample = ProgressSample()

        match = self.FPS_PATTERN.search(line)
        if match:
            sample.fps = float(match.group(1))

        match = self.BITRATE_PATTERN.search(line)
        if match:
            sample.bitrate_kbps = float(match.group(1))

        match = self.TIME_PATTERN.search(line)
        if match:
            hours, minutes, seconds = (int(g) for g in match.groups())
            sample.elapsed_seconds = hours * 3600 + minutes * 60 + seconds

        if sample.fps is None and sample.bitrate_kbps is None and sample.elapsed_seconds is None:
            return None

        # Secondary fields only ride along with a primary one
        match = self.FRAME_PATTERN.search(line)
        if match:
            sample.frame = int(match.group(1))

        match = self.SIZE_PATTERN.search(line)
        if match:
            sample.size_kb = int(match.group(1))

        match = self.SPEED_PATTERN.search(line)
        if match:
            sample.speed_factor = float(match.group(1))

        return sample

    def reset(self) -> None:
        """Reset suppression state (for a new encoder process)."""
        self._buffer_streak = False
        self.suppressed_count = 0


class LineSplitter:
    """
    Incrementally splits decoded chunks into lines.

    FFmpeg rewrites its progress line with a bare carriage return, so CR,
    LF and CRLF all end a line.
    """

    def __init__(self):
        self._pending = ""

    def push(self, text: str) -> List[str]:
        """Add a chunk and return the complete lines it finished."""
        self._pending += text
        # A trailing CR may be the first half of a CRLF split across chunks
        hold_cr = self._pending.endswith("\r")
        data = self._pending[:-1] if hold_cr else self._pending
        parts = LINE_SPLIT.split(data)
        self._pending = parts.pop() + ("\r" if hold_cr else "")
        return parts

    def flush(self) -> List[str]:
        """Return whatever is left once the stream has ended."""
        rest, self._pending = self._pending, ""
        rest = rest.strip("\r")
        return [rest] if rest else []
