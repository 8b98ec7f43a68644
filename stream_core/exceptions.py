"""
Exceptions raised by the encoder supervisor.

Request and single-flight errors are raised before any state change.
Process-level errors always leave the supervisor idle and ready for a new
start.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from stream_core.supervisor import ExitOutcome


class StreamError(Exception):
    """Base class for all streaming errors."""


class InvalidRequest(StreamError):
    """The stream request is missing devices or destinations."""


class AlreadyRunning(StreamError):
    """A stream is already running or still winding down."""

    def __init__(self, message: str = "Stream already running"):
        super().__init__(message)


class MissingBinary(StreamError):
    """The encoder executable could not be located or failed its version probe."""

    REMEDIATION = (
        "Install FFmpeg and add it to your PATH, or copy the ffmpeg executable "
        "into the bundled ffmpeg/ directory."
    )

    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(f"FFmpeg not found ({binary}). {self.REMEDIATION}")


class StartupFailed(StreamError):
    """The encoder exited (or was stopped) before the liveness window elapsed."""

    def __init__(
        self,
        message: str,
        category: Optional[str] = None,
        diagnostic_tail: str = "",
        cancelled: bool = False,
    ):
        self.category = category
        self.diagnostic_tail = diagnostic_tail
        self.cancelled = cancelled
        super().__init__(message)


class RuntimeFailure(StreamError):
    """The encoder exited with a non-zero code while streaming."""

    def __init__(self, outcome: "ExitOutcome"):
        self.outcome = outcome
        super().__init__(outcome.classified_error or f"Encoder exited with code {outcome.exit_code}")


class InvalidTransition(StreamError):
    """A state change not allowed by the session lifecycle."""
