"""
Encoder Process Supervisor

Drives a single FFmpeg process that captures one camera/microphone pair and
publishes it to one or more RTMP(S) destinations, with progress parsing,
failure classification and an observable session lifecycle.

Version: 1.0.0
"""

__version__ = "1.0.0"

from stream_core.command_builder import CommandPlan, FFmpegCommandBuilder, OutputMode
from stream_core.config import EncoderConfig, EncodingProfile
from stream_core.error_classifier import ErrorCategory, ErrorClassifier, classify
from stream_core.exceptions import (
    AlreadyRunning,
    InvalidRequest,
    MissingBinary,
    RuntimeFailure,
    StartupFailed,
    StreamError,
)
from stream_core.output_parser import FFmpegOutputParser, ParsedLine, ProgressSample
from stream_core.request import Destination, StreamRequest
from stream_core.state_machine import SessionState, StateTransition, StreamStateMachine
from stream_core.supervisor import ExitOutcome, FFmpegSupervisor, ProcessHandle

__all__ = [
    "AlreadyRunning",
    "CommandPlan",
    "Destination",
    "EncoderConfig",
    "EncodingProfile",
    "ErrorCategory",
    "ErrorClassifier",
    "ExitOutcome",
    "FFmpegCommandBuilder",
    "FFmpegOutputParser",
    "FFmpegSupervisor",
    "InvalidRequest",
    "MissingBinary",
    "OutputMode",
    "ParsedLine",
    "ProcessHandle",
    "ProgressSample",
    "RuntimeFailure",
    "SessionState",
    "StartupFailed",
    "StateTransition",
    "StreamError",
    "StreamRequest",
    "StreamStateMachine",
    "classify",
]
