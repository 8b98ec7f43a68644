"""
Encoder process supervisor.

Owns at most one FFmpeg process at a time: spawns it, watches its output
streams, decides when it counts as started, stops it gracefully (then
forcefully), and reports how it exited.
"""

import asyncio
import codecs
import logging
import shlex
import signal
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Tuple

import psutil

from stream_core.binary import locate_encoder, probe_encoder
from stream_core.command_builder import FFmpegCommandBuilder
from stream_core.config import EncoderConfig
from stream_core.error_classifier import FALLBACK_MESSAGE, ErrorClassifier
from stream_core.exceptions import (
    AlreadyRunning,
    MissingBinary,
    RuntimeFailure,
    StartupFailed,
    StreamError,
)
from stream_core.output_parser import FFmpegOutputParser, LineSplitter, ProgressSample
from stream_core.request import StreamRequest
from stream_core.state_machine import SessionState, StreamStateMachine, TransitionListener

logger = logging.getLogger(__name__)

STARTUP_FAILED_MESSAGE = "FFmpeg failed to start - check device names and RTMP URL"
STOPPED_BEFORE_LIVE_MESSAGE = "Stream stopped before it went live"

READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class ProcessHandle:
    """Read-only view of a spawned encoder process."""

    pid: int
    started_at: datetime
    argv: Tuple[str, ...]


@dataclass
class ExitOutcome:
    """How an encoder process ended."""

    exit_code: Optional[int]
    signal: Optional[str]
    classified_error: Optional[str] = None
    stop_requested: bool = False

    @property
    def failed(self) -> bool:
        return self.exit_code is not None and self.exit_code != 0


ExitHandler = Callable[[ExitOutcome], None]
LogHandler = Callable[[str], None]
ProgressHandler = Callable[[ProgressSample], None]


@dataclass
class _EncoderSession:
    """Everything tied to one process lifetime. Never leaves the supervisor."""

    process: asyncio.subprocess.Process
    handle: ProcessHandle
    parser: FFmpegOutputParser
    diagnostics: Deque[str]
    reader_tasks: List[asyncio.Task] = field(default_factory=list)
    watch_task: Optional[asyncio.Task] = None
    exited: asyncio.Event = field(default_factory=asyncio.Event)
    outcome: Optional[ExitOutcome] = None
    last_progress: Optional[ProgressSample] = None
    streaming: bool = False
    stopping: bool = False
    abandoned: bool = False

    @property
    def diagnostic_text(self) -> str:
        return "\n".join(self.diagnostics)


class FFmpegSupervisor:
    """
    Supervises the single encoder process.

    Features:
    - Single-flight start with binary probe and liveness window
    - Concurrent stdout/stderr reading with progress parsing
    - Graceful SIGTERM with forced kill after a grace period
    - Exit classification and exactly-once exit notification
    """

    def __init__(
        self,
        config: Optional[EncoderConfig] = None,
        command_builder: Optional[FFmpegCommandBuilder] = None,
        classifier: Optional[ErrorClassifier] = None,
        state_machine: Optional[StreamStateMachine] = None,
    ):
        """
        Initialize supervisor.

        Args:
            config: Encoder configuration (creates default if not provided)
            command_builder: Command builder instance (creates default if not provided)
            classifier: Error classifier (creates default if not provided)
            state_machine: Session state machine (creates a fresh one if not provided)
        """
        if config is None:
            from stream_core.config import get_config

            config = get_config()

        self.config = config
        self.command_builder = command_builder or FFmpegCommandBuilder(config)
        self.classifier = classifier or ErrorClassifier()
        self.state_machine = state_machine or StreamStateMachine()

        # Process slot
        self._session: Optional[_EncoderSession] = None
        self._last_session: Optional[_EncoderSession] = None
        self._lock = asyncio.Lock()
        self._stop_pending = False

        # Observers
        self._exit_handlers: List[ExitHandler] = []
        self._log_handlers: List[LogHandler] = []
        self._progress_handlers: List[ProgressHandler] = []

        logger.info("FFmpeg supervisor initialized")

    @property
    def state(self) -> SessionState:
        return self.state_machine.state

    @property
    def last_outcome(self) -> Optional[ExitOutcome]:
        """ExitOutcome of the most recent process, once it has exited."""
        if self._last_session is None:
            return None
        return self._last_session.outcome

    def on_exit(self, handler: ExitHandler) -> None:
        """Register a handler called once per process lifetime with its ExitOutcome."""
        self._exit_handlers.append(handler)

    def on_log(self, handler: LogHandler) -> None:
        """Register a handler for display lines."""
        self._log_handlers.append(handler)

    def on_progress(self, handler: ProgressHandler) -> None:
        """Register a handler for progress samples."""
        self._progress_handlers.append(handler)

    def on_state(self, handler: TransitionListener) -> None:
        """Register a handler for session state transitions."""
        self.state_machine.add_listener(handler)

    def is_running(self) -> bool:
        """
        Check if an encoder process currently owns the slot.

        Returns:
            True if a process is owned
        """
        return self._session is not None

    async def start(self, request: StreamRequest) -> ProcessHandle:
        """
        Start streaming a request.

        Args:
            request: Capture devices and destinations

        Returns:
            ProcessHandle of the process once it survived the liveness window

        Raises:
            AlreadyRunning: If a process is owned or a stop is still in flight
            InvalidRequest: If the request is missing devices or destinations
            MissingBinary: If the encoder cannot be found or fails its probe
            StartupFailed: If the process could not be spawned, exited during
                the liveness window, or was stopped before going live
        """
        self._ensure_idle()

        async with self._lock:
            self._ensure_idle()
            self._stop_pending = False
            request.validate()

            binary = locate_encoder(self.config)
            if not await probe_encoder(binary):
                raise MissingBinary(binary)

            if self._stop_pending:
                self._stop_pending = False
                logger.info("Stop requested before FFmpeg was spawned")
                raise StartupFailed(STOPPED_BEFORE_LIVE_MESSAGE, cancelled=True)

            argv = self.command_builder.build(request, binary=binary)
            self.state_machine.transition(SessionState.STARTING)

            logger.info(
                f"Starting FFmpeg stream to {len(request.destinations)} destination(s) "
                f"from video={request.video_device!r} audio={request.audio_device!r}"
            )
            logger.debug(f"Command: {shlex.join(argv)}")

            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                self._stop_pending = False
                message = f"Failed to start FFmpeg: {e}"
                logger.error(message)
                self.state_machine.transition(SessionState.IDLE, error=message)
                raise StartupFailed(message, category=message) from e

            session = _EncoderSession(
                process=process,
                handle=ProcessHandle(pid=process.pid, started_at=datetime.now(), argv=tuple(argv)),
                parser=FFmpegOutputParser(),
                diagnostics=deque(maxlen=self.config.diagnostic_max_lines),
            )
            self._session = session
            self._last_session = session

            session.reader_tasks = [
                asyncio.create_task(self._read_stream(session, process.stdout, is_stderr=False)),
                asyncio.create_task(self._read_stream(session, process.stderr, is_stderr=True)),
            ]
            session.watch_task = asyncio.create_task(self._watch(session))

            # A stop arrived while the process was being spawned
            if self._stop_pending:
                self._stop_pending = False
                self._session = None
                session.stopping = True
                self.state_machine.transition(SessionState.STOPPING)
                logger.info(f"Stop requested during spawn, stopping FFmpeg (PID: {session.handle.pid})")
                await self._terminate(session)

        # Liveness window runs outside the lock so stop() can interrupt it
        if not session.stopping:
            try:
                await asyncio.wait_for(session.exited.wait(), timeout=self.config.liveness_window)
            except asyncio.TimeoutError:
                pass

        if session.stopping:
            raise StartupFailed(
                STOPPED_BEFORE_LIVE_MESSAGE,
                diagnostic_tail=self._tail(session),
                cancelled=True,
            )

        if session.exited.is_set():
            category = self._startup_error(session.outcome)
            raise StartupFailed(category, category=category, diagnostic_tail=self._tail(session))

        session.streaming = True
        self.state_machine.transition(SessionState.STREAMING)
        logger.info(f"FFmpeg stream started successfully (PID: {session.handle.pid})")
        return session.handle

    async def stop(self) -> None:
        """
        Stop the current stream.

        Releases the slot immediately, sends SIGTERM, and kills the process if
        it is still alive after the grace period. A stop that arrives while a
        start is still probing or spawning cancels that start. Does nothing
        when idle.
        """
        if self._session is None:
            if not self._lock.locked():
                return
            self._stop_pending = True

        async with self._lock:
            session = self._session
            if session is None:
                return

            self._session = None
            session.stopping = True
            self.state_machine.transition(SessionState.STOPPING)

            logger.info(f"Stopping FFmpeg stream (PID: {session.handle.pid})")
            await self._terminate(session)

    async def wait(self) -> ExitOutcome:
        """
        Wait for the most recent process to exit.

        Returns:
            ExitOutcome of the process

        Raises:
            StreamError: If no stream was ever started
            RuntimeFailure: If the process failed while streaming
        """
        session = self._session or self._last_session
        if session is None:
            raise StreamError("No stream has been started")

        await session.exited.wait()
        outcome = session.outcome
        if session.streaming and not session.stopping and outcome.failed:
            raise RuntimeFailure(outcome)
        return outcome

    async def shutdown(self) -> None:
        """Stop any stream and cancel leftover background tasks."""
        logger.info("Shutting down FFmpeg supervisor")
        await self.stop()

        session = self._last_session
        if session is None:
            return

        tasks = [t for t in [session.watch_task, *session.reader_tasks] if t and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_status(self) -> Dict:
        """
        Get current status of the encoder process.

        Returns:
            Dictionary with state, process and progress information
        """
        session = self._session
        if session is None:
            return {
                "state": self.state.value,
                "running": False,
                "pid": None,
                "argv": None,
                "uptime_seconds": 0,
                "progress": None,
            }

        status = {
            "state": self.state.value,
            "running": True,
            "pid": session.handle.pid,
            "argv": list(session.handle.argv),
            "uptime_seconds": (datetime.now() - session.handle.started_at).total_seconds(),
            "progress": session.last_progress.to_dict() if session.last_progress else None,
        }

        try:
            proc = psutil.Process(session.handle.pid)
            status["cpu_percent"] = proc.cpu_percent(interval=None)
            status["memory_mb"] = proc.memory_info().rss / 1024 / 1024
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

        return status

    def _ensure_idle(self) -> None:
        if self._session is not None or self.state is not SessionState.IDLE:
            raise AlreadyRunning()

    @staticmethod
    def _startup_error(outcome: Optional[ExitOutcome]) -> str:
        """Category reported for a process that died inside the liveness window."""
        if outcome is None or outcome.classified_error in (None, FALLBACK_MESSAGE):
            return STARTUP_FAILED_MESSAGE
        return outcome.classified_error

    def _tail(self, session: _EncoderSession) -> str:
        return session.diagnostic_text[-self.config.diagnostic_tail_chars:]

    async def _read_stream(
        self,
        session: _EncoderSession,
        stream: Optional[asyncio.StreamReader],
        is_stderr: bool,
    ) -> None:
        """Read one output stream until EOF, feeding complete lines to the parser."""
        if stream is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        splitter = LineSplitter()

        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in splitter.push(decoder.decode(chunk)):
                self._handle_line(session, line, is_stderr)

        for line in splitter.push(decoder.decode(b"", final=True)) + splitter.flush():
            self._handle_line(session, line, is_stderr)

    def _handle_line(self, session: _EncoderSession, line: str, is_stderr: bool) -> None:
        parsed = session.parser.feed(line)

        if is_stderr and parsed.progress is None and line.strip():
            session.diagnostics.append(line.strip())

        if parsed.progress is not None:
            session.last_progress = parsed.progress
            self._dispatch(self._progress_handlers, parsed.progress)

        if parsed.display is not None:
            self._dispatch(self._log_handlers, parsed.display)

    async def _watch(self, session: _EncoderSession) -> None:
        """Wait for the process to exit, then settle state and notify observers."""
        returncode = await session.process.wait()

        # Exit and end-of-stream arrive independently; give trailing output a
        # bounded chance to land before classifying.
        pending = [t for t in session.reader_tasks if not t.done()]
        if pending:
            _, still_pending = await asyncio.wait(pending, timeout=self.config.drain_timeout)
            if still_pending:
                logger.debug(f"Process {session.handle.pid} exited before its output drained")

        outcome = self._build_outcome(session, returncode)
        session.outcome = outcome

        if self._session is session:
            self._session = None

        logger.info(
            f"FFmpeg exited (PID: {session.handle.pid}) with code: {outcome.exit_code}, "
            f"signal: {outcome.signal}"
        )
        if outcome.failed and not session.stopping:
            logger.error(f"FFmpeg stderr: {self._tail(session)}")

        self._settle_state(session, outcome)
        session.exited.set()
        self._dispatch(self._exit_handlers, outcome)

    def _build_outcome(self, session: _EncoderSession, returncode: Optional[int]) -> ExitOutcome:
        exit_code: Optional[int] = returncode
        signal_name: Optional[str] = None

        if returncode is not None and returncode < 0:
            exit_code = None
            try:
                signal_name = signal.Signals(-returncode).name
            except ValueError:
                signal_name = f"SIG{-returncode}"

        classified = None
        if exit_code is not None and exit_code != 0:
            classified = self.classifier.classify(session.diagnostic_text)

        return ExitOutcome(
            exit_code=exit_code,
            signal=signal_name,
            classified_error=classified,
            stop_requested=session.stopping,
        )

    def _settle_state(self, session: _EncoderSession, outcome: ExitOutcome) -> None:
        if session.abandoned:
            return

        state = self.state
        if session.stopping:
            if state is SessionState.STOPPING:
                self.state_machine.transition(SessionState.IDLE)
        elif state is SessionState.STARTING:
            self.state_machine.transition(SessionState.IDLE, error=self._startup_error(outcome))
        elif state is SessionState.STREAMING:
            self.state_machine.transition(SessionState.IDLE, error=outcome.classified_error)

    async def _terminate(self, session: _EncoderSession) -> None:
        """Terminate the process gracefully, escalating to a kill."""
        process = session.process
        pid = session.handle.pid

        if process.returncode is None:
            try:
                logger.debug(f"Gracefully terminating process {pid}")
                process.terminate()
            except ProcessLookupError:
                logger.debug(f"Process {pid} already terminated")

        try:
            await asyncio.wait_for(session.exited.wait(), timeout=self.config.grace_period)
            return
        except asyncio.TimeoutError:
            logger.warning(f"Process {pid} did not terminate gracefully, force killing")

        try:
            process.kill()
        except ProcessLookupError:
            logger.debug(f"Process {pid} exited before kill")

        try:
            await asyncio.wait_for(session.exited.wait(), timeout=self.config.kill_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Process {pid} did not exit after kill, releasing session")
            session.abandoned = True
            if self.state is SessionState.STOPPING:
                self.state_machine.transition(SessionState.IDLE)

    def _dispatch(self, handlers: List[Callable], payload) -> None:
        for handler in list(handlers):
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Error in {handler!r}: {e}", exc_info=True)
