"""Relays encoder supervisor activity to connected clients."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from stream_core.exceptions import StartupFailed, StreamError
from stream_core.output_parser import ProgressSample
from stream_core.request import StreamRequest
from stream_core.state_machine import SessionState, StateTransition
from stream_core.supervisor import FFmpegSupervisor, ProcessHandle

logger = logging.getLogger(__name__)

EventSink = Callable[[dict], Awaitable[None]]


class StreamSession:
    """Bridges the supervisor's callbacks to `{"type", "payload"}` messages.

    Supervisor callbacks are synchronous; messages are queued and delivered
    to the sink in order by a single pump task.
    """

    def __init__(self, supervisor: FFmpegSupervisor, sink: EventSink):
        """Initialize session.

        Args:
            supervisor: Supervisor owning the encoder process.
            sink: Coroutine function receiving each outgoing message.
        """
        self.supervisor = supervisor
        self._sink = sink
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pump_task: Optional[asyncio.Task] = None

        supervisor.on_log(self._on_log)
        supervisor.on_progress(self._on_progress)
        supervisor.on_state(self._on_transition)

    @property
    def status(self) -> str:
        return self.supervisor.state.value

    def status_message(self) -> dict:
        """Current state as a status message."""
        return {"type": "status", "payload": self.status}

    async def start_session(self, request: StreamRequest) -> ProcessHandle:
        """Start streaming a request.

        Args:
            request: Capture devices and destinations.

        Returns:
            ProcessHandle: Handle of the live encoder process.

        Raises:
            StreamError: If the stream could not be started.
        """
        try:
            return await self.supervisor.start(request)
        except StartupFailed as e:
            # The failed transition already produced the error and status events
            logger.warning(f"Stream failed to start: {e}")
            raise
        except StreamError as e:
            # Rejected before any transition; the status is unchanged
            logger.warning(f"Stream start rejected: {e}")
            self.emit("error", str(e))
            raise

    async def start_in_background(self, request: StreamRequest) -> None:
        """Start a stream, reporting failures only through emitted events."""
        try:
            await self.start_session(request)
        except StreamError:
            pass

    async def stop_session(self) -> None:
        """Stop the current stream. Emits nothing when idle."""
        await self.supervisor.stop()

    def emit(self, message_type: str, payload) -> None:
        """Queue a message for the sink.

        Args:
            message_type: One of status, log, progress or error.
            payload: Message payload.
        """
        self._queue.put_nowait({"type": message_type, "payload": payload})
        self._ensure_pump()

    async def drain(self) -> None:
        """Wait until every queued message has been handed to the sink."""
        if self._pump_task is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Deliver pending messages and stop the pump task."""
        await self.drain()
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None

    def _ensure_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._sink(message)
            except Exception as e:
                logger.error(f"Error delivering {message['type']} message: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def _on_log(self, line: str) -> None:
        self.emit("log", line)

    def _on_progress(self, sample: ProgressSample) -> None:
        self.emit("progress", sample.to_dict())

    def _on_transition(self, transition: StateTransition) -> None:
        if transition.error:
            self.emit("error", transition.error)
        elif (
            transition.previous is SessionState.STREAMING
            and transition.current is SessionState.IDLE
        ):
            outcome = self.supervisor.last_outcome
            if outcome is not None and outcome.signal and not outcome.stop_requested:
                self.emit("error", f"Encoder was terminated by {outcome.signal}")

        self.emit("status", transition.current.value)
