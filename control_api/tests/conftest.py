"""Pytest configuration and fixtures for control API tests."""

import tempfile
from datetime import datetime
from pathlib import Path
from typing import Generator, List, Optional
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from control_api.dependencies import get_session, get_store
from control_api.destinations import DestinationStore
from control_api.services.stream_session import StreamSession
from control_api.websocket import hub
from stream_core.exceptions import AlreadyRunning, StartupFailed
from stream_core.output_parser import ProgressSample
from stream_core.request import StreamRequest
from stream_core.state_machine import SessionState, StreamStateMachine
from stream_core.supervisor import ExitOutcome, ProcessHandle


class FakeSupervisor:
    """Supervisor double that drives a real state machine without processes."""

    def __init__(self):
        self.state_machine = StreamStateMachine()
        self.last_outcome: Optional[ExitOutcome] = None
        self.startup_error: Optional[str] = None
        self.log_handlers: List = []
        self.progress_handlers: List = []
        self.start = AsyncMock(side_effect=self._start)
        self.stop = AsyncMock(side_effect=self._stop)
        self.shutdown = AsyncMock()

    @property
    def state(self) -> SessionState:
        return self.state_machine.state

    def on_log(self, handler) -> None:
        self.log_handlers.append(handler)

    def on_progress(self, handler) -> None:
        self.progress_handlers.append(handler)

    def on_state(self, handler) -> None:
        self.state_machine.add_listener(handler)

    def get_status(self) -> dict:
        running = self.state in (SessionState.STARTING, SessionState.STREAMING)
        return {"state": self.state.value, "running": running, "pid": 4242 if running else None}

    def emit_log(self, line: str) -> None:
        for handler in self.log_handlers:
            handler(line)

    def emit_progress(self, sample: ProgressSample) -> None:
        for handler in self.progress_handlers:
            handler(sample)

    def exit(self, outcome: ExitOutcome) -> None:
        """Simulate the process ending on its own while streaming."""
        self.last_outcome = outcome
        self.state_machine.transition(SessionState.IDLE, error=outcome.classified_error)

    async def _start(self, request: StreamRequest) -> ProcessHandle:
        if self.state is not SessionState.IDLE:
            raise AlreadyRunning()
        request.validate()

        self.state_machine.transition(SessionState.STARTING)
        if self.startup_error:
            self.state_machine.transition(SessionState.IDLE, error=self.startup_error)
            raise StartupFailed(self.startup_error, category=self.startup_error)

        self.state_machine.transition(SessionState.STREAMING)
        return ProcessHandle(pid=4242, started_at=datetime.now(), argv=("ffmpeg",))

    async def _stop(self) -> None:
        if self.state not in (SessionState.STARTING, SessionState.STREAMING):
            return
        self.state_machine.transition(SessionState.STOPPING)
        self.last_outcome = ExitOutcome(exit_code=None, signal="SIGTERM", stop_requested=True)
        self.state_machine.transition(SessionState.IDLE)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir: Path) -> DestinationStore:
    """Destination store backed by a temporary file."""
    return DestinationStore(temp_dir / "config" / "destinations.json")


@pytest.fixture
def fake_supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def messages() -> List[dict]:
    """Messages delivered to the session sink."""
    return []


@pytest.fixture
def session(fake_supervisor: FakeSupervisor, messages: List[dict]) -> StreamSession:
    """Stream session collecting its messages in a list."""

    async def sink(message: dict) -> None:
        messages.append(message)

    return StreamSession(fake_supervisor, sink)


@pytest.fixture
def start_request() -> StreamRequest:
    return StreamRequest.from_urls(
        "USB Camera",
        "USB Microphone",
        ["rtmp://a.rtmp.youtube.com/live2/abcd-1234", "rtmp://live.twitch.tv/app/live_9999"],
    )


@pytest.fixture
def client(fake_supervisor: FakeSupervisor, store: DestinationStore):
    """Test client wired to a fake supervisor, broadcasting over /ws."""
    from control_api.main import app

    api_session = StreamSession(fake_supervisor, hub.publish)
    app.dependency_overrides[get_session] = lambda: api_session
    app.dependency_overrides[get_store] = lambda: store

    with patch("control_api.main.configure_logging"):
        with TestClient(app) as test_client:
            yield test_client
            test_client.portal.call(api_session.close)

    app.dependency_overrides.clear()
