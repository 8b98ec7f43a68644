"""
Pytest configuration and fixtures for encoder supervisor tests.
"""

import asyncio
import signal
import tempfile
from pathlib import Path
from typing import Generator, Optional

import pytest

from stream_core.command_builder import FFmpegCommandBuilder
from stream_core.config import EncoderConfig
from stream_core.output_parser import FFmpegOutputParser
from stream_core.request import StreamRequest
from stream_core.supervisor import FFmpegSupervisor


class FakeEncoderProcess:
    """Stands in for asyncio.subprocess.Process.

    Must be created inside a running event loop. Output is fed through real
    StreamReaders so the supervisor's readers run unchanged.
    """

    def __init__(self, pid: int = 4321, ignore_terminate: bool = False):
        self.pid = pid
        self.returncode: Optional[int] = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.ignore_terminate = ignore_terminate
        self.terminate_calls = 0
        self.kill_calls = 0
        self._exited = asyncio.Event()

    def write_stderr(self, text: str) -> None:
        self.stderr.feed_data(text.encode("utf-8"))

    def write_stdout(self, text: str) -> None:
        self.stdout.feed_data(text.encode("utf-8"))

    def exit(self, returncode: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = returncode
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def exit_later(self, returncode: int, delay: float = 0.01) -> None:
        asyncio.get_running_loop().call_later(delay, self.exit, returncode)

    def terminate(self) -> None:
        self.terminate_calls += 1
        if not self.ignore_terminate:
            self.exit(-int(signal.SIGTERM))

    def kill(self) -> None:
        self.kill_calls += 1
        self.exit(-int(signal.SIGKILL))

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> EncoderConfig:
    """Create a test configuration with short timing windows."""
    return EncoderConfig(
        binary="ffmpeg",
        bundled_binary=temp_dir / "missing" / "ffmpeg",
        log_level="info",
        liveness_window=0.1,
        grace_period=0.1,
        kill_timeout=0.2,
        drain_timeout=0.2,
    )


@pytest.fixture
def command_builder(test_config: EncoderConfig) -> FFmpegCommandBuilder:
    """Create a command builder for testing."""
    return FFmpegCommandBuilder(test_config)


@pytest.fixture
def output_parser() -> FFmpegOutputParser:
    """Create an output parser for testing."""
    return FFmpegOutputParser()


@pytest.fixture
def supervisor(test_config: EncoderConfig) -> FFmpegSupervisor:
    """Create a supervisor for testing."""
    return FFmpegSupervisor(config=test_config)


@pytest.fixture
def single_request() -> StreamRequest:
    """Request with one destination."""
    return StreamRequest.from_urls(
        "USB Camera",
        "USB Microphone",
        ["rtmp://a.rtmp.youtube.com/live2/abcd-1234"],
    )


@pytest.fixture
def multi_request() -> StreamRequest:
    """Request with three destinations."""
    return StreamRequest.from_urls(
        "USB Camera",
        "USB Microphone",
        [
            "rtmp://a.rtmp.youtube.com/live2/abcd-1234",
            "rtmps://live-api-s.facebook.com:443/rtmp/FB-5678",
            "rtmp://live.twitch.tv/app/live_9999",
        ],
    )


@pytest.fixture
def fake_process_class():
    """FakeEncoderProcess class (instantiate inside async tests)."""
    return FakeEncoderProcess


@pytest.fixture
def sample_ffmpeg_output() -> str:
    """Sample FFmpeg stderr for parser and classifier tests."""
    return (
        "Input #0, dshow, from 'video=USB Camera:audio=USB Microphone':\n"
        "frame=  100 fps= 30 q=28.0 size=     512kB time=00:00:03.33 bitrate=1258.3kbits/s speed=1.00x\r"
        "frame=  200 fps= 30 q=28.0 size=    1024kB time=00:00:06.66 bitrate=1258.3kbits/s dup=0 drop=0 speed=1.00x\r"
        "[rtmp @ 0000021c] Connection refused\n"
    )
