"""
Tests for the command-line entry point.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from stream_core.__main__ import main, parse_args, run_stream
from stream_core.exceptions import InvalidRequest, RuntimeFailure
from stream_core.supervisor import ExitOutcome


def _mock_supervisor(start=None, wait=None):
    supervisor = MagicMock()
    supervisor.start = AsyncMock(side_effect=start)
    supervisor.wait = AsyncMock(
        side_effect=wait, return_value=ExitOutcome(exit_code=0, signal=None)
    )
    supervisor.shutdown = AsyncMock()
    return supervisor


class TestParseArgs:
    """Test argument parsing."""

    def test_destinations_repeat(self):
        """Test --dest can be given several times."""
        args = parse_args(["--video", "Cam", "--audio", "Mic", "--dest", "rtmp://a/b", "--dest", "rtmp://c/d"])

        assert args.video == "Cam"
        assert args.audio == "Mic"
        assert args.dest == ["rtmp://a/b", "rtmp://c/d"]
        assert not args.list_devices


class TestRunStream:
    """Test the streaming command."""

    @pytest.mark.asyncio
    async def test_clean_exit(self, single_request):
        """Test a stream that ends cleanly exits 0."""
        supervisor = _mock_supervisor()

        with patch("stream_core.__main__.FFmpegSupervisor", return_value=supervisor):
            assert await run_stream(single_request) == 0

        supervisor.start.assert_awaited_once_with(single_request)
        supervisor.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runtime_failure(self, single_request):
        """Test a crash while streaming exits 1."""
        outcome = ExitOutcome(exit_code=1, signal=None, classified_error="Device busy")
        supervisor = _mock_supervisor(wait=RuntimeFailure(outcome))

        with patch("stream_core.__main__.FFmpegSupervisor", return_value=supervisor):
            assert await run_stream(single_request) == 1

        supervisor.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_error(self, single_request):
        """Test a rejected start exits 2."""
        supervisor = _mock_supervisor(start=InvalidRequest("Missing video device"))

        with patch("stream_core.__main__.FFmpegSupervisor", return_value=supervisor):
            assert await run_stream(single_request) == 2

        supervisor.wait.assert_not_awaited()
        supervisor.shutdown.assert_awaited_once()


class TestMain:
    """Test the entry point."""

    def test_list_devices(self, capsys):
        """Test --list-devices prints JSON."""
        devices = {"video": ["Cam"], "audio": ["Mic"]}

        with patch("stream_core.__main__.list_devices", AsyncMock(return_value=devices)):
            assert main(["--list-devices"]) == 0

        assert json.loads(capsys.readouterr().out) == devices

    def test_missing_arguments(self):
        """Test a request without devices is rejected before spawning."""
        with patch("stream_core.supervisor.probe_encoder", AsyncMock(return_value=True)):
            with patch("asyncio.create_subprocess_exec", AsyncMock()) as mock_spawn:
                assert main(["--dest", "rtmp://a/b"]) == 2

        mock_spawn.assert_not_called()
