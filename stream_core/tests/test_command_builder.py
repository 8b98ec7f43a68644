"""
Tests for the encoder command builder.
"""

from pathlib import Path

import pytest

from stream_core.command_builder import FFmpegCommandBuilder, OutputMode, create_command_builder
from stream_core.config import ENCODING_PROFILES, EncoderConfig, ProfileName
from stream_core.exceptions import InvalidRequest
from stream_core.request import StreamRequest


def _value_after(args, flag):
    return args[args.index(flag) + 1]


class TestFFmpegCommandBuilder:
    """Test FFmpeg command builder."""

    def test_initialization(self, test_config: EncoderConfig):
        """Test command builder initialization."""
        builder = FFmpegCommandBuilder(test_config)
        assert builder.config == test_config

    def test_single_destination_command(self, command_builder, single_request):
        """Test a one-destination request produces a single output."""
        cmd = command_builder.build(single_request)

        assert cmd[0] == "ffmpeg"
        assert cmd[1] == "-y"
        assert cmd.count("-i") == 1
        assert cmd.count("-f") == 2  # capture input + flv output
        assert cmd[-1] == "rtmp://a.rtmp.youtube.com/live2/abcd-1234"
        assert "video=USB Camera:audio=USB Microphone" in cmd

    def test_single_destination_uses_single_profile(self, command_builder, single_request):
        """Test the single output gets the low-latency profile."""
        plan = command_builder.plan(single_request)
        profile = ENCODING_PROFILES[ProfileName.SINGLE]

        assert plan.mode == OutputMode.SINGLE
        assert len(plan.outputs) == 1
        assert plan.outputs[0].profile == profile

        args = plan.outputs[0].args
        assert _value_after(args, "-b:v") == "800k"
        assert _value_after(args, "-maxrate") == "800k"
        assert _value_after(args, "-bufsize") == "1600k"
        assert _value_after(args, "-b:a") == "128k"
        assert _value_after(args, "-preset") == "veryfast"

    def test_capture_input(self, command_builder, single_request):
        """Test capture input options."""
        plan = command_builder.plan(single_request)

        assert plan.input_args == [
            "-f", "dshow",
            "-rtbufsize", "300M",
            "-thread_queue_size", "2048",
            "-i", "video=USB Camera:audio=USB Microphone",
        ]

    def test_video_encoding_options(self, command_builder, single_request):
        """Test low-latency video encoding options."""
        args = command_builder.plan(single_request).outputs[0].args

        assert _value_after(args, "-c:v") == "libx264"
        assert _value_after(args, "-tune") == "zerolatency"
        assert _value_after(args, "-profile:v") == "baseline"
        assert _value_after(args, "-g") == "50"
        assert _value_after(args, "-keyint_min") == "50"
        assert _value_after(args, "-sc_threshold") == "0"
        assert _value_after(args, "-r") == "25"
        assert _value_after(args, "-s") == "1280x720"
        assert _value_after(args, "-pix_fmt") == "yuv420p"

    def test_audio_encoding_options(self, command_builder, single_request):
        """Test AAC audio options."""
        args = command_builder.plan(single_request).outputs[0].args

        assert _value_after(args, "-c:a") == "aac"
        assert _value_after(args, "-ar") == "44100"
        assert _value_after(args, "-ac") == "2"

    def test_reconnect_options(self, command_builder, single_request):
        """Test output reconnect flags."""
        args = command_builder.plan(single_request).outputs[0].args

        assert _value_after(args, "-reconnect") == "1"
        assert _value_after(args, "-reconnect_streamed") == "1"
        assert _value_after(args, "-reconnect_delay_max") == "5"

    def test_multi_destination_graph(self, command_builder, multi_request):
        """Test N destinations produce N mapped output groups from one input."""
        plan = command_builder.plan(multi_request)
        cmd = plan.argv

        assert plan.mode == OutputMode.MULTI_OUTPUT
        assert len(plan.outputs) == 3
        assert cmd.count("-i") == 1
        assert cmd.count("-map") == 6

        urls = [output.args[-1] for output in plan.outputs]
        assert urls == [d.url for d in multi_request.destinations]
        assert len(set(urls)) == 3

    def test_multi_destination_tiers(self, command_builder, multi_request):
        """Test the first output gets the primary tier and the rest the secondary."""
        plan = command_builder.plan(multi_request)

        assert plan.outputs[0].profile == ENCODING_PROFILES[ProfileName.MULTI_PRIMARY]
        assert plan.outputs[1].profile == ENCODING_PROFILES[ProfileName.MULTI_SECONDARY]
        assert plan.outputs[2].profile == ENCODING_PROFILES[ProfileName.MULTI_SECONDARY]

        assert _value_after(plan.outputs[0].args, "-s") == "1280x720"
        assert _value_after(plan.outputs[1].args, "-s") == "960x540"
        assert _value_after(plan.outputs[1].args, "-b:v") == "500k"
        assert _value_after(plan.outputs[1].args, "-b:a") == "64k"
        assert _value_after(plan.input_args, "-rtbufsize") == "200M"

    def test_secure_destination_allows_publish(self, command_builder, multi_request):
        """Test rtmps outputs carry the publish connection option."""
        plan = command_builder.plan(multi_request)

        assert "-rtmp_conn" not in plan.outputs[0].args
        assert _value_after(plan.outputs[1].args, "-rtmp_conn") == "S:allowPublish"
        assert "-rtmp_conn" not in plan.outputs[2].args

        # The option must precede the URL it applies to
        args = plan.outputs[1].args
        assert args.index("-rtmp_conn") < len(args) - 1

    def test_each_group_is_flv(self, command_builder, multi_request):
        """Test every output is muxed as FLV."""
        for output in command_builder.plan(multi_request).outputs:
            assert _value_after(output.args, "-f") == "flv"

    def test_custom_binary(self, command_builder, single_request):
        """Test the resolved binary replaces the configured name."""
        cmd = command_builder.build(single_request, binary="/opt/ffmpeg/bin/ffmpeg")
        assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"

    def test_log_level(self, temp_dir: Path, single_request):
        """Test the configured log level is passed through."""
        config = EncoderConfig(bundled_binary=temp_dir / "ffmpeg", log_level="warning")
        cmd = FFmpegCommandBuilder(config).build(single_request)
        assert _value_after(cmd, "-loglevel") == "warning"

    def test_debug_recording(self, temp_dir: Path, single_request):
        """Test the optional local recording output."""
        record_path = temp_dir / "debug.mp4"
        config = EncoderConfig(bundled_binary=temp_dir / "ffmpeg", debug_record_path=record_path)
        plan = FFmpegCommandBuilder(config).plan(single_request)

        assert len(plan.extra_outputs) == 1
        recording = plan.extra_outputs[0]
        assert _value_after(recording, "-t") == "10"
        assert _value_after(recording, "-f") == "mp4"
        assert recording[-1] == str(record_path)
        # Destinations still end the command
        assert plan.argv[-1] == single_request.destinations[0].url

    @pytest.mark.parametrize(
        "video,audio,urls,message",
        [
            ("", "USB Microphone", ["rtmp://host/app/key"], "Missing video device"),
            ("USB Camera", "  ", ["rtmp://host/app/key"], "Missing audio device"),
            ("USB Camera", "USB Microphone", [], "Missing RTMP destinations"),
            ("USB Camera", "USB Microphone", ["", "   "], "Missing RTMP destinations"),
        ],
    )
    def test_invalid_requests(self, command_builder, video, audio, urls, message):
        """Test requests missing devices or destinations are rejected."""
        request = StreamRequest.from_urls(video, audio, urls)
        with pytest.raises(InvalidRequest, match=message):
            command_builder.build(request)

    def test_get_command_string(self, command_builder, single_request):
        """Test the command string quotes device names with spaces."""
        cmd_str = command_builder.get_command_string(single_request)

        assert cmd_str.startswith("ffmpeg ")
        assert "'video=USB Camera:audio=USB Microphone'" in cmd_str


class TestFactoryFunction:
    """Test factory function."""

    def test_create_command_builder_with_config(self, test_config: EncoderConfig):
        """Test creating builder with explicit config."""
        builder = create_command_builder(test_config)
        assert builder.config == test_config

    def test_create_command_builder_default(self):
        """Test creating builder with default config."""
        builder = create_command_builder()
        assert builder.config is not None
