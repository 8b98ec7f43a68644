"""Run one stream from the terminal.

Usage:
    python -m stream_core --list-devices
    python -m stream_core --video "USB Camera" --audio "USB Microphone" \\
        --dest rtmp://a.rtmp.youtube.com/live2/KEY --dest rtmps://live-api-s.facebook.com:443/rtmp/KEY

Streams until interrupted (Ctrl+C) or until the encoder fails.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from stream_core.config import get_config
from stream_core.devices import list_devices
from stream_core.exceptions import RuntimeFailure, StreamError
from stream_core.request import StreamRequest
from stream_core.supervisor import FFmpegSupervisor

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("stream_core")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m stream_core",
        description="Stream one capture device pair to several RTMP destinations",
    )
    parser.add_argument("--list-devices", action="store_true", help="List capture devices and exit")
    parser.add_argument("--video", help="Video capture device name")
    parser.add_argument("--audio", help="Audio capture device name")
    parser.add_argument(
        "--dest",
        action="append",
        default=[],
        metavar="URL",
        help="Destination ingest URL (repeat for several destinations)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def run_stream(request: StreamRequest) -> int:
    """Stream until interrupted or failed.

    Returns:
        Process exit status for the CLI
    """
    supervisor = FFmpegSupervisor(config=get_config())
    supervisor.on_log(lambda line: print(line, flush=True))

    try:
        await supervisor.start(request)
        outcome = await supervisor.wait()
        logger.info(f"Stream ended (code: {outcome.exit_code}, signal: {outcome.signal})")
        return 0
    except RuntimeFailure as e:
        logger.error(f"Stream failed: {e}")
        return 1
    except StreamError as e:
        logger.error(str(e))
        return 2
    finally:
        await supervisor.shutdown()


async def run(args: argparse.Namespace) -> int:
    if args.list_devices:
        devices = await list_devices(get_config())
        print(json.dumps(devices, indent=2))
        return 0

    request = StreamRequest.from_urls(args.video or "", args.audio or "", args.dest)
    return await run_stream(request)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
