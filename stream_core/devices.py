"""
Capture device discovery.

Asks the encoder to list its DirectShow devices and scrapes the names out of
the listing. Never raises: callers always get something to show.
"""

import asyncio
import logging
import re
from typing import Dict, List, Optional

from stream_core.binary import locate_encoder, probe_encoder
from stream_core.config import EncoderConfig

logger = logging.getLogger(__name__)

DEVICE_LINE = re.compile(r'^\[dshow[^\]]*\]\s+"([^"]+)"\s+\((video|audio|none)\)')

MOCK_DEVICES = {
    "video": ["Integrated Camera", "USB Camera", "Virtual Camera"],
    "audio": ["Microphone (Built-in)", "USB Microphone", "Line In"],
}

DEFAULT_DEVICES = {
    "video": ["Default Camera"],
    "audio": ["Default Microphone"],
}

LIST_TIMEOUT = 15.0


def parse_devices(output: str) -> Dict[str, List[str]]:
    """
    Parse an encoder device listing.

    Args:
        output: Combined stdout/stderr of the listing command

    Returns:
        {"video": [...], "audio": [...]} in listing order, without duplicates
    """
    devices: Dict[str, List[str]] = {"video": [], "audio": []}

    for line in output.splitlines():
        match = DEVICE_LINE.match(line.strip())
        if not match:
            continue
        name, kind = match.groups()
        if kind in devices and name not in devices[kind]:
            devices[kind].append(name)

    logger.debug(f"Parsed devices: video={len(devices['video'])} audio={len(devices['audio'])}")
    return devices


async def list_devices(config: Optional[EncoderConfig] = None) -> Dict[str, List[str]]:
    """
    List capture devices.

    Args:
        config: Encoder configuration (creates default if not provided)

    Returns:
        Device names by kind; mock names when the encoder is missing and
        placeholder names when nothing could be parsed
    """
    if config is None:
        from stream_core.config import get_config

        config = get_config()

    binary = locate_encoder(config)
    if not await probe_encoder(binary):
        logger.info(f"FFmpeg not found at {binary}, returning mock devices")
        return {kind: list(names) for kind, names in MOCK_DEVICES.items()}

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "-hide_banner",
            "-list_devices",
            "true",
            "-f",
            config.capture_format,
            "-i",
            "dummy",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Device listing failed to launch: {e}")
        return {kind: list(names) for kind, names in DEFAULT_DEVICES.items()}

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=LIST_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error(f"Device listing timed out after {LIST_TIMEOUT}s")
        process.kill()
        await process.wait()
        return {kind: list(names) for kind, names in DEFAULT_DEVICES.items()}

    text = (stdout or b"").decode("utf-8", errors="replace") + "\n" + (stderr or b"").decode(
        "utf-8", errors="replace"
    )
    devices = parse_devices(text)

    if not devices["video"] and not devices["audio"]:
        return {kind: list(names) for kind, names in DEFAULT_DEVICES.items()}

    return devices
