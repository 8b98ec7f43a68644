"""
Encoder binary discovery.

The bundled executable is preferred; otherwise the bare name is resolved
through PATH.
"""

import asyncio
import logging
import shutil
from typing import Optional

from stream_core.config import EncoderConfig

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10.0


def locate_encoder(config: EncoderConfig) -> str:
    """
    Find the encoder executable.

    Args:
        config: Encoder configuration

    Returns:
        Path of the bundled binary if present, the PATH match otherwise, or
        the bare configured name when nothing resolves
    """
    if config.bundled_binary and config.bundled_binary.is_file():
        logger.debug(f"Using bundled encoder: {config.bundled_binary}")
        return str(config.bundled_binary)

    resolved: Optional[str] = shutil.which(config.binary)
    if resolved:
        logger.debug(f"Using system encoder: {resolved}")
        return resolved

    return config.binary


async def probe_encoder(binary: str, timeout: float = PROBE_TIMEOUT) -> bool:
    """
    Check that the encoder runs by asking for its version.

    Args:
        binary: Encoder executable path or name
        timeout: Seconds to wait for the probe

    Returns:
        True if `<binary> -version` exits with status 0
    """
    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "-version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.warning(f"Encoder probe failed to launch {binary}: {e}")
        return False

    try:
        returncode = await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Encoder probe timed out after {timeout}s")
        process.kill()
        await process.wait()
        return False

    if returncode != 0:
        logger.warning(f"Encoder probe exited with code {returncode}")
    return returncode == 0
