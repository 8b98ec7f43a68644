"""Capture device routes."""

import logging

from fastapi import APIRouter

from stream_core.devices import list_devices

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/devices")
async def get_devices():
    """List capture devices.

    Returns:
        dict: Video and audio device names.
    """
    devices = await list_devices()
    logger.debug(
        f"Found {len(devices['video'])} video and {len(devices['audio'])} audio device(s)"
    )
    return devices
