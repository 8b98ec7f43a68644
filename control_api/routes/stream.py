"""Stream control routes."""

import logging

from fastapi import APIRouter, Depends

from control_api.dependencies import get_session
from control_api.models import StartCommand
from control_api.services.stream_session import StreamSession

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/status")
async def get_stream_status(session: StreamSession = Depends(get_session)):
    """Get current stream status.

    Args:
        session: Stream session.

    Returns:
        dict: Stream status information.
    """
    status = session.supervisor.get_status()
    outcome = session.supervisor.last_outcome
    status["last_exit"] = (
        {
            "exit_code": outcome.exit_code,
            "signal": outcome.signal,
            "error": outcome.classified_error,
        }
        if outcome
        else None
    )
    return status


@router.post("/stream/start")
async def start_stream(command: StartCommand, session: StreamSession = Depends(get_session)):
    """Start streaming and wait until the encoder is live.

    Args:
        command: Devices and destinations.
        session: Stream session.

    Returns:
        dict: Start result.
    """
    handle = await session.start_session(command.to_request())
    return {"success": True, "pid": handle.pid, "status": session.status}


@router.post("/stream/stop")
async def stop_stream(session: StreamSession = Depends(get_session)):
    """Stop the current stream.

    Args:
        session: Stream session.

    Returns:
        dict: Stop result.
    """
    await session.stop_session()
    return {"success": True, "status": session.status}
