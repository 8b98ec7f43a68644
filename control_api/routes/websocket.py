"""WebSocket route for stream control and live events."""

import asyncio
import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from control_api.dependencies import get_session
from control_api.models import StartCommand
from control_api.services.stream_session import StreamSession
from control_api.websocket import hub

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    client_id: Optional[str] = Query(None),
    session: StreamSession = Depends(get_session),
):
    """WebSocket endpoint for stream control.

    Clients send `{"action": "start", "video", "audio", "rtmps"}` or
    `{"action": "stop"}` and receive status, log, progress and error
    messages for the shared stream.

    Args:
        websocket: WebSocket connection.
        client_id: Optional client identifier.
        session: Stream session.
    """
    if not client_id:
        client_id = str(uuid.uuid4())

    await hub.register(client_id, websocket, session.status_message())

    # Start runs past the liveness window; keep receiving so a stop can land
    background = set()

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from client {client_id}")
                continue

            if not isinstance(message, dict):
                logger.warning(f"Unexpected message from client {client_id}: {message!r}")
                continue

            action = message.get("action")
            if action == "start":
                try:
                    command = StartCommand.model_validate(message)
                except ValidationError as e:
                    logger.warning(f"Invalid start command from {client_id}: {e}")
                    await hub.notify_error(client_id, "Invalid start command")
                    continue
                task = asyncio.create_task(session.start_in_background(command.to_request()))
                background.add(task)
                task.add_done_callback(background.discard)
            elif action == "stop":
                await session.stop_session()
            else:
                logger.debug(f"Ignoring action {action!r} from client {client_id}")

    except WebSocketDisconnect:
        hub.unregister(client_id)
    except Exception as e:
        logger.error(f"WebSocket error for {client_id}: {e}")
        hub.unregister(client_id)
