"""FastAPI dependencies for the stream session and destination store."""

from fastapi import HTTPException, status
from starlette.requests import HTTPConnection

from control_api.destinations import DestinationStore
from control_api.services.stream_session import StreamSession


def get_session(conn: HTTPConnection) -> StreamSession:
    """Get the application's stream session.

    Args:
        conn: Incoming HTTP or WebSocket connection.

    Returns:
        StreamSession: Session created at startup.

    Raises:
        HTTPException: If the application has not finished starting.
    """
    session = getattr(conn.app.state, "session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stream session not initialized",
        )
    return session


def get_store(conn: HTTPConnection) -> DestinationStore:
    """Get the destination store.

    Args:
        conn: Incoming HTTP or WebSocket connection.

    Returns:
        DestinationStore: Store created at startup.
    """
    store = getattr(conn.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Destination store not initialized",
        )
    return store
