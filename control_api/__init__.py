"""Control API for the multi-destination stream.

FastAPI backend exposing capture devices, the saved destination list, stream
status and a WebSocket that starts/stops the stream and relays its events.
"""

__version__ = "1.0.0"
