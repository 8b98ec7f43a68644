"""Request and persistence models for the control API."""

from control_api.models.stream import (
    DestinationConfig,
    DestinationEntry,
    StartCommand,
)

__all__ = ["DestinationConfig", "DestinationEntry", "StartCommand"]
