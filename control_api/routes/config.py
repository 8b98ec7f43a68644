"""Saved destination routes."""

from fastapi import APIRouter, Depends

from control_api.dependencies import get_store
from control_api.destinations import DestinationStore
from control_api.models import DestinationConfig

router = APIRouter()


@router.get("/config", response_model=DestinationConfig, response_model_exclude_none=True)
async def get_config(store: DestinationStore = Depends(get_store)):
    """Get the saved destination list.

    Args:
        store: Destination store.

    Returns:
        DestinationConfig: Saved destinations.
    """
    return store.read()


@router.post("/config")
async def save_config(config: DestinationConfig, store: DestinationStore = Depends(get_store)):
    """Replace the saved destination list.

    Args:
        config: Destinations to save.
        store: Destination store.

    Returns:
        dict: Save result.
    """
    store.write(config)
    return {"ok": True}
