"""Flat-file storage for the saved destination list."""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from control_api.models.stream import DestinationConfig

logger = logging.getLogger(__name__)


class DestinationStore:
    """Reads and writes the destination list as a JSON file."""

    def __init__(self, path: Path):
        """Initialize store.

        Args:
            path: JSON file holding the destination list.
        """
        self.path = Path(path)

    def read(self) -> DestinationConfig:
        """Load the saved destinations.

        Returns:
            DestinationConfig: Saved list, or an empty one when the file is
            missing or unreadable.
        """
        if not self.path.exists():
            logger.debug(f"No destination file at {self.path}")
            return DestinationConfig()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return DestinationConfig.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Failed to read destination file {self.path}: {e}")
            return DestinationConfig()

    def write(self, config: DestinationConfig) -> None:
        """Persist the destination list.

        Args:
            config: Destinations to save.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(exclude_none=True), f, indent=2)
        tmp_path.replace(self.path)
        logger.info(f"Saved {len(config.destinations)} destination(s) to {self.path}")
