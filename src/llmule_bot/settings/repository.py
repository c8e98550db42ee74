"""
JSON-file persistence for user settings.

The whole mapping is loaded once at startup and rewritten in full on
every mutation. Writes go to a temporary file first and are moved into
place with os.replace() so a crash never leaves a truncated file.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Union

from llmule_bot.utils.exceptions import PersistenceError
from llmule_bot.utils.logging import get_logger


class JsonSettingsRepository:
    """
    Durable mapping of user identifier to raw settings dict.

    Attributes:
        path: Location of the JSON document
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.logger = get_logger(__name__)

    def load_all(self) -> Dict[str, Dict[str, Any]]:
        """
        Read every stored entry.

        Returns:
            Mapping of user id to settings dict; empty when the file does not exist

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(
                "Failed to load user settings",
                context={"path": str(self.path)},
                original_error=e,
            )
        if not isinstance(data, dict):
            raise PersistenceError(
                "User settings file must contain a JSON object",
                context={"path": str(self.path), "type": type(data).__name__},
            )
        return {str(user_id): entry for user_id, entry in data.items() if isinstance(entry, dict)}

    def save_all(self, entries: Dict[str, Dict[str, Any]]) -> None:
        """
        Replace the stored mapping.

        Raises:
            PersistenceError: If the file cannot be written
        """
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(
                "Failed to save user settings",
                context={"path": str(self.path)},
                original_error=e,
            )
        self.logger.debug("Saved user settings", path=str(self.path), users=len(entries))
