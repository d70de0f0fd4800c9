"""
JSON file persistence shared by the stores.

Each store keeps its whole document in memory and rewrites the file on every
mutation, which is plenty for one person's readings.
"""

import json
import logging
from pathlib import Path
from typing import Any

from bp_tracker.utils.exceptions import StorageError

logger = logging.getLogger(__name__)


class JsonFileStore:
    """Load and save a single JSON document."""

    def __init__(self, path: str | Path, default: Any) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the JSON document.
            default: Document to start from when the file does not exist yet.
        """
        self.path = Path(path)
        self._default = default

    def _load(self) -> Any:
        """
        Read the document from disk.

        Raises:
            StorageError: If the file exists but cannot be parsed.
        """
        if not self.path.exists():
            return json.loads(json.dumps(self._default))

        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e

    def _save(self, document: Any) -> None:
        """
        Write the document to disk.

        Raises:
            StorageError: If the file cannot be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, default=str)
            tmp_path.replace(self.path)
            logger.debug(f"Saved {self.path}")
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e
