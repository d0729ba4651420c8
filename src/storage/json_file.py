"""
JSON file storage backend.

Default backend: persists the engine snapshot to a local JSON file,
written atomically through a temp file and rename.
"""

import json
import os
import shutil
import threading
from datetime import datetime
from typing import Any

from monitoring.middleware import timed
from storage.base import (
    StorageBackend,
    StorageError,
    StorageReadError,
    StorageWriteError,
)


class JSONFileStorage(StorageBackend):
    """
    JSON file storage backend.

    Thread-safe operations using a file lock.
    """

    def __init__(self, file_path: str = "wizard_state.json"):
        self.file_path = file_path
        self._lock = threading.Lock()

    def load_state(self) -> dict[str, Any] | None:
        """
        Load the engine snapshot from the JSON file.

        Returns:
            Snapshot dictionary, or None if the file doesn't exist or is empty.

        Raises:
            StorageReadError: If reading fails
        """
        with self._lock:
            try:
                if not os.path.exists(self.file_path):
                    return None

                with open(self.file_path, encoding="utf-8") as f:
                    raw_data = f.read()

                if not raw_data.strip():
                    return None
                return json.loads(raw_data)

            except FileNotFoundError:
                return None
            except PermissionError as e:
                raise StorageReadError(f"Permission denied: {self.file_path}") from e
            except json.JSONDecodeError as e:
                raise StorageReadError(f"Invalid JSON format: {e}") from e
            except OSError as e:
                raise StorageReadError(f"Failed to load state: {e}") from e

    @timed("snapshot_save_ms")
    def save_state(self, state: dict[str, Any]) -> None:
        """
        Save the engine snapshot to the JSON file.

        Raises:
            StorageWriteError: If writing fails
        """
        with self._lock:
            try:
                data = json.dumps(state, indent=2, ensure_ascii=False)

                temp_path = f"{self.file_path}.tmp"
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(data)

                os.replace(temp_path, self.file_path)

            except PermissionError as e:
                raise StorageWriteError(f"Permission denied: {self.file_path}") from e
            except (OSError, TypeError, ValueError) as e:
                raise StorageWriteError(f"Failed to save state: {e}") from e

    def is_available(self) -> bool:
        """True if the file's directory exists and is writable."""
        directory = os.path.dirname(self.file_path) or "."
        if not os.path.exists(directory):
            return False
        return os.access(directory, os.W_OK)

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        info.update({
            "file_path": self.file_path,
            "file_exists": os.path.exists(self.file_path),
        })

        if os.path.exists(self.file_path):
            try:
                stat = os.stat(self.file_path)
                info["file_size_bytes"] = stat.st_size
                info["last_modified"] = stat.st_mtime
            except OSError:
                pass

        return info

    def backup(self, backup_path: str | None = None) -> str:
        """
        Copy the snapshot file aside.

        Returns:
            Path to the backup file

        Raises:
            StorageError: If there is nothing to back up or the copy fails
        """
        if backup_path is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_path = f"{self.file_path}.{timestamp}.backup"

        try:
            with self._lock:
                if not os.path.exists(self.file_path):
                    raise StorageError("No file to backup")
                shutil.copy2(self.file_path, backup_path)
                return backup_path
        except OSError as e:
            raise StorageError(f"Backup failed: {e}") from e
