"""
Storage abstraction layer for WizardDAO.

Pluggable persistence for engine snapshots:

- JSON file (default)
- Memory (for testing and simulation)

Usage:
    from storage import get_storage_backend

    storage = get_storage_backend()
    storage.save_state(engine.to_dict())
    data = storage.load_state()
"""

import os

from storage.base import StorageBackend, StorageError, StorageReadError, StorageWriteError
from storage.json_file import JSONFileStorage
from storage.memory import MemoryStorage

__all__ = [
    "JSONFileStorage",
    "MemoryStorage",
    "StorageBackend",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_storage_backend",
]


def get_storage_backend() -> StorageBackend:
    """
    Get the configured storage backend based on environment variables.

    Environment variables:
        STORAGE_BACKEND: Backend type ("json", "memory")
        WIZARD_STATE_FILE: Path for JSON file storage (default: wizard_state.json)

    Returns:
        Configured StorageBackend instance
    """
    backend_type = os.getenv("STORAGE_BACKEND", "json").lower()

    if backend_type == "json":
        return JSONFileStorage(os.getenv("WIZARD_STATE_FILE", "wizard_state.json"))

    elif backend_type == "memory":
        return MemoryStorage()

    else:
        raise StorageError(f"Unknown storage backend: {backend_type}")
