"""
Abstract base class for storage backends.

Backends persist WizardEngine.to_dict() snapshots. The HTTP layer saves a
snapshot after every successful mutating call, under the same lock as the
call itself.
"""

from abc import ABC, abstractmethod
from typing import Any


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to storage fails."""
    pass


class StorageBackend(ABC):
    """
    Abstract base class for engine state storage backends.
    """

    @abstractmethod
    def load_state(self) -> dict[str, Any] | None:
        """
        Load the latest engine snapshot.

        Returns:
            Snapshot dictionary, or None if nothing has been saved.

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def save_state(self, state: dict[str, Any]) -> None:
        """
        Replace the stored snapshot.

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the storage backend is available and ready."""
        pass

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type, status, and configuration
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }

    def get_summary(self) -> dict[str, Any]:
        """
        Headline numbers from the stored snapshot.

        Default implementation loads the whole snapshot.
        """
        state = self.load_state()
        if not state:
            return {"has_state": False}
        ledger_state = state.get("ledger", {}).get("state", {})
        return {
            "has_state": True,
            "version": state.get("version"),
            "total_shares": ledger_state.get("total_shares", 0),
            "holders": len(state.get("ledger", {}).get("accounts", {})),
            "pending_requests": len(state.get("requests", {}).get("requests", [])),
            "balance": state.get("balance", 0),
        }

    def close(self) -> None:
        """Release resources (no-op by default)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
