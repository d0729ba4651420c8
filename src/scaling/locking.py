"""
Locking for WizardDAO.

Two layers of serialization:
- LocalLockManager: named thread locks; the HTTP layer holds the
  "wizard-engine" lock around each engine call and its snapshot save
- ReentrancyGuard: per-engine, non-reentrant guard; every mutating entry
  point runs inside it, so a collaborator calling back into the engine
  mid-call is rejected instead of observing half-applied state

Usage:
    from scaling import get_lock_manager

    lock_manager = get_lock_manager()
    with lock_manager.lock("wizard-engine", timeout=30):
        engine.claim(holder)
        storage.save_state(engine.to_dict())
"""

import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass

from wizard_exceptions import ReentrancyError


@dataclass
class LockInfo:
    """Information about a held lock."""

    name: str
    holder_id: str
    acquired_at: float
    ttl: float | None = None
    expires_at: float | None = None


class LockManager(ABC):
    """
    Abstract base class for lock managers.

    All lock managers must implement acquire/release/lock methods
    for coordinating concurrent operations.
    """

    @abstractmethod
    def acquire(
        self,
        name: str,
        timeout: float = 30.0,
        ttl: float = 60.0,
    ) -> bool:
        """
        Acquire a named lock.

        Args:
            name: Lock identifier
            timeout: Maximum time to wait for lock (seconds)
            ttl: Lock time-to-live (informational for local locks)

        Returns:
            True if lock acquired, False if timeout
        """
        pass

    @abstractmethod
    def release(self, name: str) -> bool:
        """
        Release a named lock.

        Returns:
            True if lock was held and released, False otherwise
        """
        pass

    @abstractmethod
    def is_locked(self, name: str) -> bool:
        """Check if a lock is currently held."""
        pass

    @contextmanager
    def lock(self, name: str, timeout: float = 30.0, ttl: float = 60.0):
        """
        Context manager for acquiring a lock.

        Raises:
            TimeoutError: If lock cannot be acquired within timeout
        """
        if not self.acquire(name, timeout=timeout, ttl=ttl):
            raise TimeoutError(f"Could not acquire lock '{name}' within {timeout}s")
        try:
            yield
        finally:
            self.release(name)

    def get_info(self, name: str) -> LockInfo | None:
        """Get information about a lock (if held)."""
        return None


class LocalLockManager(LockManager):
    """
    Thread-based lock manager for single-instance deployments.

    Uses threading.RLock so a request handler may take the same named lock
    twice on one thread.
    """

    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._lock_info: dict[str, LockInfo] = {}
        self._meta_lock = threading.Lock()
        self._instance_id = str(uuid.uuid4())[:8]

    def _get_lock(self, name: str) -> threading.RLock:
        """Get or create a lock by name."""
        with self._meta_lock:
            if name not in self._locks:
                self._locks[name] = threading.RLock()
            return self._locks[name]

    def acquire(
        self,
        name: str,
        timeout: float = 30.0,
        ttl: float = 60.0,
    ) -> bool:
        """Acquire a named lock."""
        lock = self._get_lock(name)
        acquired = lock.acquire(timeout=timeout)

        if acquired:
            now = time.time()
            self._lock_info[name] = LockInfo(
                name=name,
                holder_id=f"{self._instance_id}:{threading.current_thread().name}",
                acquired_at=now,
                ttl=ttl,
                expires_at=now + ttl if ttl else None,
            )

        return acquired

    def release(self, name: str) -> bool:
        """Release a named lock."""
        lock = self._get_lock(name)
        try:
            lock.release()
            self._lock_info.pop(name, None)
            return True
        except RuntimeError:
            # Lock not held by this thread
            return False

    def is_locked(self, name: str) -> bool:
        """Check if a lock is currently held."""
        return name in self._lock_info

    def get_info(self, name: str) -> LockInfo | None:
        """Get information about a lock."""
        return self._lock_info.get(name)


class ReentrancyGuard:
    """
    Non-reentrant mutual exclusion for engine entry points.

    Other threads block until the running entry point finishes. The thread
    that already holds the guard gets a ReentrancyError instead of a
    deadlock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._owner: int | None = None
        self._active: str | None = None

    @property
    def active_entry_point(self) -> str | None:
        return self._active

    @contextmanager
    def enter(self, entry_point: str):
        """Run one entry point exclusively."""
        if self._owner == threading.get_ident():
            raise ReentrancyError(entry_point, active=self._active)

        self._lock.acquire()
        self._owner = threading.get_ident()
        self._active = entry_point
        try:
            yield
        finally:
            self._owner = None
            self._active = None
            self._lock.release()
