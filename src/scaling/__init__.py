"""
Concurrency infrastructure for WizardDAO.

- Named locks serializing engine calls with their snapshot persistence
- Non-reentrant guard for engine entry points

Usage:
    from scaling import get_lock_manager

    lock_manager = get_lock_manager()
    with lock_manager.lock("wizard-engine"):
        engine.fulfill(request_id, value)
"""

from scaling.locking import LocalLockManager, LockManager, ReentrancyGuard

__all__ = [
    "LockManager",
    "LocalLockManager",
    "ReentrancyGuard",
    "get_lock_manager",
    "reset_lock_manager",
]

ENGINE_LOCK = "wizard-engine"

# Singleton instance
_lock_manager: LockManager | None = None


def get_lock_manager() -> LockManager:
    """Get the process-wide lock manager."""
    global _lock_manager
    if _lock_manager is None:
        _lock_manager = LocalLockManager()
    return _lock_manager


def reset_lock_manager() -> None:
    """Drop the singleton (used by tests)."""
    global _lock_manager
    _lock_manager = None
