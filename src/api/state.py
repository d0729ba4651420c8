"""
Shared state for the WizardDAO API.

Holds the engine, its in-memory collaborators and the storage backend used
across all blueprints. Every engine call goes through execute(), which
serializes it with its snapshot save under the "wizard-engine" lock.

Environment Variables:
    WIZARD_NATIVE_USD_PRICE=60000000000      # Static feed answer (8 decimals)
    WIZARD_PRICE_FEED_URL=https://...        # Use the HTTP feed instead
    WIZARD_RESERVE_ASSET=...                 # Static DEX reserves
    WIZARD_RESERVE_NATIVE=...
"""

import logging
import os
import time
from collections.abc import Callable
from typing import Any

from collaborators import (
    InMemoryAssetSource,
    InMemoryCollectibleLedger,
    InMemoryPayoutGateway,
    PriceFeed,
    QueuedRandomnessProvider,
    StaticPriceFeed,
    StaticReservesOracle,
)
from decay_curve import PRECISION
from http_price_feed import HttpPriceFeed
from scaling import ENGINE_LOCK, get_lock_manager
from storage import StorageBackend, StorageError, get_storage_backend
from wizard_config import EngineConfig
from wizard_engine import WizardEngine

logger = logging.getLogger(__name__)

DEFAULT_NATIVE_USD_PRICE = 600 * 10**8
DEFAULT_RESERVE_ASSET = 10_000_000 * PRECISION
DEFAULT_RESERVE_NATIVE = 1_000 * PRECISION
LOCK_TIMEOUT_SECONDS = 30.0

# ============================================================
# Shared State
# ============================================================

engine: WizardEngine | None = None
storage: StorageBackend | None = None


def _build_price_feed() -> PriceFeed:
    if os.getenv("WIZARD_PRICE_FEED_URL"):
        return HttpPriceFeed()
    price = int(os.getenv("WIZARD_NATIVE_USD_PRICE", DEFAULT_NATIVE_USD_PRICE))
    return StaticPriceFeed(price, updated_at=int(time.time()))


def build_engine(config: EngineConfig | None = None, snapshot: dict[str, Any] | None = None) -> WizardEngine:
    """
    Create an engine wired to in-memory collaborators.

    Collectible and asset balances are restored from the snapshot's
    "collaborators" section when present.
    """
    collaborator_state = (snapshot or {}).get("collaborators", {})
    collaborators = {
        "collectibles": InMemoryCollectibleLedger.from_dict(collaborator_state.get("collectibles", {})),
        "asset_source": InMemoryAssetSource.from_dict(collaborator_state.get("asset_source", {})),
        "reserves_oracle": StaticReservesOracle(
            int(os.getenv("WIZARD_RESERVE_ASSET", DEFAULT_RESERVE_ASSET)),
            int(os.getenv("WIZARD_RESERVE_NATIVE", DEFAULT_RESERVE_NATIVE)),
        ),
        "price_feed": _build_price_feed(),
        "randomness": QueuedRandomnessProvider.from_dict(collaborator_state.get("randomness", {})),
        "payout": InMemoryPayoutGateway(),
    }
    if snapshot:
        return WizardEngine.from_dict(snapshot, **collaborators)
    return WizardEngine(config=config or EngineConfig.from_env(), **collaborators)


def init_state(
    engine_instance: WizardEngine | None = None,
    storage_backend: StorageBackend | None = None,
) -> WizardEngine:
    """
    Initialize the shared engine and storage.

    Loads the latest snapshot from storage unless an engine is supplied.
    """
    global engine, storage
    storage = storage_backend or get_storage_backend()
    if engine_instance is not None:
        engine = engine_instance
        return engine

    snapshot = storage.load_state()
    engine = build_engine(snapshot=snapshot)
    if snapshot:
        logger.info("Engine restored from snapshot", extra={"total_shares": engine.ledger.state.total_shares})
    else:
        logger.info("Starting with a fresh engine")
    return engine


def get_engine() -> WizardEngine:
    if engine is None:
        init_state()
    return engine


def get_storage() -> StorageBackend:
    if storage is None:
        init_state()
    return storage


def snapshot() -> dict[str, Any]:
    """Engine snapshot plus in-memory collaborator balances."""
    current = get_engine()
    data = current.to_dict()
    collaborators = {}
    if isinstance(current.collectibles, InMemoryCollectibleLedger):
        collaborators["collectibles"] = current.collectibles.to_dict()
    if isinstance(current.asset_source, InMemoryAssetSource):
        collaborators["asset_source"] = current.asset_source.to_dict()
    if isinstance(current.randomness, QueuedRandomnessProvider):
        collaborators["randomness"] = current.randomness.to_dict()
    data["collaborators"] = collaborators
    return data


def execute(operation: Callable[[WizardEngine], Any], persist: bool = True) -> Any:
    """
    Run an engine operation exclusively and persist the result.

    The snapshot is saved even when the engine rejects the call: engine
    state is already rolled back, but collaborator state (a consumed
    randomness delivery) may have moved. A failed save after a rejected
    call is logged and the rejection is what the caller sees.

    Args:
        operation: Callable receiving the engine
        persist: Save a snapshot after the call

    Raises:
        TimeoutError: If the engine lock cannot be acquired
        StorageError: If the save fails after a successful call
    """
    with get_lock_manager().lock(ENGINE_LOCK, timeout=LOCK_TIMEOUT_SECONDS):
        try:
            result = operation(get_engine())
        except Exception:
            if persist:
                try:
                    get_storage().save_state(snapshot())
                except StorageError as e:
                    logger.error(
                        "Snapshot save failed after rejected call",
                        extra={"error": str(e), "error_type": type(e).__name__},
                    )
            raise
        if persist:
            get_storage().save_state(snapshot())
        return result
