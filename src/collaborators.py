"""
WizardDAO - External Collaborator Interfaces

The engine only talks to the outside world through these interfaces:
- CollectibleLedger: non-transferable collectible balances (mint/burn only)
- AssetSource: moves a holder's fungible asset to an irrecoverable sink
- ReservesOracle: DEX pair reserves (asset / native currency)
- PriceFeed: native currency / USD price with update timestamp
- RandomnessProvider: issues request handles, later calls back with a value
- PayoutGateway: sends native currency out of the engine

In-memory implementations are provided for tests, simulation and the
standalone HTTP service. In production these would be backed by on-chain
contracts.
"""

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from wizard_config import ItemIdentity

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

# Chainlink VRF v2.5 (BSC Mainnet), 500 gwei lane
DEFAULT_VRF_KEY_HASH = "0x130dba50ad435d4ecc214aad0d5820474137bd68e7e09a4a1b9a94e676e3b5f8"
DEFAULT_VRF_COORDINATOR = "0xd691f04bc0C9a24Edb78af9E005Cf85768F694C9"


class CollaboratorError(Exception):
    """Base exception for collaborator failures."""
    pass


class InsufficientBalanceError(CollaboratorError):
    """Raised when a holder cannot cover a burn."""
    pass


class NonTransferableError(CollaboratorError):
    """Raised on any holder-to-holder collectible transfer."""
    pass


@dataclass
class VrfRequestConfig:
    """Parameters passed with every randomness request."""

    key_hash: str = DEFAULT_VRF_KEY_HASH
    subscription_id: str = field(default_factory=lambda: os.getenv("VRF_SUBSCRIPTION_ID", "0"))
    request_confirmations: int = 3
    callback_gas_limit: int = 500_000
    num_words: int = 1
    coordinator: str = DEFAULT_VRF_COORDINATOR


# =============================================================================
# Interfaces
# =============================================================================


class CollectibleLedger(ABC):
    """Collectible ownership ledger (mint/burn only, no transfers)."""

    @abstractmethod
    def mint(self, holder: str, identity: ItemIdentity, count: int) -> None:
        pass

    @abstractmethod
    def burn(self, holder: str, identity: ItemIdentity, count: int) -> None:
        pass

    @abstractmethod
    def balance_of(self, holder: str, identity: ItemIdentity) -> int:
        pass

    def transfer(self, sender: str, recipient: str, identity: ItemIdentity, count: int) -> None:
        """Holder-to-holder transfers are always rejected."""
        raise NonTransferableError("Collectibles are non-transferable")


class AssetSource(ABC):
    """Fungible asset that mints are paid in."""

    @abstractmethod
    def transfer_to_sink(self, holder: str, amount: int) -> None:
        """Burn a holder's asset; atomic, raises InsufficientBalanceError."""
        pass


class ReservesOracle(ABC):
    """DEX pair reserve reader."""

    @abstractmethod
    def get_reserves(self) -> tuple[int, int]:
        pass


class PriceFeed(ABC):
    """Native currency / USD price feed."""

    decimals: int = 8

    @abstractmethod
    def latest_price(self) -> tuple[int, int]:
        """Return (price, updated_at)."""
        pass


class RandomnessProvider(ABC):
    """Verifiable randomness source with asynchronous delivery."""

    @abstractmethod
    def request_random(self, config: VrfRequestConfig) -> str:
        """Return an opaque handle; the value arrives later via fulfill()."""
        pass


class PayoutGateway(ABC):
    """Outbound native currency channel."""

    @abstractmethod
    def send(self, recipient: str, amount: int) -> bool:
        pass


# =============================================================================
# In-memory implementations
# =============================================================================


class InMemoryCollectibleLedger(CollectibleLedger):
    """Dictionary-backed collectible balances."""

    def __init__(self):
        self.balances: dict[str, dict[ItemIdentity, int]] = {}
        self.total_minted = 0
        self.total_burned = 0

    def mint(self, holder: str, identity: ItemIdentity, count: int) -> None:
        if count <= 0:
            raise CollaboratorError("Mint count must be positive")
        per_holder = self.balances.setdefault(holder, {})
        per_holder[identity] = per_holder.get(identity, 0) + count
        self.total_minted += count

    def burn(self, holder: str, identity: ItemIdentity, count: int) -> None:
        current = self.balance_of(holder, identity)
        if count <= 0 or count > current:
            raise InsufficientBalanceError(
                f"Cannot burn {count} of {identity.key}, holder owns {current}"
            )
        self.balances[holder][identity] = current - count
        self.total_burned += count

    def balance_of(self, holder: str, identity: ItemIdentity) -> int:
        return self.balances.get(holder, {}).get(identity, 0)

    def transfer(self, sender: str, recipient: str, identity: ItemIdentity, count: int) -> None:
        if sender == ZERO_ADDRESS:
            self.mint(recipient, identity, count)
        elif recipient == ZERO_ADDRESS:
            self.burn(sender, identity, count)
        else:
            super().transfer(sender, recipient, identity, count)

    def holdings(self, holder: str) -> dict[str, int]:
        return {identity.key: n for identity, n in self.balances.get(holder, {}).items() if n}

    def to_dict(self) -> dict[str, Any]:
        return {
            "balances": {holder: self.holdings(holder) for holder in self.balances},
            "total_minted": self.total_minted,
            "total_burned": self.total_burned,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryCollectibleLedger":
        ledger = cls()
        ledger.balances = {
            holder: {ItemIdentity.from_key(k): int(v) for k, v in entries.items()}
            for holder, entries in data.get("balances", {}).items()
        }
        ledger.total_minted = int(data.get("total_minted", 0))
        ledger.total_burned = int(data.get("total_burned", 0))
        return ledger


class InMemoryAssetSource(AssetSource):
    """Fungible asset balances with a burn sink."""

    def __init__(self, balances: dict[str, int] | None = None):
        self.balances: dict[str, int] = dict(balances or {})
        self.burned_total = 0

    def credit(self, holder: str, amount: int) -> None:
        self.balances[holder] = self.balances.get(holder, 0) + amount

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def transfer_to_sink(self, holder: str, amount: int) -> None:
        balance = self.balance_of(holder)
        if amount > balance:
            raise InsufficientBalanceError(
                f"Insufficient asset balance: need {amount}, have {balance}"
            )
        self.balances[holder] = balance - amount
        self.burned_total += amount

    def to_dict(self) -> dict[str, Any]:
        return {"balances": dict(self.balances), "burned_total": self.burned_total}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryAssetSource":
        source = cls({k: int(v) for k, v in data.get("balances", {}).items()})
        source.burned_total = int(data.get("burned_total", 0))
        return source


class StaticReservesOracle(ReservesOracle):
    """Fixed reserves, adjustable in tests."""

    def __init__(self, reserve_a: int, reserve_b: int):
        self.reserve_a = reserve_a
        self.reserve_b = reserve_b

    def set_reserves(self, reserve_a: int, reserve_b: int) -> None:
        self.reserve_a = reserve_a
        self.reserve_b = reserve_b

    def get_reserves(self) -> tuple[int, int]:
        return self.reserve_a, self.reserve_b


class StaticPriceFeed(PriceFeed):
    """Fixed price answer, adjustable in tests."""

    def __init__(self, price: int, updated_at: int, decimals: int = 8):
        self.price = price
        self.updated_at = updated_at
        self.decimals = decimals

    def set_price(self, price: int, updated_at: int) -> None:
        self.price = price
        self.updated_at = updated_at

    def latest_price(self) -> tuple[int, int]:
        return self.price, self.updated_at


class QueuedRandomnessProvider(RandomnessProvider):
    """
    Issues sequential handles and delivers values on demand.

    Delivery happens exactly once per handle, in whatever order the caller
    chooses. A callback failure is recorded and the handle is not
    re-delivered.
    """

    def __init__(self, prefix: str = "vrf"):
        self.prefix = prefix
        self._counter = 0
        self.pending: list[str] = []
        self.delivered: dict[str, int] = {}
        self.failures: dict[str, str] = {}
        self.requests: list[dict[str, Any]] = []
        self._callback: Callable[[str, int], Any] | None = None

    def set_callback(self, callback: Callable[[str, int], Any]) -> None:
        """Register the consumer's fulfill entry point."""
        self._callback = callback

    def request_random(self, config: VrfRequestConfig) -> str:
        self._counter += 1
        handle = f"{self.prefix}-{self._counter}"
        self.pending.append(handle)
        self.requests.append({"handle": handle, "key_hash": config.key_hash, "num_words": config.num_words})
        return handle

    def deliver(self, handle: str, value: int) -> Any:
        """
        Deliver a value for a pending handle.

        Returns:
            The consumer's result; re-raises the consumer's exception after
            recording it as a failed (and final) delivery.
        """
        if handle not in self.pending:
            raise CollaboratorError(f"Handle {handle} is not awaiting delivery")
        if self._callback is None:
            raise CollaboratorError("No fulfillment callback registered")

        self.pending.remove(handle)
        self.delivered[handle] = value
        try:
            return self._callback(handle, value)
        except Exception as e:
            self.failures[handle] = str(e)
            logger.warning("Randomness delivery failed", extra={"handle": handle, "error": str(e)})
            raise

    def to_dict(self) -> dict[str, Any]:
        return {
            "prefix": self.prefix,
            "counter": self._counter,
            "pending": list(self.pending),
            "failures": dict(self.failures),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuedRandomnessProvider":
        provider = cls(prefix=data.get("prefix", "vrf"))
        provider._counter = int(data.get("counter", 0))
        provider.pending = list(data.get("pending", []))
        provider.failures = dict(data.get("failures", {}))
        return provider


class InMemoryPayoutGateway(PayoutGateway):
    """Records payouts; can be told to fail or to run a hook mid-send."""

    def __init__(self):
        self.payouts: list[dict[str, Any]] = []
        self.fail_sends = False
        self.on_send: Callable[[str, int], Any] | None = None

    def send(self, recipient: str, amount: int) -> bool:
        if self.on_send is not None:
            self.on_send(recipient, amount)
        if self.fail_sends:
            return False
        self.payouts.append({"recipient": recipient, "amount": amount})
        return True

    def total_sent_to(self, recipient: str) -> int:
        return sum(p["amount"] for p in self.payouts if p["recipient"] == recipient)
