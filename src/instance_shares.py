"""
WizardDAO - Instance Share Attribution

Records which shares back which collectible identities:
- latest_minted: most recent share weight minted for an identity (display only)
- holder_shares: running total a holder has backing outstanding instances
  of an identity; credited on mint, debited when fusion consumes instances

Entries are never deleted, even at zero; they describe historical
attribution rather than current collectible balances. The only exception is
rollback(), which removes entries created inside the failed transaction.
"""

from dataclasses import dataclass, field
from typing import Any

from wizard_config import ItemIdentity


@dataclass
class InstanceShareBook:
    """Share attribution per identity and per (holder, identity)."""

    latest_minted: dict[ItemIdentity, int] = field(default_factory=dict)
    holder_shares: dict[str, dict[ItemIdentity, int]] = field(default_factory=dict)

    # Prior values of entries touched since begin(); None marks a new entry
    _undo_latest: dict[ItemIdentity, int | None] | None = field(default=None, init=False, repr=False, compare=False)
    _undo_holder: dict[tuple[str, ItemIdentity], int | None] | None = field(
        default=None, init=False, repr=False, compare=False
    )
    _new_holders: set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    # ==================== JOURNAL ====================

    def begin(self) -> None:
        """Start recording undo information for a transaction."""
        self._undo_latest = {}
        self._undo_holder = {}
        self._new_holders = set()

    def commit(self) -> None:
        self._undo_latest = None
        self._undo_holder = None
        self._new_holders = set()

    def rollback(self) -> None:
        """Put back every entry touched since begin()."""
        if self._undo_latest is None:
            return
        for identity, prior in self._undo_latest.items():
            if prior is None:
                self.latest_minted.pop(identity, None)
            else:
                self.latest_minted[identity] = prior
        for (holder, identity), prior in self._undo_holder.items():
            per_holder = self.holder_shares.get(holder)
            if per_holder is None:
                continue
            if prior is None:
                per_holder.pop(identity, None)
            else:
                per_holder[identity] = prior
        for holder in self._new_holders:
            self.holder_shares.pop(holder, None)
        self.commit()

    def _remember(self, holder: str, identity: ItemIdentity, latest: bool = False) -> None:
        if self._undo_holder is None:
            return
        if holder not in self.holder_shares:
            self._new_holders.add(holder)
        key = (holder, identity)
        if key not in self._undo_holder:
            self._undo_holder[key] = self.holder_shares.get(holder, {}).get(identity)
        if latest and identity not in self._undo_latest:
            self._undo_latest[identity] = self.latest_minted.get(identity)

    # ==================== ATTRIBUTION ====================

    def record_mint(self, holder: str, identity: ItemIdentity, shares: int) -> int:
        """
        Record a newly minted instance's shares.

        Returns:
            Holder's new tracked total for the identity
        """
        self._remember(holder, identity, latest=True)
        self.latest_minted[identity] = shares
        per_holder = self.holder_shares.setdefault(holder, {})
        per_holder[identity] = per_holder.get(identity, 0) + shares
        return per_holder[identity]

    def tracked(self, holder: str, identity: ItemIdentity) -> int:
        """Shares a holder has attributed to an identity."""
        return self.holder_shares.get(holder, {}).get(identity, 0)

    def consume(self, holder: str, identity: ItemIdentity, shares: int) -> int:
        """
        Debit shares consumed by a fusion submission.

        Returns:
            Holder's remaining tracked total for the identity
        """
        current = self.tracked(holder, identity)
        if shares > current:
            raise ValueError("Cannot consume more shares than tracked")
        self._remember(holder, identity)
        per_holder = self.holder_shares.setdefault(holder, {})
        per_holder[identity] = current - shares
        return per_holder[identity]

    def holdings(self, holder: str) -> dict[str, int]:
        """Tracked shares for a holder keyed by identity key."""
        return {identity.key: amount for identity, amount in self.holder_shares.get(holder, {}).items()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "latest_minted": {identity.key: v for identity, v in self.latest_minted.items()},
            "holder_shares": {holder: self.holdings(holder) for holder in self.holder_shares},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstanceShareBook":
        """Create from dictionary."""
        return cls(
            latest_minted={
                ItemIdentity.from_key(k): int(v) for k, v in data.get("latest_minted", {}).items()
            },
            holder_shares={
                holder: {ItemIdentity.from_key(k): int(v) for k, v in entries.items()}
                for holder, entries in data.get("holder_shares", {}).items()
            },
        )
