"""
WizardDAO - Dividend Accumulator Ledger

Tracks the global share total and a cumulative revenue-per-share counter,
and settles each holder's pending payout lazily.

Key Concepts:
- Revenue arrives as a plain balance increase with no bookkeeping
- reconcile_revenue() picks up whatever is untracked and spreads it over
  the shares that exist right now
- settle() banks a holder's share of the counter delta since their last
  settlement; it must run before that holder's shares change
- Rounding dust from integer division is never distributed
- begin() starts an undo journal; only accounts touched afterwards are
  copied, so rollback() costs the same however many holders exist

Invariants:
- total_shares == sum of all holder shares
- revenue_claimed_total <= revenue_distributed_total
- revenue_per_share never decreases
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from decay_curve import PRECISION
from wizard_exceptions import EconomicError

logger = logging.getLogger(__name__)


@dataclass
class GlobalState:
    """Engine-wide accumulator state."""

    total_shares: int = 0
    revenue_per_share: int = 0  # Scaled by PRECISION
    revenue_distributed_total: int = 0
    revenue_claimed_total: int = 0

    @property
    def tracked_balance(self) -> int:
        """Revenue already attributed to shares but not yet claimed."""
        return self.revenue_distributed_total - self.revenue_claimed_total


@dataclass
class HolderAccount:
    """Per-holder share balance and settlement snapshot."""

    shares: int = 0
    last_seen_revenue_per_share: int = 0
    pending_payout: int = 0
    cooldown_until: int = 0


@dataclass
class DividendLedger:
    """
    Owned accumulator ledger.

    One instance per engine, passed explicitly to every settlement and
    reconciliation call.
    """

    state: GlobalState = field(default_factory=GlobalState)
    accounts: dict[str, HolderAccount] = field(default_factory=dict)

    # Prior copies of accounts touched since begin(); None marks a new account
    _undo: dict[str, HolderAccount | None] | None = field(default=None, init=False, repr=False, compare=False)
    _state_before: GlobalState | None = field(default=None, init=False, repr=False, compare=False)

    def account(self, holder: str) -> HolderAccount:
        """Get a holder's account, creating it zero-initialized."""
        if self._undo is not None and holder not in self._undo:
            existing = self.accounts.get(holder)
            self._undo[holder] = replace(existing) if existing is not None else None
        if holder not in self.accounts:
            self.accounts[holder] = HolderAccount()
        return self.accounts[holder]

    def peek_account(self, holder: str) -> HolderAccount:
        """Get a holder's account without creating it."""
        return self.accounts.get(holder, HolderAccount())

    # ==================== JOURNAL ====================

    def begin(self) -> None:
        """Start recording undo information for a transaction."""
        self._undo = {}
        self._state_before = replace(self.state)

    def commit(self) -> None:
        """Keep every change made since begin()."""
        self._undo = None
        self._state_before = None

    def rollback(self) -> None:
        """Put back the global state and every account touched since begin()."""
        if self._undo is None:
            return
        for holder, prior in self._undo.items():
            if prior is None:
                self.accounts.pop(holder, None)
            else:
                self.accounts[holder] = prior
        self.state = self._state_before
        self.commit()

    # ==================== ACCUMULATOR ====================

    def reconcile_revenue(self, current_balance: int) -> int:
        """
        Attribute untracked revenue to the current share pool.

        Revenue that arrives while no shares exist stays in the balance and
        is picked up by the first reconciliation after shares appear.

        Args:
            current_balance: Native balance currently held by the engine

        Returns:
            Amount newly attributed (0 if nothing changed)
        """
        state = self.state
        if state.total_shares == 0:
            return 0

        untracked = current_balance - state.tracked_balance
        if untracked <= 0:
            return 0

        state.revenue_per_share += untracked * PRECISION // state.total_shares
        state.revenue_distributed_total += untracked

        logger.debug(
            "Revenue reconciled",
            extra={"untracked": untracked, "total_shares": state.total_shares},
        )
        return untracked

    # ==================== ACCOUNT REWARDS ====================

    def settle(self, holder: str) -> int:
        """
        Bank a holder's accrued payout and snapshot the accumulator.

        Returns:
            Amount added to pending payout
        """
        account = self.account(holder)
        accrued = 0
        if account.shares > 0:
            delta = self.state.revenue_per_share - account.last_seen_revenue_per_share
            accrued = account.shares * delta // PRECISION
            account.pending_payout += accrued
        account.last_seen_revenue_per_share = self.state.revenue_per_share
        return accrued

    def apply_share_delta(self, holder: str, delta: int) -> int:
        """
        Change a holder's shares and the global total together.

        The caller must settle the holder first.

        Returns:
            Holder's new share balance

        Raises:
            EconomicError: If either balance would drop below zero
        """
        account = self.account(holder)
        if account.shares + delta < 0 or self.state.total_shares + delta < 0:
            raise EconomicError(
                "Share balance would underflow",
                reason="share_underflow",
                action="apply_share_delta",
                details={"holder": holder, "shares": account.shares, "delta": delta},
            )
        account.shares += delta
        self.state.total_shares += delta
        return account.shares

    def take_payout(self, holder: str) -> int:
        """
        Zero a settled holder's pending payout and record it as claimed.

        Raises:
            EconomicError: If there is nothing to claim
        """
        account = self.account(holder)
        amount = account.pending_payout
        if amount <= 0:
            raise EconomicError(
                "Nothing to claim",
                reason="nothing_to_claim",
                action="claim",
                details={"holder": holder},
            )
        account.pending_payout = 0
        self.state.revenue_claimed_total += amount
        return amount

    # ==================== VIEWS ====================

    def preview_payout(self, holder: str, current_balance: int) -> int:
        """
        What a claim would pay right now, without mutating the ledger.
        """
        state = self.state
        account = self.peek_account(holder)
        revenue_per_share = state.revenue_per_share
        if state.total_shares > 0:
            untracked = current_balance - state.tracked_balance
            if untracked > 0:
                revenue_per_share += untracked * PRECISION // state.total_shares

        pending = account.pending_payout
        if account.shares > 0:
            pending += account.shares * (revenue_per_share - account.last_seen_revenue_per_share) // PRECISION
        return pending

    def sum_holder_shares(self) -> int:
        """Sum of all holder share balances."""
        return sum(a.shares for a in self.accounts.values())

    def check_invariants(self, revenue_received_total: int) -> dict[str, bool]:
        """Evaluate the standing ledger invariants."""
        state = self.state
        return {
            "total_shares_matches_holders": state.total_shares == self.sum_holder_shares(),
            "claimed_within_distributed": state.revenue_claimed_total <= state.revenue_distributed_total,
            "distributed_within_received": state.revenue_distributed_total <= revenue_received_total,
        }

    # ==================== SERIALIZATION ====================

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": asdict(self.state),
            "accounts": {holder: asdict(acct) for holder, acct in self.accounts.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DividendLedger":
        """Create from dictionary."""
        return cls(
            state=GlobalState(**data.get("state", {})),
            accounts={
                holder: HolderAccount(**acct)
                for holder, acct in data.get("accounts", {}).items()
            },
        )
