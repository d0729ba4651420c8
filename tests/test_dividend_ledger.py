"""
Tests for the dividend accumulator (src/dividend_ledger.py)

Tests cover:
- Revenue reconciliation
- Settlement and lazy payout accrual
- Share deltas and underflow protection
- Payout and invariants
"""

import pytest

from decay_curve import PRECISION
from dividend_ledger import DividendLedger, GlobalState, HolderAccount
from wizard_exceptions import EconomicError


@pytest.fixture
def ledger():
    return DividendLedger()


def give_shares(ledger, holder, amount):
    ledger.settle(holder)
    ledger.apply_share_delta(holder, amount)


# ============================================================
# Reconciliation Tests
# ============================================================

class TestReconcileRevenue:
    """Tests for reconcile_revenue."""

    def test_noop_without_shares(self, ledger):
        assert ledger.reconcile_revenue(5 * PRECISION) == 0
        assert ledger.state.revenue_per_share == 0
        assert ledger.state.revenue_distributed_total == 0

    def test_attributes_untracked_balance(self, ledger):
        give_shares(ledger, "alice", 100 * PRECISION)

        attributed = ledger.reconcile_revenue(10 * PRECISION)

        assert attributed == 10 * PRECISION
        assert ledger.state.revenue_per_share == 10 * PRECISION * PRECISION // (100 * PRECISION)
        assert ledger.state.revenue_distributed_total == 10 * PRECISION

    def test_second_call_is_noop(self, ledger):
        give_shares(ledger, "alice", 100 * PRECISION)
        ledger.reconcile_revenue(10 * PRECISION)

        assert ledger.reconcile_revenue(10 * PRECISION) == 0

    def test_balance_below_tracked_is_noop(self, ledger):
        give_shares(ledger, "alice", 100 * PRECISION)
        ledger.reconcile_revenue(10 * PRECISION)
        rps = ledger.state.revenue_per_share

        assert ledger.reconcile_revenue(3 * PRECISION) == 0
        assert ledger.state.revenue_per_share == rps

    def test_revenue_before_shares_goes_to_first_pool(self, ledger):
        """Balance accrued while no shares existed is attributed later."""
        assert ledger.reconcile_revenue(7 * PRECISION) == 0
        give_shares(ledger, "alice", 50 * PRECISION)

        assert ledger.reconcile_revenue(7 * PRECISION) == 7 * PRECISION
        ledger.settle("alice")
        assert ledger.account("alice").pending_payout == 7 * PRECISION


# ============================================================
# Settlement Tests
# ============================================================

class TestSettle:
    """Tests for settle and share deltas."""

    def test_settle_without_shares_only_snapshots(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        ledger.reconcile_revenue(PRECISION)

        assert ledger.settle("bob") == 0
        assert ledger.account("bob").last_seen_revenue_per_share == ledger.state.revenue_per_share

    def test_proportional_accrual(self, ledger):
        give_shares(ledger, "alice", 30 * PRECISION)
        give_shares(ledger, "bob", 10 * PRECISION)
        ledger.reconcile_revenue(4 * PRECISION)

        assert ledger.settle("alice") == 3 * PRECISION
        assert ledger.settle("bob") == PRECISION

    def test_settle_is_idempotent(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        ledger.reconcile_revenue(PRECISION)
        ledger.settle("alice")

        assert ledger.settle("alice") == 0
        assert ledger.account("alice").pending_payout == PRECISION

    def test_new_holder_gets_no_past_revenue(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        ledger.reconcile_revenue(PRECISION)
        give_shares(ledger, "bob", 10 * PRECISION)

        assert ledger.settle("bob") == 0

    def test_rounding_dust_not_distributed(self, ledger):
        give_shares(ledger, "alice", 3)
        ledger.reconcile_revenue(10)

        accrued = ledger.settle("alice")
        assert accrued <= 10

    def test_underflow_rejected(self, ledger):
        give_shares(ledger, "alice", 5)

        with pytest.raises(EconomicError) as exc_info:
            ledger.apply_share_delta("alice", -6)

        assert exc_info.value.reason == "share_underflow"
        assert ledger.account("alice").shares == 5
        assert ledger.state.total_shares == 5


# ============================================================
# Payout Tests
# ============================================================

class TestPayout:
    """Tests for take_payout and preview_payout."""

    def test_take_payout(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        ledger.reconcile_revenue(2 * PRECISION)
        ledger.settle("alice")

        assert ledger.take_payout("alice") == 2 * PRECISION
        assert ledger.account("alice").pending_payout == 0
        assert ledger.state.revenue_claimed_total == 2 * PRECISION

    def test_nothing_to_claim(self, ledger):
        with pytest.raises(EconomicError) as exc_info:
            ledger.take_payout("alice")
        assert exc_info.value.reason == "nothing_to_claim"

    def test_preview_does_not_mutate(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)

        assert ledger.preview_payout("alice", 2 * PRECISION) == 2 * PRECISION
        assert ledger.state.revenue_per_share == 0
        assert ledger.account("alice").pending_payout == 0

    def test_preview_unknown_holder(self, ledger):
        assert ledger.preview_payout("nobody", PRECISION) == 0
        assert "nobody" not in ledger.accounts


# ============================================================
# Invariant & Serialization Tests
# ============================================================

class TestLedgerInvariants:
    """Tests for check_invariants and round trips."""

    def test_invariants_hold(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        give_shares(ledger, "bob", 5 * PRECISION)
        ledger.reconcile_revenue(3 * PRECISION)

        assert all(ledger.check_invariants(revenue_received_total=3 * PRECISION).values())

    def test_distributed_above_received_detected(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        ledger.reconcile_revenue(3 * PRECISION)

        results = ledger.check_invariants(revenue_received_total=PRECISION)
        assert results["distributed_within_received"] is False

    def test_from_dict_restores_accounts(self, ledger):
        give_shares(ledger, "alice", 10 * PRECISION)
        ledger.reconcile_revenue(PRECISION)
        ledger.settle("alice")

        restored = DividendLedger.from_dict(ledger.to_dict())

        assert restored.state == ledger.state
        assert restored.account("alice") == ledger.account("alice")

    def test_peek_account_default(self, ledger):
        assert ledger.peek_account("ghost") == HolderAccount()


# ============================================================
# Journal Tests
# ============================================================

class TestJournal:
    """Tests for begin / rollback / commit."""

    def test_rollback_restores_touched_accounts(self, ledger):
        give_shares(ledger, "alice", 100)
        untouched = ledger.account("bob")

        ledger.begin()
        ledger.reconcile_revenue(1000)
        ledger.settle("alice")
        ledger.take_payout("alice")
        give_shares(ledger, "carol", 50)
        ledger.rollback()

        assert ledger.state == GlobalState(total_shares=100)
        assert ledger.account("alice").pending_payout == 0
        assert ledger.account("alice").last_seen_revenue_per_share == 0
        assert "carol" not in ledger.accounts
        assert ledger.accounts["bob"] is untouched

    def test_commit_keeps_changes(self, ledger):
        ledger.begin()
        give_shares(ledger, "alice", 100)
        ledger.commit()
        ledger.rollback()

        assert ledger.account("alice").shares == 100
        assert ledger.state.total_shares == 100

    def test_rollback_without_begin_is_noop(self, ledger):
        give_shares(ledger, "alice", 100)
        ledger.rollback()
        assert ledger.state.total_shares == 100
