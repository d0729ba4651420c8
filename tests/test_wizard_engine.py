"""
Tests for the WizardDAO engine (src/wizard_engine.py)

Tests cover:
- Mint submission and fulfillment
- Fusion submission and resolution
- Revenue attribution, fairness and claims
- Exactly-once fulfillment and stranded requests
- Reentrancy and rollback on failure
- Admin surface
- Snapshot round trips
"""

import pytest
from conftest import (
    COMMON_ROLL,
    FINE_ROLL,
    FUSION_FAIL_ROLL,
    MYTHIC_ROLL,
    mint_and_fulfill,
)

from collaborators import InMemoryAssetSource, StaticPriceFeed, StaticReservesOracle
from decay_curve import PRECISION, decay_factor
from dividend_ledger import HolderAccount
from wizard_config import ItemIdentity, Tier
from wizard_engine import WizardEngine
from wizard_exceptions import (
    CollaboratorNotConfiguredError,
    CooldownActiveError,
    EconomicError,
    InsufficientInstancesError,
    LiquidityError,
    MaxTierFusionError,
    OracleError,
    ParameterError,
    ProtocolError,
    ReentrancyError,
    TransferError,
    UnauthorizedError,
    UnknownRequestError,
)

COMMON = ItemIdentity(category=0, tier=Tier.COMMON)
FINE = ItemIdentity(category=0, tier=Tier.FINE)


def assert_invariants(engine):
    results = engine.check_invariants()
    assert all(results.values()), results


def three_commons(engine, clock, holder="alice"):
    """Mint three Common instances for a holder; returns tracked shares."""
    for _ in range(3):
        mint_and_fulfill(engine, holder, COMMON_ROLL, clock=clock)
    return engine.instance_shares.tracked(holder, COMMON)


# ============================================================
# Mint Tests
# ============================================================

class TestMint:
    """Tests for submit_mint and mint fulfillment."""

    def test_submit_burns_asset_and_registers_request(self, engine, asset_source):
        before = asset_source.balance_of("alice")

        result = engine.submit_mint("alice", 0)

        assert result["status"] == "submitted"
        assert result["request_id"] in engine.requests
        assert asset_source.balance_of("alice") == before - result["burn_amount"]
        assert engine.stats["asset_burned_total"] == result["burn_amount"]

    def test_common_roll_with_empty_pool(self, engine):
        """100-share category, Common roll, no shares yet -> 70 shares."""
        result = mint_and_fulfill(engine, "alice", COMMON_ROLL)

        assert result["tier"] == Tier.COMMON
        assert result["shares"] == 70 * PRECISION
        assert engine.ledger.account("alice").shares == 70 * PRECISION
        assert engine.ledger.state.total_shares == 70 * PRECISION
        assert engine.collectibles.balance_of("alice", COMMON) == 1
        assert engine.instance_shares.latest_minted[COMMON] == 70 * PRECISION
        assert_invariants(engine)

    def test_tier_multipliers(self, engine, clock):
        fine = mint_and_fulfill(engine, "alice", FINE_ROLL, clock=clock)
        assert fine["tier"] == Tier.FINE

        mythic = mint_and_fulfill(engine, "bob", MYTHIC_ROLL)
        decay = decay_factor(fine["shares"])
        assert mythic["tier"] == Tier.MYTHIC
        assert mythic["shares"] == 100 * PRECISION * 100000 * decay // (10000 * PRECISION)

    def test_decay_reduces_later_mints(self, engine):
        first = mint_and_fulfill(engine, "alice", COMMON_ROLL)
        second = mint_and_fulfill(engine, "bob", COMMON_ROLL)

        assert second["shares"] < first["shares"]
        assert second["decay"] == decay_factor(70 * PRECISION)

    def test_out_of_order_fulfillment(self, engine, randomness):
        alice = engine.submit_mint("alice", 0)
        bob = engine.submit_mint("bob", 0)

        randomness.deliver(bob["request_id"], COMMON_ROLL)
        randomness.deliver(alice["request_id"], COMMON_ROLL)

        assert engine.ledger.account("bob").shares == 70 * PRECISION
        assert engine.ledger.account("alice").shares < 70 * PRECISION
        assert len(engine.requests) == 0
        assert_invariants(engine)

    def test_unknown_category_rejected(self, engine):
        with pytest.raises(ParameterError):
            engine.submit_mint("alice", 99)
        assert len(engine.requests) == 0

    def test_insufficient_asset_rolls_back(self, engine):
        with pytest.raises(EconomicError) as exc_info:
            engine.submit_mint("dave", 0)

        assert exc_info.value.reason == "insufficient_asset_balance"
        assert len(engine.requests) == 0
        assert engine.stats["asset_burned_total"] == 0

    def test_stale_price_rejected(self, engine, clock, asset_source):
        clock.advance(3601)
        before = asset_source.balance_of("alice")

        with pytest.raises(OracleError):
            engine.submit_mint("alice", 0)
        assert asset_source.balance_of("alice") == before

    def test_thin_liquidity_rejected(self, engine, reserves_oracle):
        reserves_oracle.set_reserves(10, 10)

        with pytest.raises(LiquidityError):
            engine.submit_mint("alice", 0)

    def test_missing_collaborators(self, clock):
        engine = WizardEngine(clock=clock)

        with pytest.raises(CollaboratorNotConfiguredError):
            engine.submit_mint("alice", 0)

    def test_mint_price_follows_nav(self, engine, clock):
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)
        engine.receive_revenue(10 * PRECISION)

        quote = engine.get_mint_cost(0)

        # 10 native over 70 shares at $600
        nav = 10 * PRECISION * 600 * PRECISION // (70 * PRECISION)
        assert quote["nav_per_share_usd"] == nav
        assert quote["cost_usd"] == nav * 100 * PRECISION // PRECISION

    def test_cooldown_blocks_second_mint(self, engine, clock):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)

        with pytest.raises(CooldownActiveError) as exc_info:
            engine.submit_mint("alice", 0)
        assert exc_info.value.context.details["remaining_seconds"] == engine.config.cooldown_seconds

        clock.advance(engine.config.cooldown_seconds)
        engine.submit_mint("alice", 0)

    def test_multiple_pending_mints_before_fulfillment(self, engine):
        """The cooldown only starts at resolution."""
        first = engine.submit_mint("alice", 0)
        second = engine.submit_mint("alice", 1)

        assert first["request_id"] != second["request_id"]
        assert len(engine.get_holder_info("alice")["pending_requests"]) == 2


# ============================================================
# Fusion Tests
# ============================================================

class TestFusion:
    """Tests for submit_fusion and fusion resolution."""

    def test_submission_consumes_instances_and_shares(self, engine, clock):
        tracked = three_commons(engine, clock)
        consumed = 3 * (tracked // 3)

        result = engine.submit_fusion("alice", 0, int(Tier.COMMON))

        assert result["consumed_shares"] == consumed
        assert engine.collectibles.balance_of("alice", COMMON) == 0
        assert engine.instance_shares.tracked("alice", COMMON) == tracked - consumed
        # Holder shares do not move until resolution
        assert engine.ledger.account("alice").shares == tracked

    def test_success(self, engine, clock, randomness):
        tracked = three_commons(engine, clock)
        submitted = engine.submit_fusion("alice", 0, int(Tier.COMMON))
        consumed = submitted["consumed_shares"]

        result = randomness.deliver(submitted["request_id"], COMMON_ROLL)

        new_shares = consumed * 15000 // 10000
        assert result["success"] is True
        assert result["new_shares"] == new_shares
        assert result["share_delta"] == new_shares - consumed
        assert engine.ledger.account("alice").shares == tracked + new_shares - consumed
        assert engine.collectibles.balance_of("alice", FINE) == 1
        assert engine.instance_shares.tracked("alice", FINE) == new_shares
        assert engine.stats["fusions_succeeded"] == 1
        assert_invariants(engine)

    def test_failure(self, engine, clock, randomness):
        tracked = three_commons(engine, clock)
        submitted = engine.submit_fusion("alice", 0, int(Tier.COMMON))
        consumed = submitted["consumed_shares"]

        result = randomness.deliver(submitted["request_id"], FUSION_FAIL_ROLL)

        returned = consumed * 4000 // 10000
        assert result["success"] is False
        assert result["returned_shares"] == returned
        assert result["lost_shares"] == consumed - returned
        assert engine.ledger.account("alice").shares == tracked - (consumed - returned)
        assert engine.collectibles.balance_of("alice", FINE) == 0
        assert engine.stats["fusions_failed"] == 1
        assert_invariants(engine)

    def test_top_tier_rejected(self, engine):
        with pytest.raises(MaxTierFusionError):
            engine.submit_fusion("alice", 0, int(Tier.MYTHIC))

    def test_unknown_tier_rejected(self, engine):
        with pytest.raises(ParameterError):
            engine.submit_fusion("alice", 0, 9)

    def test_needs_three_instances(self, engine, clock):
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)

        with pytest.raises(InsufficientInstancesError):
            engine.submit_fusion("alice", 0, int(Tier.COMMON))
        assert engine.collectibles.balance_of("alice", COMMON) == 2

    def test_untracked_instances_rejected(self, engine):
        """Instances with no attributed shares cannot be fused."""
        engine.collectibles.mint("alice", COMMON, 3)

        with pytest.raises(EconomicError) as exc_info:
            engine.submit_fusion("alice", 0, int(Tier.COMMON))
        assert exc_info.value.reason == "no_tracked_shares"
        assert engine.collectibles.balance_of("alice", COMMON) == 3


# ============================================================
# Revenue & Claim Tests
# ============================================================

class TestRevenueAndClaims:
    """Tests for receive_revenue and claim."""

    def test_receive_revenue(self, engine):
        result = engine.receive_revenue(5 * PRECISION, source="trading_fees")

        assert result["balance"] == 5 * PRECISION
        assert engine.revenue_received_total == 5 * PRECISION
        assert engine.get_audit_trail(event_type="RevenueReceived")[0]["data"]["source"] == "trading_fees"

    def test_zero_revenue_ignored(self, engine):
        assert engine.receive_revenue(0)["status"] == "ignored"
        assert engine.events == []

    @pytest.mark.parametrize("amount", [-1, True, 1.5])
    def test_invalid_revenue_rejected(self, engine, amount):
        with pytest.raises(ParameterError):
            engine.receive_revenue(amount)

    def test_revenue_before_any_shares_goes_to_first_pool(self, engine, clock, payout):
        engine.receive_revenue(5 * PRECISION)
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)

        result = engine.claim("alice")

        assert 0 <= 5 * PRECISION - result["amount"] < 100
        assert payout.total_sent_to("alice") == result["amount"]
        assert_invariants(engine)

    def test_fairness_new_holder_gets_no_prior_revenue(self, engine, clock):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)
        engine.receive_revenue(10 * PRECISION)

        mint_and_fulfill(engine, "bob", COMMON_ROLL)

        assert engine.pending_reward("bob") == 0
        assert 0 <= 10 * PRECISION - engine.pending_reward("alice") < 100

    def test_revenue_during_pending_mint_goes_to_existing_shares(self, engine, randomness):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)
        submitted = engine.submit_mint("bob", 0)
        engine.receive_revenue(10 * PRECISION)

        randomness.deliver(submitted["request_id"], COMMON_ROLL)

        assert engine.ledger.account("bob").shares > 0
        assert engine.pending_reward("bob") == 0
        assert 0 <= 10 * PRECISION - engine.pending_reward("alice") < 100
        assert_invariants(engine)

    def test_revenue_per_share_never_decreases(self, engine, clock, randomness):
        observed = []

        def record():
            observed.append(engine.ledger.state.revenue_per_share)

        three_commons(engine, clock)
        mint_and_fulfill(engine, "bob", COMMON_ROLL, clock=clock)
        record()
        engine.receive_revenue(5 * PRECISION)
        submitted = engine.submit_fusion("alice", 0, int(Tier.COMMON))
        record()
        result = randomness.deliver(submitted["request_id"], FUSION_FAIL_ROLL)
        assert result["success"] is False
        record()
        engine.receive_revenue(2 * PRECISION)
        engine.claim("bob")
        record()
        engine.emergency_withdraw("owner")
        record()
        engine.receive_revenue(PRECISION)
        mint_and_fulfill(engine, "carol", COMMON_ROLL, clock=clock)
        record()
        clock.advance(engine.config.cooldown_seconds)
        engine.receive_revenue(20 * PRECISION)
        engine.claim("carol")
        record()

        assert observed == sorted(observed)
        assert observed[-1] > observed[0]
        assert_invariants(engine)

    def test_proportional_split(self, engine, clock):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)
        mint_and_fulfill(engine, "bob", COMMON_ROLL)
        engine.receive_revenue(PRECISION)

        alice_shares = engine.ledger.account("alice").shares
        bob_shares = engine.ledger.account("bob").shares
        total = alice_shares + bob_shares
        assert engine.pending_reward("alice") == alice_shares * (PRECISION * PRECISION // total) // PRECISION
        assert engine.pending_reward("bob") == bob_shares * (PRECISION * PRECISION // total) // PRECISION

    def test_claim_during_cooldown_rejected(self, engine):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)
        engine.receive_revenue(PRECISION)

        with pytest.raises(CooldownActiveError):
            engine.claim("alice")

    def test_nothing_to_claim(self, engine):
        with pytest.raises(EconomicError) as exc_info:
            engine.claim("alice")
        assert exc_info.value.reason == "nothing_to_claim"

    def test_claim_pays_and_debits(self, engine, clock, payout):
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)
        engine.receive_revenue(PRECISION)

        result = engine.claim("alice")

        assert result["amount"] == payout.total_sent_to("alice")
        assert engine.balance == PRECISION - result["amount"]
        assert engine.ledger.state.revenue_claimed_total == result["amount"]
        assert engine.pending_reward("alice") == 0
        assert_invariants(engine)

    def test_failed_payout_rolls_back(self, engine, clock, payout):
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)
        engine.receive_revenue(PRECISION)
        expected = engine.pending_reward("alice")
        payout.fail_sends = True

        with pytest.raises(TransferError):
            engine.claim("alice")

        assert engine.balance == PRECISION
        assert engine.ledger.state.revenue_claimed_total == 0
        assert engine.pending_reward("alice") == expected
        assert engine.get_audit_trail(event_type="RewardClaimed") == []

    def test_reentrant_claim_rejected(self, engine, clock, payout):
        mint_and_fulfill(engine, "alice", COMMON_ROLL, clock=clock)
        engine.receive_revenue(PRECISION)
        payout.on_send = lambda recipient, amount: engine.claim(recipient)

        with pytest.raises(ReentrancyError):
            engine.claim("alice")

        assert engine.balance == PRECISION
        assert payout.payouts == []
        assert engine.ledger.state.revenue_claimed_total == 0

        payout.on_send = None
        assert engine.claim("alice")["amount"] > 0


# ============================================================
# Fulfillment Protocol Tests
# ============================================================

class TestFulfillmentProtocol:
    """Tests for exactly-once fulfillment and stranded requests."""

    def test_second_fulfill_rejected_without_effect(self, engine):
        result = mint_and_fulfill(engine, "alice", COMMON_ROLL)
        snapshot = engine.to_dict()

        with pytest.raises(UnknownRequestError):
            engine.fulfill(result["request_id"], MYTHIC_ROLL)

        assert engine.to_dict() == snapshot

    def test_unknown_handle(self, engine):
        with pytest.raises(UnknownRequestError):
            engine.fulfill("vrf-404", 1)

    @pytest.mark.parametrize("value", [-1, "12", None, False])
    def test_invalid_random_value(self, engine, value):
        submitted = engine.submit_mint("alice", 0)

        with pytest.raises(ProtocolError):
            engine.fulfill(submitted["request_id"], value)
        assert submitted["request_id"] in engine.requests

    def test_stranded_request_visible_and_engine_usable(self, engine, clock, asset_source, price_feed):
        stranded = engine.submit_mint("alice", 0)
        clock.advance(3600)
        price_feed.set_price(price_feed.price, clock.now)

        listed = engine.get_stranded_requests(max_age=3600)
        assert [r["request_id"] for r in listed] == [stranded["request_id"]]
        assert listed[0]["age_seconds"] == 3600
        assert asset_source.balance_of("alice") < asset_source.balance_of("bob")

        # Everyone else carries on
        mint_and_fulfill(engine, "bob", COMMON_ROLL)
        assert engine.ledger.account("bob").shares > 0
        assert stranded["request_id"] in engine.requests

    def test_failed_delivery_leaves_request_pending(self, engine, randomness):
        """A rejected fulfillment rolls back; the handle is not re-delivered."""
        submitted = engine.submit_mint("alice", 0)
        engine.config.categories[0].base_shares = 1  # resolves to zero shares

        with pytest.raises(EconomicError):
            randomness.deliver(submitted["request_id"], COMMON_ROLL)

        assert submitted["request_id"] in engine.requests
        assert submitted["request_id"] in randomness.failures
        assert submitted["request_id"] not in randomness.pending


# ============================================================
# Transaction Tests
# ============================================================

class TestTransactions:
    """Rollback restores exactly the entries an entry point touched."""

    @pytest.fixture
    def crowded(self, engine):
        for i in range(10_000):
            engine.ledger.accounts[f"holder-{i}"] = HolderAccount()
        return engine

    def test_untouched_accounts_are_left_alone(self, crowded, clock):
        mint_and_fulfill(crowded, "alice", COMMON_ROLL, clock=clock)
        bystander = crowded.ledger.accounts["holder-42"]
        alice = crowded.ledger.accounts["alice"]

        crowded.receive_revenue(PRECISION)

        assert crowded.ledger.accounts["holder-42"] is bystander
        assert crowded.ledger.accounts["alice"] is alice

    def test_rejected_claim_restores_state(self, crowded, clock):
        mint_and_fulfill(crowded, "alice", COMMON_ROLL, clock=clock)
        crowded.receive_revenue(PRECISION)
        bystander = crowded.ledger.accounts["holder-42"]
        snapshot = crowded.to_dict()

        with pytest.raises(EconomicError):
            crowded.claim("holder-7")

        assert crowded.to_dict() == snapshot
        assert crowded.ledger.state.revenue_per_share == 0
        assert crowded.ledger.accounts["holder-42"] is bystander

    def test_rejected_claim_drops_new_account(self, crowded):
        with pytest.raises(EconomicError):
            crowded.claim("zed")

        assert "zed" not in crowded.ledger.accounts

    def test_failed_first_mint_fulfillment_restores_state(self, crowded, monkeypatch):
        submitted = crowded.submit_mint("carol", 0)
        crowded.receive_revenue(PRECISION)
        snapshot = crowded.to_dict()

        def broken_mint(holder, identity, amount):
            raise RuntimeError("collectible ledger offline")

        monkeypatch.setattr(crowded.collectibles, "mint", broken_mint)
        with pytest.raises(RuntimeError):
            crowded.fulfill(submitted["request_id"], COMMON_ROLL)

        assert crowded.to_dict() == snapshot
        assert "carol" not in crowded.instance_shares.holder_shares
        assert crowded.instance_shares.latest_minted == {}
        assert submitted["request_id"] in crowded.requests
        assert crowded.requests.total_fulfilled == 0

    def test_failed_fusion_fulfillment_restores_state(self, crowded, clock, monkeypatch):
        three_commons(crowded, clock)
        submitted = crowded.submit_fusion("alice", 0, int(Tier.COMMON))
        crowded.receive_revenue(PRECISION)
        snapshot = crowded.to_dict()

        def broken_mint(holder, identity, amount):
            raise RuntimeError("collectible ledger offline")

        monkeypatch.setattr(crowded.collectibles, "mint", broken_mint)
        with pytest.raises(RuntimeError):
            crowded.fulfill(submitted["request_id"], COMMON_ROLL)

        assert crowded.to_dict() == snapshot
        assert FINE not in crowded.instance_shares.latest_minted
        assert crowded.instance_shares.tracked("alice", FINE) == 0
        assert submitted["request_id"] in crowded.requests
        assert_invariants(crowded)


# ============================================================
# Admin Tests
# ============================================================

class TestAdmin:
    """Tests for the owner-only admin surface."""

    def test_non_owner_rejected(self, engine):
        with pytest.raises(UnauthorizedError):
            engine.set_cooldown_period("mallory", 120)
        assert engine.config.cooldown_seconds == 60

    def test_update_emits_event(self, engine):
        engine.set_cooldown_period("owner", 120)

        event = engine.get_audit_trail(event_type="ParameterUpdated")[0]
        assert engine.config.cooldown_seconds == 120
        assert event["data"]["old_value"] == 60
        assert event["data"]["new_value"] == 120

    @pytest.mark.parametrize("setter,value", [
        ("set_cooldown_period", 5),
        ("set_fusion_multiplier", 35000),
        ("set_fail_return_rate", 9000),
        ("set_tier_probabilities", [5000, 8000, 9300, 9800, 9960, 9000]),
        ("set_tier_multipliers", [7000, 10000, 15000]),
        ("set_fusion_success_rates", [8500, 6500, 4500, 2500, 20000]),
    ])
    def test_out_of_bounds_rejected(self, engine, setter, value):
        before = engine.config.to_dict()

        with pytest.raises(ParameterError):
            getattr(engine, setter)("owner", value)

        assert engine.config.to_dict() == before
        assert engine.events == []

    def test_set_category(self, engine):
        engine.set_category("owner", 5, 20 * PRECISION, 250 * PRECISION)
        assert engine.config.category(5).base_shares == 250 * PRECISION

        with pytest.raises(ParameterError):
            engine.set_category("owner", 6, 0, PRECISION)

    def test_tables_applied_to_resolution(self, engine):
        engine.set_tier_probabilities("owner", [0, 0, 0, 0, 0, 10000])

        result = mint_and_fulfill(engine, "alice", COMMON_ROLL)
        assert result["tier"] == Tier.MYTHIC

    def test_set_collaborators(self, clock):
        engine = WizardEngine(clock=clock, price_feed=StaticPriceFeed(600 * 10**8, clock.now))
        engine.set_asset_source("owner", InMemoryAssetSource({"alice": 10**30}))
        engine.set_reserves_oracle("owner", StaticReservesOracle(10**25, 10**21))

        assert engine.submit_mint("alice", 0)["status"] == "submitted"

    def test_emergency_withdraw(self, engine, payout):
        engine.receive_revenue(3 * PRECISION)

        result = engine.emergency_withdraw("owner")

        assert result["amount"] == 3 * PRECISION
        assert payout.total_sent_to("owner") == 3 * PRECISION
        assert engine.balance == 0

    def test_emergency_withdraw_empty(self, engine):
        with pytest.raises(EconomicError):
            engine.emergency_withdraw("owner")

    def test_emergency_withdraw_non_owner(self, engine):
        engine.receive_revenue(PRECISION)

        with pytest.raises(UnauthorizedError):
            engine.emergency_withdraw("mallory", "mallory")
        assert engine.balance == PRECISION


# ============================================================
# Views, Metrics & Persistence Tests
# ============================================================

class TestViewsAndPersistence:
    """Tests for read-only views, metrics and snapshots."""

    def test_holder_info(self, engine):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)

        info = engine.get_holder_info("alice")

        assert info["shares"] == 70 * PRECISION
        assert info["instances"] == {"0:0": 1}
        assert info["instance_shares"] == {"0:0": 70 * PRECISION}
        assert info["cooldown_remaining"] == engine.config.cooldown_seconds
        assert info["pending_requests"] == []

    def test_statistics(self, engine):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)
        engine.submit_mint("bob", 0)

        stats = engine.get_statistics()

        assert stats["mints_fulfilled"] == 1
        assert stats["holders"] == 1
        assert stats["pending_requests"]["mint"] == 1
        assert stats["requests_submitted"] == 2
        assert stats["decay_factor"] == decay_factor(70 * PRECISION)

    def test_audit_trail_newest_first(self, engine):
        mint_and_fulfill(engine, "alice", COMMON_ROLL)

        trail = engine.get_audit_trail()
        assert [e["event_type"] for e in trail] == ["MintFulfilled", "MintRequested"]

    def test_rejections_counted(self, engine):
        with pytest.raises(EconomicError):
            engine.claim("alice")

        assert engine.metrics.get_counter(
            "rejections_total", labels={"entry_point": "claim", "category": "economic"}
        ) == 1

    def test_round_trip(self, engine, clock, randomness):
        three_commons(engine, clock)
        engine.receive_revenue(2 * PRECISION)
        engine.submit_fusion("alice", 0, int(Tier.COMMON))

        restored = WizardEngine.from_dict(engine.to_dict(), clock=clock, collectibles=engine.collectibles)

        assert restored.to_dict() == engine.to_dict()
        assert restored.get_statistics() == engine.get_statistics()
        assert_invariants(restored)

    def test_mixed_session_keeps_invariants(self, engine, clock, randomness):
        for holder in ("alice", "bob", "carol"):
            mint_and_fulfill(engine, holder, COMMON_ROLL)
        engine.receive_revenue(7 * PRECISION)
        clock.advance(engine.config.cooldown_seconds)
        engine.price_feed.set_price(engine.price_feed.price, clock.now)

        engine.claim("bob")
        mint_and_fulfill(engine, "carol", FINE_ROLL)
        engine.receive_revenue(3 * PRECISION)
        engine.claim("alice")

        assert_invariants(engine)
        assert engine.ledger.state.revenue_claimed_total <= engine.ledger.state.revenue_distributed_total
        assert engine.ledger.state.revenue_distributed_total <= engine.revenue_received_total
