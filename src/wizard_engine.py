"""
WizardDAO - Engine

Orchestrates the dividend ledger, the randomness-driven mint/fusion state
machine, claims and the owner-only admin surface.

Flow:
1. submit_mint / submit_fusion: reconcile revenue, settle the holder,
   commit the irreversible consumption and register a pending request
2. fulfill: the randomness provider delivers a value for a handle; the
   engine reconciles again, resolves the mint or fusion and mutates shares
3. claim: holders withdraw their accrued revenue at any time

Every entry point runs inside a non-reentrant guard and a journaled
transaction: if it raises, the engine state is exactly what it was before
the call. Outbound payments are always the last step.

Core Properties:
- total_shares equals the sum of holder shares at all times
- revenue_claimed_total <= revenue_distributed_total <= revenue_received_total
- each request handle is fulfilled at most once
- all actions emitted as audit events
"""

import copy
import logging
import time
from collections.abc import Callable
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from collaborators import (
    AssetSource,
    CollectibleLedger,
    InMemoryCollectibleLedger,
    InMemoryPayoutGateway,
    InsufficientBalanceError,
    PayoutGateway,
    PriceFeed,
    QueuedRandomnessProvider,
    RandomnessProvider,
    ReservesOracle,
    VrfRequestConfig,
)
from cooldown import CooldownGuard
from decay_curve import decay_factor
from dividend_ledger import DividendLedger
from fusion import FusionResolver
from instance_shares import InstanceShareBook
from mint_pricing import MintPricer
from mint_resolution import resolve_mint
from monitoring.logging import LoggingContext
from monitoring.metrics import MetricsCollector, metrics
from pending_requests import FusionRequest, MintRequest, PendingRequestTable
from scaling.locking import ReentrancyGuard
from wizard_config import (
    ENGINE_VERSION,
    FUSION_INPUT_COUNT,
    CategoryConfig,
    EngineConfig,
    ItemIdentity,
    Tier,
    validate_category,
    validate_cooldown,
    validate_fail_return_rate,
    validate_fusion_multiplier,
    validate_fusion_success_rates,
    validate_tier_multipliers,
    validate_tier_probabilities,
)
from wizard_exceptions import (
    CollaboratorNotConfiguredError,
    EconomicError,
    InsufficientInstancesError,
    MaxTierFusionError,
    ParameterError,
    ProtocolError,
    TransferError,
    UnauthorizedError,
    UnknownRequestError,
    WizardEngineError,
    log_exception,
)

logger = logging.getLogger(__name__)

DEFAULT_STRANDED_AGE_SECONDS = 3600


def _system_clock() -> int:
    return int(time.time())


class WizardEngine:
    """
    Share/dividend accounting engine with asynchronous mint and fusion.

    Collaborators are injected; any left as None makes the entry points that
    need them fail with CollaboratorNotConfiguredError.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        collectibles: CollectibleLedger | None = None,
        randomness: RandomnessProvider | None = None,
        price_feed: PriceFeed | None = None,
        payout: PayoutGateway | None = None,
        asset_source: AssetSource | None = None,
        reserves_oracle: ReservesOracle | None = None,
        vrf_config: VrfRequestConfig | None = None,
        clock: Callable[[], int] | None = None,
        metrics_collector: MetricsCollector | None = None,
    ):
        self.config = (config or EngineConfig()).validate()
        self.collectibles = collectibles or InMemoryCollectibleLedger()
        self.randomness = randomness or QueuedRandomnessProvider()
        self.price_feed = price_feed
        self.payout = payout or InMemoryPayoutGateway()
        self.asset_source = asset_source
        self.reserves_oracle = reserves_oracle
        self.vrf_config = vrf_config or VrfRequestConfig()
        self.clock = clock or _system_clock
        self.metrics = metrics_collector or metrics

        if isinstance(self.randomness, QueuedRandomnessProvider):
            self.randomness.set_callback(self.fulfill)

        # Engine state (everything below is covered by transactions)
        self.ledger = DividendLedger()
        self.instance_shares = InstanceShareBook()
        self.requests = PendingRequestTable()
        self.balance = 0
        self.revenue_received_total = 0
        self.stats: dict[str, int] = {
            "mints_fulfilled": 0,
            "fusions_succeeded": 0,
            "fusions_failed": 0,
            "claims": 0,
            "asset_burned_total": 0,
            "instances_burned": 0,
        }

        # Audit trail
        self.events: list[dict[str, Any]] = []
        self._event_sequence = 0

        self.cooldowns = CooldownGuard()
        self._guard = ReentrancyGuard()

    # ==================== TRANSACTIONS ====================

    def _snapshot(self) -> dict[str, Any]:
        """Open undo journals and capture the small engine-wide fields."""
        self.ledger.begin()
        self.instance_shares.begin()
        self.requests.begin()
        return {
            "config": copy.deepcopy(self.config),
            "stats": dict(self.stats),
            "balance": self.balance,
            "revenue_received_total": self.revenue_received_total,
            "asset_source": self.asset_source,
            "reserves_oracle": self.reserves_oracle,
            "events_len": len(self.events),
            "event_sequence": self._event_sequence,
        }

    def _commit(self) -> None:
        self.ledger.commit()
        self.instance_shares.commit()
        self.requests.commit()

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self.ledger.rollback()
        self.instance_shares.rollback()
        self.requests.rollback()
        self.config = snapshot["config"]
        self.stats = snapshot["stats"]
        self.balance = snapshot["balance"]
        self.revenue_received_total = snapshot["revenue_received_total"]
        self.asset_source = snapshot["asset_source"]
        self.reserves_oracle = snapshot["reserves_oracle"]
        del self.events[snapshot["events_len"]:]
        self._event_sequence = snapshot["event_sequence"]

    @contextmanager
    def _transaction(self, entry_point: str):
        """Run an entry point exclusively and atomically."""
        with self._guard.enter(entry_point):
            snapshot = self._snapshot()
            try:
                with self.metrics.timer("entry_point_duration_ms", labels={"entry_point": entry_point}):
                    yield
            except WizardEngineError as e:
                self._restore(snapshot)
                self.metrics.record_rejection(entry_point, e.context.category.value)
                log_exception(logger, e, level="error" if e.context.severity.value == "critical" else "info")
                raise
            except Exception:
                self._restore(snapshot)
                logger.exception("Unexpected failure, state rolled back", extra={"entry_point": entry_point})
                raise
            self._commit()
            self.metrics.record_engine_state(self.ledger.state.total_shares, len(self.requests), self.balance)

    def _require_owner(self, caller: str, action: str) -> None:
        if caller != self.config.owner:
            raise UnauthorizedError(caller, action)

    # ==================== REVENUE INFLOW ====================

    def receive_revenue(self, amount: int, source: str = "unknown") -> dict[str, Any]:
        """
        Record native currency arriving at the engine.

        Revenue is not attributed here; the next reconciliation picks it up.
        """
        with self._transaction("receive_revenue"):
            if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
                raise ParameterError("Revenue must be a non-negative integer", "amount", amount, action="receive_revenue")
            if amount == 0:
                return {"status": "ignored", "amount": 0, "balance": self.balance}

            self.balance += amount
            self.revenue_received_total += amount
            self._emit_event("RevenueReceived", {
                "amount": amount,
                "source": source,
                "new_balance": self.balance,
            })

        self.metrics.increment("revenue_events_total", labels={"source": source})
        return {"status": "received", "amount": amount, "balance": self.balance}

    # ==================== MINT ====================

    def submit_mint(self, holder: str, category: int) -> dict[str, Any]:
        """
        Burn the holder's asset at the current mint price and request randomness.

        Returns:
            Dict with request_id, burn_amount and the USD price breakdown
        """
        with self._transaction("submit_mint"):
            now = self.clock()
            account = self.ledger.account(holder)
            self.cooldowns.require_ready(holder, account, now, action="submit_mint")
            if self.asset_source is None:
                raise CollaboratorNotConfiguredError("asset_source", "submit_mint")
            if self.reserves_oracle is None:
                raise CollaboratorNotConfiguredError("reserves_oracle", "submit_mint")
            if self.price_feed is None:
                raise CollaboratorNotConfiguredError("price_feed", "submit_mint")

            self.ledger.reconcile_revenue(self.balance)
            self.ledger.settle(holder)

            quote = self._pricer().quote(category, self.balance, self.ledger.state.total_shares, now)

            request_id = self.randomness.request_random(self.vrf_config)
            self.requests.register(MintRequest(
                request_id=request_id,
                holder=holder,
                category=category,
                burned_amount=quote.burn_amount,
                submitted_at=now,
            ))

            try:
                self.asset_source.transfer_to_sink(holder, quote.burn_amount)
            except InsufficientBalanceError as e:
                raise EconomicError(
                    "Insufficient asset balance for mint",
                    reason="insufficient_asset_balance",
                    action="submit_mint",
                    details={"holder": holder, "burn_amount": quote.burn_amount},
                ) from e
            self.stats["asset_burned_total"] += quote.burn_amount

            self._emit_event("MintRequested", {
                "request_id": request_id,
                "holder": holder,
                "category": category,
                "burn_amount": quote.burn_amount,
                "cost_usd": quote.cost_usd,
            })

        self.metrics.increment("mint_submitted_total", labels={"category": str(category)})
        logger.info("Mint requested", extra={"request_id": request_id, "category": category})
        return {
            "status": "submitted",
            "request_id": request_id,
            "holder": holder,
            "category": category,
            "burn_amount": quote.burn_amount,
            "cost_usd": quote.cost_usd,
            "submitted_at": now,
        }

    # ==================== FUSION ====================

    def submit_fusion(self, holder: str, category: int, source_tier: int) -> dict[str, Any]:
        """
        Destroy three same-identity instances and request randomness.

        The consumed share amount is the holder's average tracked shares per
        instance times three.
        """
        with self._transaction("submit_fusion"):
            now = self.clock()
            account = self.ledger.account(holder)
            self.cooldowns.require_ready(holder, account, now, action="submit_fusion")

            self.config.category(category)
            try:
                tier = Tier(source_tier)
            except ValueError as e:
                raise ParameterError("Unknown tier", "source_tier", source_tier, action="submit_fusion") from e
            if tier >= Tier.top():
                raise MaxTierFusionError(int(tier))

            identity = ItemIdentity(category=category, tier=tier)
            owned = self.collectibles.balance_of(holder, identity)
            if owned < FUSION_INPUT_COUNT:
                raise InsufficientInstancesError(holder, owned, FUSION_INPUT_COUNT)

            self.ledger.reconcile_revenue(self.balance)
            self.ledger.settle(holder)

            tracked = self.instance_shares.tracked(holder, identity)
            consumed = FUSION_INPUT_COUNT * (tracked // owned)
            if tracked == 0 or consumed == 0:
                raise EconomicError(
                    "No tracked shares for these instances",
                    reason="no_tracked_shares",
                    action="submit_fusion",
                    details={"holder": holder, "identity": identity.key, "owned": owned},
                )
            self.instance_shares.consume(holder, identity, consumed)

            request_id = self.randomness.request_random(self.vrf_config)
            self.requests.register(FusionRequest(
                request_id=request_id,
                holder=holder,
                identity=identity,
                consumed_shares=consumed,
                submitted_at=now,
            ))

            self.collectibles.burn(holder, identity, FUSION_INPUT_COUNT)
            self.stats["instances_burned"] += FUSION_INPUT_COUNT

            self._emit_event("FusionRequested", {
                "request_id": request_id,
                "holder": holder,
                "identity": identity.key,
                "consumed_shares": consumed,
            })

        self.metrics.increment("fusion_submitted_total", labels={"tier": tier.name.lower()})
        logger.info("Fusion requested", extra={"request_id": request_id, "identity": identity.key})
        return {
            "status": "submitted",
            "request_id": request_id,
            "holder": holder,
            "category": category,
            "source_tier": int(tier),
            "consumed_shares": consumed,
            "submitted_at": now,
        }

    # ==================== FULFILLMENT ====================

    def fulfill(self, request_id: str, random_value: int) -> dict[str, Any]:
        """
        Resolve a pending request with a delivered random value.

        Raises:
            UnknownRequestError: Handle unknown or already fulfilled
            ProtocolError: Negative or non-integer random value
        """
        with self._transaction("fulfill"):
            if request_id not in self.requests:
                raise UnknownRequestError(request_id)
            if isinstance(random_value, bool) or not isinstance(random_value, int) or random_value < 0:
                raise ProtocolError(
                    "Random value must be a non-negative integer",
                    action="fulfill",
                    details={"request_id": request_id, "random_value": repr(random_value)},
                )

            request = self.requests.pop(request_id)
            with LoggingContext(holder=request.holder, request_id=request_id):
                self.ledger.reconcile_revenue(self.balance)
                if isinstance(request, MintRequest):
                    result = self._resolve_mint(request, random_value)
                else:
                    result = self._resolve_fusion(request, random_value)
                logger.info("Request fulfilled", extra={"kind": request.kind.value})

        self.metrics.increment("fulfilled_total", labels={"kind": request.kind.value})
        return result

    def _resolve_mint(self, request: MintRequest, random_value: int) -> dict[str, Any]:
        holder = request.holder
        category_config = self.config.category(request.category)
        decay = decay_factor(self.ledger.state.total_shares, self.config.initial_pool)
        outcome = resolve_mint(
            random_value,
            category_config.base_shares,
            self.config.tier_probabilities,
            self.config.tier_multipliers,
            decay,
        )
        identity = ItemIdentity(category=request.category, tier=outcome.tier)

        self.instance_shares.record_mint(holder, identity, outcome.shares)
        self.ledger.settle(holder)
        self.ledger.apply_share_delta(holder, outcome.shares)
        cooldown_until = self.cooldowns.start(self.ledger.account(holder), self.clock(), self.config.cooldown_seconds)
        self.stats["mints_fulfilled"] += 1

        self._emit_event("MintFulfilled", {
            "request_id": request.request_id,
            "holder": holder,
            "category": request.category,
            "tier": int(outcome.tier),
            "roll": outcome.roll,
            "shares": outcome.shares,
            "decay": outcome.decay,
        })
        self.collectibles.mint(holder, identity, 1)

        return {
            "status": "fulfilled",
            "kind": "mint",
            "request_id": request.request_id,
            "holder": holder,
            "category": request.category,
            "tier": int(outcome.tier),
            "tier_name": outcome.tier.name.lower(),
            "roll": outcome.roll,
            "shares": outcome.shares,
            "decay": outcome.decay,
            "cooldown_until": cooldown_until,
        }

    def _resolve_fusion(self, request: FusionRequest, random_value: int) -> dict[str, Any]:
        holder = request.holder
        resolver = FusionResolver(
            self.config.fusion_success_rates,
            self.config.fusion_multiplier_bps,
            self.config.fail_return_bps,
        )
        outcome = resolver.resolve(request.identity, request.consumed_shares, random_value)

        self.ledger.settle(holder)
        if outcome.success:
            self.instance_shares.record_mint(holder, outcome.target, outcome.new_shares)
            self.stats["fusions_succeeded"] += 1
        else:
            self.stats["fusions_failed"] += 1
        self.ledger.apply_share_delta(holder, outcome.share_delta)
        cooldown_until = self.cooldowns.start(self.ledger.account(holder), self.clock(), self.config.cooldown_seconds)

        self._emit_event("FusionResolved", {
            "request_id": request.request_id,
            "holder": holder,
            **outcome.to_dict(),
        })
        if outcome.success:
            self.collectibles.mint(holder, outcome.target, 1)

        return {
            "status": "fulfilled",
            "kind": "fusion",
            "request_id": request.request_id,
            "holder": holder,
            "cooldown_until": cooldown_until,
            **outcome.to_dict(),
        }

    # ==================== CLAIM ====================

    def claim(self, holder: str) -> dict[str, Any]:
        """
        Pay out the holder's accrued revenue.

        Raises:
            CooldownActiveError: Holder's cooldown still running
            EconomicError: Nothing to claim
            TransferError: Payout failed (claim rolled back)
        """
        with self._transaction("claim"):
            now = self.clock()
            self.cooldowns.require_ready(holder, self.ledger.account(holder), now, action="claim")

            self.ledger.reconcile_revenue(self.balance)
            self.ledger.settle(holder)
            amount = self.ledger.take_payout(holder)
            if amount > self.balance:
                raise TransferError("Engine balance cannot cover payout", holder, amount, action="claim")
            self.balance -= amount
            self.stats["claims"] += 1

            self._emit_event("RewardClaimed", {
                "holder": holder,
                "amount": amount,
                "new_balance": self.balance,
            })

            if not self.payout.send(holder, amount):
                raise TransferError("Payout failed", holder, amount, action="claim")

        self.metrics.increment("claims_total")
        logger.info("Reward claimed", extra={"holder": holder, "amount": amount})
        return {"status": "claimed", "holder": holder, "amount": amount, "balance": self.balance}

    # ==================== ADMIN ====================

    def _update_parameter(self, caller: str, action: str, parameter: str, new_value: Any, apply: Callable[[], Any]):
        with self._transaction(action):
            self._require_owner(caller, action)
            old_value = self.config.to_dict().get(parameter)
            apply()
            self._emit_event("ParameterUpdated", {
                "parameter": parameter,
                "old_value": old_value,
                "new_value": new_value,
                "caller": caller,
            })
        logger.info("Parameter updated", extra={"parameter": parameter})
        return {"status": "updated", "parameter": parameter, "value": new_value}

    def set_category(self, caller: str, category: int, base_usd_cost: int, base_shares: int) -> dict[str, Any]:
        def apply():
            validate_category(category, base_usd_cost, base_shares)
            self.config.categories[category] = CategoryConfig(base_usd_cost=base_usd_cost, base_shares=base_shares)

        return self._update_parameter(
            caller, "set_category", "categories",
            {"category": category, "base_usd_cost": base_usd_cost, "base_shares": base_shares}, apply,
        )

    def set_cooldown_period(self, caller: str, seconds: int) -> dict[str, Any]:
        def apply():
            validate_cooldown(seconds)
            self.config.cooldown_seconds = seconds

        return self._update_parameter(caller, "set_cooldown_period", "cooldown_seconds", seconds, apply)

    def set_fusion_multiplier(self, caller: str, bps: int) -> dict[str, Any]:
        def apply():
            validate_fusion_multiplier(bps)
            self.config.fusion_multiplier_bps = bps

        return self._update_parameter(caller, "set_fusion_multiplier", "fusion_multiplier_bps", bps, apply)

    def set_fail_return_rate(self, caller: str, bps: int) -> dict[str, Any]:
        def apply():
            validate_fail_return_rate(bps)
            self.config.fail_return_bps = bps

        return self._update_parameter(caller, "set_fail_return_rate", "fail_return_bps", bps, apply)

    def set_tier_probabilities(self, caller: str, table: list[int]) -> dict[str, Any]:
        def apply():
            validate_tier_probabilities(table)
            self.config.tier_probabilities = list(table)

        return self._update_parameter(caller, "set_tier_probabilities", "tier_probabilities", list(table), apply)

    def set_tier_multipliers(self, caller: str, table: list[int]) -> dict[str, Any]:
        def apply():
            validate_tier_multipliers(table)
            self.config.tier_multipliers = list(table)

        return self._update_parameter(caller, "set_tier_multipliers", "tier_multipliers", list(table), apply)

    def set_fusion_success_rates(self, caller: str, table: list[int]) -> dict[str, Any]:
        def apply():
            validate_fusion_success_rates(table)
            self.config.fusion_success_rates = list(table)

        return self._update_parameter(caller, "set_fusion_success_rates", "fusion_success_rates", list(table), apply)

    def set_asset_source(self, caller: str, source: AssetSource) -> dict[str, Any]:
        """Wire the fungible asset burned by mints."""
        with self._transaction("set_asset_source"):
            self._require_owner(caller, "set_asset_source")
            self.asset_source = source
            self._emit_event("ParameterUpdated", {
                "parameter": "asset_source",
                "new_value": type(source).__name__,
                "caller": caller,
            })
        return {"status": "updated", "parameter": "asset_source"}

    def set_reserves_oracle(self, caller: str, oracle: ReservesOracle) -> dict[str, Any]:
        """Wire the DEX pair used for asset pricing."""
        with self._transaction("set_reserves_oracle"):
            self._require_owner(caller, "set_reserves_oracle")
            self.reserves_oracle = oracle
            self._emit_event("ParameterUpdated", {
                "parameter": "reserves_oracle",
                "new_value": type(oracle).__name__,
                "caller": caller,
            })
        return {"status": "updated", "parameter": "reserves_oracle"}

    def emergency_withdraw(self, caller: str, recipient: str | None = None) -> dict[str, Any]:
        """
        Send the entire held balance to the owner (or a given recipient).

        Ledger counters are left untouched, so unclaimed payouts can no
        longer be covered until revenue flows in again.
        """
        with self._transaction("emergency_withdraw"):
            self._require_owner(caller, "emergency_withdraw")
            recipient = recipient or self.config.owner
            amount = self.balance
            if amount == 0:
                raise EconomicError(
                    "Nothing to withdraw", reason="nothing_to_withdraw", action="emergency_withdraw"
                )
            self.balance = 0
            self._emit_event("EmergencyWithdraw", {"recipient": recipient, "amount": amount})
            if not self.payout.send(recipient, amount):
                raise TransferError("Emergency withdrawal failed", recipient, amount, action="emergency_withdraw")

        logger.warning("Emergency withdrawal executed", extra={"recipient": recipient, "amount": amount})
        return {"status": "withdrawn", "recipient": recipient, "amount": amount}

    # ==================== VIEWS ====================

    def _pricer(self) -> MintPricer:
        return MintPricer(self.config, self.price_feed, self.reserves_oracle)

    def pending_reward(self, holder: str) -> int:
        """What a claim would pay right now."""
        return self.ledger.preview_payout(holder, self.balance)

    def get_holder_info(self, holder: str) -> dict[str, Any]:
        account = self.ledger.peek_account(holder)
        now = self.clock()
        identities = self.instance_shares.holder_shares.get(holder, {})
        return {
            "holder": holder,
            "shares": account.shares,
            "pending_reward": self.pending_reward(holder),
            "cooldown_until": account.cooldown_until,
            "cooldown_remaining": self.cooldowns.remaining(account, now),
            "instance_shares": self.instance_shares.holdings(holder),
            "instances": {
                identity.key: self.collectibles.balance_of(holder, identity) for identity in identities
            },
            "pending_requests": [r.to_dict() for r in self.requests.for_holder(holder)],
        }

    def get_mint_cost(self, category: int) -> dict[str, Any]:
        """Current mint price for a category."""
        if self.price_feed is None:
            raise CollaboratorNotConfiguredError("price_feed", "get_mint_cost")
        if self.reserves_oracle is None:
            raise CollaboratorNotConfiguredError("reserves_oracle", "get_mint_cost")
        quote = self._pricer().quote(category, self.balance, self.ledger.state.total_shares, self.clock())
        return quote.to_dict()

    def get_nav_per_share(self) -> dict[str, Any]:
        """USD value of one share of the held balance."""
        if self.price_feed is None:
            raise CollaboratorNotConfiguredError("price_feed", "get_nav_per_share")
        native_usd = self._pricer().native_usd_price(self.clock())
        total_shares = self.ledger.state.total_shares
        return {
            "nav_per_share_usd": MintPricer.nav_per_share(self.balance, total_shares, native_usd),
            "native_usd": native_usd,
            "total_shares": total_shares,
            "balance": self.balance,
        }

    def get_decay_factor(self) -> int:
        return decay_factor(self.ledger.state.total_shares, self.config.initial_pool)

    def get_pending_request(self, request_id: str) -> dict[str, Any] | None:
        request = self.requests.get(request_id)
        return request.to_dict() if request else None

    def get_stranded_requests(self, max_age: int = DEFAULT_STRANDED_AGE_SECONDS) -> list[dict[str, Any]]:
        """Requests still waiting for randomness after max_age seconds."""
        now = self.clock()
        return [
            {**r.to_dict(), "age_seconds": now - r.submitted_at}
            for r in self.requests.stale_requests(now, max_age)
        ]

    def check_invariants(self) -> dict[str, bool]:
        """Evaluate ledger invariants plus balance coverage."""
        results = self.ledger.check_invariants(self.revenue_received_total)
        results["balance_covers_unclaimed"] = self.balance >= self.ledger.state.tracked_balance
        return results

    def get_statistics(self) -> dict[str, Any]:
        """Get comprehensive engine statistics."""
        state = self.ledger.state
        return {
            "version": ENGINE_VERSION,
            "total_shares": state.total_shares,
            "revenue_per_share": state.revenue_per_share,
            "revenue_received_total": self.revenue_received_total,
            "revenue_distributed_total": state.revenue_distributed_total,
            "revenue_claimed_total": state.revenue_claimed_total,
            "balance": self.balance,
            "holders": sum(1 for a in self.ledger.accounts.values() if a.shares > 0),
            "decay_factor": self.get_decay_factor(),
            "pending_requests": {
                **self.requests.count_by_kind(),
                "total": len(self.requests),
            },
            "requests_submitted": self.requests.total_submitted,
            "requests_fulfilled": self.requests.total_fulfilled,
            **self.stats,
            "config": {
                "cooldown_seconds": self.config.cooldown_seconds,
                "fusion_multiplier_bps": self.config.fusion_multiplier_bps,
                "fail_return_bps": self.config.fail_return_bps,
            },
        }

    def get_audit_trail(self, limit: int = 100, event_type: str | None = None) -> list[dict[str, Any]]:
        """Get recent audit trail events, newest first."""
        events = self.events
        if event_type:
            events = [e for e in events if e["event_type"] == event_type]
        return sorted(events[-limit:], key=lambda x: x["sequence"], reverse=True)

    # ==================== EVENTS ====================

    def _emit_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Emit an event for audit trail."""
        self._event_sequence += 1
        now = self.clock()
        self.events.append({
            "sequence": self._event_sequence,
            "event_type": event_type,
            "block_time": now,
            "timestamp": datetime.fromtimestamp(now, UTC).isoformat(),
            "data": data,
        })

    # ==================== SERIALIZATION ====================

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of all engine state (collaborators excluded)."""
        return {
            "version": ENGINE_VERSION,
            "config": self.config.to_dict(),
            "ledger": self.ledger.to_dict(),
            "instance_shares": self.instance_shares.to_dict(),
            "requests": self.requests.to_dict(),
            "balance": self.balance,
            "revenue_received_total": self.revenue_received_total,
            "stats": dict(self.stats),
            "events": list(self.events),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], **collaborators) -> "WizardEngine":
        """
        Restore an engine from a snapshot.

        Args:
            data: Output of to_dict()
            **collaborators: Constructor keyword arguments (collectibles,
                randomness, price_feed, ...)
        """
        engine = cls(config=EngineConfig.from_dict(data.get("config", {})), **collaborators)
        engine.ledger = DividendLedger.from_dict(data.get("ledger", {}))
        engine.instance_shares = InstanceShareBook.from_dict(data.get("instance_shares", {}))
        engine.requests = PendingRequestTable.from_dict(data.get("requests", {}))
        engine.balance = int(data.get("balance", 0))
        engine.revenue_received_total = int(data.get("revenue_received_total", 0))
        engine.stats.update({k: int(v) for k, v in data.get("stats", {}).items()})
        engine.events = list(data.get("events", []))
        engine._event_sequence = max((e.get("sequence", 0) for e in engine.events), default=0)
        return engine
