"""
WizardDAO - Fusion Resolver

Decides the outcome of a pending fusion once randomness arrives.

Success (roll < success rate of the source tier):
    new_shares = consumed * success_multiplier / 10000
    one instance of (category, source_tier + 1) is minted
    holder delta = new_shares - consumed (negative when the multiplier < 1x)

Failure:
    returned = consumed * fail_return_rate / 10000
    lost     = consumed - returned
    holder delta = -lost

The returned amount is reported only; those shares never left the holder's
running total, so only the loss is realized.
"""

from dataclasses import dataclass

from decay_curve import BPS_DENOMINATOR
from wizard_config import ItemIdentity, Tier
from wizard_exceptions import MaxTierFusionError


@dataclass(frozen=True)
class FusionOutcome:
    """Result of resolving a fusion roll."""

    success: bool
    roll: int
    success_rate: int
    source: ItemIdentity
    consumed_shares: int
    target: ItemIdentity | None = None
    new_shares: int = 0
    returned_shares: int = 0
    lost_shares: int = 0

    @property
    def share_delta(self) -> int:
        """Net change to the holder's and the global share totals."""
        if self.success:
            return self.new_shares - self.consumed_shares
        return -self.lost_shares

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "roll": self.roll,
            "success_rate": self.success_rate,
            "source": self.source.key,
            "target": self.target.key if self.target else None,
            "consumed_shares": self.consumed_shares,
            "new_shares": self.new_shares,
            "returned_shares": self.returned_shares,
            "lost_shares": self.lost_shares,
            "share_delta": self.share_delta,
        }


class FusionResolver:
    """Applies the fusion tables to a delivered random value."""

    def __init__(self, success_rates: list[int], success_multiplier_bps: int, fail_return_bps: int):
        self.success_rates = success_rates
        self.success_multiplier_bps = success_multiplier_bps
        self.fail_return_bps = fail_return_bps

    def success_rate(self, source_tier: Tier) -> int:
        if source_tier >= Tier.top():
            raise MaxTierFusionError(int(source_tier))
        return self.success_rates[source_tier]

    def resolve(self, source: ItemIdentity, consumed_shares: int, random_value: int) -> FusionOutcome:
        """Compute the fusion outcome without touching any state."""
        rate = self.success_rate(source.tier)
        roll = random_value % BPS_DENOMINATOR

        if roll < rate:
            return FusionOutcome(
                success=True,
                roll=roll,
                success_rate=rate,
                source=source,
                consumed_shares=consumed_shares,
                target=ItemIdentity(category=source.category, tier=Tier(source.tier + 1)),
                new_shares=consumed_shares * self.success_multiplier_bps // BPS_DENOMINATOR,
            )

        returned = consumed_shares * self.fail_return_bps // BPS_DENOMINATOR
        return FusionOutcome(
            success=False,
            roll=roll,
            success_rate=rate,
            source=source,
            consumed_shares=consumed_shares,
            returned_shares=returned,
            lost_shares=consumed_shares - returned,
        )
