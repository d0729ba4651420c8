"""
WizardDAO - Mint Resolution

Turns a delivered random value into a tier, and a tier into a share weight:

    roll   = random_value % 10000
    tier   = first index whose cumulative threshold exceeds roll
    shares = base_shares * tier_multiplier * decay / (10000 * PRECISION)
"""

from dataclasses import dataclass

from decay_curve import BPS_DENOMINATOR, PRECISION
from wizard_config import Tier
from wizard_exceptions import EconomicError


@dataclass(frozen=True)
class MintOutcome:
    """Result of resolving a mint roll."""

    roll: int
    tier: Tier
    shares: int
    decay: int


def roll_tier(random_value: int, cumulative_table: list[int]) -> tuple[int, Tier]:
    """
    Select a tier from a cumulative probability table.

    Falls through to the top tier when no threshold exceeds the roll.

    Returns:
        Tuple of (roll, tier)
    """
    roll = random_value % BPS_DENOMINATOR
    for index, threshold in enumerate(cumulative_table):
        if roll < threshold:
            return roll, Tier(index)
    return roll, Tier.top()


def compute_mint_shares(base_shares: int, tier_multiplier_bps: int, decay: int) -> int:
    """
    Share weight for a freshly minted instance.

    Raises:
        EconomicError: If the result rounds down to zero
    """
    shares = base_shares * tier_multiplier_bps * decay // (BPS_DENOMINATOR * PRECISION)
    if shares == 0:
        raise EconomicError(
            "Shares too small",
            reason="shares_too_small",
            action="resolve_mint",
            details={"base_shares": base_shares, "multiplier_bps": tier_multiplier_bps, "decay": decay},
        )
    return shares


def resolve_mint(
    random_value: int,
    base_shares: int,
    tier_probabilities: list[int],
    tier_multipliers: list[int],
    decay: int,
) -> MintOutcome:
    """Roll a tier and compute its shares."""
    roll, tier = roll_tier(random_value, tier_probabilities)
    shares = compute_mint_shares(base_shares, tier_multipliers[tier], decay)
    return MintOutcome(roll=roll, tier=tier, shares=shares, decay=decay)
