"""
WizardDAO - Share Decay Curve

Damping factor applied to newly minted shares:

    decay(total_shares) = initial_pool / (initial_pool + total_shares)

Every additional unit of shares becomes proportionally cheaper to mint in
share terms, which bounds share inflation asymptotically without a hard cap.
Values are 18-decimal fixed point, so decay(0) == PRECISION.
"""

# Fixed-point scale shared by shares, revenue and the accumulator
PRECISION = 10**18

# Basis-point denominator for probability and multiplier tables
BPS_DENOMINATOR = 10_000

# Initial pool used as the decay denominator (1,000,000 whole shares)
DEFAULT_INITIAL_POOL = 1_000_000 * PRECISION


def decay_factor(total_shares: int, initial_pool: int = DEFAULT_INITIAL_POOL) -> int:
    """
    Compute the damping factor for the current share supply.

    Args:
        total_shares: Current global share total (fixed point)
        initial_pool: Decay denominator (fixed point, must be positive)

    Returns:
        Factor in (0, PRECISION], rounded down
    """
    if initial_pool <= 0:
        raise ValueError("initial_pool must be positive")
    if total_shares < 0:
        raise ValueError("total_shares cannot be negative")
    return initial_pool * PRECISION // (initial_pool + total_shares)
