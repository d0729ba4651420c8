"""
WizardDAO - Mint Pricing

Prices a mint in the burned asset:

    native_usd  = feed price scaled to 18 decimals
    asset_usd   = reserve_native * native_usd / reserve_asset
    nav_usd     = pool_balance * native_usd / total_shares   (0 when no shares)
    cost_usd    = max(base_usd_cost, nav_usd * base_shares / PRECISION)
    burn_amount = cost_usd * PRECISION / asset_usd

Once the pool is worth more per share than the category's floor price, new
shares are priced at NAV so minting never dilutes existing holders.
"""

import logging
from dataclasses import dataclass
from typing import Any

from collaborators import PriceFeed, ReservesOracle
from decay_curve import PRECISION
from wizard_config import EngineConfig
from wizard_exceptions import EconomicError, LiquidityError, OracleError

logger = logging.getLogger(__name__)

TARGET_DECIMALS = 18


@dataclass(frozen=True)
class MintQuote:
    """Price breakdown for one mint."""

    category: int
    native_usd: int
    asset_usd: int
    nav_per_share_usd: int
    cost_usd: int
    burn_amount: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "native_usd": self.native_usd,
            "asset_usd": self.asset_usd,
            "nav_per_share_usd": self.nav_per_share_usd,
            "cost_usd": self.cost_usd,
            "burn_amount": self.burn_amount,
        }


def scale_price(price: int, decimals: int) -> int:
    """Rescale a feed answer to 18 decimals."""
    if decimals <= TARGET_DECIMALS:
        return price * 10 ** (TARGET_DECIMALS - decimals)
    return price // 10 ** (decimals - TARGET_DECIMALS)


class MintPricer:
    """Reads the oracles and computes mint costs."""

    def __init__(self, config: EngineConfig, price_feed: PriceFeed, reserves_oracle: ReservesOracle | None = None):
        self.config = config
        self.price_feed = price_feed
        self.reserves_oracle = reserves_oracle

    def native_usd_price(self, now: int) -> int:
        """
        Native currency price in USD (18 decimals).

        Raises:
            OracleError: If the answer is non-positive or stale
        """
        price, updated_at = self.price_feed.latest_price()
        if price <= 0:
            raise OracleError("Invalid price", price=price, updated_at=updated_at)
        if now - updated_at > self.config.price_staleness_seconds:
            raise OracleError(
                "Stale price",
                price=price,
                updated_at=updated_at,
                details={"age_seconds": now - updated_at, "max_age": self.config.price_staleness_seconds},
            )
        return scale_price(price, self.price_feed.decimals)

    def reserves(self) -> tuple[int, int]:
        """
        Return (reserve_asset, reserve_native), oriented by configuration.

        Raises:
            LiquidityError: If either side is below the minimum
        """
        reserve_a, reserve_b = self.reserves_oracle.get_reserves()
        if self.config.asset_is_reserve_a:
            reserve_asset, reserve_native = reserve_a, reserve_b
        else:
            reserve_asset, reserve_native = reserve_b, reserve_a

        minimum = self.config.min_reserve_liquidity
        if reserve_asset < minimum or reserve_native < minimum or reserve_asset <= 0:
            raise LiquidityError(
                "Insufficient liquidity",
                reserve_asset=reserve_asset,
                reserve_native=reserve_native,
                minimum=minimum,
            )
        return reserve_asset, reserve_native

    def asset_usd_price(self, native_usd: int) -> int:
        """Asset price in USD (18 decimals) derived from the DEX pair."""
        reserve_asset, reserve_native = self.reserves()
        return reserve_native * native_usd // reserve_asset

    @staticmethod
    def nav_per_share(pool_balance: int, total_shares: int, native_usd: int) -> int:
        """USD value of one whole share of the pool (18 decimals)."""
        if total_shares == 0:
            return 0
        return pool_balance * native_usd // total_shares

    def quote(self, category: int, pool_balance: int, total_shares: int, now: int) -> MintQuote:
        """
        Price a mint of one instance of a category.

        Raises:
            ParameterError: Unknown category
            OracleError, LiquidityError: Pricing inputs rejected
            EconomicError: If the burn amount rounds to zero
        """
        category_config = self.config.category(category)
        native_usd = self.native_usd_price(now)
        asset_usd = self.asset_usd_price(native_usd)
        nav = self.nav_per_share(pool_balance, total_shares, native_usd)

        cost_usd = max(category_config.base_usd_cost, nav * category_config.base_shares // PRECISION)
        burn_amount = cost_usd * PRECISION // asset_usd if asset_usd > 0 else 0
        if burn_amount == 0:
            raise EconomicError(
                "Mint cost rounds to zero",
                reason="zero_cost_mint",
                action="submit_mint",
                details={"category": category, "cost_usd": cost_usd, "asset_usd": asset_usd},
            )

        logger.debug(
            "Mint quoted",
            extra={"category": category, "cost_usd": cost_usd, "burn_amount": burn_amount},
        )
        return MintQuote(
            category=category,
            native_usd=native_usd,
            asset_usd=asset_usd,
            nav_per_share_usd=nav,
            cost_usd=cost_usd,
            burn_amount=burn_amount,
        )
