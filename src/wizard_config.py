"""
WizardDAO - Engine Configuration

Holds the tunable tables and bounds that the admin surface mutates:
- Category base cost / base shares
- Tier probability and multiplier tables
- Fusion success rates, success multiplier and fail return rate
- Cooldown window
- Oracle staleness and minimum DEX liquidity

Configuration can be built from defaults, environment variables
(WIZARD_* prefix) or a YAML file.

Environment Variables:
    WIZARD_OWNER=0xOwner
    WIZARD_INITIAL_POOL=1000000000000000000000000
    WIZARD_COOLDOWN_SECONDS=60
    WIZARD_FUSION_MULTIPLIER_BPS=15000
    WIZARD_FAIL_RETURN_BPS=4000
    WIZARD_PRICE_STALENESS_SECONDS=3600
    WIZARD_MIN_RESERVE_LIQUIDITY=1000000000000000000
    WIZARD_CONFIG_FILE=wizard.yaml
"""

import os
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from decay_curve import BPS_DENOMINATOR, DEFAULT_INITIAL_POOL, PRECISION
from wizard_exceptions import ParameterError

ENGINE_VERSION = "0.1.0"

# =============================================================================
# Constants
# =============================================================================

FUSION_INPUT_COUNT = 3  # Instances consumed per fusion

# Admin bounds
MIN_COOLDOWN_SECONDS = 10
MAX_COOLDOWN_SECONDS = 1200
MIN_FUSION_MULTIPLIER_BPS = 10_000  # 1.0x
MAX_FUSION_MULTIPLIER_BPS = 30_000  # 3.0x
MIN_FAIL_RETURN_BPS = 0
MAX_FAIL_RETURN_BPS = 8_000  # 80%

DEFAULT_PRICE_STALENESS_SECONDS = 3600
DEFAULT_MIN_RESERVE_LIQUIDITY = 1 * PRECISION


class Tier(IntEnum):
    """Ordered quality rank of a minted instance."""

    COMMON = 0
    FINE = 1
    RARE = 2
    EPIC = 3
    LEGENDARY = 4
    MYTHIC = 5

    @classmethod
    def top(cls) -> "Tier":
        return cls.MYTHIC


TIER_COUNT = len(Tier)
UPGRADEABLE_TIER_COUNT = TIER_COUNT - 1


@dataclass(frozen=True)
class ItemIdentity:
    """(category, tier) pair identifying a fungible class of instances."""

    category: int
    tier: Tier

    @property
    def key(self) -> str:
        """Stable string key used in snapshots."""
        return f"{self.category}:{int(self.tier)}"

    @classmethod
    def from_key(cls, key: str) -> "ItemIdentity":
        category, tier = key.split(":")
        return cls(category=int(category), tier=Tier(int(tier)))


@dataclass
class CategoryConfig:
    """Mint parameters for one category."""

    base_usd_cost: int  # USD, 18 decimals
    base_shares: int  # Shares, 18 decimals

    def to_dict(self) -> dict[str, int]:
        return {"base_usd_cost": self.base_usd_cost, "base_shares": self.base_shares}


def _default_categories() -> dict[int, CategoryConfig]:
    return {
        0: CategoryConfig(base_usd_cost=10 * PRECISION, base_shares=100 * PRECISION),
        1: CategoryConfig(base_usd_cost=50 * PRECISION, base_shares=550 * PRECISION),
        2: CategoryConfig(base_usd_cost=100 * PRECISION, base_shares=1200 * PRECISION),
    }


# Cumulative roll thresholds: 50% / 30% / 13% / 5% / 1.6% / 0.4%
DEFAULT_TIER_PROBABILITIES = [5000, 8000, 9300, 9800, 9960, 10000]
DEFAULT_TIER_MULTIPLIERS = [7000, 10000, 15000, 25000, 50000, 100000]
DEFAULT_FUSION_SUCCESS_RATES = [8500, 6500, 4500, 2500, 1000]


@dataclass
class EngineConfig:
    """All tunable engine parameters."""

    owner: str = "owner"
    initial_pool: int = DEFAULT_INITIAL_POOL
    categories: dict[int, CategoryConfig] = field(default_factory=_default_categories)
    tier_probabilities: list[int] = field(default_factory=lambda: list(DEFAULT_TIER_PROBABILITIES))
    tier_multipliers: list[int] = field(default_factory=lambda: list(DEFAULT_TIER_MULTIPLIERS))
    fusion_success_rates: list[int] = field(default_factory=lambda: list(DEFAULT_FUSION_SUCCESS_RATES))
    fusion_multiplier_bps: int = 15_000
    fail_return_bps: int = 4_000
    cooldown_seconds: int = 60
    price_staleness_seconds: int = DEFAULT_PRICE_STALENESS_SECONDS
    min_reserve_liquidity: int = DEFAULT_MIN_RESERVE_LIQUIDITY
    asset_is_reserve_a: bool = True

    def validate(self) -> "EngineConfig":
        """Apply every admin bound; raises ParameterError on the first violation."""
        if self.initial_pool <= 0:
            raise ParameterError("Initial pool must be positive", "initial_pool", self.initial_pool)
        for category, cfg in self.categories.items():
            validate_category(category, cfg.base_usd_cost, cfg.base_shares)
        validate_tier_probabilities(self.tier_probabilities)
        validate_tier_multipliers(self.tier_multipliers)
        validate_fusion_success_rates(self.fusion_success_rates)
        validate_fusion_multiplier(self.fusion_multiplier_bps)
        validate_fail_return_rate(self.fail_return_bps)
        validate_cooldown(self.cooldown_seconds)
        if self.price_staleness_seconds <= 0:
            raise ParameterError(
                "Staleness window must be positive", "price_staleness_seconds",
                self.price_staleness_seconds,
            )
        if self.min_reserve_liquidity < 0:
            raise ParameterError(
                "Minimum liquidity cannot be negative", "min_reserve_liquidity",
                self.min_reserve_liquidity,
            )
        return self

    def category(self, category: int) -> CategoryConfig:
        """Look up a category, rejecting unknown ones."""
        if category not in self.categories:
            raise ParameterError("Unknown category", "category", category, action="lookup_category")
        return self.categories[category]

    # ==================== LOADERS ====================

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build configuration from WIZARD_* environment variables."""
        config_file = os.getenv("WIZARD_CONFIG_FILE")
        config = cls.from_yaml(config_file) if config_file else cls()

        config.owner = os.getenv("WIZARD_OWNER", config.owner)
        config.initial_pool = int(os.getenv("WIZARD_INITIAL_POOL", config.initial_pool))
        config.cooldown_seconds = int(os.getenv("WIZARD_COOLDOWN_SECONDS", config.cooldown_seconds))
        config.fusion_multiplier_bps = int(
            os.getenv("WIZARD_FUSION_MULTIPLIER_BPS", config.fusion_multiplier_bps)
        )
        config.fail_return_bps = int(os.getenv("WIZARD_FAIL_RETURN_BPS", config.fail_return_bps))
        config.price_staleness_seconds = int(
            os.getenv("WIZARD_PRICE_STALENESS_SECONDS", config.price_staleness_seconds)
        )
        config.min_reserve_liquidity = int(
            os.getenv("WIZARD_MIN_RESERVE_LIQUIDITY", config.min_reserve_liquidity)
        )
        return config.validate()

    @classmethod
    def from_yaml(cls, path: str) -> "EngineConfig":
        """
        Build configuration from a YAML file.

        Example:
            owner: "0xOwner"
            cooldown_seconds: 120
            categories:
              0: {base_usd_cost: 10000000000000000000, base_shares: 100000000000000000000}
            tier_probabilities: [5000, 8000, 9300, 9800, 9960, 10000]
        """
        import yaml

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ParameterError("Config file must contain a mapping", "config_file", path)
        return cls.from_dict(data).validate()

    # ==================== SERIALIZATION ====================

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "owner": self.owner,
            "initial_pool": self.initial_pool,
            "categories": {str(k): v.to_dict() for k, v in self.categories.items()},
            "tier_probabilities": list(self.tier_probabilities),
            "tier_multipliers": list(self.tier_multipliers),
            "fusion_success_rates": list(self.fusion_success_rates),
            "fusion_multiplier_bps": self.fusion_multiplier_bps,
            "fail_return_bps": self.fail_return_bps,
            "cooldown_seconds": self.cooldown_seconds,
            "price_staleness_seconds": self.price_staleness_seconds,
            "min_reserve_liquidity": self.min_reserve_liquidity,
            "asset_is_reserve_a": self.asset_is_reserve_a,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """Create from dictionary; missing keys keep their defaults."""
        config = cls()
        for key in (
            "owner",
            "initial_pool",
            "fusion_multiplier_bps",
            "fail_return_bps",
            "cooldown_seconds",
            "price_staleness_seconds",
            "min_reserve_liquidity",
            "asset_is_reserve_a",
        ):
            if key in data:
                setattr(config, key, data[key])
        for key in ("tier_probabilities", "tier_multipliers", "fusion_success_rates"):
            if key in data:
                setattr(config, key, [int(v) for v in data[key]])
        if "categories" in data:
            config.categories = {
                int(k): CategoryConfig(
                    base_usd_cost=int(v["base_usd_cost"]),
                    base_shares=int(v["base_shares"]),
                )
                for k, v in data["categories"].items()
            }
        return config


# =============================================================================
# Bound checks (shared by EngineConfig.validate and the admin setters)
# =============================================================================


def validate_category(category: int, base_usd_cost: int, base_shares: int) -> None:
    if category < 0:
        raise ParameterError("Category must be non-negative", "category", category)
    if base_usd_cost <= 0:
        raise ParameterError("Base cost must be positive", "base_usd_cost", base_usd_cost)
    if base_shares <= 0:
        raise ParameterError("Base shares must be positive", "base_shares", base_shares)


def validate_cooldown(seconds: int) -> None:
    if not MIN_COOLDOWN_SECONDS <= seconds <= MAX_COOLDOWN_SECONDS:
        raise ParameterError(
            f"Cooldown must be within [{MIN_COOLDOWN_SECONDS}, {MAX_COOLDOWN_SECONDS}]",
            "cooldown_seconds",
            seconds,
        )


def validate_fusion_multiplier(bps: int) -> None:
    if not MIN_FUSION_MULTIPLIER_BPS <= bps <= MAX_FUSION_MULTIPLIER_BPS:
        raise ParameterError("Fusion multiplier out of range", "fusion_multiplier_bps", bps)


def validate_fail_return_rate(bps: int) -> None:
    if not MIN_FAIL_RETURN_BPS <= bps <= MAX_FAIL_RETURN_BPS:
        raise ParameterError("Fail return rate out of range", "fail_return_bps", bps)


def validate_tier_probabilities(table: list[int]) -> None:
    if len(table) != TIER_COUNT:
        raise ParameterError(f"Expected {TIER_COUNT} thresholds", "tier_probabilities", table)
    previous = 0
    for threshold in table:
        if threshold < previous:
            raise ParameterError("Thresholds must be non-decreasing", "tier_probabilities", table)
        previous = threshold
    if table[-1] != BPS_DENOMINATOR:
        raise ParameterError(
            f"Last threshold must be {BPS_DENOMINATOR}", "tier_probabilities", table
        )


def validate_tier_multipliers(table: list[int]) -> None:
    if len(table) != TIER_COUNT:
        raise ParameterError(f"Expected {TIER_COUNT} multipliers", "tier_multipliers", table)
    if any(m <= 0 for m in table):
        raise ParameterError("Multipliers must be positive", "tier_multipliers", table)


def validate_fusion_success_rates(table: list[int]) -> None:
    if len(table) != UPGRADEABLE_TIER_COUNT:
        raise ParameterError(
            f"Expected {UPGRADEABLE_TIER_COUNT} success rates", "fusion_success_rates", table
        )
    if any(not 0 <= rate <= BPS_DENOMINATOR for rate in table):
        raise ParameterError("Success rates must be within [0, 10000]", "fusion_success_rates", table)
