"""
Tests for the fusion resolver (src/fusion.py)
"""

import pytest

from fusion import FusionResolver
from wizard_config import DEFAULT_FUSION_SUCCESS_RATES, ItemIdentity, Tier
from wizard_exceptions import MaxTierFusionError


@pytest.fixture
def resolver():
    return FusionResolver(DEFAULT_FUSION_SUCCESS_RATES, success_multiplier_bps=15000, fail_return_bps=4000)


COMMON = ItemIdentity(category=0, tier=Tier.COMMON)


class TestFusionSuccess:
    """Successful fusions."""

    def test_success_mints_next_tier(self, resolver):
        """210 consumed at 1.5x -> 315 new shares, net +105."""
        outcome = resolver.resolve(COMMON, 210, random_value=1234)

        assert outcome.success is True
        assert outcome.target == ItemIdentity(category=0, tier=Tier.FINE)
        assert outcome.new_shares == 315
        assert outcome.share_delta == 105

    def test_boundary_just_below_rate(self, resolver):
        assert resolver.resolve(COMMON, 210, random_value=8499).success is True

    def test_multiplier_below_one_gives_negative_delta(self):
        resolver = FusionResolver(DEFAULT_FUSION_SUCCESS_RATES, success_multiplier_bps=5000, fail_return_bps=0)

        outcome = resolver.resolve(COMMON, 200, random_value=0)
        assert outcome.share_delta == -100


class TestFusionFailure:
    """Failed fusions."""

    def test_failure_returns_fraction(self, resolver):
        """210 consumed, 40% returned -> returned 84, lost 126."""
        outcome = resolver.resolve(COMMON, 210, random_value=9000)

        assert outcome.success is False
        assert outcome.target is None
        assert outcome.returned_shares == 84
        assert outcome.lost_shares == 126
        assert outcome.share_delta == -126

    def test_boundary_at_rate(self, resolver):
        assert resolver.resolve(COMMON, 210, random_value=8500).success is False

    def test_uses_source_tier_rate(self, resolver):
        legendary = ItemIdentity(category=1, tier=Tier.LEGENDARY)

        outcome = resolver.resolve(legendary, 300, random_value=999)
        assert outcome.success_rate == 1000
        assert outcome.success is True

    def test_top_tier_rejected(self, resolver):
        with pytest.raises(MaxTierFusionError):
            resolver.resolve(ItemIdentity(category=0, tier=Tier.MYTHIC), 100, random_value=0)

    def test_to_dict(self, resolver):
        data = resolver.resolve(COMMON, 210, random_value=9000).to_dict()

        assert data["source"] == "0:0"
        assert data["target"] is None
        assert data["share_delta"] == -126
