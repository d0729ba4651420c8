"""
Pytest configuration and shared fixtures for WizardDAO tests.

This module provides shared fixtures and test configuration including:
- A manually advanced clock
- Engines wired to funded in-memory collaborators
- Flask app setup with in-memory storage
- API authentication headers
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Set up test environment before any imports
os.environ["WIZARD_API_KEY"] = "test-api-key-12345"
os.environ["WIZARD_REQUIRE_AUTH"] = "false"
os.environ["STORAGE_BACKEND"] = "memory"

from collaborators import (  # noqa: E402
    InMemoryAssetSource,
    InMemoryCollectibleLedger,
    InMemoryPayoutGateway,
    QueuedRandomnessProvider,
    StaticPriceFeed,
    StaticReservesOracle,
)
from decay_curve import PRECISION  # noqa: E402
from monitoring.metrics import MetricsCollector  # noqa: E402
from wizard_config import EngineConfig  # noqa: E402
from wizard_engine import WizardEngine  # noqa: E402

START_TIME = 1_700_000_000
NATIVE_USD_PRICE = 600 * 10**8  # $600, 8 decimals
RESERVE_ASSET = 10_000_000 * PRECISION
RESERVE_NATIVE = 1_000 * PRECISION
HOLDER_FUNDS = 1_000_000 * PRECISION

# Random values whose roll (value % 10000) lands on a known outcome
COMMON_ROLL = 1234        # < 5000 -> Common mint; < 8500 -> fusion success from Common
FINE_ROLL = 6000          # [5000, 8000) -> Fine mint
MYTHIC_ROLL = 9999        # >= 9960 -> Mythic mint
FUSION_FAIL_ROLL = 9000   # >= 8500 -> fusion failure from Common


class FakeClock:
    """Deterministic engine clock."""

    def __init__(self, start: int = START_TIME):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def asset_source():
    return InMemoryAssetSource({
        "alice": HOLDER_FUNDS,
        "bob": HOLDER_FUNDS,
        "carol": HOLDER_FUNDS,
    })


@pytest.fixture
def price_feed(clock):
    return StaticPriceFeed(NATIVE_USD_PRICE, updated_at=clock.now)


@pytest.fixture
def reserves_oracle():
    return StaticReservesOracle(RESERVE_ASSET, RESERVE_NATIVE)


@pytest.fixture
def randomness():
    return QueuedRandomnessProvider()


@pytest.fixture
def payout():
    return InMemoryPayoutGateway()


@pytest.fixture
def engine(clock, asset_source, price_feed, reserves_oracle, randomness, payout):
    """Engine with every collaborator configured and a private metrics collector."""
    return WizardEngine(
        config=EngineConfig(),
        collectibles=InMemoryCollectibleLedger(),
        randomness=randomness,
        price_feed=price_feed,
        payout=payout,
        asset_source=asset_source,
        reserves_oracle=reserves_oracle,
        clock=clock,
        metrics_collector=MetricsCollector(),
    )


def mint_and_fulfill(engine, holder, random_value=COMMON_ROLL, category=0, clock=None):
    """Submit a mint, deliver its randomness and advance past the cooldown."""
    submitted = engine.submit_mint(holder, category)
    result = engine.randomness.deliver(submitted["request_id"], random_value)
    if clock is not None:
        clock.advance(engine.config.cooldown_seconds)
        engine.price_feed.set_price(engine.price_feed.price, clock.now)
    return result


@pytest.fixture
def flask_app(engine):
    """Flask app around the test engine with in-memory storage."""
    from api import create_app
    from scaling import reset_lock_manager
    from storage import MemoryStorage

    reset_lock_manager()
    app = create_app(engine=engine, storage=MemoryStorage())
    app.config['TESTING'] = True
    return app


@pytest.fixture
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def test_auth_headers():
    """Headers for authenticated requests."""
    return {
        "Content-Type": "application/json",
        "X-API-Key": "test-api-key-12345"
    }
