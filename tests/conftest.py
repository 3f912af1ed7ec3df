"""Shared fixtures: a fresh in-process venue and a seeded binary market."""

import pytest

from predamm.venue import Venue

QUESTION = "will-it-rain-tomorrow"
NOW_MS = 1_700_000_000_000


@pytest.fixture
def venue():
    return Venue.create(clock=lambda: NOW_MS)


@pytest.fixture
def engine(venue):
    """Market with a 1% trading fee and no LP fee, no liquidity yet."""
    return venue.registry.create_market(venue.registry.address, QUESTION, trading_fee_bps=100, lp_fee_bps=0)


@pytest.fixture
def fund(venue, engine):
    """fund(account, amount): mint collateral and approve the market engine."""

    def _fund(account, amount):
        venue.fund(account, amount)
        venue.approve_market(account, engine.address)

    return _fund


@pytest.fixture
def seeded(engine, fund):
    """Market seeded by provider 'lp' with 1_000_000 collateral."""
    fund("lp", 1_000_000)
    engine.add_liquidity("lp", 1_000_000)
    return engine
