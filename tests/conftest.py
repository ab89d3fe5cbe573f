"""
Pytest configuration and shared fixtures for surveillance tests.
"""

import itertools
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from surveillance.types import OrderBookLevel, OrderBookSnapshot, Outcome, Trade  # noqa: E402

# Bucket-aligned scan time (multiple of 5 minutes)
NOW = 1_699_999_800_000
MINUTE = 60_000
WINDOW = 5 * MINUTE
DAY = 24 * 60 * MINUTE


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def window_ms():
    return WINDOW


@pytest.fixture
def make_trade():
    """Factory for trades with sequential ids."""
    counter = itertools.count(1)

    def _make(
        market_id="m1",
        amount=100,
        price=0.5,
        timestamp=NOW,
        outcome="YES",
        user=None,
        id=None,
    ):
        return Trade(
            id=id or f"t{next(counter)}",
            market_id=market_id,
            outcome=Outcome(outcome),
            amount=str(amount),
            price=price,
            timestamp=timestamp,
            user=user,
        )

    return _make


@pytest.fixture
def make_snapshot():
    """Factory for order books; a single level per side unless ``bids``/``asks`` are given."""

    def _make(
        market_id="m1",
        timestamp=NOW,
        bid=0.49,
        ask=0.51,
        bid_size=1000.0,
        ask_size=1000.0,
        bids=None,
        asks=None,
    ):
        bid_levels = bids if bids is not None else [(bid, bid_size)]
        ask_levels = asks if asks is not None else [(ask, ask_size)]
        return OrderBookSnapshot(
            market_id=market_id,
            timestamp=timestamp,
            bids=tuple(OrderBookLevel(p, s) for p, s in bid_levels),
            asks=tuple(OrderBookLevel(p, s) for p, s in ask_levels),
        )

    return _make


@pytest.fixture
def flat_history(make_trade):
    """
    Factory: one trade per 5-minute window for ``windows`` windows starting
    24h before NOW, each of ``amount`` notional.
    """

    def _make(market_id="m1", windows=20, amount=1000, price=0.5, outcome="YES", user=None):
        base = NOW - DAY
        return [
            make_trade(
                market_id=market_id,
                amount=amount,
                price=price,
                timestamp=base + i * WINDOW + 1000,
                outcome=outcome,
                user=user if user is not None else f"w{i}",
            )
            for i in range(windows)
        ]

    return _make
