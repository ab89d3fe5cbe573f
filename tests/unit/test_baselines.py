"""
Unit tests for statistical baselines.
"""

import math

import pytest

from surveillance.baselines import (
    BUCKET_MS,
    compute_distribution_stats,
    compute_z_score,
    get_current_imbalance,
    get_current_volume,
    get_imbalance_stats,
    get_percentile,
    get_return_stats,
    get_spread_stats,
    get_volume_stats,
    spread_percent,
    time_bucket,
)
from surveillance.types import Outcome

NOW = 1_699_999_800_000
MINUTE = 60_000
WINDOW = 5 * MINUTE
DAY = 24 * 60 * MINUTE


class TestZScore:
    """Tests for compute_z_score."""

    def test_basic(self):
        assert compute_z_score(12.0, 10.0, 2.0) == pytest.approx(1.0)

    def test_negative(self):
        assert compute_z_score(6.0, 10.0, 2.0) == pytest.approx(-2.0)

    def test_zero_std_is_zero(self):
        assert compute_z_score(12.0, 10.0, 0.0) == 0.0

    def test_increases_with_value(self):
        scores = [compute_z_score(v, 3.0, 2.0) for v in (-5.0, 0.0, 1.0, 2.5, 10.0, 100.0)]
        assert all(a < b for a, b in zip(scores, scores[1:]))

    @pytest.mark.parametrize("value,mean,std", [
        (math.nan, 1.0, 1.0),
        (1.0, math.inf, 1.0),
        (1.0, 1.0, math.nan),
    ])
    def test_non_finite_is_zero(self, value, mean, std):
        assert compute_z_score(value, mean, std) == 0.0


class TestPercentile:
    """Tests for get_percentile."""

    def test_empty(self):
        assert get_percentile([], 90) == 0.0

    def test_singleton(self):
        assert get_percentile([7.0], 99) == 7.0

    def test_linear_interpolation(self):
        assert get_percentile([1, 2, 3, 4], 50) == pytest.approx(2.5)
        assert get_percentile(list(range(1, 11)), 90) == pytest.approx(9.1)

    def test_unsorted_input(self):
        assert get_percentile([4, 1, 3, 2], 50) == pytest.approx(2.5)


class TestDistributionStats:
    """Tests for compute_distribution_stats."""

    def test_population_std(self):
        stats = compute_distribution_stats([1, 2, 3, 4])
        assert stats.mean == pytest.approx(2.5)
        assert stats.std == pytest.approx(math.sqrt(1.25))
        assert stats.min == 1
        assert stats.max == 4
        assert stats.count == 4

    def test_drops_non_finite(self):
        stats = compute_distribution_stats([1.0, math.nan, 3.0, math.inf])
        assert stats.count == 2
        assert stats.mean == pytest.approx(2.0)

    def test_empty_is_zeroed(self):
        stats = compute_distribution_stats([])
        assert stats.count == 0
        assert stats.mean == 0.0
        assert stats.percentile99 == 0.0


class TestTimeBucket:

    def test_floors_to_five_minutes(self):
        assert time_bucket(NOW) == NOW
        assert time_bucket(NOW + BUCKET_MS - 1) == NOW
        assert time_bucket(NOW + BUCKET_MS) == NOW + BUCKET_MS


class TestVolumeStats:
    """Tests for per-window volume baselines."""

    def test_flat_history(self, flat_history):
        stats = get_volume_stats("m1", WINDOW, flat_history(windows=20), NOW)
        assert stats is not None
        assert stats.count == 20
        assert stats.mean == pytest.approx(1000.0)
        assert stats.std == pytest.approx(0.0)

    def test_insufficient_windows(self, flat_history):
        assert get_volume_stats("m1", WINDOW, flat_history(windows=5), NOW) is None

    def test_custom_minimum(self, flat_history):
        stats = get_volume_stats("m1", WINDOW, flat_history(windows=5), NOW, min_data_points=5)
        assert stats is not None
        assert stats.count == 5

    def test_trades_in_same_window_are_summed(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=1000, timestamp=NOW - DAY + 2000)]
        stats = get_volume_stats("m1", WINDOW, trades, NOW)
        assert stats.count == 20
        assert stats.max == pytest.approx(2000.0)

    def test_ignores_trades_before_lookback(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=50_000, timestamp=NOW - DAY - 1)]
        stats = get_volume_stats("m1", WINDOW, trades, NOW)
        assert stats.count == 20
        assert stats.max == pytest.approx(1000.0)

    def test_filters_market(self, flat_history):
        assert get_volume_stats("other", WINDOW, flat_history(windows=20), NOW) is None

    def test_malformed_amounts_do_not_count(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount="abc", timestamp=NOW - 1000)]
        stats = get_volume_stats("m1", WINDOW, trades, NOW)
        assert stats.count == 20


class TestImbalanceStats:

    def test_per_window_imbalance(self, make_trade):
        trades = []
        for i in range(12):
            ts = NOW - DAY + i * WINDOW + 1000
            trades.append(make_trade(amount=750, outcome="YES", timestamp=ts))
            trades.append(make_trade(amount=250, outcome="NO", timestamp=ts + 1000))
        stats = get_imbalance_stats("m1", WINDOW, trades, NOW)
        assert stats is not None
        assert stats.count == 12
        assert stats.mean == pytest.approx(0.5)

    def test_insufficient(self, make_trade):
        trades = [make_trade(timestamp=NOW - i * WINDOW) for i in range(3)]
        assert get_imbalance_stats("m1", WINDOW, trades, NOW) is None


class TestCurrentWindow:

    def test_volume_window_is_inclusive(self, make_trade):
        trades = [
            make_trade(amount=100, timestamp=NOW - WINDOW),
            make_trade(amount=200, timestamp=NOW),
            make_trade(amount=400, timestamp=NOW + 1),
            make_trade(amount=800, timestamp=NOW - WINDOW - 1),
        ]
        assert get_current_volume("m1", WINDOW, trades, NOW) == pytest.approx(300.0)

    def test_imbalance_none_without_trades(self):
        assert get_current_imbalance("m1", WINDOW, [], NOW) is None

    def test_imbalance_none_with_zero_volume(self, make_trade):
        assert get_current_imbalance("m1", WINDOW, [make_trade(amount="0")], NOW) is None

    def test_imbalance(self, make_trade):
        trades = [make_trade(amount=300, outcome="YES"), make_trade(amount=100, outcome="NO")]
        assert get_current_imbalance("m1", WINDOW, trades, NOW) == pytest.approx(0.5)


class TestSpreadStats:

    def test_spread_percent(self, make_snapshot):
        assert spread_percent(make_snapshot(bid=0.49, ask=0.51)) == pytest.approx(4.0)

    def test_unusable_book(self, make_snapshot):
        assert spread_percent(make_snapshot(asks=[])) is None
        assert spread_percent(make_snapshot(bid=0.0)) is None

    def test_stats(self, make_snapshot):
        snaps = [make_snapshot(timestamp=NOW - i * MINUTE) for i in range(10)]
        stats = get_spread_stats("m1", snaps)
        assert stats.count == 10
        assert stats.mean == pytest.approx(4.0)

    def test_insufficient_snapshots(self, make_snapshot):
        snaps = [make_snapshot(timestamp=NOW - i * MINUTE) for i in range(9)]
        assert get_spread_stats("m1", snaps) is None

    def test_insufficient_valid_spreads(self, make_snapshot):
        snaps = [make_snapshot(timestamp=NOW - i * MINUTE) for i in range(9)]
        snaps.append(make_snapshot(asks=[]))
        assert get_spread_stats("m1", snaps) is None


class TestReturnStats:
    """Tests for consecutive-trade return baselines."""

    @pytest.fixture
    def alternating(self, make_trade):
        start = NOW - 30 * MINUTE
        return [
            make_trade(price=0.5 if i % 2 == 0 else 0.55, timestamp=start + i * MINUTE)
            for i in range(12)
        ]

    def test_counts_pairs_within_horizon(self, alternating):
        stats = get_return_stats("m1", WINDOW, alternating, NOW)
        assert stats is not None
        assert stats.count == 11
        assert stats.max == pytest.approx(10.0)
        assert stats.volatility == stats.std

    def test_gap_longer_than_horizon(self, alternating):
        assert get_return_stats("m1", 30_000, alternating, NOW) is None

    def test_outcome_filter(self, alternating, make_trade):
        no_side = [
            make_trade(price=0.5, outcome="NO", timestamp=t.timestamp + 30_000)
            for t in alternating
        ]
        trades = alternating + no_side

        mixed = get_return_stats("m1", WINDOW, trades, NOW)
        assert mixed.count == 23

        yes_only = get_return_stats("m1", WINDOW, trades, NOW, outcome=Outcome.YES)
        assert yes_only.count == 11

        no_only = get_return_stats("m1", WINDOW, trades, NOW, outcome=Outcome.NO)
        assert no_only.count == 11
        assert no_only.volatility == pytest.approx(0.0)

    def test_skips_non_positive_prices(self, alternating, make_trade):
        trades = alternating + [make_trade(price=0.0, timestamp=NOW - 30 * MINUTE + 30_000)]
        stats = get_return_stats("m1", WINDOW, trades, NOW)
        # The zero-price trade breaks one pair into two unusable pairs
        assert stats.count == 10
