"""
Unit tests for volume spike and flow imbalance detectors.
"""

import pytest

from surveillance.baselines import compute_z_score, get_volume_stats
from surveillance.config import DEFAULT_CONFIG, merge_config
from surveillance.detectors.volume_flow import (
    detect_flow_imbalance,
    detect_volume_flow_anomalies,
    detect_volume_spike,
)
from surveillance.types import AnomalyType, Severity

NOW = 1_699_999_800_000
WINDOW = 5 * 60_000
DAY = 24 * 60 * 60_000


@pytest.fixture
def balanced_history(make_trade):
    """20 windows of 500 YES + 500 NO."""
    trades = []
    for i in range(20):
        ts = NOW - DAY + i * WINDOW + 1000
        trades.append(make_trade(amount=500, outcome="YES", timestamp=ts))
        trades.append(make_trade(amount=500, outcome="NO", timestamp=ts + 1000))
    return trades


class TestVolumeSpike:
    """Tests for detect_volume_spike."""

    def test_spike_over_flat_history(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=100_000, timestamp=NOW - 1000)]
        event = detect_volume_spike("m1", WINDOW, trades, NOW, DEFAULT_CONFIG)

        assert event is not None
        assert event.type == AnomalyType.VOLUME_SPIKE
        assert event.severity in (Severity.MEDIUM, Severity.HIGH, Severity.EXTREME)
        assert event.context["zScore"] == pytest.approx(20 ** 0.5, rel=1e-6)
        assert event.severity == Severity.EXTREME
        assert event.score == 100.0

    def test_deterministic_id(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=100_000, timestamp=NOW - 1000)]
        first = detect_volume_spike("m1", WINDOW, trades, NOW, DEFAULT_CONFIG)
        second = detect_volume_spike("m1", WINDOW, trades, NOW + 60_000, DEFAULT_CONFIG)
        assert first.id == f"m1-volume-spike-{NOW}"
        assert second.id == first.id

    def test_below_minimum_notional(self, flat_history, make_trade):
        trades = flat_history(windows=20, amount=1) + [make_trade(amount=50, timestamp=NOW - 1000)]
        assert detect_volume_spike("m1", WINDOW, trades, NOW, DEFAULT_CONFIG) is None

    def test_no_baseline(self, make_trade):
        trades = [make_trade(amount=100_000, timestamp=NOW - 1000)]
        assert detect_volume_spike("m1", WINDOW, trades, NOW, DEFAULT_CONFIG) is None

    def test_ordinary_volume(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=1000, timestamp=NOW - 1000)]
        assert detect_volume_spike("m1", WINDOW, trades, NOW, DEFAULT_CONFIG) is None

    def test_heavy_tail_p90_gate(self, make_trade):
        # Three huge windows put p90 above the current volume while z clears the threshold
        trades = [
            make_trade(amount=10_000 if i in (5, 10, 15) else 100, timestamp=NOW - DAY + i * WINDOW + 1000)
            for i in range(20)
        ]
        trades.append(make_trade(amount=3000, timestamp=NOW - 1000))
        config = merge_config({"thresholds": {"volumeZScore": 0.3}})

        stats = get_volume_stats("m1", WINDOW, trades, NOW)
        assert stats.percentile90 == pytest.approx(10_000)
        assert compute_z_score(3000, stats.mean, stats.std) >= 0.3
        assert detect_volume_spike("m1", WINDOW, trades, NOW, config) is None

    def test_threshold_override(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=100_000, timestamp=NOW - 1000)]
        strict = merge_config({"thresholds": {"volumeZScore": 5.0}})
        assert detect_volume_spike("m1", WINDOW, trades, NOW, strict) is None


class TestFlowImbalance:
    """Tests for detect_flow_imbalance."""

    def test_balanced_flow_is_quiet(self, balanced_history, make_trade):
        trades = balanced_history + [
            make_trade(amount=5000, outcome="YES", timestamp=NOW - 2000),
            make_trade(amount=5000, outcome="NO", timestamp=NOW - 1000),
        ]
        assert detect_flow_imbalance("m1", WINDOW, trades, NOW, DEFAULT_CONFIG) is None

    def test_one_sided_flow(self, balanced_history, make_trade):
        current = [make_trade(amount=10_000, outcome="YES", timestamp=NOW - 10_000 - i) for i in range(9)]
        current.append(make_trade(amount=1000, outcome="NO", timestamp=NOW - 1000))
        event = detect_flow_imbalance("m1", WINDOW, balanced_history + current, NOW, DEFAULT_CONFIG)

        assert event is not None
        assert event.type == AnomalyType.FLOW_IMBALANCE
        assert event.context["direction"] == "buy"
        assert event.context["buyVolume"] == pytest.approx(90_000)
        assert event.context["sellVolume"] == pytest.approx(1000)
        assert event.score == pytest.approx(89 / 91 * 100)
        assert event.severity == Severity.HIGH

    def test_sell_direction(self, balanced_history, make_trade):
        current = [make_trade(amount=10_000, outcome="NO", timestamp=NOW - 1000)]
        event = detect_flow_imbalance("m1", WINDOW, balanced_history + current, NOW, DEFAULT_CONFIG)
        assert event.context["direction"] == "sell"

    def test_mirrored_flow_is_symmetric(self, balanced_history, make_trade):
        def window(heavy, light):
            current = [make_trade(amount=1000, outcome=heavy, timestamp=NOW - 10_000 - i) for i in range(9)]
            current.append(make_trade(amount=1000, outcome=light, timestamp=NOW - 1000))
            return balanced_history + current

        buy = detect_flow_imbalance("m1", WINDOW, window("YES", "NO"), NOW, DEFAULT_CONFIG)
        sell = detect_flow_imbalance("m1", WINDOW, window("NO", "YES"), NOW, DEFAULT_CONFIG)

        assert buy.context["direction"] == "buy"
        assert sell.context["direction"] == "sell"
        assert buy.score == pytest.approx(80.0)
        assert sell.score == pytest.approx(buy.score)
        assert buy.severity == sell.severity == Severity.MEDIUM
        assert buy.context["percentileRank"] == sell.context["percentileRank"]

    def test_historically_common_imbalance(self, make_trade):
        # Every window is one-sided, so a one-sided current window is not rare
        trades = [make_trade(amount=1000, timestamp=NOW - DAY + i * WINDOW + 1000) for i in range(20)]
        trades.append(make_trade(amount=1000, outcome="YES", timestamp=NOW - 1000))
        event = detect_flow_imbalance("m1", WINDOW, trades, NOW, DEFAULT_CONFIG)
        # p90 of all-ones equals the current value, which still passes the gate
        assert event is not None
        assert event.context["percentileRank"] == 99


class TestVolumeFlowRunner:

    def test_runner_collects_both(self, flat_history, make_trade):
        trades = flat_history(windows=20) + [make_trade(amount=100_000, timestamp=NOW - 1000)]
        types = {a.type for a in detect_volume_flow_anomalies("m1", WINDOW, trades, NOW, DEFAULT_CONFIG)}
        assert AnomalyType.VOLUME_SPIKE in types

    def test_runner_empty(self):
        assert detect_volume_flow_anomalies("m1", WINDOW, [], NOW, DEFAULT_CONFIG) == []
