"""
Volume and Flow Detectors
=========================

Volume spikes against the 24h per-window baseline, and buy/sell flow
imbalance against the historical imbalance distribution.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..baselines import (
    compute_z_score,
    get_current_imbalance,
    get_current_volume,
    get_imbalance_stats,
    get_volume_stats,
    market_trades,
    outcome_volumes,
    trades_in_range,
)
from ..config import AnomalyDetectionConfig
from ..types import AnomalyEvent, AnomalyType, Severity, Trade
from .base import build_event, event_id

logger = logging.getLogger(__name__)


def detect_volume_spike(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """
    Current window volume versus the per-window baseline.

    Fires when the z-score reaches ``thresholds.volume_z_score`` and the
    current volume is at or above the baseline p90.
    """
    current = get_current_volume(market_id, window_ms, trades, now)
    if current < config.minimums.volume_notional:
        return None

    stats = get_volume_stats(market_id, window_ms, trades, now, config.minimums.data_points)
    if stats is None or stats.count < config.minimums.data_points:
        return None

    z = compute_z_score(current, stats.mean, stats.std)
    ratio = current / stats.mean if stats.mean > 0 else 0.0

    if z < config.thresholds.volume_z_score or current < stats.percentile90:
        return None

    if z >= 4 or ratio >= 10:
        severity = Severity.EXTREME
    elif z >= 3 or ratio >= 5:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    minutes = round(window_ms / 60000)
    logger.debug(f"{market_id}: volume spike z={z:.2f} ratio={ratio:.1f}")
    return build_event(
        id=event_id(market_id, "volume-spike", now),
        market_id=market_id,
        type=AnomalyType.VOLUME_SPIKE,
        severity=severity,
        score=z / 5 * 50 + ratio / 10 * 50,
        timestamp=now,
        label="Volume spike",
        message=(
            f"Last {minutes}m volume: {current:,.0f} USDC vs avg {stats.mean:,.0f} USDC "
            f"(+{ratio:.1f}x, z={z:.2f})"
        ),
        context={
            "currentVolume": current,
            "meanVolume": stats.mean,
            "stdVolume": stats.std,
            "zScore": z,
            "volumeRatio": ratio,
            "windowMs": window_ms,
        },
    )


def detect_flow_imbalance(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """YES/NO flow imbalance that is both large and historically rare."""
    imbalance = get_current_imbalance(market_id, window_ms, trades, now)
    if imbalance is None or imbalance < config.flow_imbalance.threshold:
        return None

    stats = get_imbalance_stats(market_id, window_ms, trades, now, config.minimums.data_points)
    if stats is None or stats.count < config.minimums.data_points:
        return None
    if imbalance < stats.percentile90:
        return None

    window = trades_in_range(market_trades(market_id, trades), now - window_ms, now)
    buy_volume, sell_volume = outcome_volumes(window)
    total = buy_volume + sell_volume
    buy_pct = buy_volume / total * 100 if total > 0 else 0.0
    sell_pct = sell_volume / total * 100 if total > 0 else 0.0

    if imbalance >= stats.percentile99:
        percentile_rank = 99
    elif imbalance >= stats.percentile90:
        percentile_rank = 90
    else:
        percentile_rank = 50

    direction = "buy" if buy_volume > sell_volume else "sell"
    minutes = round(window_ms / 60000)
    return build_event(
        id=event_id(market_id, "flow-imbalance", now),
        market_id=market_id,
        type=AnomalyType.FLOW_IMBALANCE,
        severity=Severity.HIGH if imbalance >= 0.9 else Severity.MEDIUM,
        score=imbalance * 100,
        timestamp=now,
        label="Flow imbalance",
        message=(
            f"Flow imbalance: {imbalance * 100:.0f}% ({buy_pct:.0f}% Buy, {sell_pct:.0f}% Sell "
            f"in last {minutes}m, top {percentile_rank}% historically)"
        ),
        context={
            "imbalance": imbalance,
            "buyVolume": buy_volume,
            "sellVolume": sell_volume,
            "totalVolume": total,
            "meanImbalance": stats.mean,
            "percentileRank": percentile_rank,
            "direction": direction,
            "windowMs": window_ms,
        },
    )


def detect_volume_flow_anomalies(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """Run all volume and flow detectors for a market."""
    results = [
        detect_volume_spike(market_id, window_ms, trades, now, config),
        detect_flow_imbalance(market_id, window_ms, trades, now, config),
    ]
    return [a for a in results if a is not None]
