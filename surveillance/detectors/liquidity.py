"""
Liquidity Detectors
===================

Order-book anomalies: spread widening/tightening against the historical
spread distribution, depth collapses/spikes near mid, and changes in the
slippage of fixed-size market orders.

The current snapshot is compared with the market's earlier snapshots;
events are stamped with the current snapshot's timestamp.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from ..baselines import (
    compute_distribution_stats,
    compute_z_score,
    get_spread_stats,
    spread_percent,
)
from ..config import AnomalyDetectionConfig
from ..types import AnomalyEvent, AnomalyType, OrderBookSnapshot, Severity
from .base import build_event, event_id

logger = logging.getLogger(__name__)

DEPTH_LEVELS_PCT: Tuple[int, ...] = (1, 3, 5)
SLIPPAGE_SIZES: Tuple[int, ...] = (1000, 5000)
SLIPPAGE_SIDES: Tuple[str, ...] = ("buy", "sell")


def depth_within(snapshot: OrderBookSnapshot, distance_pct: float) -> float:
    """Resting size on both sides within ``distance_pct`` of mid; 0 for an unusable book."""
    mid = snapshot.mid_price
    if mid is None:
        return 0.0

    bid_floor = mid * (1 - distance_pct / 100)
    ask_ceiling = mid * (1 + distance_pct / 100)
    bid_depth = sum(level.size or 0 for level in snapshot.bids if level.price >= bid_floor)
    ask_depth = sum(level.size or 0 for level in snapshot.asks if level.price <= ask_ceiling)
    return bid_depth + ask_depth


def slippage_for(snapshot: OrderBookSnapshot, size: float, side: str) -> Optional[float]:
    """
    Walk the book for a market order of ``size`` and return the distance of
    the last touched level from mid, in percent.
    """
    mid = snapshot.mid_price
    if mid is None:
        return None

    levels = snapshot.asks if side == "buy" else snapshot.bids
    executed = mid
    remaining = size
    for level in levels:
        if remaining <= 0:
            break
        executed = level.price
        remaining -= min(remaining, level.size or 0)

    return abs(executed - mid) / mid * 100


def _history_for(market_id: str, history: Sequence[OrderBookSnapshot]) -> List[OrderBookSnapshot]:
    return [s for s in history if s.market_id == market_id]


def _spread_event(
    market_id: str,
    current: OrderBookSnapshot,
    history: Sequence[OrderBookSnapshot],
    config: AnomalyDetectionConfig,
    widening: bool,
) -> Optional[AnomalyEvent]:
    spread = spread_percent(current)
    if spread is None:
        return None

    stats = get_spread_stats(market_id, history, config.minimums.data_points)
    if stats is None or stats.count < config.minimums.data_points:
        return None

    z = compute_z_score(spread, stats.mean, stats.std)
    threshold = config.thresholds.spread_z_score
    ratio = spread / stats.mean if stats.mean > 0 else 0.0

    if widening:
        if z < threshold or spread <= stats.mean:
            return None
        high = ratio >= 2 or z >= 3
        score = ratio / 3 * 100
        anomaly_type, slug, label, verb = (
            AnomalyType.SPREAD_WIDENING, "spread-widening", "Spread widening", "widened",
        )
    else:
        if z > -threshold or spread >= stats.mean:
            return None
        high = ratio <= 0.5 or z <= -3
        score = (1 - ratio) / 0.5 * 100
        anomaly_type, slug, label, verb = (
            AnomalyType.SPREAD_TIGHTENING, "spread-tightening", "Spread tightening", "tightened",
        )

    return build_event(
        id=event_id(market_id, slug, current.timestamp),
        market_id=market_id,
        type=anomaly_type,
        severity=Severity.HIGH if high else Severity.MEDIUM,
        score=score,
        timestamp=current.timestamp,
        label=label,
        message=(
            f"Spread {verb} to {spread:.2f}% (avg {stats.mean:.2f}%, "
            f"{ratio:.1f}x, z={z:.2f})"
        ),
        context={
            "currentSpread": spread,
            "meanSpread": stats.mean,
            "stdSpread": stats.std,
            "spreadRatio": ratio,
            "zScore": z,
        },
    )


def detect_spread_widening(
    market_id: str,
    current: OrderBookSnapshot,
    history: Sequence[OrderBookSnapshot],
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    return _spread_event(market_id, current, history, config, widening=True)


def detect_spread_tightening(
    market_id: str,
    current: OrderBookSnapshot,
    history: Sequence[OrderBookSnapshot],
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    return _spread_event(market_id, current, history, config, widening=False)


def detect_depth_change(
    market_id: str,
    current: OrderBookSnapshot,
    history: Sequence[OrderBookSnapshot],
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """
    Depth within 1%, 3% and 5% of mid against its history; the first level
    whose |z| reaches the spread threshold is reported.
    """
    snapshots = _history_for(market_id, history)
    min_points = config.minimums.data_points
    if len(snapshots) < min_points:
        return None

    for level in DEPTH_LEVELS_PCT:
        current_depth = depth_within(current, level)
        past = [d for d in (depth_within(s, level) for s in snapshots) if d > 0]
        if len(past) < min_points:
            continue

        stats = compute_distribution_stats(past)
        if stats.mean == 0:
            continue

        z = compute_z_score(current_depth, stats.mean, stats.std)
        if abs(z) < config.thresholds.spread_z_score:
            continue

        ratio = current_depth / stats.mean
        collapse = current_depth < stats.mean
        logger.debug(f"{market_id}: depth change at {level}% z={z:.2f}")
        return build_event(
            id=event_id(market_id, "depth-change", current.timestamp, level),
            market_id=market_id,
            type=AnomalyType.DEPTH_CHANGE,
            severity=Severity.HIGH if abs(z) >= 3 else Severity.MEDIUM,
            score=abs(z) * 20,
            timestamp=current.timestamp,
            label="Depth collapse" if collapse else "Depth spike",
            message=(
                f"Depth at {level}% {'collapsed' if collapse else 'spiked'} to "
                f"{current_depth:.0f} (avg {stats.mean:.0f}, {ratio:.1f}x, z={z:.2f})"
            ),
            context={
                "currentDepth": current_depth,
                "meanDepth": stats.mean,
                "stdDepth": stats.std,
                "depthRatio": ratio,
                "zScore": z,
                "distancePercent": level,
            },
        )

    return None


def detect_slippage_change(
    market_id: str,
    current: OrderBookSnapshot,
    history: Sequence[OrderBookSnapshot],
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """Slippage of $1k/$5k buy and sell orders against history; first hit wins."""
    snapshots = _history_for(market_id, history)
    min_points = config.minimums.data_points

    for size in SLIPPAGE_SIZES:
        for side in SLIPPAGE_SIDES:
            current_slippage = slippage_for(current, size, side)
            if current_slippage is None:
                continue

            past = [s for s in (slippage_for(snap, size, side) for snap in snapshots) if s is not None]
            if len(past) < min_points:
                continue

            stats = compute_distribution_stats(past)
            if stats.mean == 0:
                continue

            z = compute_z_score(current_slippage, stats.mean, stats.std)
            if abs(z) < config.thresholds.spread_z_score:
                continue

            ratio = current_slippage / stats.mean
            increase = current_slippage > stats.mean
            return build_event(
                id=event_id(market_id, "slippage-change", current.timestamp, size, side),
                market_id=market_id,
                type=AnomalyType.SLIPPAGE_CHANGE,
                severity=Severity.HIGH if abs(z) >= 3 else Severity.MEDIUM,
                score=abs(z) * 20,
                timestamp=current.timestamp,
                label="Slippage increase" if increase else "Slippage decrease",
                message=(
                    f"Slippage for ${size:,} {side} {'increased' if increase else 'decreased'} "
                    f"to {current_slippage:.2f}% (avg {stats.mean:.2f}%, {ratio:.1f}x, z={z:.2f})"
                ),
                context={
                    "currentSlippage": current_slippage,
                    "meanSlippage": stats.mean,
                    "stdSlippage": stats.std,
                    "slippageRatio": ratio,
                    "zScore": z,
                    "tradeSize": size,
                    "side": side,
                },
            )

    return None


def detect_liquidity_anomalies(
    market_id: str,
    current: OrderBookSnapshot,
    history: Sequence[OrderBookSnapshot],
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """Run all liquidity detectors for a market."""
    results = [
        detect_spread_widening(market_id, current, history, config),
        detect_spread_tightening(market_id, current, history, config),
        detect_depth_change(market_id, current, history, config),
        detect_slippage_change(market_id, current, history, config),
    ]
    return [a for a in results if a is not None]
