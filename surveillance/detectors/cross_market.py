"""
Cross-Market and Structural Detectors
=====================================

- Mispricing: a market's YES-implied price far from its siblings' prices
- Linked event: a strong anomaly in one market that its siblings do not share
- Pre-expiry: volume surging in the final hour before resolution

Sibling markets share an ``event_id`` or ``series_id``.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from ..baselines import compute_distribution_stats, compute_z_score, sum_notional
from ..config import HOUR_MS, AnomalyDetectionConfig
from ..types import (
    AnomalyEvent,
    AnomalyMeta,
    AnomalyType,
    MarketMetadata,
    Outcome,
    Severity,
    Trade,
)
from .base import build_event, event_id

logger = logging.getLogger(__name__)

_STRONG = (Severity.HIGH, Severity.EXTREME)


def parse_end_time(end_date) -> Optional[int]:
    """Resolve an ISO-8601 string or epoch-ms value to epoch ms; None if unparseable."""
    if end_date is None or end_date == "":
        return None
    if isinstance(end_date, (int, float)) and not isinstance(end_date, bool):
        return int(end_date) if math.isfinite(end_date) else None
    try:
        ts = pd.Timestamp(end_date)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return int(ts.value // 1_000_000)


def siblings_of(
    market_id: str,
    metadata_by_market: Mapping[str, MarketMetadata],
) -> List[MarketMetadata]:
    meta = metadata_by_market.get(market_id)
    if meta is None or meta.group_id is None:
        return []
    return [m for m in metadata_by_market.values() if m.is_sibling_of(market_id, meta.group_id)]


def implied_yes_price(trade: Trade) -> Optional[float]:
    """YES-equivalent price of a trade; NO prices are mirrored to ``1 - p``."""
    price = trade.price
    if price is None or not math.isfinite(price):
        return None
    if trade.outcome == Outcome.NO:
        price = 1 - price
    return price if price > 0 else None


def latest_implied_price(market_id: str, trades: Iterable[Trade]) -> Optional[float]:
    latest: Optional[Trade] = None
    for t in trades:
        if t.market_id == market_id and (latest is None or t.timestamp >= latest.timestamp):
            latest = t
    return implied_yes_price(latest) if latest is not None else None


def detect_cross_market_mispricing(
    market_id: str,
    trades: Sequence[Trade],
    metadata_by_market: Mapping[str, MarketMetadata],
    config: AnomalyDetectionConfig,
    now: int,
) -> Optional[AnomalyEvent]:
    """
    Z-score of this market's latest YES-implied price against the latest
    prices of at least two siblings. ``trades`` must include sibling trades.
    """
    siblings = siblings_of(market_id, metadata_by_market)
    if not siblings:
        return None

    current = latest_implied_price(market_id, trades)
    if current is None:
        return None

    sibling_prices = [
        p for p in (latest_implied_price(m.id, trades) for m in siblings) if p is not None
    ]
    if len(sibling_prices) < 2:
        return None

    stats = compute_distribution_stats(sibling_prices)
    if stats.std == 0 or stats.mean == 0:
        return None

    z = compute_z_score(current, stats.mean, stats.std)
    if abs(z) < config.cross_market.std_dev_threshold:
        return None

    deviation = (current - stats.mean) / stats.mean * 100
    direction = "above" if current > stats.mean else "below"
    high = abs(z) >= 3.5 or abs(deviation) >= 15
    group_id = metadata_by_market[market_id].group_id
    return build_event(
        id=event_id(market_id, "cross-market-mispricing", now),
        market_id=market_id,
        type=AnomalyType.CROSS_MARKET_MISPRICING,
        severity=Severity.HIGH if high else Severity.MEDIUM,
        score=abs(z) * 20,
        timestamp=now,
        label="Cross-market mispricing",
        message=(
            f"Price {current * 100:.1f}% is {abs(deviation):.1f}% {direction} group "
            f"average {stats.mean * 100:.1f}% (z={z:.2f})"
        ),
        context={
            "currentPrice": current,
            "meanPrice": stats.mean,
            "stdPrice": stats.std,
            "zScore": z,
            "deviation": deviation,
            "groupSize": len(sibling_prices),
        },
        meta=AnomalyMeta(group_id=group_id),
    )


def detect_linked_event_anomaly(
    market_id: str,
    prior_anomalies: Sequence[AnomalyEvent],
    metadata_by_market: Mapping[str, MarketMetadata],
    config: AnomalyDetectionConfig,
    now: int,
) -> Optional[AnomalyEvent]:
    """
    High/extreme anomaly on this market while none of its siblings has one.

    ``prior_anomalies`` is what the scan has produced so far, so the answer
    depends on the order markets are processed in.
    """
    siblings = siblings_of(market_id, metadata_by_market)
    if not siblings:
        return None

    own = [a for a in prior_anomalies if a.market_id == market_id]
    if not any(a.severity in _STRONG for a in own):
        return None

    sibling_ids = {m.id for m in siblings}
    related = [a for a in prior_anomalies if a.market_id in sibling_ids]
    if any(a.severity in _STRONG for a in related):
        return None

    return build_event(
        id=event_id(market_id, "linked-event", now),
        market_id=market_id,
        type=AnomalyType.COMPOSITE_EVENT,
        severity=Severity.MEDIUM,
        score=50,
        timestamp=now,
        label="Out of sync",
        message=(
            f"High-severity anomaly detected but related markets in group not "
            f"reacting ({len(siblings)} related markets)"
        ),
        context={
            "marketAnomalyCount": len(own),
            "relatedAnomalyCount": len(related),
            "groupSize": len(siblings),
        },
        meta=AnomalyMeta(group_id=metadata_by_market[market_id].group_id),
    )


def detect_pre_expiry_anomaly(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    metadata_by_market: Mapping[str, MarketMetadata],
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """Window volume at least 3x the previous window within the last hour before expiry."""
    meta = metadata_by_market.get(market_id)
    if meta is None:
        return None
    end_time = parse_end_time(meta.end_date)
    if end_time is None:
        return None

    time_to_expiry = end_time - now
    if time_to_expiry <= 0 or time_to_expiry > config.pre_expiry.time_threshold:
        return None

    mine = [t for t in trades if t.market_id == market_id]
    if not mine:
        return None

    recent_volume = sum_notional(t for t in mine if now - window_ms <= t.timestamp <= now)
    prior_volume = sum_notional(t for t in mine if now - 2 * window_ms <= t.timestamp < now - window_ms)

    hours = time_to_expiry / HOUR_MS
    if hours >= 1 or recent_volume <= 0 or prior_volume <= 0:
        return None

    ratio = recent_volume / prior_volume
    if ratio < 3:
        return None

    return build_event(
        id=event_id(market_id, "pre-expiry", now),
        market_id=market_id,
        type=AnomalyType.PRE_EXPIRY_ANOMALY,
        severity=Severity.HIGH if ratio >= 5 or hours < 0.5 else Severity.MEDIUM,
        score=ratio / 5 * 100,
        timestamp=now,
        label="Pre-expiry anomaly",
        message=(
            f"Unusual volume spike ({ratio:.1f}x) {hours:.1f}h before expiry: "
            f"{recent_volume:,.0f} USDC"
        ),
        context={
            "recentVolume": recent_volume,
            "historicalVolume": prior_volume,
            "volumeRatio": ratio,
            "hoursToExpiry": hours,
            "timeToExpiry": time_to_expiry,
            "windowMs": window_ms,
        },
    )


def detect_cross_market_anomalies(
    market_id: str,
    window_ms: int,
    trades_by_market: Mapping[str, Sequence[Trade]],
    now: int,
    prior_anomalies: Sequence[AnomalyEvent],
    metadata_by_market: Mapping[str, MarketMetadata],
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """Run all cross-market detectors for a market."""
    if not metadata_by_market:
        return []

    all_trades = [t for market_trades in trades_by_market.values() for t in market_trades]
    own_trades = trades_by_market.get(market_id, ())
    results = [
        detect_cross_market_mispricing(market_id, all_trades, metadata_by_market, config, now),
        detect_linked_event_anomaly(market_id, prior_anomalies, metadata_by_market, config, now),
        detect_pre_expiry_anomaly(market_id, window_ms, own_trades, now, metadata_by_market, config),
    ]
    return [a for a in results if a is not None]
