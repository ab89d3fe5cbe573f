"""
Composite Heat Scoring
======================

Reduces a market's anomaly events to a single 0-100 heat score using the
per-category weights of the detection config.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Mapping, Sequence

from .config import AnomalyDetectionConfig
from .types import AnomalyEvent, AnomalyType, MarketHeatScore, SeverityBand

ANOMALY_CATEGORIES: Dict[AnomalyType, str] = {
    AnomalyType.VOLUME_SPIKE: "volume",
    AnomalyType.FLOW_IMBALANCE: "volume",
    AnomalyType.PRICE_JUMP: "price",
    AnomalyType.VOLATILITY_SPIKE: "price",
    AnomalyType.BREAKOUT: "price",
    AnomalyType.SPREAD_WIDENING: "liquidity",
    AnomalyType.SPREAD_TIGHTENING: "liquidity",
    AnomalyType.DEPTH_CHANGE: "liquidity",
    AnomalyType.SLIPPAGE_CHANGE: "liquidity",
    AnomalyType.WHALE_TRADE: "participant",
    AnomalyType.WALLET_CONCENTRATION: "participant",
    AnomalyType.NEW_WALLET_IMPACT: "participant",
    AnomalyType.CROSS_MARKET_MISPRICING: "cross_market",
    AnomalyType.PRE_EXPIRY_ANOMALY: "cross_market",
    AnomalyType.COMPOSITE_EVENT: "cross_market",
}

_unmapped = set(AnomalyType) - set(ANOMALY_CATEGORIES)
if _unmapped:
    raise RuntimeError(f"AnomalyType(s) without a scoring category: {sorted(t.value for t in _unmapped)}")


def get_anomaly_category(anomaly_type: AnomalyType) -> str:
    return ANOMALY_CATEGORIES[AnomalyType(anomaly_type)]


def get_anomaly_weight(anomaly_type: AnomalyType, config: AnomalyDetectionConfig) -> float:
    return getattr(config.weights, get_anomaly_category(anomaly_type))


def compute_heat_score(
    market_id: str,
    anomalies: Sequence[AnomalyEvent],
    config: AnomalyDetectionConfig,
    now: int,
) -> MarketHeatScore:
    """
    Weighted sum of normalized anomaly scores, scaled to 0-100.

    ``components`` holds the raw weighted contribution (score/100 * weight)
    accumulated per anomaly type.
    """
    components: Dict[AnomalyType, float] = defaultdict(float)
    weighted_sum = 0.0
    for anomaly in anomalies:
        contribution = anomaly.score / 100 * get_anomaly_weight(anomaly.type, config)
        weighted_sum += contribution
        components[anomaly.type] += contribution

    return MarketHeatScore(
        market_id=market_id,
        score=max(0.0, min(100.0, weighted_sum * 100)),
        components=dict(components),
        last_updated=now,
    )


def get_severity_band(score: float, config: AnomalyDetectionConfig) -> SeverityBand:
    bands = config.severity_bands
    if score < bands.calm:
        return SeverityBand.CALM
    if score < bands.mild:
        return SeverityBand.MILD
    if score < bands.hot:
        return SeverityBand.HOT
    return SeverityBand.ON_FIRE


def compute_heat_scores(
    anomalies_by_market: Mapping[str, Sequence[AnomalyEvent]],
    config: AnomalyDetectionConfig,
    now: int,
) -> List[MarketHeatScore]:
    """Heat scores for every market in the mapping, highest first."""
    scores = [
        compute_heat_score(market_id, anomalies, config, now)
        for market_id, anomalies in anomalies_by_market.items()
    ]
    scores.sort(key=lambda h: h.score, reverse=True)
    return scores
