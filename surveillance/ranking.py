"""
Scanner ranking and filtering helpers for anomaly feeds and heat scores.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .config import DEFAULT_CONFIG, AnomalyDetectionConfig
from .scoring import get_severity_band
from .types import AnomalyEvent, AnomalyType, MarketHeatScore, Severity, SeverityBand

SCANNER_CATEGORIES = {
    AnomalyType.VOLUME_SPIKE: "volume-flow",
    AnomalyType.FLOW_IMBALANCE: "volume-flow",
    AnomalyType.PRICE_JUMP: "price-vol",
    AnomalyType.VOLATILITY_SPIKE: "price-vol",
    AnomalyType.BREAKOUT: "price-vol",
    AnomalyType.SPREAD_WIDENING: "liquidity",
    AnomalyType.SPREAD_TIGHTENING: "liquidity",
    AnomalyType.DEPTH_CHANGE: "liquidity",
    AnomalyType.SLIPPAGE_CHANGE: "liquidity",
    AnomalyType.WHALE_TRADE: "participants",
    AnomalyType.WALLET_CONCENTRATION: "participants",
    AnomalyType.NEW_WALLET_IMPACT: "participants",
}

SEVERITY_FILTERS = {
    "medium+": (Severity.MEDIUM, Severity.HIGH, Severity.EXTREME),
    "high+": (Severity.HIGH, Severity.EXTREME),
    "extreme": (Severity.EXTREME,),
}

_BAND_ORDER = [SeverityBand.CALM, SeverityBand.MILD, SeverityBand.HOT, SeverityBand.ON_FIRE]


def scanner_category(anomaly_type: AnomalyType) -> str:
    """Scanner tab for an anomaly type; cross-market types fall under ``other``."""
    return SCANNER_CATEGORIES.get(AnomalyType(anomaly_type), "other")


def sort_by_severity(anomalies: Iterable[AnomalyEvent]) -> List[AnomalyEvent]:
    """Most severe first, newest first within a severity."""
    return sorted(anomalies, key=lambda a: (a.severity.rank, a.timestamp), reverse=True)


def filter_min_severity(anomalies: Iterable[AnomalyEvent], level: str) -> List[AnomalyEvent]:
    """
    Keep anomalies matching a scanner severity filter: ``medium+``,
    ``high+``, ``extreme`` or ``all``.
    """
    if level == "all":
        return list(anomalies)
    try:
        allowed = SEVERITY_FILTERS[level]
    except KeyError:
        raise ValueError(f"unknown severity filter {level!r}; expected one of {sorted(SEVERITY_FILTERS)} or 'all'")
    return [a for a in anomalies if a.severity in allowed]


def filter_by_scanner_category(anomalies: Iterable[AnomalyEvent], category: str) -> List[AnomalyEvent]:
    if category == "all":
        return list(anomalies)
    return [a for a in anomalies if scanner_category(a.type) == category]


def top_markets(
    heat_scores: Sequence[MarketHeatScore],
    limit: int = 10,
    min_band: Optional[SeverityBand] = None,
    config: AnomalyDetectionConfig = DEFAULT_CONFIG,
) -> List[MarketHeatScore]:
    """Hottest markets first, optionally only those at or above ``min_band``."""
    ranked = sorted(heat_scores, key=lambda h: h.score, reverse=True)
    if min_band is not None:
        floor = _BAND_ORDER.index(SeverityBand(min_band))
        ranked = [h for h in ranked if _BAND_ORDER.index(get_severity_band(h.score, config)) >= floor]
    return ranked[:max(limit, 0)]
