"""
Market Surveillance
===================

Statistical anomaly detection over prediction-market trades and order books:
baselines, five detector families, composite heat scoring and a query store.

Usage:
    from surveillance import ComputeAnomaliesParams, compute_market_anomalies

    result = compute_market_anomalies(ComputeAnomaliesParams(
        now=now_ms,
        window_ms=5 * 60_000,
        trades_by_market=trades_by_market,
    ))
    for heat in result.heat_scores:
        print(heat.market_id, heat.score)
"""

from .config import (
    DEFAULT_CONFIG,
    AnomalyDetectionConfig,
    merge_config,
)
from .engine import (
    AnomalyEngine,
    AnomalyStore,
    ComputeAnomaliesParams,
    clear_cache,
    compute_market_anomalies,
    get_all_anomalies,
    get_all_heat_scores,
    get_anomalies_for_market,
    get_default_store,
    get_heat_score_for_market,
)
from .scoring import compute_heat_score, compute_heat_scores, get_severity_band
from .types import (
    AnomalyDetectionResult,
    AnomalyEvent,
    AnomalyMeta,
    AnomalyQuery,
    AnomalyType,
    MarketHeatScore,
    MarketMetadata,
    OrderBookLevel,
    OrderBookSnapshot,
    Outcome,
    Severity,
    SeverityBand,
    Trade,
)

__all__ = [
    # Types
    'Outcome',
    'Trade',
    'OrderBookLevel',
    'OrderBookSnapshot',
    'MarketMetadata',
    'AnomalyType',
    'Severity',
    'SeverityBand',
    'AnomalyMeta',
    'AnomalyEvent',
    'MarketHeatScore',
    'AnomalyQuery',
    'AnomalyDetectionResult',
    # Config
    'AnomalyDetectionConfig',
    'DEFAULT_CONFIG',
    'merge_config',
    # Scoring
    'compute_heat_score',
    'compute_heat_scores',
    'get_severity_band',
    # Engine
    'ComputeAnomaliesParams',
    'AnomalyStore',
    'AnomalyEngine',
    'compute_market_anomalies',
    'get_default_store',
    'get_anomalies_for_market',
    'get_heat_score_for_market',
    'get_all_anomalies',
    'get_all_heat_scores',
    'clear_cache',
]
