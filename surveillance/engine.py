"""
Anomaly Engine
==============

Runs every detector family over a batch of markets, scores the results and
records them in an AnomalyStore for later queries.

Usage:
    from surveillance.engine import AnomalyStore, ComputeAnomaliesParams, compute_market_anomalies

    store = AnomalyStore()
    result = compute_market_anomalies(
        ComputeAnomaliesParams(now=now_ms, window_ms=5 * 60_000, trades_by_market=trades),
        store=store,
    )
    store.get_anomalies_for_market("m1", AnomalyQuery(severities=[Severity.HIGH]))

Each call recomputes from the full history it is given. Store instances are
independent; the module-level default store backs the function-style
wrappers at the bottom of this file.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from core.exceptions import ConfigValidationError
from .config import AnomalyDetectionConfig, ConfigOverride, DEFAULT_CONFIG, merge_config
from .detectors import (
    detect_cross_market_anomalies,
    detect_liquidity_anomalies,
    detect_participant_anomalies,
    detect_price_volatility_anomalies,
    detect_volume_flow_anomalies,
)
from .scoring import compute_heat_scores
from .types import (
    AnomalyDetectionResult,
    AnomalyEvent,
    AnomalyQuery,
    MarketHeatScore,
    MarketMetadata,
    OrderBookSnapshot,
    Trade,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComputeAnomaliesParams:
    """Inputs for one scan. ``config`` is a partial override of the defaults."""
    now: int
    window_ms: int
    trades_by_market: Mapping[str, Sequence[Trade]]
    order_books_by_market: Mapping[str, Sequence[OrderBookSnapshot]] = field(default_factory=dict)
    metadata_by_market: Mapping[str, MarketMetadata] = field(default_factory=dict)
    config: Optional[ConfigOverride] = None


class AnomalyStore:
    """
    Latest anomalies and heat scores per market.

    Thread-safe: every read and write holds the store's lock, and readers
    get copies.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._anomalies: Dict[str, List[AnomalyEvent]] = {}
        self._heat_scores: Dict[str, MarketHeatScore] = {}

    def update(
        self,
        anomalies_by_market: Mapping[str, Sequence[AnomalyEvent]],
        heat_scores: Sequence[MarketHeatScore],
    ) -> None:
        """Replace the entries of every market in the scan; others are kept."""
        with self._lock:
            for market_id, anomalies in anomalies_by_market.items():
                self._anomalies[market_id] = list(anomalies)
            for heat in heat_scores:
                self._heat_scores[heat.market_id] = heat

    def get_anomalies_for_market(
        self,
        market_id: str,
        query: Optional[AnomalyQuery] = None,
    ) -> List[AnomalyEvent]:
        """Stored anomalies for a market, filtered and newest first."""
        query = query or AnomalyQuery()
        if query.market_ids and market_id not in query.market_ids:
            return []

        with self._lock:
            anomalies = list(self._anomalies.get(market_id, ()))

        if query.since is not None:
            anomalies = [a for a in anomalies if a.timestamp >= query.since]
        if query.types:
            anomalies = [a for a in anomalies if a.type in query.types]
        if query.severities:
            anomalies = [a for a in anomalies if a.severity in query.severities]

        anomalies.sort(key=lambda a: a.timestamp, reverse=True)
        return anomalies

    def get_heat_score_for_market(self, market_id: str) -> Optional[MarketHeatScore]:
        with self._lock:
            return self._heat_scores.get(market_id)

    def get_all_anomalies(self) -> List[AnomalyEvent]:
        with self._lock:
            return [a for anomalies in self._anomalies.values() for a in anomalies]

    def get_all_heat_scores(self) -> List[MarketHeatScore]:
        with self._lock:
            return list(self._heat_scores.values())

    def clear(self) -> None:
        with self._lock:
            self._anomalies.clear()
            self._heat_scores.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._heat_scores)


def _split_snapshots(
    snapshots: Sequence[OrderBookSnapshot],
) -> Optional[Tuple[OrderBookSnapshot, List[OrderBookSnapshot]]]:
    """(current, history) with the latest snapshot as current."""
    if not snapshots:
        return None
    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    return ordered[-1], ordered[:-1]


def _scan_market(
    market_id: str,
    trades: Sequence[Trade],
    params: ComputeAnomaliesParams,
    config: AnomalyDetectionConfig,
    found_so_far: Sequence[AnomalyEvent],
) -> List[AnomalyEvent]:
    now, window_ms = params.now, params.window_ms

    anomalies: List[AnomalyEvent] = []
    anomalies.extend(detect_volume_flow_anomalies(market_id, window_ms, trades, now, config))
    anomalies.extend(detect_price_volatility_anomalies(market_id, window_ms, trades, now, config))
    anomalies.extend(detect_participant_anomalies(market_id, window_ms, trades, now, config))

    # Cross-market sees everything produced so far, including this market's stages above
    prior = tuple(found_so_far) + tuple(anomalies)
    anomalies.extend(detect_cross_market_anomalies(
        market_id, window_ms, params.trades_by_market, now, prior,
        params.metadata_by_market, config,
    ))

    split = _split_snapshots(params.order_books_by_market.get(market_id, ()))
    if split is not None:
        current, history = split
        anomalies.extend(detect_liquidity_anomalies(market_id, current, history, config))

    return anomalies


def compute_market_anomalies(
    params: ComputeAnomaliesParams,
    store: Optional[AnomalyStore] = None,
    base_config: AnomalyDetectionConfig = DEFAULT_CONFIG,
) -> AnomalyDetectionResult:
    """
    Detect anomalies for every market with trades and compute heat scores.

    Markets are processed in the mapping's iteration order; every market
    with at least one trade receives a heat score.

    Args:
        params: Scan inputs
        store: Store to record results in (the module default if None)
        base_config: Config the override in ``params.config`` is merged over

    Raises:
        ConfigValidationError: If ``params.config`` is invalid or
            ``params.window_ms`` is not positive
    """
    if params.window_ms <= 0:
        raise ConfigValidationError(
            "Scan window must be positive", context={"window_ms": params.window_ms}
        )
    config = merge_config(params.config, base=base_config)
    store = store if store is not None else _default_store

    all_anomalies: List[AnomalyEvent] = []
    by_market: Dict[str, List[AnomalyEvent]] = {}
    for market_id, trades in params.trades_by_market.items():
        if not trades:
            continue
        found = _scan_market(market_id, trades, params, config, all_anomalies)
        by_market[market_id] = found
        all_anomalies.extend(found)

    heat_scores = compute_heat_scores(by_market, config, params.now)
    store.update(by_market, heat_scores)

    top = heat_scores[0].score if heat_scores else 0.0
    logger.info(
        f"Scanned {len(by_market)} markets: {len(all_anomalies)} anomalies, max heat {top:.1f}"
    )
    return AnomalyDetectionResult(anomalies=tuple(all_anomalies), heat_scores=tuple(heat_scores))


class AnomalyEngine:
    """A store and a base config for repeated polling scans."""

    def __init__(
        self,
        config: Optional[ConfigOverride] = None,
        store: Optional[AnomalyStore] = None,
    ):
        self.config = merge_config(config)
        self.store = store if store is not None else AnomalyStore()

    def scan(
        self,
        now: int,
        window_ms: int,
        trades_by_market: Mapping[str, Sequence[Trade]],
        order_books_by_market: Optional[Mapping[str, Sequence[OrderBookSnapshot]]] = None,
        metadata_by_market: Optional[Mapping[str, MarketMetadata]] = None,
        overrides: Optional[ConfigOverride] = None,
    ) -> AnomalyDetectionResult:
        params = ComputeAnomaliesParams(
            now=now,
            window_ms=window_ms,
            trades_by_market=trades_by_market,
            order_books_by_market=order_books_by_market or {},
            metadata_by_market=metadata_by_market or {},
            config=overrides,
        )
        return compute_market_anomalies(params, store=self.store, base_config=self.config)

    def anomalies_for(self, market_id: str, query: Optional[AnomalyQuery] = None) -> List[AnomalyEvent]:
        return self.store.get_anomalies_for_market(market_id, query)

    def heat_score_for(self, market_id: str) -> Optional[MarketHeatScore]:
        return self.store.get_heat_score_for_market(market_id)


# =============================================================================
# MODULE DEFAULT STORE
# =============================================================================

_default_store = AnomalyStore()


def get_default_store() -> AnomalyStore:
    return _default_store


def get_anomalies_for_market(market_id: str, query: Optional[AnomalyQuery] = None) -> List[AnomalyEvent]:
    return _default_store.get_anomalies_for_market(market_id, query)


def get_heat_score_for_market(market_id: str) -> Optional[MarketHeatScore]:
    return _default_store.get_heat_score_for_market(market_id)


def get_all_anomalies() -> List[AnomalyEvent]:
    return _default_store.get_all_anomalies()


def get_all_heat_scores() -> List[MarketHeatScore]:
    return _default_store.get_all_heat_scores()


def clear_cache() -> None:
    _default_store.clear()
