"""
Domain Types for the Surveillance Engine
========================================

Value types exchanged between the baselines, detectors, scoring and the
orchestrator. Everything here is immutable; timestamps are epoch
milliseconds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


class Outcome(str, Enum):
    """Binary market outcome. YES flow is treated as buying, NO as selling."""
    YES = "YES"
    NO = "NO"


class AnomalyType(str, Enum):
    """All anomaly types emitted by the detector families."""
    VOLUME_SPIKE = "volume-spike"
    FLOW_IMBALANCE = "flow-imbalance"
    PRICE_JUMP = "price-jump"
    VOLATILITY_SPIKE = "volatility-spike"
    BREAKOUT = "breakout"
    SPREAD_WIDENING = "spread-widening"
    SPREAD_TIGHTENING = "spread-tightening"
    DEPTH_CHANGE = "depth-change"
    SLIPPAGE_CHANGE = "slippage-change"
    WHALE_TRADE = "whale-trade"
    WALLET_CONCENTRATION = "wallet-concentration"
    NEW_WALLET_IMPACT = "new-wallet-impact"
    CROSS_MARKET_MISPRICING = "cross-market-mispricing"
    PRE_EXPIRY_ANOMALY = "pre-expiry-anomaly"
    COMPOSITE_EVENT = "composite-event"


class Severity(str, Enum):
    """Severity of a single anomaly event."""
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.EXTREME: 3}


class SeverityBand(str, Enum):
    """Classification of a composite heat score."""
    CALM = "calm"
    MILD = "mild"
    HOT = "hot"
    ON_FIRE = "on-fire"


def parse_amount(amount: Any) -> float:
    """Parse a decimal amount string; anything unusable counts as 0."""
    if amount is None or amount == "":
        return 0.0
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


@dataclass(frozen=True)
class Trade:
    """A single fill on a market outcome."""
    id: str
    market_id: str
    outcome: Outcome
    amount: str
    price: float
    timestamp: int
    user: Optional[str] = None
    transaction_hash: Optional[str] = None

    @property
    def notional(self) -> float:
        return parse_amount(self.amount)

    @property
    def wallet(self) -> str:
        return self.user or "unknown"


@dataclass(frozen=True)
class OrderBookLevel:
    price: float
    size: float


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Order book at a point in time; bids and asks are best-first."""
    market_id: str
    timestamp: int
    bids: Tuple[OrderBookLevel, ...] = ()
    asks: Tuple[OrderBookLevel, ...] = ()

    @property
    def best_bid(self) -> Optional[float]:
        return _best_price(self.bids)

    @property
    def best_ask(self) -> Optional[float]:
        return _best_price(self.asks)

    @property
    def mid_price(self) -> Optional[float]:
        bid, ask = self.best_bid, self.best_ask
        if bid is None or ask is None:
            return None
        return (bid + ask) / 2


def _best_price(levels: Sequence[OrderBookLevel]) -> Optional[float]:
    if not levels:
        return None
    price = levels[0].price
    if price is None or not math.isfinite(price) or price <= 0:
        return None
    return price


@dataclass(frozen=True)
class MarketMetadata:
    """
    Market descriptors used by the cross-market detectors.

    ``event_id``/``series_id`` group sibling markets; ``end_date`` is the
    resolution time as an ISO-8601 string or epoch milliseconds.
    """
    id: str
    event_id: Optional[str] = None
    series_id: Optional[str] = None
    end_date: Optional[Any] = None
    question: Optional[str] = None
    category: Optional[str] = None

    @property
    def group_id(self) -> Optional[str]:
        return self.event_id or self.series_id

    def is_sibling_of(self, market_id: str, group_id: str) -> bool:
        return self.id != market_id and (
            self.event_id == group_id or self.series_id == group_id
        )


@dataclass(frozen=True)
class AnomalyMeta:
    wallet: Optional[str] = None
    outcome_id: Optional[str] = None
    group_id: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        raw = {"wallet": self.wallet, "outcomeId": self.outcome_id, "groupId": self.group_id}
        return {k: v for k, v in raw.items() if v is not None}


@dataclass(frozen=True)
class AnomalyEvent:
    """A single detected anomaly. Never mutated after creation."""
    id: str
    market_id: str
    type: AnomalyType
    severity: Severity
    score: float
    timestamp: int
    label: str
    message: str
    context: Mapping[str, Any] = field(default_factory=dict)
    meta: Optional[AnomalyMeta] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'marketId': self.market_id,
            'type': self.type.value,
            'severity': self.severity.value,
            'score': self.score,
            'timestamp': self.timestamp,
            'label': self.label,
            'message': self.message,
            'context': dict(self.context),
        }
        if self.meta is not None:
            data['meta'] = self.meta.to_dict()
        return data


@dataclass(frozen=True)
class MarketHeatScore:
    """Composite unusual-activity score for one market."""
    market_id: str
    score: float
    components: Mapping[AnomalyType, float]
    last_updated: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'marketId': self.market_id,
            'score': self.score,
            'components': {t.value: v for t, v in self.components.items()},
            'lastUpdated': self.last_updated,
        }


@dataclass(frozen=True)
class DistributionStats:
    mean: float
    std: float
    min: float
    max: float
    percentile90: float
    percentile99: float
    count: int


@dataclass(frozen=True)
class ReturnStats(DistributionStats):
    volatility: float = 0.0


@dataclass(frozen=True)
class AnomalyQuery:
    """Read-side filters for cached anomalies. Empty lists mean no filter."""
    since: Optional[int] = None
    types: Optional[Sequence[AnomalyType]] = None
    severities: Optional[Sequence[Severity]] = None
    market_ids: Optional[Sequence[str]] = None


@dataclass(frozen=True)
class AnomalyDetectionResult:
    anomalies: Tuple[AnomalyEvent, ...]
    heat_scores: Tuple[MarketHeatScore, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'anomalies': [a.to_dict() for a in self.anomalies],
            'heatScores': [h.to_dict() for h in self.heat_scores],
        }
