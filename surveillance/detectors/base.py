"""Shared helpers for building anomaly events."""
from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from ..baselines import time_bucket
from ..types import AnomalyEvent, AnomalyMeta, AnomalyType, Severity


def clamp_score(score: float) -> float:
    """Clamp to [0, 100]; non-finite scores become 0."""
    if not math.isfinite(score):
        return 0.0
    return max(0.0, min(100.0, score))


def event_id(market_id: str, slug: str, timestamp: int, *parts: Any) -> str:
    """
    ``{market}-{slug}-{bucket}``, with any extra parts appended after the bucket.
    """
    tail = "".join(f"-{p}" for p in parts)
    return f"{market_id}-{slug}-{time_bucket(timestamp)}{tail}"


def trade_event_id(market_id: str, slug: str, trade_id: str, timestamp: int) -> str:
    """``{market}-{slug}-{trade}-{bucket}`` for per-trade detectors."""
    return f"{market_id}-{slug}-{trade_id}-{time_bucket(timestamp)}"


def build_event(
    *,
    id: str,
    market_id: str,
    type: AnomalyType,
    severity: Severity,
    score: float,
    timestamp: int,
    label: str,
    message: str,
    context: Optional[Mapping[str, Any]] = None,
    meta: Optional[AnomalyMeta] = None,
) -> AnomalyEvent:
    return AnomalyEvent(
        id=id,
        market_id=market_id,
        type=type,
        severity=severity,
        score=clamp_score(score),
        timestamp=timestamp,
        label=label,
        message=message,
        context=dict(context or {}),
        meta=meta,
    )
