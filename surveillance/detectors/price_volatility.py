"""
Price and Volatility Detectors
==============================

Price jumps within the window, short-versus-long volatility spikes, and
breakouts beyond the historical 5th/95th price quantiles.

YES and NO prices are complements, so every comparison here is made
within a single outcome.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from ..baselines import (
    compute_z_score,
    get_return_stats,
    market_trades,
    sort_by_time,
    trades_in_range,
)
from ..config import DAY_MS, AnomalyDetectionConfig
from ..types import AnomalyEvent, AnomalyType, Outcome, Severity, Trade
from .base import build_event, event_id

logger = logging.getLogger(__name__)

BREAKOUT_HISTORY_MS = 7 * DAY_MS
LARGE_MOVE_PCT = 20.0
VOL_RATIO_THRESHOLD = 2.0


def dominant_outcome(trades: Sequence[Trade]) -> Outcome:
    """The outcome with more trades; YES wins ties."""
    yes = sum(1 for t in trades if t.outcome == Outcome.YES)
    no = sum(1 for t in trades if t.outcome == Outcome.NO)
    return Outcome.YES if yes >= no else Outcome.NO


def _valid_price(price: float) -> bool:
    return price is not None and math.isfinite(price) and price > 0


def detect_price_jump(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """
    First-to-last price change of the dominant outcome inside the window,
    scored against the distribution of consecutive-trade returns.
    """
    window = trades_in_range(market_trades(market_id, trades), now - window_ms, now)
    if len(window) < 2:
        return None

    outcome = dominant_outcome(window)
    tracked = sort_by_time(t for t in window if t.outcome == outcome)
    if len(tracked) < 2:
        return None

    price1, price2 = tracked[0].price, tracked[-1].price
    if not (_valid_price(price1) and _valid_price(price2)):
        return None

    change = (price2 - price1) / price1 * 100
    abs_change = abs(change)
    if abs_change < config.minimums.price_move_points:
        return None

    stats = get_return_stats(
        market_id, window_ms, trades, now, config.minimums.data_points, outcome=outcome
    )
    if stats is None or stats.count < config.minimums.data_points:
        return None

    z = compute_z_score(abs_change, abs(stats.mean), stats.std)
    if z < config.thresholds.price_z_score and abs_change < LARGE_MOVE_PCT:
        return None

    if abs_change >= 30 or z >= 4:
        severity = Severity.EXTREME
    elif abs_change >= LARGE_MOVE_PCT or z >= 3:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    direction = "up" if change > 0 else "down"
    point_change = abs(price2 - price1) * 100
    minutes = round(window_ms / 60000)
    return build_event(
        id=event_id(market_id, "price-jump", now),
        market_id=market_id,
        type=AnomalyType.PRICE_JUMP,
        severity=severity,
        score=abs_change / 50 * 100,
        timestamp=now,
        label="Price jump" if direction == "up" else "Price drop",
        message=(
            f"{outcome.value} price moved {direction} {point_change:.1f} percentage points "
            f"({abs_change:.1f}% change) in {minutes}m (z={z:.2f}, from "
            f"{price1 * 100:.1f}% to {price2 * 100:.1f}%)"
        ),
        context={
            "priceChange": change,
            "absPriceChange": abs_change,
            "price1": price1,
            "price2": price2,
            "zScore": z,
            "meanReturn": stats.mean,
            "stdReturn": stats.std,
            "outcome": outcome.value,
            "windowMs": window_ms,
        },
    )


def detect_volatility_spike(
    market_id: str,
    short_window_ms: int,
    long_window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """Short-horizon return volatility at least twice the long-horizon one."""
    mine = market_trades(market_id, trades)
    if len(mine) < 2:
        return None
    outcome = dominant_outcome(mine)

    min_points = config.minimums.data_points
    short_stats = get_return_stats(market_id, short_window_ms, mine, now, min_points, outcome=outcome)
    long_stats = get_return_stats(market_id, long_window_ms, mine, now, min_points, outcome=outcome)
    if short_stats is None or long_stats is None:
        return None

    short_vol, long_vol = short_stats.volatility, long_stats.volatility
    if long_vol == 0 or not (math.isfinite(short_vol) and math.isfinite(long_vol)):
        return None

    ratio = short_vol / long_vol
    if ratio < VOL_RATIO_THRESHOLD:
        return None

    if ratio >= 4:
        severity = Severity.EXTREME
    elif ratio >= 3:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return build_event(
        id=event_id(market_id, "volatility-spike", now),
        market_id=market_id,
        type=AnomalyType.VOLATILITY_SPIKE,
        severity=severity,
        score=ratio / 5 * 100,
        timestamp=now,
        label="Volatility spike",
        message=(
            f"Short-term volatility ({short_vol:.2f}%) is {ratio:.1f}x "
            f"long-term volatility ({long_vol:.2f}%)"
        ),
        context={
            "shortVol": short_vol,
            "longVol": long_vol,
            "volRatio": ratio,
            "shortWindowMs": short_window_ms,
            "longWindowMs": long_window_ms,
        },
    )


def detect_breakout(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """
    Latest price outside the [p5, p95] range of the same outcome's prices
    over the prior 7 days (current window excluded).

    Quantiles use the nearest-rank element ``sorted[floor(n * q)]``.
    """
    mine = market_trades(market_id, trades)
    recent = sort_by_time(trades_in_range(mine, now - window_ms, now))
    if not recent:
        return None

    latest = recent[-1]
    current = latest.price
    if not _valid_price(current):
        return None

    history = [
        t for t in mine
        if now - BREAKOUT_HISTORY_MS <= t.timestamp < now - window_ms
        and t.outcome == latest.outcome
    ]
    if len(history) < config.minimums.data_points:
        return None

    prices = sorted(t.price for t in history if _valid_price(t.price))
    if len(prices) < config.minimums.data_points:
        return None

    p5 = prices[int(len(prices) * 0.05)]
    p95 = prices[min(int(len(prices) * 0.95), len(prices) - 1)]

    if current > p95:
        direction, threshold = "up", p95
        distance = (current - threshold) / threshold * 100
    elif current < p5:
        direction, threshold = "down", p5
        distance = (threshold - current) / threshold * 100
    else:
        return None

    bound = "upper" if direction == "up" else "lower"
    return build_event(
        id=event_id(market_id, "breakout", now),
        market_id=market_id,
        type=AnomalyType.BREAKOUT,
        severity=Severity.HIGH if distance >= 5 else Severity.MEDIUM,
        score=distance * 10,
        timestamp=now,
        label=f"Breakout {direction}",
        message=(
            f"Price broke {direction} {current * 100:.1f}% ({threshold * 100:.1f}% {bound} "
            f"quantile, {distance:.1f}% beyond)"
        ),
        context={
            "currentPrice": current,
            "percentile5": p5,
            "percentile95": p95,
            "distance": distance,
            "direction": direction,
            "outcome": latest.outcome.value,
            "windowMs": window_ms,
        },
    )


def detect_price_volatility_anomalies(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """Run all price and volatility detectors for a market."""
    results = [
        detect_price_jump(market_id, window_ms, trades, now, config),
        detect_volatility_spike(market_id, window_ms, config.windows.long, trades, now, config),
        detect_breakout(market_id, window_ms, trades, now, config),
    ]
    return [a for a in results if a is not None]
