"""
Statistical Baselines
=====================

Numeric primitives (z-score, percentile, distribution stats) and windowed
aggregators over trade and order-book history.

Every function here degrades to None/0/empty instead of raising, so the
detectors can short-circuit cleanly when history is insufficient.
"""
from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .types import (
    DistributionStats,
    OrderBookSnapshot,
    Outcome,
    ReturnStats,
    Trade,
)

BUCKET_MS = 5 * 60 * 1000
LOOKBACK_MS = 24 * 60 * 60 * 1000

_EMPTY_STATS = DistributionStats(
    mean=0.0, std=0.0, min=0.0, max=0.0, percentile90=0.0, percentile99=0.0, count=0
)

_FRAME_COLUMNS = ["id", "ts", "notional", "price", "outcome", "wallet"]


# =============================================================================
# PRIMITIVES
# =============================================================================

def time_bucket(timestamp: int) -> int:
    """Floor a timestamp to its 5-minute bucket."""
    return (int(timestamp) // BUCKET_MS) * BUCKET_MS


def is_finite(*values: Optional[float]) -> bool:
    return all(v is not None and math.isfinite(v) for v in values)


def compute_z_score(value: float, mean: float, std: float) -> float:
    """(value - mean) / std, or 0 when any input is non-finite or std is 0."""
    if not is_finite(value, mean, std):
        return 0.0
    if std == 0:
        return 0.0
    return (value - mean) / std


def get_percentile(values: Sequence[float], percentile: float) -> float:
    """
    Percentile with linear interpolation between the two nearest ranks.

    Returns 0 for empty input and the sole value for a singleton.
    """
    if len(values) == 0:
        return 0.0
    if len(values) == 1:
        return float(values[0])
    return float(np.percentile(np.asarray(values, dtype=float), percentile))


def compute_distribution_stats(values: Iterable[float]) -> DistributionStats:
    """Distribution stats over the finite values; zeroed when none remain."""
    arr = np.asarray([v for v in values if v is not None], dtype=float)
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return _EMPTY_STATS

    return DistributionStats(
        mean=float(arr.mean()),
        std=float(arr.std()),
        min=float(arr.min()),
        max=float(arr.max()),
        percentile90=get_percentile(arr, 90),
        percentile99=get_percentile(arr, 99),
        count=int(arr.size),
    )


# =============================================================================
# TRADE HELPERS
# =============================================================================

def market_trades(market_id: str, trades: Iterable[Trade]) -> List[Trade]:
    return [t for t in trades if t.market_id == market_id]


def trades_in_range(trades: Iterable[Trade], start: int, end: int) -> List[Trade]:
    """Trades with start <= timestamp <= end."""
    return [t for t in trades if start <= t.timestamp <= end]


def sum_notional(trades: Iterable[Trade]) -> float:
    return sum(t.notional for t in trades)


def outcome_volumes(trades: Iterable[Trade]) -> Tuple[float, float]:
    """(YES notional, NO notional)."""
    yes = no = 0.0
    for t in trades:
        if t.outcome == Outcome.YES:
            yes += t.notional
        elif t.outcome == Outcome.NO:
            no += t.notional
    return yes, no


def sort_by_time(trades: Iterable[Trade]) -> List[Trade]:
    return sorted(trades, key=lambda t: t.timestamp)


def _trade_frame(market_id: str, trades: Iterable[Trade]) -> pd.DataFrame:
    rows = [
        (t.id, t.timestamp, t.notional, t.price, t.outcome.value, t.wallet)
        for t in trades
        if t.market_id == market_id
    ]
    frame = pd.DataFrame(rows, columns=_FRAME_COLUMNS)
    if frame.empty:
        return frame
    frame["ts"] = frame["ts"].astype("int64")
    frame["price"] = pd.to_numeric(frame["price"], errors="coerce")
    return frame


def _windowed(frame: pd.DataFrame, window_ms: int, now: int) -> pd.DataFrame:
    """
    Assign each trade of the 24h lookback to a consecutive, non-overlapping
    window ``[start + k*window_ms, start + (k+1)*window_ms)``.
    """
    start = now - LOOKBACK_MS
    n_windows = -(-LOOKBACK_MS // window_ms)
    window = (frame["ts"] - start) // window_ms
    mask = (frame["ts"] >= start) & (window < n_windows)
    return frame.loc[mask].assign(window=window[mask])


# =============================================================================
# BASELINES
# =============================================================================

def get_volume_stats(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    min_data_points: int = 10,
) -> Optional[DistributionStats]:
    """
    Distribution of per-window notional over the 24h lookback.

    Returns None when fewer than ``min_data_points`` windows have volume.
    """
    if window_ms <= 0:
        return None
    frame = _trade_frame(market_id, trades)
    if frame.empty:
        return None

    windowed = _windowed(frame, window_ms, now)
    volumes = windowed.groupby("window")["notional"].sum()
    volumes = volumes[volumes > 0]

    if len(volumes) < min_data_points:
        return None
    return compute_distribution_stats(volumes.tolist())


def get_imbalance_stats(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    min_data_points: int = 10,
) -> Optional[DistributionStats]:
    """
    Distribution of per-window flow imbalance ``|yes - no| / total``.
    """
    if window_ms <= 0:
        return None
    frame = _trade_frame(market_id, trades)
    if frame.empty:
        return None

    windowed = _windowed(frame, window_ms, now)
    windowed = windowed.assign(
        yes=np.where(windowed["outcome"] == Outcome.YES.value, windowed["notional"], 0.0),
        no=np.where(windowed["outcome"] == Outcome.NO.value, windowed["notional"], 0.0),
    )
    sides = windowed.groupby("window")[["yes", "no"]].sum()
    total = sides["yes"] + sides["no"]
    sides = sides[total > 0]
    imbalances = (sides["yes"] - sides["no"]).abs() / total[total > 0]

    if len(imbalances) < min_data_points:
        return None
    return compute_distribution_stats(imbalances.tolist())


def spread_percent(snapshot: OrderBookSnapshot) -> Optional[float]:
    """Spread as a percentage of mid price, or None for an unusable book."""
    bid, ask = snapshot.best_bid, snapshot.best_ask
    if bid is None or ask is None:
        return None
    mid = (bid + ask) / 2
    spread = (ask - bid) / mid * 100
    if not math.isfinite(spread) or spread < 0:
        return None
    return spread


def get_spread_stats(
    market_id: str,
    snapshots: Sequence[OrderBookSnapshot],
    min_data_points: int = 10,
) -> Optional[DistributionStats]:
    """Distribution of mid-normalized spreads over historical snapshots."""
    market_snapshots = [s for s in snapshots if s.market_id == market_id]
    if len(market_snapshots) < min_data_points:
        return None

    spreads = [s for s in (spread_percent(snap) for snap in market_snapshots) if s is not None]
    if len(spreads) < min_data_points:
        return None
    return compute_distribution_stats(spreads)


def get_return_stats(
    market_id: str,
    horizon_ms: int,
    trades: Sequence[Trade],
    now: int,
    min_data_points: int = 10,
    outcome: Optional[Outcome] = None,
) -> Optional[ReturnStats]:
    """
    Percentage returns between consecutive trades at most ``horizon_ms``
    apart, within the 24h lookback. Volatility is the std of returns.

    Pass ``outcome`` to keep YES and NO prices from being mixed.
    """
    frame = _trade_frame(market_id, trades)
    if outcome is not None and not frame.empty:
        frame = frame[frame["outcome"] == outcome.value]
    if len(frame) < 2:
        return None

    frame = frame.sort_values("ts", kind="mergesort")
    ts = frame["ts"].to_numpy()
    prices = frame["price"].to_numpy(dtype=float)

    t1, t2 = ts[:-1], ts[1:]
    p1, p2 = prices[:-1], prices[1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        valid = (
            (t2 - t1 <= horizon_ms)
            & (t1 >= now - LOOKBACK_MS)
            & np.isfinite(p1) & np.isfinite(p2)
            & (p1 > 0) & (p2 > 0)
        )
        returns = (p2[valid] - p1[valid]) / p1[valid] * 100
    returns = returns[np.isfinite(returns)]

    if returns.size < min_data_points:
        return None

    stats = compute_distribution_stats(returns.tolist())
    return ReturnStats(
        mean=stats.mean,
        std=stats.std,
        min=stats.min,
        max=stats.max,
        percentile90=stats.percentile90,
        percentile99=stats.percentile99,
        count=stats.count,
        volatility=stats.std,
    )


# =============================================================================
# CURRENT WINDOW (unguarded)
# =============================================================================

def get_current_volume(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
) -> float:
    """Notional traded in ``[now - window_ms, now]``."""
    window = trades_in_range(market_trades(market_id, trades), now - window_ms, now)
    return sum_notional(window)


def get_current_imbalance(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
) -> Optional[float]:
    """Flow imbalance in the current window; None without volume."""
    window = trades_in_range(market_trades(market_id, trades), now - window_ms, now)
    if not window:
        return None

    yes, no = outcome_volumes(window)
    total = yes + no
    if total == 0:
        return None
    return abs(yes - no) / total
