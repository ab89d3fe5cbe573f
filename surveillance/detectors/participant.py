"""
Participant Detectors
=====================

Wallet-level anomalies: whale trades, a single wallet dominating window
volume, and wallets with little history whose trades move the price.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from ..baselines import get_percentile, market_trades, sort_by_time, trades_in_range
from ..config import DAY_MS, MINUTE_MS, AnomalyDetectionConfig
from ..types import AnomalyEvent, AnomalyMeta, AnomalyType, Outcome, Severity, Trade
from .base import build_event, event_id, trade_event_id

logger = logging.getLogger(__name__)

CONCENTRATION_HISTORY_MS = 7 * DAY_MS
NEW_WALLET_MAX_TRADES = 3
NEW_WALLET_SIZE_FRACTION = 0.5
PRICE_IMPACT_WINDOW_MS = 2 * MINUTE_MS
PRICE_IMPACT_THRESHOLD = 5.0


def _direction(trade: Trade) -> str:
    return "buy" if trade.outcome == Outcome.YES else "sell"


def _top_wallet(trades: Sequence[Trade]) -> Optional[Tuple[str, float, float]]:
    """(wallet, volume, total) for the wallet with the most notional."""
    volumes: Dict[str, float] = defaultdict(float)
    total = 0.0
    for t in trades:
        amount = t.notional
        if amount <= 0:
            continue
        volumes[t.wallet] += amount
        total += amount
    if total == 0:
        return None
    wallet = max(volumes, key=volumes.__getitem__)
    return wallet, volumes[wallet], total


def detect_whale_trades(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """
    Flag each recent trade at or above the absolute whale threshold or the
    configured percentile of prior trade sizes. One event per trade.
    """
    mine = market_trades(market_id, trades)
    window_start = now - window_ms
    recent = trades_in_range(mine, window_start, now)
    if not recent:
        return []

    sizes = [t.notional for t in mine if t.timestamp < window_start and t.notional > 0]
    if len(sizes) < config.minimums.data_points:
        return []

    whale = config.whale
    pct = whale.percentile_threshold * 100
    p_whale = get_percentile(sizes, pct)
    p99 = get_percentile(sizes, 99)
    p995 = get_percentile(sizes, 99.5)

    events: List[AnomalyEvent] = []
    for trade in recent:
        size = trade.notional
        if size <= 0:
            continue
        if size < whale.absolute_threshold and size < p_whale:
            continue

        if size >= whale.absolute_threshold * 2 or size >= p995:
            severity = Severity.EXTREME
        elif size >= whale.absolute_threshold * 1.5 or size >= p99:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM

        ratio = size / p_whale if p_whale > 0 else 0.0
        direction = _direction(trade)
        events.append(build_event(
            id=trade_event_id(market_id, "whale-trade", trade.id, trade.timestamp),
            market_id=market_id,
            type=AnomalyType.WHALE_TRADE,
            severity=severity,
            score=ratio / 2 * 100,
            timestamp=trade.timestamp,
            label=f"Whale {direction}",
            message=(
                f"Whale {direction}: {size:,.0f} USDC trade "
                f"({ratio:.1f}x the p{pct:g} trade size)"
            ),
            context={
                "tradeSize": size,
                "percentileThreshold": p_whale,
                "absoluteThreshold": whale.absolute_threshold,
                "windowMs": window_ms,
            },
            meta=AnomalyMeta(wallet=trade.user, outcome_id=trade.outcome.value),
        ))

    if events:
        logger.debug(f"{market_id}: {len(events)} whale trade(s)")
    return events


def detect_wallet_concentration(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> Optional[AnomalyEvent]:
    """
    Top-wallet share of window volume, compared with the top-wallet share of
    each equal-sized window over the previous 7 days.
    """
    if window_ms <= 0:
        return None
    mine = market_trades(market_id, trades)
    window_start = now - window_ms
    top = _top_wallet(trades_in_range(mine, window_start, now))
    if top is None:
        return None

    wallet, volume, total = top
    share = volume / total
    settings = config.wallet_concentration
    if share < settings.threshold:
        return None

    history = [t for t in mine if t.timestamp < window_start]
    shares: List[float] = []
    hist_start = now - CONCENTRATION_HISTORY_MS
    while hist_start < window_start:
        hist_end = hist_start + window_ms
        hist_top = _top_wallet([t for t in history if hist_start <= t.timestamp < hist_end])
        if hist_top is not None:
            shares.append(hist_top[1] / hist_top[2])
        hist_start = hist_end

    if len(shares) < config.minimums.data_points:
        return None

    pct = settings.percentile_threshold * 100
    threshold = get_percentile(shares, pct)
    if share < threshold:
        return None

    minutes = round(window_ms / 60000)
    return build_event(
        id=event_id(market_id, "wallet-concentration", now),
        market_id=market_id,
        type=AnomalyType.WALLET_CONCENTRATION,
        severity=Severity.HIGH if share >= 0.9 else Severity.MEDIUM,
        score=share * 100,
        timestamp=now,
        label="Wallet concentration",
        message=(
            f"Top wallet controls {share * 100:.0f}% of volume in last {minutes}m "
            f"(above p{pct:g} of {len(shares)} prior windows)"
        ),
        context={
            "topWalletShare": share,
            "topWalletVolume": volume,
            "totalVolume": total,
            "percentileThreshold": threshold,
            "windowMs": window_ms,
        },
        meta=AnomalyMeta(wallet=wallet),
    )


def _neighbour_prices(trade: Trade, same_outcome: Sequence[Trade]) -> Tuple[float, float]:
    """Nearest same-outcome prices within 2 minutes before and after ``trade``."""
    before = after = trade.price
    for t in same_outcome:
        if trade.timestamp - PRICE_IMPACT_WINDOW_MS <= t.timestamp < trade.timestamp:
            before = t.price
    for t in same_outcome:
        if trade.timestamp < t.timestamp <= trade.timestamp + PRICE_IMPACT_WINDOW_MS:
            after = t.price
            break
    return before, after


def detect_new_wallet_impact(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """
    Recent sizeable trades from wallets with fewer than three prior trades
    that coincide with a same-outcome price move of 5% or 5 points.
    """
    mine = market_trades(market_id, trades)
    window_start = now - window_ms
    recent = trades_in_range(mine, window_start, now)
    if not recent:
        return []

    prior_counts: Dict[str, int] = defaultdict(int)
    for t in mine:
        if t.timestamp < window_start:
            prior_counts[t.wallet] += 1

    abs_threshold = config.whale.absolute_threshold
    by_outcome = {
        outcome: sort_by_time(t for t in mine if t.outcome == outcome) for outcome in Outcome
    }

    events: List[AnomalyEvent] = []
    for trade in recent:
        size = trade.notional
        if size <= 0:
            continue
        history_count = prior_counts.get(trade.wallet, 0)
        if history_count >= NEW_WALLET_MAX_TRADES or size < abs_threshold * NEW_WALLET_SIZE_FRACTION:
            continue

        before, after = _neighbour_prices(trade, by_outcome[trade.outcome])
        if not (math.isfinite(before) and math.isfinite(after)):
            continue
        if before == trade.price and after == trade.price:
            continue
        if before <= 0:
            continue

        pct_change = abs((after - before) / before * 100)
        point_change = abs(after - before) * 100
        if pct_change < PRICE_IMPACT_THRESHOLD and point_change < PRICE_IMPACT_THRESHOLD:
            continue

        high = size >= abs_threshold or pct_change >= 10 or point_change >= 10
        direction = _direction(trade)
        events.append(build_event(
            id=trade_event_id(market_id, "new-wallet-impact", trade.id, trade.timestamp),
            market_id=market_id,
            type=AnomalyType.NEW_WALLET_IMPACT,
            severity=Severity.HIGH if high else Severity.MEDIUM,
            score=pct_change / 20 * 50 + point_change / 20 * 50 + size / abs_threshold * 50,
            timestamp=trade.timestamp,
            label="New wallet impact",
            message=(
                f"New wallet {direction}: {size:,.0f} USDC moved price {point_change:.1f} "
                f"percentage points ({pct_change:.1f}% change, from {before * 100:.1f}% "
                f"to {after * 100:.1f}%)"
            ),
            context={
                "tradeSize": size,
                "priceChange": pct_change,
                "pricePointChange": point_change,
                "priceBefore": before,
                "priceAfter": after,
                "historicalTradeCount": history_count,
                "windowMs": window_ms,
            },
            meta=AnomalyMeta(wallet=trade.user, outcome_id=trade.outcome.value),
        ))

    return events


def detect_participant_anomalies(
    market_id: str,
    window_ms: int,
    trades: Sequence[Trade],
    now: int,
    config: AnomalyDetectionConfig,
) -> List[AnomalyEvent]:
    """Run all participant detectors for a market."""
    anomalies = list(detect_whale_trades(market_id, window_ms, trades, now, config))
    concentration = detect_wallet_concentration(market_id, window_ms, trades, now, config)
    if concentration is not None:
        anomalies.append(concentration)
    anomalies.extend(detect_new_wallet_impact(market_id, window_ms, trades, now, config))
    return anomalies
