"""
Feed Ingestion
==============

Converts raw feed payloads (dicts with camelCase or snake_case keys) into
the engine's typed values.

Timestamps are normalized to epoch milliseconds. The caller states the unit
of the feed (``"ms"`` or ``"s"``); nothing is inferred from magnitudes.

In strict mode a malformed record raises FeedValidationError; otherwise it
is logged and skipped.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from core.exceptions import FeedValidationError
from .types import MarketMetadata, OrderBookLevel, OrderBookSnapshot, Outcome, Trade

logger = logging.getLogger(__name__)

TIMESTAMP_UNITS = {"ms": 1, "s": 1000}

T = TypeVar("T")


def _get(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _unit_factor(unit: str) -> int:
    try:
        return TIMESTAMP_UNITS[unit]
    except KeyError:
        raise ValueError(f"timestamp unit must be one of {sorted(TIMESTAMP_UNITS)}, got {unit!r}")


def _to_millis(value: Any, factor: int, kind: str) -> int:
    try:
        ts = float(value)
    except (TypeError, ValueError):
        raise FeedValidationError(f"{kind} has a non-numeric timestamp", context={"timestamp": value})
    if not math.isfinite(ts):
        raise FeedValidationError(f"{kind} has a non-finite timestamp", context={"timestamp": value})
    return int(ts * factor)


def _to_float(value: Any, kind: str, name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise FeedValidationError(f"{kind} has a non-numeric {name}", context={name: value})
    if not math.isfinite(result):
        raise FeedValidationError(f"{kind} has a non-finite {name}", context={name: value})
    return result


def _parse_outcome(value: Any) -> Outcome:
    try:
        return Outcome(str(value).upper())
    except ValueError:
        raise FeedValidationError("trade has an unknown outcome", context={"outcome": value})


def _require(value: Any, kind: str, name: str) -> Any:
    if value is None:
        raise FeedValidationError(f"{kind} is missing {name}")
    return value


def _guarded(parse: Callable[..., T], record: Mapping[str, Any], strict: bool, *args: Any) -> Optional[T]:
    try:
        return parse(record, *args)
    except FeedValidationError as e:
        if strict:
            raise
        logger.warning(f"Skipping record: {e}")
        return None


# =============================================================================
# RECORD PARSERS
# =============================================================================

def _trade(record: Mapping[str, Any], factor: int) -> Trade:
    market_id = _require(_get(record, "marketId", "market_id", "market", "conditionId"), "trade", "market id")
    trade_id = _require(_get(record, "id", "tradeId", "transactionHash", "transaction_hash"), "trade", "id")
    timestamp = _require(_get(record, "timestamp", "ts"), "trade", "timestamp")
    price = _require(_get(record, "price"), "trade", "price")
    amount = _get(record, "amount", "size", "usdcSize")

    return Trade(
        id=str(trade_id),
        market_id=str(market_id),
        outcome=_parse_outcome(_get(record, "outcome")),
        amount="" if amount is None else str(amount),
        price=_to_float(price, "trade", "price"),
        timestamp=_to_millis(timestamp, factor, "trade"),
        user=_get(record, "user", "proxyWallet", "wallet"),
        transaction_hash=_get(record, "transactionHash", "transaction_hash"),
    )


def _levels(raw: Any, kind: str) -> List[OrderBookLevel]:
    levels = []
    for level in raw or ():
        if isinstance(level, Mapping):
            price, size = level.get("price"), level.get("size")
        else:
            try:
                price, size = level[0], level[1]
            except (TypeError, IndexError):
                raise FeedValidationError(f"{kind} has a malformed level", context={"level": level})
        levels.append(OrderBookLevel(
            price=_to_float(price, kind, "level price"),
            size=_to_float(size, kind, "level size"),
        ))
    return levels


def _snapshot(record: Mapping[str, Any], factor: int) -> OrderBookSnapshot:
    market_id = _require(_get(record, "marketId", "market_id", "market", "assetId"), "snapshot", "market id")
    timestamp = _require(_get(record, "timestamp", "ts"), "snapshot", "timestamp")

    bids = sorted(_levels(record.get("bids"), "snapshot"), key=lambda lvl: lvl.price, reverse=True)
    asks = sorted(_levels(record.get("asks"), "snapshot"), key=lambda lvl: lvl.price)
    return OrderBookSnapshot(
        market_id=str(market_id),
        timestamp=_to_millis(timestamp, factor, "snapshot"),
        bids=tuple(bids),
        asks=tuple(asks),
    )


def _metadata(record: Mapping[str, Any]) -> MarketMetadata:
    market_id = _require(_get(record, "id", "marketId", "market_id"), "market", "id")
    event_id = _get(record, "eventId", "event_id")
    series_id = _get(record, "seriesId", "series_id")
    return MarketMetadata(
        id=str(market_id),
        event_id=None if event_id is None else str(event_id),
        series_id=None if series_id is None else str(series_id),
        end_date=_get(record, "endDate", "end_date"),
        question=_get(record, "question"),
        category=_get(record, "category"),
    )


# =============================================================================
# PUBLIC API
# =============================================================================

def parse_trade(record: Mapping[str, Any], timestamp_unit: str = "ms", strict: bool = True) -> Optional[Trade]:
    """
    Parse one trade record.

    Raises:
        FeedValidationError: In strict mode, for a malformed record
        ValueError: For an unknown ``timestamp_unit``
    """
    return _guarded(_trade, record, strict, _unit_factor(timestamp_unit))


def parse_snapshot(
    record: Mapping[str, Any],
    timestamp_unit: str = "ms",
    strict: bool = True,
) -> Optional[OrderBookSnapshot]:
    """Parse one order-book record; levels are re-sorted best first."""
    return _guarded(_snapshot, record, strict, _unit_factor(timestamp_unit))


def parse_metadata(record: Mapping[str, Any], strict: bool = True) -> Optional[MarketMetadata]:
    return _guarded(_metadata, record, strict)


def parse_trades(
    records: Iterable[Mapping[str, Any]],
    timestamp_unit: str = "ms",
    strict: bool = True,
) -> List[Trade]:
    trades = [parse_trade(r, timestamp_unit, strict) for r in records]
    return [t for t in trades if t is not None]


def parse_snapshots(
    records: Iterable[Mapping[str, Any]],
    timestamp_unit: str = "ms",
    strict: bool = True,
) -> List[OrderBookSnapshot]:
    snapshots = [parse_snapshot(r, timestamp_unit, strict) for r in records]
    return [s for s in snapshots if s is not None]


def group_trades_by_market(trades: Iterable[Trade]) -> Dict[str, List[Trade]]:
    """Group trades by market, keeping first-seen market order."""
    grouped: Dict[str, List[Trade]] = defaultdict(list)
    for trade in trades:
        grouped[trade.market_id].append(trade)
    return dict(grouped)


def group_snapshots_by_market(snapshots: Iterable[OrderBookSnapshot]) -> Dict[str, List[OrderBookSnapshot]]:
    """Group snapshots by market, each list oldest first."""
    grouped: Dict[str, List[OrderBookSnapshot]] = defaultdict(list)
    for snapshot in snapshots:
        grouped[snapshot.market_id].append(snapshot)
    return {m: sorted(snaps, key=lambda s: s.timestamp) for m, snaps in grouped.items()}


def index_metadata(markets: Iterable[MarketMetadata]) -> Dict[str, MarketMetadata]:
    return {m.id: m for m in markets}


def load_feed(
    payload: Mapping[str, Any],
    timestamp_unit: str = "ms",
    strict: bool = True,
) -> Tuple[Dict[str, List[Trade]], Dict[str, List[OrderBookSnapshot]], Dict[str, MarketMetadata]]:
    """
    Parse a feed payload with ``trades``, ``orderBooks`` and ``markets``
    lists into the three per-market maps a scan takes.
    """
    trades = parse_trades(payload.get("trades") or (), timestamp_unit, strict)
    snapshots = parse_snapshots(
        _get(payload, "orderBooks", "order_books") or (), timestamp_unit, strict
    )
    markets = [m for m in (parse_metadata(r, strict) for r in payload.get("markets") or ()) if m is not None]
    return group_trades_by_market(trades), group_snapshots_by_market(snapshots), index_metadata(markets)
