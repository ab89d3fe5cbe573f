"""
Unit tests for feed ingestion.
"""

import logging

import pytest

from core.exceptions import FeedValidationError
from surveillance.ingest import (
    group_snapshots_by_market,
    group_trades_by_market,
    load_feed,
    parse_metadata,
    parse_snapshot,
    parse_trade,
    parse_trades,
)
from surveillance.types import Outcome

NOW = 1_699_999_800_000


def _trade_record(**overrides):
    record = {
        "id": "t1",
        "marketId": "m1",
        "outcome": "YES",
        "amount": "250.5",
        "price": 0.42,
        "timestamp": NOW,
        "user": "0xabc",
    }
    record.update(overrides)
    return record


class TestParseTrade:
    """Tests for parse_trade."""

    def test_camel_case_record(self):
        trade = parse_trade(_trade_record())
        assert trade.id == "t1"
        assert trade.market_id == "m1"
        assert trade.outcome == Outcome.YES
        assert trade.amount == "250.5"
        assert trade.notional == pytest.approx(250.5)
        assert trade.price == pytest.approx(0.42)
        assert trade.timestamp == NOW
        assert trade.wallet == "0xabc"

    def test_alternate_keys(self):
        trade = parse_trade({
            "transactionHash": "0xhash",
            "conditionId": "c1",
            "outcome": "no",
            "size": 10,
            "price": "0.6",
            "timestamp": NOW,
            "proxyWallet": "0xdef",
        })
        assert trade.id == "0xhash"
        assert trade.transaction_hash == "0xhash"
        assert trade.market_id == "c1"
        assert trade.outcome == Outcome.NO
        assert trade.amount == "10"
        assert trade.user == "0xdef"

    def test_seconds_unit(self):
        trade = parse_trade(_trade_record(timestamp=NOW // 1000), timestamp_unit="s")
        assert trade.timestamp == NOW

    def test_millis_are_never_rescaled(self):
        # Small values stay as given when the feed says milliseconds
        assert parse_trade(_trade_record(timestamp=1_700_000_000)).timestamp == 1_700_000_000

    def test_unknown_unit(self):
        with pytest.raises(ValueError):
            parse_trade(_trade_record(), timestamp_unit="us")

    def test_missing_amount_counts_as_zero(self):
        trade = parse_trade(_trade_record(amount=None))
        assert trade.amount == ""
        assert trade.notional == 0.0

    @pytest.mark.parametrize("overrides", [
        {"marketId": None},
        {"outcome": "MAYBE"},
        {"timestamp": "yesterday"},
        {"price": "abc"},
        {"price": "NaN"},
        {"price": float("inf")},
        {"id": None},
    ])
    def test_strict_rejects(self, overrides):
        with pytest.raises(FeedValidationError):
            parse_trade(_trade_record(**overrides))

    def test_lenient_skips(self, caplog):
        with caplog.at_level(logging.WARNING, logger="surveillance.ingest"):
            assert parse_trade(_trade_record(outcome="MAYBE"), strict=False) is None
        assert "Skipping record" in caplog.text

    def test_parse_trades_drops_bad_records(self):
        records = [_trade_record(), _trade_record(id="t2", price=None)]
        assert [t.id for t in parse_trades(records, strict=False)] == ["t1"]


class TestParseSnapshot:
    """Tests for parse_snapshot."""

    def test_levels_sorted_best_first(self):
        snapshot = parse_snapshot({
            "marketId": "m1",
            "timestamp": NOW,
            "bids": [{"price": "0.45", "size": "10"}, {"price": "0.48", "size": "5"}],
            "asks": [[0.55, 7], [0.52, 3]],
        })
        assert [lvl.price for lvl in snapshot.bids] == [0.48, 0.45]
        assert [lvl.price for lvl in snapshot.asks] == [0.52, 0.55]
        assert snapshot.best_bid == 0.48
        assert snapshot.best_ask == 0.52
        assert snapshot.mid_price == pytest.approx(0.50)

    def test_empty_side(self):
        snapshot = parse_snapshot({"marketId": "m1", "timestamp": NOW, "bids": [[0.4, 1]]})
        assert snapshot.asks == ()
        assert snapshot.mid_price is None

    def test_malformed_level(self):
        with pytest.raises(FeedValidationError):
            parse_snapshot({"marketId": "m1", "timestamp": NOW, "bids": [5]})

    def test_non_numeric_level(self):
        with pytest.raises(FeedValidationError):
            parse_snapshot({"marketId": "m1", "timestamp": NOW, "bids": [{"price": "x", "size": 1}]})

    @pytest.mark.parametrize("level", [{"price": "nan", "size": 1}, {"price": 0.4, "size": "inf"}])
    def test_non_finite_level(self, level):
        with pytest.raises(FeedValidationError):
            parse_snapshot({"marketId": "m1", "timestamp": NOW, "asks": [level]})

    def test_lenient_drops_non_finite_price(self):
        records = [_trade_record(), _trade_record(id="t2", price="NaN")]
        assert [t.id for t in parse_trades(records, strict=False)] == ["t1"]


class TestParseMetadata:

    def test_fields(self):
        meta = parse_metadata({"id": 7, "eventId": "e1", "endDate": "2023-11-15T00:00:00Z", "question": "Q?"})
        assert meta.id == "7"
        assert meta.group_id == "e1"
        assert meta.end_date == "2023-11-15T00:00:00Z"

    def test_series_fallback(self):
        assert parse_metadata({"id": "m1", "series_id": "s1"}).group_id == "s1"

    def test_missing_id(self):
        with pytest.raises(FeedValidationError):
            parse_metadata({"eventId": "e1"})


class TestGrouping:

    def test_trades_keep_first_seen_order(self):
        trades = parse_trades([
            _trade_record(id="a", marketId="m2"),
            _trade_record(id="b", marketId="m1"),
            _trade_record(id="c", marketId="m2"),
        ])
        grouped = group_trades_by_market(trades)
        assert list(grouped) == ["m2", "m1"]
        assert [t.id for t in grouped["m2"]] == ["a", "c"]

    def test_snapshots_oldest_first(self, make_snapshot):
        grouped = group_snapshots_by_market([
            make_snapshot(timestamp=NOW),
            make_snapshot(timestamp=NOW - 1000),
        ])
        assert [s.timestamp for s in grouped["m1"]] == [NOW - 1000, NOW]


class TestLoadFeed:
    """Tests for load_feed."""

    def test_full_payload(self):
        payload = {
            "trades": [_trade_record(), _trade_record(id="t2", marketId="m2")],
            "orderBooks": [{"marketId": "m1", "timestamp": NOW, "bids": [[0.4, 1]], "asks": [[0.6, 1]]}],
            "markets": [{"id": "m1", "eventId": "e1"}, {"id": "m2", "eventId": "e1"}],
        }
        trades, books, metadata = load_feed(payload)
        assert set(trades) == {"m1", "m2"}
        assert len(books["m1"]) == 1
        assert metadata["m2"].event_id == "e1"

    def test_missing_sections(self):
        trades, books, metadata = load_feed({})
        assert trades == {}
        assert books == {}
        assert metadata == {}

    def test_lenient_payload(self):
        payload = {"trades": [_trade_record(), {"id": "bad"}], "markets": [{"question": "no id"}]}
        trades, _, metadata = load_feed(payload, strict=False)
        assert len(trades["m1"]) == 1
        assert metadata == {}
