from __future__ import annotations

from datetime import datetime, timezone

import pytest

from trading_monitor.core.exceptions import ValidationError
from trading_monitor.snapshots.models import KeyKind, select_upsert_key
from trading_monitor.snapshots.normalizer import (
    normalize_snapshot,
    normalize_training_report,
    parse_int,
)

NOW = datetime(2026, 1, 5, 12, 30, 15, tzinfo=timezone.utc)
NOW_TS = int(NOW.timestamp())


def test_unparsable_timestamp_falls_back_to_now() -> None:
    snap = normalize_snapshot(
        {"symbol": "XAUUSD", "timestamp": "not-a-number", "profit": "12.5"}, now=NOW
    )
    assert snap.symbol == "XAUUSD"
    assert snap.timestamp == NOW_TS
    assert snap.profit == 12.5
    assert isinstance(snap.profit, float)


def test_missing_symbol_and_ticket_raises() -> None:
    payload = {"equity": "1000", "timestamp": 1700000000}
    with pytest.raises(ValidationError) as info:
        normalize_snapshot(payload, now=NOW)
    assert info.value.reason == "missing symbol"
    assert info.value.payload == payload


def test_blank_symbol_counts_as_missing() -> None:
    with pytest.raises(ValidationError):
        normalize_snapshot({"symbol": "   "}, now=NOW)


def test_symbol_synonyms_and_case_variants() -> None:
    assert normalize_snapshot({"Symbol": "EURUSD"}, now=NOW).symbol == "EURUSD"
    assert normalize_snapshot({"instrument": "GBPUSD"}, now=NOW).symbol == "GBPUSD"
    assert normalize_snapshot({"PAIR": "USDJPY"}, now=NOW).symbol == "USDJPY"
    # canonical key wins over synonyms
    assert normalize_snapshot({"pair": "X", "symbol": "Y"}, now=NOW).symbol == "Y"


def test_ticket_without_symbol_synthesizes_placeholder() -> None:
    snap = normalize_snapshot({"ticket": 98765, "profit": 3}, now=NOW)
    assert snap.symbol == "TICKET-98765"
    assert snap.ticket == "98765"


def test_calendar_date_timestamp_is_converted() -> None:
    snap = normalize_snapshot({"symbol": "EURUSD", "time": "2024-01-01T00:00:00Z"}, now=NOW)
    assert snap.timestamp == 1704067200


def test_numeric_string_timestamp() -> None:
    snap = normalize_snapshot({"symbol": "EURUSD", "timestamp": "1700000000"}, now=NOW)
    assert snap.timestamp == 1700000000


@pytest.mark.parametrize("raw", ["1e20", 1e20, 10**30, -5, "253402300800"])
def test_out_of_range_timestamp_falls_back_to_now(raw) -> None:
    snap = normalize_snapshot({"symbol": "EURUSD", "timestamp": raw}, now=NOW)
    assert snap.timestamp == NOW_TS


def test_integers_beyond_int64_are_rejected() -> None:
    assert parse_int("1e20") is None
    assert parse_int(2**63) is None
    assert parse_int(2**63 - 1) == 2**63 - 1
    snap = normalize_snapshot({"symbol": "EURUSD", "open_trades": "1e20"}, now=NOW)
    assert snap.open_trades == 0


def test_field_failures_degrade_to_defaults() -> None:
    snap = normalize_snapshot(
        {
            "symbol": "BTCUSD",
            "equity": "abc",
            "balance": None,
            "open_trades": "-4",
            "ml_confidence": "7",
            "ml_trained": "yes",
            "spread": "nan",
            "trades": {"not": "a list"},
        },
        now=NOW,
    )
    assert snap.equity == 0.0
    assert snap.balance == 0.0
    assert snap.open_trades == 0
    assert snap.ml_confidence == 1.0
    assert snap.ml_trained == 0
    assert snap.spread == 0.0
    assert snap.trades == []


def test_typed_fields_parse() -> None:
    snap = normalize_snapshot(
        {
            "symbol": "XAUUSD",
            "timestamp": 1700000000,
            "equity": "1010.25",
            "bid": "1800.1",
            "ask": 1800.4,
            "open_trades": "3",
            "ml_confidence": "0.42",
            "ml_trained": "1",
            "trades": '[{"ticket": 1, "lots": 0.1}]',
        },
        now=NOW,
    )
    assert snap.equity == 1010.25
    assert snap.bid_price == 1800.1
    assert snap.ask_price == 1800.4
    assert snap.open_trades == 3
    assert snap.ml_confidence == 0.42
    assert snap.ml_trained == 1
    assert snap.trades == [{"ticket": 1, "lots": 0.1}]


def test_unknown_fields_are_kept_as_extra() -> None:
    snap = normalize_snapshot({"symbol": "XAUUSD", "grid_info": "[1,2]"}, now=NOW)
    assert snap.extra == {"grid_info": "[1,2]"}
    assert "grid_info" not in snap.to_dict()


def test_upsert_key_prefers_ticket() -> None:
    by_ticket = select_upsert_key(normalize_snapshot({"symbol": "A", "ticket": "7"}, now=NOW))
    by_ts = select_upsert_key(normalize_snapshot({"symbol": "A", "timestamp": 5}, now=NOW))
    assert by_ticket.kind is KeyKind.BY_TICKET
    assert by_ticket.value == "7"
    assert by_ts.kind is KeyKind.BY_TIMESTAMP
    assert by_ts.value == "5"


def test_training_report_defaults() -> None:
    report = normalize_training_report({"training_count": "12", "win_rate": "bad"}, now=NOW)
    assert report.training_count == 12
    assert report.win_rate == 0.0
    assert report.symbol is None
    assert report.timestamp == NOW_TS
