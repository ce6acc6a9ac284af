from __future__ import annotations

import itertools
from datetime import datetime, timezone

from trading_monitor.snapshots.consolidator import consolidate, latest_per_symbol
from trading_monitor.snapshots.models import TradeSnapshot

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def _snap(symbol: str, ts: int, **kw: object) -> TradeSnapshot:
    return TradeSnapshot(symbol=symbol, timestamp=ts, **kw)  # type: ignore[arg-type]


def test_latest_wins_regardless_of_order() -> None:
    records = [_snap("EURUSD", ts, profit=float(ts)) for ts in (10, 30, 20)]
    for perm in itertools.permutations(records):
        latest = latest_per_symbol(perm)
        assert latest["EURUSD"].timestamp == 30
        assert latest["EURUSD"].profit == 30.0


def test_equal_timestamps_first_seen_wins() -> None:
    a = _snap("XAUUSD", 100, profit=1.0)
    b = _snap("XAUUSD", 100, profit=2.0)
    assert latest_per_symbol([a, b])["XAUUSD"] is a
    assert latest_per_symbol([b, a])["XAUUSD"] is b
    # same input order, same answer
    assert latest_per_symbol([a, b])["XAUUSD"] is latest_per_symbol([a, b])["XAUUSD"]


def test_summary_sums_latest_only() -> None:
    records = [
        _snap("EURUSD", 1, open_trades=9, profit=100.0),
        _snap("EURUSD", 2, open_trades=2, profit=10.105),
        _snap("XAUUSD", 5, open_trades=3, profit=-4.1),
        _snap("BTCUSD", 7, open_trades=0, profit=0.004),
    ]
    out = consolidate(records, now=NOW)
    assert out.status == "success"
    assert out.summary.total_symbols == 3
    assert out.summary.total_open_trades == 5
    assert out.summary.total_profit == f"{10.105 - 4.1 + 0.004:.2f}"
    assert out.summary.server_time == int(NOW.timestamp())


def test_profit_rounded_on_final_sum_only() -> None:
    # per-record rounding would give 0.00 + 0.00 + 0.00
    records = [_snap(s, 1, profit=0.004) for s in ("A", "B", "C")]
    assert consolidate(records, now=NOW).summary.total_profit == "0.01"


def test_empty_input_is_no_data() -> None:
    out = consolidate([], now=NOW)
    assert out.status == "no_data"
    assert out.empty
    assert out.latest == {}
    assert out.summary.to_dict() == {
        "total_symbols": 0,
        "total_open_trades": 0,
        "total_profit": "0.00",
        "server_time": int(NOW.timestamp()),
    }


def test_records_without_symbol_are_skipped() -> None:
    out = consolidate([_snap("", 50, open_trades=4), _snap("EURUSD", 1, open_trades=1)], now=NOW)
    assert list(out.latest) == ["EURUSD"]
    assert out.summary.total_open_trades == 1
