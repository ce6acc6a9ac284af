from __future__ import annotations

from pathlib import Path

import pytest

from trading_monitor.core.exceptions import PersistenceError
from trading_monitor.persistence.db import Database
from trading_monitor.snapshots.consolidator import consolidate
from trading_monitor.snapshots.models import KeyKind, TradeSnapshot, TrainingReport


def _db(tmp_path: Path) -> Database:
    db = Database(tmp_path / "monitor.sqlite")
    db.initialize()
    return db


def test_upsert_by_timestamp_inserts_then_matches(tmp_path: Path) -> None:
    repo = _db(tmp_path).snapshot_repo()
    snap = TradeSnapshot(symbol="EURUSD", timestamp=100, profit=1.5)

    first = repo.upsert(snap)
    assert (first.matched, first.modified, first.upserted) == (0, 0, 1)
    assert first.key.kind is KeyKind.BY_TIMESTAMP

    same = repo.upsert(snap)
    assert (same.matched, same.modified, same.upserted) == (1, 0, 0)

    changed = repo.upsert(TradeSnapshot(symbol="EURUSD", timestamp=100, profit=2.0))
    assert (changed.matched, changed.modified, changed.upserted) == (1, 1, 0)
    assert len(repo.find_all()) == 1
    assert repo.find_all()[0].profit == 2.0


def test_upsert_by_ticket_replaces_across_timestamps(tmp_path: Path) -> None:
    repo = _db(tmp_path).snapshot_repo()
    repo.upsert(TradeSnapshot(symbol="XAUUSD", timestamp=1, ticket="55", profit=1.0))
    res = repo.upsert(TradeSnapshot(symbol="XAUUSD", timestamp=2, ticket="55", profit=3.0))
    assert res.key.kind is KeyKind.BY_TICKET
    assert res.matched == 1
    rows = repo.find_all()
    assert len(rows) == 1
    assert rows[0].timestamp == 2
    assert rows[0].ticket == "55"


def test_find_latest_and_recent(tmp_path: Path) -> None:
    repo = _db(tmp_path).snapshot_repo()
    for ts in (10, 30, 20):
        repo.upsert(TradeSnapshot(symbol="EURUSD", timestamp=ts))
    repo.upsert(TradeSnapshot(symbol="XAUUSD", timestamp=25))

    latest = repo.find_latest()
    assert latest is not None and (latest.symbol, latest.timestamp) == ("EURUSD", 30)
    latest_gold = repo.find_latest("XAUUSD")
    assert latest_gold is not None and latest_gold.timestamp == 25
    assert [s.timestamp for s in repo.find_recent("EURUSD", limit=2)] == [30, 20]
    assert repo.find_latest("NONE") is None


def test_equal_timestamps_newest_write_wins(tmp_path: Path) -> None:
    repo = _db(tmp_path).snapshot_repo()
    repo.upsert(TradeSnapshot(symbol="BTCUSD", timestamp=50, ticket="1", profit=1.0))
    repo.upsert(TradeSnapshot(symbol="BTCUSD", timestamp=50, ticket="2", profit=2.0))
    out = consolidate(repo.find_all())
    assert out.latest["BTCUSD"].ticket == "2"


def test_document_round_trip_keeps_extra_and_trades(tmp_path: Path) -> None:
    repo = _db(tmp_path).snapshot_repo()
    snap = TradeSnapshot(
        symbol="EURUSD",
        timestamp=5,
        trades=[{"ticket": 1, "type": "buy"}],
        extra={"grid_info": "[]"},
    )
    repo.upsert(snap)
    assert repo.find_all() == [snap]


def test_training_best_by_count(tmp_path: Path) -> None:
    repo = _db(tmp_path).training_repo()
    assert repo.best() is None
    for count, rate in ((3, 0.4), (9, 0.7), (5, 0.5)):
        repo.insert(
            TrainingReport(
                training_count=count,
                win_trades=1,
                total_trades=2,
                win_rate=rate,
                last_profit=0.0,
                symbol="XAUUSD",
                timestamp=1,
            )
        )
    best = repo.best()
    assert best is not None
    assert (best.training_count, best.win_rate) == (9, 0.7)


def test_query_errors_are_wrapped(tmp_path: Path) -> None:
    db = _db(tmp_path)
    with pytest.raises(PersistenceError):
        db.query_all("SELECT * FROM missing_table")


def test_oversized_integer_in_transaction_is_wrapped(tmp_path: Path) -> None:
    db = _db(tmp_path)
    with pytest.raises(PersistenceError):
        with db.transaction() as conn:
            conn.execute("SELECT ?", (2**70,))
    # connection is usable again afterwards
    assert db.query_one("SELECT 1 AS one")["one"] == 1


def test_failed_rollback_keeps_original_error(tmp_path: Path) -> None:
    db = _db(tmp_path)
    with pytest.raises(RuntimeError, match="boom"):
        with db.transaction() as conn:
            conn.execute("COMMIT")  # ROLLBACK will now fail: no transaction active
            raise RuntimeError("boom")
    with db.transaction() as conn:
        conn.execute("SELECT 1")
