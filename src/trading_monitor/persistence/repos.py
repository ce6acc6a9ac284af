from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable

from trading_monitor.core.utils import safe_json_dumps
from trading_monitor.snapshots.models import (
    TradeSnapshot,
    TrainingReport,
    UpsertResult,
    select_upsert_key,
)

_log = logging.getLogger("trading_monitor.persistence")


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_rows(rows: Iterable[sqlite3.Row]) -> list[TradeSnapshot]:
    out: list[TradeSnapshot] = []
    for r in rows:
        try:
            doc = json.loads(r["document_json"])
        except ValueError:
            _log.warning("skipping undecodable snapshot row", extra={"row_id": r["id"]})
            continue
        out.append(TradeSnapshot.from_document(doc))
    return out


class SnapshotRepo:
    """Snapshot documents keyed by symbol plus either ticket or timestamp."""

    def __init__(self, db: "Database") -> None:
        self.db = db

    def upsert(self, snapshot: TradeSnapshot) -> UpsertResult:
        key = select_upsert_key(snapshot)
        doc_json = safe_json_dumps(snapshot.to_document())
        with self.db.transaction() as conn:
            row = conn.execute(
                """
                SELECT id, document_json FROM snapshots
                WHERE symbol = ? AND key_kind = ? AND key_value = ?
                """,
                (key.symbol, key.kind.value, key.value),
            ).fetchone()
            if row is None:
                conn.execute(
                    """
                    INSERT INTO snapshots(
                      symbol, key_kind, key_value, ticket, timestamp, document_json, updated_at
                    ) VALUES(?,?,?,?,?,?,?)
                    """,
                    (
                        key.symbol,
                        key.kind.value,
                        key.value,
                        snapshot.ticket,
                        snapshot.timestamp,
                        doc_json,
                        _utc_iso(),
                    ),
                )
                return UpsertResult(key=key, matched=0, modified=0, upserted=1)

            if row["document_json"] == doc_json:
                return UpsertResult(key=key, matched=1, modified=0, upserted=0)
            conn.execute(
                """
                UPDATE snapshots SET ticket = ?, timestamp = ?, document_json = ?, updated_at = ?
                WHERE id = ?
                """,
                (snapshot.ticket, snapshot.timestamp, doc_json, _utc_iso(), row["id"]),
            )
            return UpsertResult(key=key, matched=1, modified=1, upserted=0)

    def find_all(self) -> list[TradeSnapshot]:
        # Newest write first among equal timestamps.
        rows = self.db.query_all(
            "SELECT id, document_json FROM snapshots ORDER BY timestamp DESC, id DESC"
        )
        return _decode_rows(rows)

    def find_recent(self, symbol: str | None = None, limit: int = 10) -> list[TradeSnapshot]:
        if symbol:
            rows = self.db.query_all(
                """
                SELECT id, document_json FROM snapshots WHERE symbol = ?
                ORDER BY timestamp DESC, id DESC LIMIT ?
                """,
                (symbol, int(limit)),
            )
        else:
            rows = self.db.query_all(
                "SELECT id, document_json FROM snapshots ORDER BY timestamp DESC, id DESC LIMIT ?",
                (int(limit),),
            )
        return _decode_rows(rows)

    def find_latest(self, symbol: str | None = None) -> TradeSnapshot | None:
        recent = self.find_recent(symbol, limit=1)
        return recent[0] if recent else None


class TrainingRepo:
    def __init__(self, db: "Database") -> None:
        self.db = db

    def insert(self, report: TrainingReport) -> None:
        self.db.execute(
            """
            INSERT INTO ml_training(
              created_at, training_count, win_trades, total_trades, win_rate,
              last_profit, symbol, timestamp
            ) VALUES(?,?,?,?,?,?,?,?)
            """,
            (
                _utc_iso(),
                report.training_count,
                report.win_trades,
                report.total_trades,
                report.win_rate,
                report.last_profit,
                report.symbol,
                report.timestamp,
            ),
        )

    def best(self) -> TrainingReport | None:
        row = self.db.query_one(
            "SELECT * FROM ml_training ORDER BY training_count DESC, id DESC LIMIT 1"
        )
        if row is None:
            return None
        return TrainingReport(
            training_count=int(row["training_count"]),
            win_trades=int(row["win_trades"]),
            total_trades=int(row["total_trades"]),
            win_rate=float(row["win_rate"]),
            last_profit=float(row["last_profit"]),
            symbol=row["symbol"],
            timestamp=int(row["timestamp"]),
        )


if TYPE_CHECKING:  # pragma: no cover
    from trading_monitor.persistence.db import Database
