from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from trading_monitor.core.config import AppConfig
from trading_monitor.core.exceptions import ValidationError
from trading_monitor.core.timeframes import TIMEFRAMES, resolve_timeframe
from trading_monitor.core.utils import epoch_seconds, iso_utc, utc_now
from trading_monitor.market.cache import SynthesisCache
from trading_monitor.market.models import Candle
from trading_monitor.persistence.repos import SnapshotRepo, TrainingRepo
from trading_monitor.snapshots.consolidator import consolidate
from trading_monitor.snapshots.normalizer import normalize_snapshot, normalize_training_report, parse_int

RECENT_TRADES_LIMIT = 10


@dataclass(frozen=True)
class IngestReceipt:
    symbol: str
    timestamp: int
    ticket: str | None
    matched: int
    modified: int
    upserted: int

    def to_dict(self) -> dict[str, Any]:
        verb = "saved" if self.upserted else "updated"
        return {
            "status": "success",
            "message": f"Data {verb} for {self.symbol}",
            "saved_symbol": self.symbol,
            "timestamp": self.timestamp,
            "data": {
                "symbol": self.symbol,
                "ticket": self.ticket,
                "matched": self.matched,
                "modified": self.modified,
                "upserted": self.upserted,
            },
        }


class MonitorService:
    """Request-level operations over the snapshot store and the candle cache."""

    def __init__(
        self,
        *,
        config: AppConfig,
        snapshots: SnapshotRepo,
        training: TrainingRepo,
        cache: SynthesisCache,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.snapshots = snapshots
        self.training = training
        self.cache = cache
        self.clock = clock
        self._log = logging.getLogger("trading_monitor.service")

    def _now_ts(self) -> int:
        return epoch_seconds(self.clock())

    def ingest(self, payload: Mapping[str, Any]) -> IngestReceipt:
        snapshot = normalize_snapshot(payload, now=self.clock())
        result = self.snapshots.upsert(snapshot)
        self._log.info(
            "snapshot %s",
            "inserted" if result.upserted else "updated",
            extra={
                "symbol": snapshot.symbol,
                "ticket": snapshot.ticket,
                "key_kind": result.key.kind.value,
                "snapshot_ts": snapshot.timestamp,
            },
        )
        return IngestReceipt(
            symbol=snapshot.symbol,
            timestamp=snapshot.timestamp,
            ticket=snapshot.ticket,
            matched=result.matched,
            modified=result.modified,
            upserted=result.upserted,
        )

    def all_symbols(self) -> dict[str, Any]:
        records = self.snapshots.find_all()
        result = consolidate(records, now=self.clock())
        self._log.info(
            "symbols consolidated",
            extra={"documents": len(records), "symbols": result.summary.total_symbols},
        )
        body: dict[str, Any] = {
            "status": result.status,
            "symbols": {sym: snap.to_dict() for sym, snap in result.latest.items()},
            "summary": result.summary.to_dict(),
        }
        if result.empty:
            body["message"] = "No trading data found in database"
        return body

    def market_data(self, symbol: str | None, timeframe: str | None, limit: Any) -> list[Candle]:
        if not symbol or not str(symbol).strip():
            raise ValidationError("missing symbol", {"symbol": symbol, "timeframe": timeframe, "limit": limit})
        synth_cfg = self.config.synthesis
        count = parse_int(limit) if limit not in (None, "") else None
        if count is None:
            count = synth_cfg.default_count
        count = min(count, synth_cfg.max_count)
        tf = str(timeframe).strip() if timeframe not in (None, "") else "1m"
        candles = self.cache.get_or_compute(str(symbol).strip(), tf, count)
        return list(candles)

    def available_symbols(self) -> list[str]:
        return self.cache.synthesizer.available_symbols()

    def recent_trades(self, symbol: str | None = None) -> dict[str, Any]:
        trades = [s.to_dict() for s in self.snapshots.find_recent(symbol, limit=RECENT_TRADES_LIMIT)]
        return {
            "status": "success",
            "count": len(trades),
            "latest": trades[0] if trades else None,
            "trades": trades,
            "timestamp": self._now_ts(),
        }

    def grid_stats(self) -> dict[str, Any]:
        latest = self.snapshots.find_latest()
        best = self.training.best()
        return {
            "current_equity": latest.equity if latest else 0,
            "floating_pl": latest.profit if latest else 0,
            "open_grids": latest.open_trades if latest else 0,
            "grid_details": _grid_details(latest.extra.get("grid_info")) if latest else [],
            "ml_training_count": best.training_count if best else 0,
            "ml_win_rate": best.win_rate if best else 0,
            "last_update": latest.timestamp if latest else 0,
        }

    def record_training(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        report = normalize_training_report(payload, now=self.clock())
        self.training.insert(report)
        self._log.info(
            "ml training recorded",
            extra={"training_count": report.training_count, "win_rate": report.win_rate},
        )
        return {
            "status": "success",
            "message": "ML training data saved",
            "training_count": report.training_count,
        }

    def stream_info(self) -> dict[str, Any]:
        url = self.config.stream.ws_server_url
        return {
            "service": "WebSocket Proxy Information",
            "status": "active",
            "websocket_server": url,
            "protocol": self.config.stream.protocol,
            "supported_events": [
                "connect",
                "price_update",
                "subscribe",
                "unsubscribe",
                "timeframe_change",
            ],
            "timeframes": [spec.code for spec in TIMEFRAMES.values()],
            "example_subscribe": {"symbol": "XAUUSD", "timeframe": resolve_timeframe("1m").code},
            "timestamp": iso_utc(self.clock()),
        }


def _grid_details(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except ValueError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []
