from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from trading_monitor.core.utils import epoch_seconds, utc_now
from trading_monitor.snapshots.models import TradeSnapshot

STATUS_SUCCESS = "success"
STATUS_NO_DATA = "no_data"


@dataclass(frozen=True)
class SymbolSummary:
    total_symbols: int
    total_open_trades: int
    total_profit: str
    server_time: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_symbols": self.total_symbols,
            "total_open_trades": self.total_open_trades,
            "total_profit": self.total_profit,
            "server_time": self.server_time,
        }


@dataclass(frozen=True)
class Consolidation:
    status: str
    summary: SymbolSummary
    latest: dict[str, TradeSnapshot] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return self.status == STATUS_NO_DATA


def latest_per_symbol(records: Iterable[TradeSnapshot]) -> dict[str, TradeSnapshot]:
    """
    Keep one record per symbol: the one with the greatest timestamp.

    Only a strictly greater timestamp replaces the current holder, so among
    equal timestamps the first record in iteration order wins.
    """
    latest: dict[str, TradeSnapshot] = {}
    for rec in records:
        if not rec.symbol:
            continue
        held = latest.get(rec.symbol)
        if held is None or rec.timestamp > held.timestamp:
            latest[rec.symbol] = rec
    return latest


def summarize(latest: dict[str, TradeSnapshot], *, now: datetime | None = None) -> SymbolSummary:
    open_trades = 0
    profit = 0.0
    for snap in latest.values():
        open_trades += int(snap.open_trades)
        profit += float(snap.profit)
    return SymbolSummary(
        total_symbols=len(latest),
        total_open_trades=open_trades,
        total_profit=f"{round(profit, 2) + 0.0:.2f}",
        server_time=epoch_seconds(now or utc_now()),
    )


def consolidate(records: Iterable[TradeSnapshot], *, now: datetime | None = None) -> Consolidation:
    latest = latest_per_symbol(records)
    status = STATUS_SUCCESS if latest else STATUS_NO_DATA
    return Consolidation(status=status, summary=summarize(latest, now=now), latest=latest)
