from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


NUMERIC_FIELDS: tuple[str, ...] = (
    "equity",
    "balance",
    "profit",
    "current_price",
    "bid_price",
    "ask_price",
    "spread",
    "ml_confidence",
    "total_profit_pips",
    "total_profit_usd",
)

INTEGER_FIELDS: tuple[str, ...] = ("open_trades", "ml_trained")


@dataclass(frozen=True)
class TradeSnapshot:
    symbol: str
    timestamp: int
    equity: float = 0.0
    balance: float = 0.0
    profit: float = 0.0
    current_price: float = 0.0
    bid_price: float = 0.0
    ask_price: float = 0.0
    spread: float = 0.0
    open_trades: int = 0
    ml_confidence: float = 0.0
    ml_trained: int = 0
    total_profit_pips: float = 0.0
    total_profit_usd: float = 0.0
    trades: list[dict[str, Any]] = field(default_factory=list)
    ticket: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"symbol": self.symbol, "timestamp": self.timestamp}
        for name in NUMERIC_FIELDS + INTEGER_FIELDS:
            out[name] = getattr(self, name)
        out["trades"] = list(self.trades)
        if self.ticket is not None:
            out["ticket"] = self.ticket
        return out

    def to_document(self) -> dict[str, Any]:
        doc = self.to_dict()
        doc["extra"] = dict(self.extra)
        return doc

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "TradeSnapshot":
        trades = doc.get("trades")
        extra = doc.get("extra")
        ticket = doc.get("ticket")
        return cls(
            symbol=str(doc.get("symbol") or ""),
            timestamp=int(doc.get("timestamp") or 0),
            equity=float(doc.get("equity") or 0),
            balance=float(doc.get("balance") or 0),
            profit=float(doc.get("profit") or 0),
            current_price=float(doc.get("current_price") or 0),
            bid_price=float(doc.get("bid_price") or 0),
            ask_price=float(doc.get("ask_price") or 0),
            spread=float(doc.get("spread") or 0),
            open_trades=int(doc.get("open_trades") or 0),
            ml_confidence=float(doc.get("ml_confidence") or 0),
            ml_trained=int(doc.get("ml_trained") or 0),
            total_profit_pips=float(doc.get("total_profit_pips") or 0),
            total_profit_usd=float(doc.get("total_profit_usd") or 0),
            trades=list(trades) if isinstance(trades, list) else [],
            ticket=str(ticket) if ticket not in (None, "") else None,
            extra=dict(extra) if isinstance(extra, dict) else {},
        )


class KeyKind(str, Enum):
    BY_TICKET = "ticket"
    BY_TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class UpsertKey:
    kind: KeyKind
    symbol: str
    value: str


def select_upsert_key(snapshot: TradeSnapshot) -> UpsertKey:
    if snapshot.ticket:
        return UpsertKey(KeyKind.BY_TICKET, snapshot.symbol, snapshot.ticket)
    return UpsertKey(KeyKind.BY_TIMESTAMP, snapshot.symbol, str(snapshot.timestamp))


@dataclass(frozen=True)
class UpsertResult:
    key: UpsertKey
    matched: int
    modified: int
    upserted: int


@dataclass(frozen=True)
class TrainingReport:
    training_count: int
    win_trades: int
    total_trades: int
    win_rate: float
    last_profit: float
    symbol: str | None
    timestamp: int
