from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Any, Callable, Mapping

import pandas as pd

from trading_monitor.core.exceptions import ValidationError
from trading_monitor.core.utils import clamp, epoch_seconds, utc_now
from trading_monitor.snapshots.models import TradeSnapshot, TrainingReport

_log = logging.getLogger("trading_monitor.normalizer")

# Canonical field -> candidate payload keys, tried in order. Each candidate is
# also matched case-insensitively after the exact key misses.
FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "symbol": ("symbol", "instrument", "pair", "ticker", "sym"),
    "timestamp": ("timestamp", "time", "ts", "datetime", "date"),
    "ticket": ("ticket", "ticket_id", "position_id", "order"),
    "equity": ("equity", "account_equity"),
    "balance": ("balance", "account_balance"),
    "profit": ("profit", "floating_pl", "pnl"),
    "current_price": ("current_price", "price", "last"),
    "bid_price": ("bid_price", "bid"),
    "ask_price": ("ask_price", "ask"),
    "spread": ("spread",),
    "open_trades": ("open_trades", "open_positions"),
    "ml_confidence": ("ml_confidence", "confidence"),
    "ml_trained": ("ml_trained", "trained"),
    "total_profit_pips": ("total_profit_pips", "profit_pips"),
    "total_profit_usd": ("total_profit_usd", "profit_usd"),
    "trades": ("trades", "open_trade_list"),
    "training_count": ("training_count",),
    "win_trades": ("win_trades", "wins"),
    "total_trades": ("total_trades",),
    "win_rate": ("win_rate",),
    "last_profit": ("last_profit",),
}

_MISSING = object()

# sqlite INTEGER columns are signed 64-bit.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
# 9999-12-31T23:59:59Z
MAX_EPOCH = 253_402_300_799


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def lookup(payload: Mapping[str, Any], field: str) -> tuple[str | None, Any]:
    """Return ``(matched_key, value)`` for the first non-empty candidate of ``field``."""
    folded: dict[str, str] | None = None
    for name in FIELD_CANDIDATES.get(field, (field,)):
        if name in payload and not _is_empty(payload[name]):
            return name, payload[name]
        if folded is None:
            folded = {}
            for key in payload:
                if isinstance(key, str):
                    folded.setdefault(key.lower(), key)
        key = folded.get(name.lower())
        if key is not None and not _is_empty(payload[key]):
            return key, payload[key]
    return None, _MISSING


def parse_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    try:
        out = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def parse_int(value: Any) -> int | None:
    if isinstance(value, int):
        out = int(value)
    else:
        f = parse_float(value)
        if f is None:
            return None
        out = int(f)
    return out if INT64_MIN <= out <= INT64_MAX else None


def parse_epoch(value: Any) -> int | None:
    """Integer seconds first, then calendar-date parsing."""
    if isinstance(value, datetime):
        return epoch_seconds(value)
    as_int = parse_int(value)
    if as_int is not None:
        return as_int if 0 <= as_int <= MAX_EPOCH else None
    if not isinstance(value, str) or parse_float(value) is not None:
        return None
    try:
        ts = pd.to_datetime(value.strip(), utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    out = int(ts.timestamp())
    return out if 0 <= out <= MAX_EPOCH else None


def parse_trades(value: Any) -> list[Any] | None:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        if isinstance(decoded, list):
            return decoded
    return None


def _coerce(
    payload: Mapping[str, Any],
    field: str,
    parser: Callable[[Any], Any],
    default: Any,
    used: set[str],
) -> Any:
    key, raw = lookup(payload, field)
    if key is None:
        return default
    used.add(key)
    parsed = parser(raw)
    if parsed is not None:
        return parsed
    _log.debug("coercion fallback", extra={"field": field, "raw": str(raw)[:64]})
    return default


def normalize_snapshot(payload: Mapping[str, Any], *, now: datetime | None = None) -> TradeSnapshot:
    """
    Coerce an arbitrary client payload into a ``TradeSnapshot``.

    Only a missing symbol is fatal. Every other field that is absent or fails
    to parse falls back to its default (0, or an empty trade list); an
    unparsable timestamp becomes the invocation time.
    """
    used: set[str] = set()

    ticket_key, ticket_raw = lookup(payload, "ticket")
    ticket: str | None = None
    if ticket_key is not None:
        used.add(ticket_key)
        ticket = str(ticket_raw).strip()

    symbol_key, symbol_raw = lookup(payload, "symbol")
    if symbol_key is not None:
        used.add(symbol_key)
        symbol = str(symbol_raw).strip()
    elif ticket:
        symbol = f"TICKET-{ticket}"
        _log.warning("symbol synthesized from ticket", extra={"ticket": ticket})
    else:
        raise ValidationError("missing symbol", payload)

    invoked_at = epoch_seconds(now or utc_now())
    timestamp = _coerce(payload, "timestamp", parse_epoch, invoked_at, used)

    numbers = {name: _coerce(payload, name, parse_float, 0.0, used) for name in (
        "equity",
        "balance",
        "profit",
        "current_price",
        "bid_price",
        "ask_price",
        "spread",
        "total_profit_pips",
        "total_profit_usd",
    )}
    open_trades = max(0, _coerce(payload, "open_trades", parse_int, 0, used))
    ml_confidence = clamp(_coerce(payload, "ml_confidence", parse_float, 0.0, used), 0.0, 1.0)
    ml_trained = 1 if _coerce(payload, "ml_trained", parse_int, 0, used) else 0
    trades = _coerce(payload, "trades", parse_trades, [], used)

    extra = {k: v for k, v in payload.items() if k not in used}

    return TradeSnapshot(
        symbol=symbol,
        timestamp=timestamp,
        open_trades=open_trades,
        ml_confidence=ml_confidence,
        ml_trained=ml_trained,
        trades=trades,
        ticket=ticket,
        extra=extra,
        **numbers,
    )


def normalize_training_report(
    payload: Mapping[str, Any], *, now: datetime | None = None
) -> TrainingReport:
    used: set[str] = set()
    symbol_key, symbol_raw = lookup(payload, "symbol")
    return TrainingReport(
        training_count=_coerce(payload, "training_count", parse_int, 0, used),
        win_trades=_coerce(payload, "win_trades", parse_int, 0, used),
        total_trades=_coerce(payload, "total_trades", parse_int, 0, used),
        win_rate=_coerce(payload, "win_rate", parse_float, 0.0, used),
        last_profit=_coerce(payload, "last_profit", parse_float, 0.0, used),
        symbol=str(symbol_raw).strip() if symbol_key is not None else None,
        timestamp=_coerce(payload, "timestamp", parse_epoch, epoch_seconds(now or utc_now()), used),
    )
