from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TimeframeSpec:
    code: str
    minutes: int

    @property
    def seconds(self) -> int:
        return self.minutes * 60


TIMEFRAMES: dict[str, TimeframeSpec] = {
    "M1": TimeframeSpec("M1", 1),
    "M5": TimeframeSpec("M5", 5),
    "M15": TimeframeSpec("M15", 15),
    "H1": TimeframeSpec("H1", 60),
    "H4": TimeframeSpec("H4", 4 * 60),
    "D1": TimeframeSpec("D1", 24 * 60),
}

DEFAULT_TIMEFRAME = TIMEFRAMES["M1"]

# lower-cased alias -> canonical code
ALIASES: dict[str, str] = {
    "1": "M1",
    "1m": "M1",
    "m1": "M1",
    "1min": "M1",
    "5": "M5",
    "5m": "M5",
    "m5": "M5",
    "5min": "M5",
    "15": "M15",
    "15m": "M15",
    "m15": "M15",
    "15min": "M15",
    "60": "H1",
    "1h": "H1",
    "h1": "H1",
    "1hour": "H1",
    "240": "H4",
    "4h": "H4",
    "h4": "H4",
    "4hour": "H4",
    "1440": "D1",
    "d": "D1",
    "1d": "D1",
    "d1": "D1",
}


def resolve_timeframe(alias: str | int | None) -> TimeframeSpec:
    """Map any accepted alias to its bucket; unknown aliases mean one minute."""
    if alias is None:
        return DEFAULT_TIMEFRAME
    code = ALIASES.get(str(alias).strip().lower())
    if code is None:
        return DEFAULT_TIMEFRAME
    return TIMEFRAMES[code]
