from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from trading_monitor.core.exceptions import ConfigError


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class PersistenceConfig(BaseModel):
    db_path: str = "./data/monitor.sqlite"


class CacheConfig(BaseModel):
    ttl_seconds: float = 15.0
    sweep_multiple: float = 5.0

    @field_validator("ttl_seconds", "sweep_multiple")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class SynthesisConfig(BaseModel):
    default_count: int = 100
    max_count: int = 1000
    timezone: str = "UTC"
    market_hours_enabled: bool = True
    active_hour_start: int = 1
    active_hour_end: int = 23
    inactive_multiplier: float = 0.3
    default_price: float = 100.0
    default_volatility: float = 0.0002
    prices: dict[str, float] = Field(default_factory=dict)
    volatilities: dict[str, float] = Field(default_factory=dict)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {v}") from exc
        return v

    @field_validator("active_hour_start", "active_hour_end")
    @classmethod
    def _hour_bounds(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("hours must be within 0..23")
        return v

    @model_validator(mode="after")
    def _counts(self) -> "SynthesisConfig":
        if self.default_count < 1 or self.max_count < self.default_count:
            raise ValueError("need 1 <= default_count <= max_count")
        return self

    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class StreamConfig(BaseModel):
    ws_server_url: str = "wss://localhost:8001"
    protocol: str = "Socket.IO"


class LoggingConfig(BaseModel):
    log_dir: str = "./logs"
    level: str = "INFO"


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# env var -> dotted config path
ENV_OVERRIDES: dict[str, str] = {
    "TRADING_MONITOR_DB_PATH": "persistence.db_path",
    "TRADING_MONITOR_HOST": "server.host",
    "TRADING_MONITOR_PORT": "server.port",
    "TRADING_MONITOR_LOG_DIR": "logging.log_dir",
    "WS_SERVER_URL": "stream.ws_server_url",
}


def load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except Exception as exc:
        raise ConfigError(f"Failed reading config yaml: {path}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config yaml must be a mapping: {path}")
    return raw


def env_overrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    for env_name, dotted in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or not value.strip():
            continue
        node = out
        *parents, leaf = dotted.split(".")
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value.strip()
    return out


def load_config(config_path: str | Path | None = None) -> AppConfig:
    load_dotenv(override=False)
    raw = load_yaml(Path(config_path)) if config_path else {}
    raw = _deep_merge_dicts(raw, env_overrides())
    try:
        return AppConfig.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigError(str(exc)) from exc


def _deep_merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge_dicts(out[k], v)
        else:
            out[k] = v
    return out
