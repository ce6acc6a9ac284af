from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from flask import Flask

from trading_monitor.api.app import create_app
from trading_monitor.api.service import MonitorService
from trading_monitor.core.config import AppConfig, load_config
from trading_monitor.core.utils import setup_logging
from trading_monitor.market.cache import SynthesisCache
from trading_monitor.market.synthesizer import CandleSynthesizer
from trading_monitor.persistence.db import Database


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="trading-monitor")
    p.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    p.add_argument("--host", type=str, default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--log-level", type=str, default=None)
    return p.parse_args(argv)


def build_app(config: AppConfig) -> Flask:
    db = Database(Path(config.persistence.db_path))
    db.initialize()
    synthesizer = CandleSynthesizer(config.synthesis)
    cache = SynthesisCache(
        synthesizer,
        ttl_seconds=config.cache.ttl_seconds,
        sweep_multiple=config.cache.sweep_multiple,
    )
    service = MonitorService(
        config=config,
        snapshots=db.snapshot_repo(),
        training=db.training_repo(),
        cache=cache,
    )
    return create_app(service)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    config = load_config(args.config)
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    setup_logging(config.logging.log_dir, level=args.log_level or config.logging.level)
    log = logging.getLogger("trading_monitor")

    app = build_app(config)
    log.info(
        "starting",
        extra={"host": config.server.host, "port": config.server.port, "db_path": config.persistence.db_path},
    )
    app.run(host=config.server.host, port=config.server.port, threaded=True)
    log.info("stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
