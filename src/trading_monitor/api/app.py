from __future__ import annotations

import json
import logging
from typing import Any

from flask import Flask, jsonify, request
from flask_cors import CORS

from trading_monitor.api.service import MonitorService
from trading_monitor.core.exceptions import PersistenceError, ValidationError
from trading_monitor.core.utils import epoch_seconds, utc_now

log = logging.getLogger("trading_monitor.api")


def _request_payload() -> dict[str, Any]:
    """JSON object, JSON text sent with another content type, or form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    if request.form:
        return request.form.to_dict()
    raw = request.get_data(as_text=True)
    if raw.strip():
        try:
            decoded = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("invalid body format") from exc
        if isinstance(decoded, dict):
            return decoded
    raise ValidationError("invalid body format")


def create_app(service: MonitorService) -> Flask:
    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": service.config.server.cors_origins}})
    app.extensions["monitor_service"] = service

    @app.errorhandler(ValidationError)
    def _validation_failed(exc: ValidationError):
        log.warning("validation failed", extra={"reason": exc.reason, "path": request.path})
        error = "Invalid symbol" if exc.reason == "missing symbol" else "Invalid request"
        return jsonify({"error": error, "reason": exc.reason, "received": exc.payload}), 400

    @app.errorhandler(PersistenceError)
    def _persistence_failed(exc: PersistenceError):
        log.error("persistence failure", exc_info=exc, extra={"path": request.path})
        return (
            jsonify(
                {
                    "status": "error",
                    "message": str(exc),
                    "timestamp": epoch_seconds(utc_now()),
                }
            ),
            500,
        )

    @app.post("/api/update_trade")
    def update_trade():
        receipt = service.ingest(_request_payload())
        return jsonify(receipt.to_dict())

    @app.get("/api/get_all_symbols")
    def get_all_symbols():
        return jsonify(service.all_symbols())

    @app.get("/api/market_data")
    def market_data():
        symbol = request.args.get("symbol")
        if not symbol:
            return (
                jsonify(
                    {
                        "error": "Symbol parameter is required",
                        "example": "/api/market_data?symbol=XAUUSD&timeframe=1m&limit=100",
                        "available_symbols": service.available_symbols(),
                    }
                ),
                400,
            )
        candles = service.market_data(
            symbol,
            request.args.get("timeframe", "1m"),
            request.args.get("limit", request.args.get("count")),
        )
        return jsonify([c.to_dict() for c in candles])

    @app.get("/api/get_trades")
    def get_trades():
        return jsonify(service.recent_trades(request.args.get("symbol") or None))

    @app.get("/api/grid_stats")
    def grid_stats():
        return jsonify(service.grid_stats())

    @app.post("/api/ml_train")
    def ml_train():
        return jsonify(service.record_training(_request_payload()))

    @app.get("/api/ws_info")
    def ws_info():
        return jsonify(service.stream_info())

    return app
