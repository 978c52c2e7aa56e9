from __future__ import annotations

import json
from typing import Callable, Mapping, Optional

import structlog
from aiohttp import web

from correlator.alerts.engine import CorrelationEngine
from correlator.ingest.parser import AuthError, parse_alert, redacted
from correlator.utils.time import utc_now_ms

log = structlog.get_logger("webhook")

ENGINE_KEY = web.AppKey("engine", CorrelationEngine)
SECRET_KEY = web.AppKey("secret", str)
CLOCK_KEY = web.AppKey("clock", Callable)
STATS_KEY = web.AppKey("stats", dict)

async def incoming(request: web.Request) -> web.Response:
    """
    Acknowledge with 200 whenever the request is authorized, even if the
    payload is malformed or a detector faults, so the sender does not retry.
    """
    engine = request.app[ENGINE_KEY]
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        log.info("alert_dropped", reason="invalid_json")
        return web.Response(status=200, text="OK")

    try:
        alert = parse_alert(body, secret=request.app[SECRET_KEY] or None, now_ms=request.app[CLOCK_KEY]())
    except AuthError:
        log.warning("alert_unauthorized", remote=request.remote)
        return web.Response(status=401, text="Unauthorized")

    if alert is None:
        log.info("alert_dropped", reason="missing_symbol_or_group", body=redacted(body))
        return web.Response(status=200, text="OK")

    log.info("alert_received", symbol=alert.symbol, group=alert.group)
    try:
        await engine.submit(alert)
    except Exception as e:
        log.exception("alert_pipeline_failed", symbol=alert.symbol, group=alert.group, err=str(e))
    return web.Response(status=200, text="OK")

async def ping(request: web.Request) -> web.Response:
    return web.json_response({"ok": True, "rules": request.app[ENGINE_KEY].rule_names})

async def stats(request: web.Request) -> web.Response:
    out = {"engine": request.app[ENGINE_KEY].stats.as_dict()}
    for name, provider in request.app[STATS_KEY].items():
        out[name] = provider()
    return web.json_response(out)

def create_app(
    engine: CorrelationEngine,
    *,
    secret: Optional[str] = None,
    clock: Callable[[], int] = utc_now_ms,
    stats_providers: Optional[Mapping[str, Callable[[], dict]]] = None,
) -> web.Application:
    app = web.Application()
    app[ENGINE_KEY] = engine
    app[SECRET_KEY] = secret or ""
    app[CLOCK_KEY] = clock
    app[STATS_KEY] = dict(stats_providers or {})
    app.router.add_post("/incoming", incoming)
    app.router.add_get("/ping", ping)
    app.router.add_get("/stats", stats)
    return app
