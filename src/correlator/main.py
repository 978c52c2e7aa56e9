# src/correlator/main.py
import asyncio
import logging
from typing import Optional

import structlog
from aiohttp import web

from correlator.alerts.dedup import AlertDeduplicator
from correlator.alerts.detectors.registry import build_detectors
from correlator.alerts.engine import CorrelationEngine
from correlator.alerts.levels import Canonicalizer
from correlator.alerts.scheduler import Sweeper
from correlator.ingest.webhook import create_app
from correlator.notify.console import ConsoleNotifier
from correlator.notify.router import NotificationRouter, telegram_channels
from correlator.utils.config import AppConfig
from correlator.utils.time import seconds_to_ms

from storage.snapshot import (
    FileSnapshotStore, RedisSnapshotStore, SnapshotStore, SnapshotWriter, load_state,
)

log = structlog.get_logger()


def configure_logging(level: str) -> None:
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(lvl))


def snapshot_store_for(cfg: AppConfig) -> Optional[SnapshotStore]:
    if cfg.snapshot_redis_url:
        return RedisSnapshotStore(cfg.snapshot_redis_url, key=cfg.snapshot_key)
    if cfg.snapshot_path:
        return FileSnapshotStore(cfg.snapshot_path)
    return None


# ---------------------------
# Main
# ---------------------------

async def main(cfg: Optional[AppConfig] = None):
    cfg = cfg or AppConfig.from_env()
    configure_logging(cfg.log_level)
    log.info("rules_loaded", rules=[f"{r.type}:{r.name}" for r in cfg.rules])

    # ----- State (best effort restore) -----
    store = snapshot_store_for(cfg)
    state = await load_state(store)

    # ----- Notifications -----
    channels = telegram_channels(cfg.telegram)
    router = NotificationRouter(channels, echo=ConsoleNotifier() if cfg.console_echo else None)
    for ch in cfg.telegram:
        log.info("telegram_channel_enabled", channel=ch)

    # ----- Engine -----
    engine = CorrelationEngine(
        build_detectors(cfg.rules),
        state=state,
        canonicalizer=Canonicalizer(cfg.level_sources),
        deduper=AlertDeduplicator(
            ttl_ms=seconds_to_ms(cfg.dedupe_ttl_seconds),
            bucket_ms=seconds_to_ms(cfg.dedupe_bucket_seconds),
        ),
        emit=router.route,
        tz_name=cfg.timezone,
    )

    writer: Optional[SnapshotWriter] = None
    if store is not None:
        writer = SnapshotWriter(store, engine, min_interval_s=cfg.snapshot_interval_s)
        engine.on_mutation = writer.request

    sweeper = Sweeper(engine, interval_ms=cfg.check_ms)

    stats_providers = {
        "router": router.stats.as_dict,
        "telegram": lambda: {
            n.cfg.chat_id: {"sent": n.stats.sent, "failed": n.stats.failed, **n.q.stats.as_dict()}
            for n in router.notifiers()
        },
    }
    if writer is not None:
        stats_providers["snapshot"] = writer.stats.as_dict

    app = create_app(engine, secret=cfg.alert_secret, stats_providers=stats_providers)
    runner = web.AppRunner(app)

    # ----- Run everything -----
    started = []
    try:
        for n in router.notifiers():
            await n.start()
            started.append(n)
        if writer is not None:
            await writer.start()
            started.append(writer)
        await sweeper.start()
        started.append(sweeper)

        await runner.setup()
        site = web.TCPSite(runner, cfg.host, cfg.port)
        await site.start()
        log.info("server_started", host=cfg.host, port=cfg.port)

        await asyncio.Event().wait()
    finally:
        # graceful shutdown; a snapshot is flushed by writer.stop()
        await runner.cleanup()
        for obj in reversed(started):
            try:
                await obj.stop()
            except Exception as e:
                log.warning("shutdown_failed", component=type(obj).__name__, err=str(e))


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
