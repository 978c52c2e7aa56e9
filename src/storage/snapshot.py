# src/storage/snapshot.py
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

import structlog
from redis.asyncio import Redis

from correlator.alerts.engine import CorrelationEngine
from correlator.alerts.state import EngineState

log = structlog.get_logger("snapshot")

class SnapshotStore(Protocol):
    async def load(self) -> Optional[dict[str, Any]]: ...
    async def save(self, blob: dict[str, Any]) -> None: ...
    async def close(self) -> None: ...


class FileSnapshotStore:
    """
    One JSON file. Writes go to a temp file in the same directory and are
    moved into place with os.replace, so a crash never leaves a truncated file.
    """
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    async def load(self) -> Optional[dict[str, Any]]:
        return await asyncio.to_thread(self._read)

    async def save(self, blob: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, blob)

    async def close(self) -> None:
        return None

    def _read(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def _write(self, blob: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".snapshot_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(blob, fh, separators=(",", ":"), allow_nan=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise


class RedisSnapshotStore:
    """One JSON blob under a single key (SET replaces atomically)."""
    def __init__(self, url: str, key: str = "correlator:snapshot", redis: Optional[Redis] = None):
        self.url = url
        self.key = key
        self._r: Optional[Redis] = redis

    def _client(self) -> Redis:
        if self._r is None:
            self._r = Redis.from_url(self.url)
        return self._r

    async def load(self) -> Optional[dict[str, Any]]:
        raw = await self._client().get(self.key)
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def save(self, blob: dict[str, Any]) -> None:
        await self._client().set(self.key, json.dumps(blob, separators=(",", ":"), allow_nan=False))

    async def close(self) -> None:
        if self._r is not None:
            await self._r.aclose()
            self._r = None


async def load_state(store: Optional[SnapshotStore]) -> EngineState:
    """Missing or corrupt snapshot → empty state."""
    if store is None:
        return EngineState()
    try:
        blob = await store.load()
    except Exception as e:
        log.warning("snapshot_load_failed", err=str(e))
        return EngineState()
    if not blob:
        log.info("snapshot_missing")
        return EngineState()
    try:
        st = EngineState.from_snapshot(blob)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        log.warning("snapshot_corrupt", err=str(e))
        return EngineState()
    log.info("snapshot_loaded", observations=len(st.observations))
    return st


@dataclass(slots=True)
class SnapshotStats:
    requested: int = 0
    written: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {"requested": self.requested, "written": self.written, "failed": self.failed}


class SnapshotWriter:
    """
    Best-effort, coalescing background writer. request() is cheap and never
    blocks the alert path; the loop captures the state under the engine lock
    and writes outside it. A failed write is logged and the next request
    tries again with fresh state.
    """
    def __init__(self, store: SnapshotStore, engine: CorrelationEngine, min_interval_s: float = 1.0):
        self.store = store
        self.engine = engine
        self.min_interval_s = min_interval_s
        self.stats = SnapshotStats()
        self._dirty = asyncio.Event()
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def request(self) -> None:
        self.stats.requested += 1
        self._dirty.set()

    async def start(self):
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="snapshot-writer")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._dirty.is_set():
            await self.flush()
        await self.store.close()

    async def flush(self) -> bool:
        self._dirty.clear()
        async with self.engine.lock:
            blob = self.engine.state.to_snapshot()
        try:
            await self.store.save(blob)
        except Exception as e:
            self.stats.failed += 1
            log.warning("snapshot_write_failed", err=str(e))
            return False
        self.stats.written += 1
        return True

    async def _loop(self):
        try:
            while not self._stop.is_set():
                await self._dirty.wait()
                await self.flush()
                await asyncio.sleep(self.min_interval_s)
        except asyncio.CancelledError:
            return
