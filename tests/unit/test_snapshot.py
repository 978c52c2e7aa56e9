import json

import pytest

from correlator.alerts.detectors.registry import build_detectors
from correlator.alerts.engine import CorrelationEngine
from correlator.alerts.rules import default_rules
from correlator.alerts.state import EngineState
from storage.snapshot import (
    FileSnapshotStore, RedisSnapshotStore, SnapshotWriter, load_state,
)
from tests.helpers.factory import make_alert

class FakeRedis:
    def __init__(self):
        self.kv = {}
        self.closed = False

    async def get(self, key):
        return self.kv.get(key)

    async def set(self, key, value):
        self.kv[key] = value.encode() if isinstance(value, str) else value

    async def aclose(self):
        self.closed = True


class FailingStore:
    async def load(self):
        raise OSError("disk gone")

    async def save(self, blob):
        raise OSError("disk gone")

    async def close(self):
        return None


def _engine_with_state():
    engine = CorrelationEngine(build_detectors(default_rules()))
    engine.process(make_alert("X", "A", 0))
    engine.process(make_alert("X", "G", 10_000, fib_level="1.29"))
    engine.process(make_alert("Y", "B", 20_000))
    return engine

def test_state_snapshot_roundtrip():
    st = _engine_with_state().state
    copy = EngineState.from_snapshot(json.loads(json.dumps(st.to_snapshot())))
    assert copy.observations.get("X", "G").alert.get("fib_level") == "1.29"
    assert copy.episodes["tracking1"]["Y"].start_group == "B"
    assert copy.gaps["tracking2_3"]["X"] == 10_000
    assert copy.transitions["level_shift"]["X"].values == frozenset({1.29, -1.29})

def test_unknown_snapshot_version_is_rejected():
    with pytest.raises(ValueError):
        EngineState.from_snapshot({"v": 99})

@pytest.mark.asyncio
async def test_file_store_roundtrip_and_no_temp_left(tmp_path):
    path = tmp_path / "state" / "snapshot.json"
    store = FileSnapshotStore(path)
    assert await store.load() is None
    await store.save({"v": 1, "observations": []})
    assert json.loads(path.read_text()) == {"v": 1, "observations": []}
    assert [p.name for p in path.parent.iterdir()] == ["snapshot.json"]

@pytest.mark.asyncio
async def test_load_state_missing_or_corrupt_is_empty(tmp_path):
    assert len((await load_state(None)).observations) == 0

    path = tmp_path / "snapshot.json"
    path.write_text("{truncated")
    st = await load_state(FileSnapshotStore(path))
    assert len(st.observations) == 0

    path.write_text(json.dumps({"v": 1, "observations": [{"nope": 1}]}))
    st = await load_state(FileSnapshotStore(path))
    assert len(st.observations) == 0

    assert len((await load_state(FailingStore())).observations) == 0

@pytest.mark.asyncio
async def test_writer_flush_restores_through_redis():
    engine = _engine_with_state()
    fake = FakeRedis()
    store = RedisSnapshotStore("redis://unused", key="k", redis=fake)
    writer = SnapshotWriter(store, engine)
    assert await writer.flush()
    assert writer.stats.written == 1

    st = await load_state(RedisSnapshotStore("redis://unused", key="k", redis=fake))
    assert st.observations.get("Y", "B").time == 20_000
    await store.close()
    assert fake.closed

@pytest.mark.asyncio
async def test_writer_failure_is_counted_not_raised():
    writer = SnapshotWriter(FailingStore(), _engine_with_state())
    assert not await writer.flush()
    assert writer.stats.failed == 1

@pytest.mark.asyncio
async def test_writer_stop_flushes_pending_request(tmp_path):
    engine = _engine_with_state()
    path = tmp_path / "snapshot.json"
    writer = SnapshotWriter(FileSnapshotStore(path), engine, min_interval_s=60)
    writer.request()
    await writer.stop()
    assert path.exists()
    assert writer.stats.requested == 1
