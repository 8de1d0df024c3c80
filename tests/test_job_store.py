import json
from datetime import date, datetime, timezone

from deep_research.jobs import (
    ACTIVE_JOBS_KEY,
    InMemoryKeyValueStore,
    JobSnapshotStore,
    KeyValueStore,
    RedisKeyValueStore,
    ResearchHistory,
    ResearchJob,
    ResearchModifiers,
    ResearchParameters,
    SqlAlchemyKeyValueStore,
    build_research_prompt,
)

NOW_MS = 1_700_000_000_000


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiries = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex

    def delete(self, key):
        self.data.pop(key, None)


class BrokenStore(KeyValueStore):
    def get(self, key):
        raise OSError("store offline")

    def set(self, key, value):
        raise OSError("store offline")

    def remove(self, key):
        raise OSError("store offline")


def make_job(capability="Market Analysis", age_seconds=0.0):
    params = ResearchParameters(
        capability=capability,
        framework="Porter's Five Forces",
        context="solid-state batteries",
        modifiers=ResearchModifiers(scope="broad", overview_details="brief", analytical_rigor="high", perspective="investor"),
    )
    return ResearchJob(parameters=params, start_time=NOW_MS - int(age_seconds * 1000))


def test_sqlalchemy_store_roundtrip(tmp_path):
    db_path = tmp_path / "test.db"
    store = SqlAlchemyKeyValueStore(f"sqlite+pysqlite:///{db_path}")

    assert store.get("missing") is None
    store.set("k", "v1")
    store.set("k", "v2")
    assert store.get("k") == "v2"

    reopened = SqlAlchemyKeyValueStore(f"sqlite+pysqlite:///{db_path}")
    assert reopened.get("k") == "v2"

    store.remove("k")
    store.remove("k")
    assert store.get("k") is None


def test_redis_store_namespaces_keys_and_refreshes_ttl():
    fake = FakeRedis()
    store = RedisKeyValueStore(client=fake, ttl_seconds=1800)

    store.set(ACTIVE_JOBS_KEY, "[]")
    assert fake.data == {f"deep-research:{ACTIVE_JOBS_KEY}": "[]"}
    assert fake.expiries[f"deep-research:{ACTIVE_JOBS_KEY}"] == 1800
    assert store.get(ACTIVE_JOBS_KEY) == "[]"

    store.remove(ACTIVE_JOBS_KEY)
    assert store.get(ACTIVE_JOBS_KEY) is None


def test_redis_store_decodes_bytes():
    fake = FakeRedis()
    fake.data["deep-research:k"] = b"value"
    assert RedisKeyValueStore(client=fake).get("k") == "value"


def test_snapshot_roundtrip_keeps_parameters_without_timers():
    store = InMemoryKeyValueStore()
    snapshots = JobSnapshotStore(store)
    job = make_job(age_seconds=10)

    snapshots.save([job])
    raw = json.loads(store.get(ACTIVE_JOBS_KEY))
    assert raw == [
        {
            "capability": "Market Analysis",
            "framework": "Porter's Five Forces",
            "context": "solid-state batteries",
            "scope": "broad",
            "overviewDetails": "brief",
            "analyticalRigor": "high",
            "perspective": "investor",
            "startTime": NOW_MS - 10_000,
        }
    ]

    (loaded,) = snapshots.load(NOW_MS)
    assert loaded.parameters == job.parameters
    assert loaded.start_time == job.start_time


def test_snapshot_load_drops_entries_past_survival_window():
    snapshots = JobSnapshotStore(InMemoryKeyValueStore())
    snapshots.save([make_job("old", 1801), make_job("edge", 1800), make_job("new", 5)])

    loaded = snapshots.load(NOW_MS)

    assert [s.parameters.capability for s in loaded] == ["edge", "new"]


def test_corrupt_snapshot_is_wiped():
    store = InMemoryKeyValueStore()
    store.set(ACTIVE_JOBS_KEY, "{not json")
    assert JobSnapshotStore(store).load(NOW_MS) == []
    assert store.get(ACTIVE_JOBS_KEY) is None

    store.set(ACTIVE_JOBS_KEY, json.dumps([{"capability": "x", "framework": "y"}]))
    assert JobSnapshotStore(store).load(NOW_MS) == []
    assert store.get(ACTIVE_JOBS_KEY) is None

    store.set(ACTIVE_JOBS_KEY, json.dumps({"capability": "x"}))
    assert JobSnapshotStore(store).load(NOW_MS) == []


def test_snapshot_failures_degrade_to_empty(caplog):
    snapshots = JobSnapshotStore(BrokenStore())

    snapshots.save([make_job()])
    assert snapshots.load(NOW_MS) == []
    snapshots.clear()

    assert "Failed to save jobs state" in caplog.text
    assert "Failed to load jobs state" in caplog.text


def test_history_records_and_exports():
    store = InMemoryKeyValueStore()
    history = ResearchHistory(store)
    when = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    history.record(make_job().parameters, when=when)
    history.record(make_job("Competitive Landscape").parameters, when=when)

    entries = history.entries()
    assert [e["capability"] for e in entries] == ["Market Analysis", "Competitive Landscape"]
    assert entries[0]["timestamp"] == "2026-03-04T05:06:07+00:00"
    assert entries[0]["modifiers"] == {
        "scope": "broad",
        "overviewDetails": "brief",
        "analyticalRigor": "high",
        "perspective": "investor",
    }
    assert json.loads(history.export_json()) == entries
    assert ResearchHistory.download_filename(date(2026, 3, 4)) == "research-history-2026-03-04.json"


def test_history_failures_are_swallowed(caplog):
    history = ResearchHistory(BrokenStore())
    history.record(make_job().parameters)
    assert history.entries() == []
    assert "Failed to log research history" in caplog.text


def test_research_prompt_carries_parameters_and_date():
    prompt = build_research_prompt(make_job().parameters, today=date(2026, 1, 2))

    assert "Analysis Type: Market Analysis" in prompt
    assert "Framework: Porter's Five Forces" in prompt
    assert "solid-state batteries" in prompt
    assert "- Scope: broad" in prompt
    assert "- Perspective: investor" in prompt
    assert "current date is 01.02.2026" in prompt
