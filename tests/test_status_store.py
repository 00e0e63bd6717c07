"""
Tests for StatusStore persistence, listing, expiry and clearing.
"""

from unittest.mock import patch

from jobstate.jobs.job_types import JobStatus
from jobstate.jobs.status_store import StatusStore


def create_at(store, job_id, when, *parts):
    """Create a record with the index score pinned to `when`."""
    with patch("jobstate.jobs.status_store.time") as mock_time:
        mock_time.time.return_value = when
        return store.create(job_id, *parts)


# =============================================================================
# RECORDS
# =============================================================================

class TestRecords:
    """get / set / create / remove."""

    def test_get_missing_returns_none(self, store):
        assert store.get("nope") is None

    def test_create_writes_record_and_index(self, store):
        store.create("job-1", {"options": {"num": 1}})
        record = store.get("job-1")
        assert record.id == "job-1"
        assert record.status == JobStatus.QUEUED
        assert record.options == {"num": 1}
        assert store.status_ids() == ["job-1"]

    def test_set_merges_over_existing(self, store):
        store.create("job-1", {"options": {"num": 1}})
        created_at = store.get("job-1").created_at

        store.set("job-1", {"status": "working", "num": 5, "total": 10}, "Going")
        record = store.get("job-1")
        assert record.status == JobStatus.WORKING
        assert record.message == "Going"
        assert record.options == {"num": 1}
        assert record.created_at == created_at

    def test_set_returns_written_record(self, store):
        record = store.set("job-1", {"status": "working"})
        assert record == store.get("job-1")

    def test_mget_keeps_slots_for_missing(self, store):
        store.set("a", "first")
        store.set("c", "third")
        records = store.mget(["a", "b", "c"])
        assert [r.message if r else None for r in records] == ["first", None, "third"]

    def test_mget_empty(self, store):
        assert store.mget([]) == []

    def test_remove(self, store):
        store.create("job-1")
        store.remove("job-1")
        assert store.get("job-1") is None
        assert store.status_ids() == []

    def test_namespace_prefixes_keys(self, redis_client):
        store = StatusStore(redis_client, namespace="app")
        store.create("job-1")
        assert redis_client.exists("app:status:job-1")
        assert redis_client.zcard("app:_statuses") == 1


# =============================================================================
# LISTING
# =============================================================================

class TestListing:
    """Newest-first ordering and inclusive ranges."""

    def test_newest_first(self, store):
        for i in range(3):
            create_at(store, f"job-{i}", 1000 + i)
        assert store.status_ids() == ["job-2", "job-1", "job-0"]

    def test_range_is_inclusive(self, store):
        for i in range(20):
            create_at(store, f"job-{i}", 1000 + i)
        everything = store.status_ids()
        assert store.status_ids(0, 9) == everything[0:10]
        assert store.status_ids(10, 19) == everything[10:20]

    def test_single_bound_returns_all(self, store):
        for i in range(3):
            create_at(store, f"job-{i}", 1000 + i)
        assert len(store.status_ids(1, None)) == 3

    def test_statuses_skip_missing_records(self, store, redis_client):
        create_at(store, "a", 1000)
        create_at(store, "b", 1001)
        redis_client.delete(store.status_key("a"))
        assert [r.id for r in store.statuses()] == ["b"]

    def test_count(self, store):
        create_at(store, "a", 1000)
        create_at(store, "b", 1001)
        assert store.count() == 2


# =============================================================================
# EXPIRY
# =============================================================================

class TestExpiry:
    """expire_in sets a TTL on records and prunes the index on create."""

    def test_records_get_ttl(self, redis_client):
        store = StatusStore(redis_client, expire_in=60)
        store.create("job-1")
        assert 0 < redis_client.ttl(store.status_key("job-1")) <= 60

    def test_no_ttl_without_expire_in(self, store, redis_client):
        store.create("job-1")
        assert redis_client.ttl(store.status_key("job-1")) == -1

    def test_old_index_entries_pruned_on_create(self, redis_client):
        store = StatusStore(redis_client, expire_in=100)
        create_at(store, "old", 1000)
        create_at(store, "new", 1200)
        assert store.status_ids() == ["new"]

    def test_recent_entries_kept(self, redis_client):
        store = StatusStore(redis_client, expire_in=100)
        create_at(store, "older", 1000)
        create_at(store, "newer", 1050)
        assert store.status_ids() == ["newer", "older"]


# =============================================================================
# CLEARING
# =============================================================================

class TestClearing:
    """clear, clear_completed and clear_failed."""

    def _seed(self, store):
        create_at(store, "done", 1000, {"status": "completed"})
        create_at(store, "broken", 1001, {"status": "failed"})
        create_at(store, "busy", 1002, {"status": "working"})

    def test_clear_removes_everything(self, store):
        self._seed(store)
        assert sorted(store.clear()) == ["broken", "busy", "done"]
        assert store.count() == 0
        assert store.get("done") is None

    def test_clear_completed(self, store):
        self._seed(store)
        assert store.clear_completed() == ["done"]
        assert sorted(store.status_ids()) == ["broken", "busy"]

    def test_clear_failed(self, store):
        self._seed(store)
        assert store.clear_failed() == ["broken"]
        assert store.get("broken") is None
        assert store.get("done") is not None
