from datetime import timedelta

import pytest

from agent_scout.core.models import CachedAgent, Relationship, ScanType, utcnow
from agent_scout.core.registry_cache import RegistryCache, merge_tags
from agent_scout.core.store import MemoryStore, SQLiteStore


@pytest.fixture(params=["memory", "sqlite"])
def any_cache(request):
    if request.param == "memory":
        yield RegistryCache(MemoryStore())
    else:
        store = SQLiteStore(":memory:")
        yield RegistryCache(store)
        store.close()


class TestMergeTags:
    def test_union_keeps_first_seen_order(self):
        assert merge_tags(["a", "b"], ["b", "c", "a"]) == ["a", "b", "c"]

    def test_empty_tags_dropped(self):
        assert merge_tags([], ["", "x"]) == ["x"]


class TestUpsert:
    def test_insert_then_partial_update(self, any_cache):
        any_cache.upsert({"agentId": 1, "owner": "0xA", "agentName": "One", "capabilities": ["x"]})
        any_cache.upsert({"agentId": 1, "owner": "0xB"})

        agent = any_cache.get(1)
        assert agent.owner == "0xB"
        assert agent.agentName == "One"
        assert agent.capabilities == ["x"]

    def test_idempotent(self, any_cache):
        record = {"agentId": 4, "owner": "0xA", "capabilities": ["x", "y"], "tags": ["t"]}
        any_cache.upsert(record)
        first = any_cache.get(4).to_dict()
        any_cache.upsert(record)
        second = any_cache.get(4).to_dict()

        first.pop("updatedAt")
        second.pop("updatedAt")
        assert first == second

    def test_tags_are_monotonic(self, any_cache):
        any_cache.upsert({"agentId": 2, "tags": ["a", "b"]})
        any_cache.upsert({"agentId": 2, "tags": ["c"]})
        any_cache.upsert({"agentId": 2})

        assert any_cache.get(2).tags == ["a", "b", "c"]

    def test_scan_never_touches_classification(self, any_cache):
        any_cache.upsert({"agentId": 3, "owner": "0xA"})
        any_cache.set_relationship(3, Relationship.ALLY, "trusted peer")
        any_cache.set_verified(3)

        any_cache.upsert({"agentId": 3, "owner": "0xB", "agentName": "Renamed"})

        agent = any_cache.get(3)
        assert agent.relationship == Relationship.ALLY
        assert agent.notes == "trusted peer"
        assert agent.isVerified is True
        assert agent.agentName == "Renamed"

    @pytest.mark.parametrize("field", ["relationship", "notes", "isVerified", "createdAt"])
    def test_rejects_protected_fields(self, any_cache, field):
        with pytest.raises(ValueError):
            any_cache.upsert({"agentId": 1, field: "ally"})

    def test_requires_agent_id(self, any_cache):
        with pytest.raises(ValueError):
            any_cache.upsert({"owner": "0xA"})

    def test_created_at_survives_updates(self, any_cache):
        created = any_cache.upsert({"agentId": 8}).createdAt
        any_cache.upsert({"agentId": 8, "owner": "0xB"})
        assert any_cache.get(8).createdAt == created


class TestClassification:
    def test_set_relationship_from_string(self, any_cache):
        any_cache.upsert({"agentId": 1})

        assert any_cache.set_relationship(1, "avoided") is True
        assert any_cache.get(1).relationship == Relationship.AVOIDED
        assert any_cache.get(1).notes is None

    def test_set_relationship_unknown_agent(self, any_cache):
        assert any_cache.set_relationship(404, Relationship.ALLY) is False
        assert any_cache.get(404) is None

    def test_invalid_relationship(self, any_cache):
        any_cache.upsert({"agentId": 1})
        with pytest.raises(ValueError):
            any_cache.set_relationship(1, "friend")

    def test_set_verified_unknown_agent(self, any_cache):
        assert any_cache.set_verified(404) is False

    def test_add_tags(self, any_cache):
        any_cache.upsert({"agentId": 1, "tags": ["a"]})

        assert any_cache.add_tags(1, ["b", "a"]) == ["a", "b"]
        assert any_cache.add_tags(404, ["x"]) is None


class TestScanLog:
    def test_history_newest_first(self, any_cache):
        any_cache.log_scan(ScanType.RANGE, rangeStart=1, rangeEnd=10, agentsFound=3)
        any_cache.log_scan(ScanType.EVENT, rangeStart=100, rangeEnd=200)
        any_cache.log_scan(ScanType.SINGLE, rangeStart=5, rangeEnd=5, agentsFound=1)

        history = any_cache.scan_history()

        assert [e.scanType for e in history] == [ScanType.SINGLE, ScanType.EVENT, ScanType.RANGE]
        assert history[-1].agentsFound == 3
        assert all(e.id is not None for e in history)

    def test_history_limit(self, any_cache):
        for i in range(5):
            any_cache.log_scan(ScanType.RANGE, rangeStart=i, rangeEnd=i)

        assert len(any_cache.scan_history(limit=2)) == 2

    def test_error_recorded(self, any_cache):
        any_cache.log_scan(ScanType.EVENT, error="log query rejected")
        assert any_cache.scan_history()[0].error == "log query rejected"


class TestStats:
    def test_counts(self, any_cache):
        now = utcnow()
        any_cache.upsert({"agentId": 1, "reputationCount": 3, "reputationScore": 0.9, "registeredAt": now})
        any_cache.upsert({"agentId": 2, "registeredAt": now - timedelta(days=30)})
        any_cache.upsert({"agentId": 3})
        any_cache.set_verified(1)
        any_cache.set_relationship(2, Relationship.ALLY)
        any_cache.log_scan(ScanType.RANGE, rangeStart=1, rangeEnd=3)

        stats = any_cache.stats()

        assert stats.totalCached == 3
        assert stats.totalVerified == 1
        assert stats.totalWithReputation == 1
        assert stats.allies == 1
        assert stats.recentRegistrations == 1
        assert stats.lastScanAt is not None

    def test_empty_cache(self, any_cache):
        stats = any_cache.stats()

        assert stats.totalCached == 0
        assert stats.lastScanAt is None


class TestSQLiteStore:
    def test_rows_survive_reopen(self, tmp_path):
        path = str(tmp_path / "scout.db")
        store = SQLiteStore(path)
        cache = RegistryCache(store)
        cache.upsert({"agentId": 11, "owner": "0xA", "capabilities": ["x"], "tags": ["t"]})
        cache.set_relationship(11, Relationship.NEUTRAL, "seen once")
        cache.log_scan(ScanType.RANGE, rangeStart=1, rangeEnd=20, agentsFound=1, agentsNew=1)
        store.close()

        reopened = SQLiteStore(path)
        agent = reopened.get_agent(11)
        history = list(reopened.iter_scan_log())
        reopened.close()

        assert isinstance(agent, CachedAgent)
        assert agent.owner == "0xA"
        assert agent.capabilities == ["x"]
        assert agent.tags == ["t"]
        assert agent.relationship == Relationship.NEUTRAL
        assert agent.notes == "seen once"
        assert agent.createdAt.tzinfo is not None
        assert len(history) == 1
        assert history[0].agentsNew == 1

    def test_count_agents(self):
        store = SQLiteStore()
        store.put_agent(CachedAgent(agentId=1))
        store.put_agent(CachedAgent(agentId=1, owner="0xA"))
        store.put_agent(CachedAgent(agentId=2))

        assert store.count_agents() == 2
        assert [a.agentId for a in store.iter_agents()] == [1, 2]
        store.close()


class TestMemoryStore:
    def test_returned_rows_are_copies(self):
        store = MemoryStore()
        store.put_agent(CachedAgent(agentId=1, tags=["a"]))

        agent = store.get_agent(1)
        agent.tags.append("mutated")

        assert store.get_agent(1).tags == ["a"]
