"""
Registry cache: the local, queryable index of discovered agents.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from .contracts import DEFAULT_HISTORY_LIMIT, RECENT_REGISTRATION_DAYS
from .models import (
    AgentId, CachedAgent, DiscoveryStats, Relationship, ScanLogEntry, ScanType, utcnow
)
from .store import MemoryStore

logger = logging.getLogger(__name__)

# Fields an automated scan may write. Everything else on a row is owned by
# explicit actions (classification, verification) or by the cache itself.
SCAN_FIELDS = frozenset({
    "owner",
    "agentWallet",
    "metadataUri",
    "agentName",
    "agentType",
    "description",
    "capabilities",
    "fleetMembers",
    "reputationScore",
    "reputationCount",
    "hasMetadata",
    "hasReputation",
    "registeredAt",
    "lastSeen",
    "lastScanned",
})


def merge_tags(existing: Iterable[str], new: Iterable[str]) -> List[str]:
    """Union of two tag lists, deduplicated, first-seen order kept."""
    merged: List[str] = []
    for tag in list(existing) + list(new):
        if tag and tag not in merged:
            merged.append(tag)
    return merged


class RegistryCache:
    """Keyed cache of agents plus the append-only scan log.

    Consistency is relaxed: ``add_tags`` is a read-merge-write, so two
    concurrent calls for the same agent can lose one caller's tags
    (last write wins). Upserts are idempotent and tag merges commutative.
    """

    def __init__(self, store: Optional[Any] = None):
        self.store = store if store is not None else MemoryStore()

    def get(self, agentId: AgentId) -> Optional[CachedAgent]:
        return self.store.get_agent(agentId)

    def exists(self, agentId: AgentId) -> bool:
        return self.store.get_agent(agentId) is not None

    def all(self) -> List[CachedAgent]:
        return list(self.store.iter_agents())

    def upsert(self, record: Dict[str, Any]) -> CachedAgent:
        """Insert or update an agent row from a partial scan record.

        Only the fields present in ``record`` are written. ``tags`` are unioned
        with the stored tags; relationship, notes and verification are never
        touched here.
        """
        if "agentId" not in record:
            raise ValueError("record must contain agentId")
        unexpected = set(record) - SCAN_FIELDS - {"agentId", "tags"}
        if unexpected:
            raise ValueError(f"Fields not writable by upsert: {sorted(unexpected)}")

        agentId = int(record["agentId"])
        agent = self.store.get_agent(agentId)
        if agent is None:
            agent = CachedAgent(agentId=agentId)

        for key, value in record.items():
            if key in SCAN_FIELDS:
                setattr(agent, key, list(value) if isinstance(value, (list, tuple)) else value)
        if record.get("tags"):
            agent.tags = merge_tags(agent.tags, record["tags"])

        agent.updatedAt = utcnow()
        self.store.put_agent(agent)
        return agent

    def set_relationship(
        self,
        agentId: AgentId,
        relationship: Union[Relationship, str],
        notes: Optional[str] = None,
    ) -> bool:
        """Classify an agent. Overwrites relationship and, if given, notes."""
        relationship = Relationship(relationship)
        agent = self.store.get_agent(agentId)
        if agent is None:
            logger.warning(f"Cannot set relationship: agent {agentId} not cached")
            return False
        agent.relationship = relationship
        if notes is not None:
            agent.notes = notes
        agent.updatedAt = utcnow()
        self.store.put_agent(agent)
        return True

    def set_verified(self, agentId: AgentId, verified: bool = True) -> bool:
        """Mark an agent as verified. Scans never call this."""
        agent = self.store.get_agent(agentId)
        if agent is None:
            logger.warning(f"Cannot set verification: agent {agentId} not cached")
            return False
        agent.isVerified = verified
        agent.updatedAt = utcnow()
        self.store.put_agent(agent)
        return True

    def add_tags(self, agentId: AgentId, tags: Iterable[str]) -> Optional[List[str]]:
        """Union tags into an agent's tag set. Returns the new tags, or None if not cached."""
        agent = self.store.get_agent(agentId)
        if agent is None:
            logger.warning(f"Cannot add tags: agent {agentId} not cached")
            return None
        agent.tags = merge_tags(agent.tags, tags)
        agent.updatedAt = utcnow()
        self.store.put_agent(agent)
        return list(agent.tags)

    def log_scan(
        self,
        scanType: ScanType,
        rangeStart: Optional[int] = None,
        rangeEnd: Optional[int] = None,
        agentsFound: int = 0,
        agentsNew: int = 0,
        agentsUpdated: int = 0,
        durationMs: Optional[int] = None,
        error: Optional[str] = None,
    ) -> ScanLogEntry:
        entry = ScanLogEntry(
            scanType=scanType,
            rangeStart=rangeStart,
            rangeEnd=rangeEnd,
            agentsFound=agentsFound,
            agentsNew=agentsNew,
            agentsUpdated=agentsUpdated,
            durationMs=durationMs,
            error=error,
        )
        return self.store.append_scan_log(entry)

    def scan_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ScanLogEntry]:
        """Most recent scan log entries, newest first."""
        entries = list(self.store.iter_scan_log())
        entries.sort(key=lambda e: (e.createdAt, e.id or 0), reverse=True)
        return entries[:limit]

    def stats(self) -> DiscoveryStats:
        """Aggregate counts over the current cache contents."""
        agents = list(self.store.iter_agents())
        recent_cutoff = utcnow() - timedelta(days=RECENT_REGISTRATION_DAYS)
        history = self.scan_history(limit=1)

        return DiscoveryStats(
            totalCached=len(agents),
            totalVerified=sum(1 for a in agents if a.isVerified),
            totalWithReputation=sum(1 for a in agents if a.reputationCount > 0),
            allies=sum(1 for a in agents if a.relationship == Relationship.ALLY),
            lastScanAt=history[0].createdAt if history else None,
            recentRegistrations=sum(
                1 for a in agents if a.registeredAt is not None and a.registeredAt >= recent_cutoff
            ),
        )
