"""
Keyed stores backing the registry cache.

Both stores expose the same small surface: get/put an agent row by id,
iterate all rows, and append to / read the scan log.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
from typing import Dict, Iterator, List, Optional

from .models import AgentId, CachedAgent, ScanLogEntry

logger = logging.getLogger(__name__)


class MemoryStore:
    """Default in-process store. Contents are lost when the process exits."""

    def __init__(self):
        self._agents: Dict[AgentId, CachedAgent] = {}
        self._scan_log: List[ScanLogEntry] = []

    def get_agent(self, agentId: AgentId) -> Optional[CachedAgent]:
        agent = self._agents.get(agentId)
        return copy.deepcopy(agent) if agent is not None else None

    def put_agent(self, agent: CachedAgent) -> None:
        self._agents[agent.agentId] = copy.deepcopy(agent)

    def iter_agents(self) -> Iterator[CachedAgent]:
        for agent in list(self._agents.values()):
            yield copy.deepcopy(agent)

    def count_agents(self) -> int:
        return len(self._agents)

    def append_scan_log(self, entry: ScanLogEntry) -> ScanLogEntry:
        entry = copy.deepcopy(entry)
        entry.id = len(self._scan_log) + 1
        self._scan_log.append(entry)
        return copy.deepcopy(entry)

    def iter_scan_log(self) -> Iterator[ScanLogEntry]:
        for entry in list(self._scan_log):
            yield copy.deepcopy(entry)


class SQLiteStore:
    """SQLite-backed store. Agent rows are kept as JSON documents keyed by agent id."""

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._create_schema()

    def _create_schema(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS registry_cache (
                    agent_id   INTEGER PRIMARY KEY,
                    data       TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scan_log (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    scan_type      TEXT NOT NULL
                                   CHECK (scan_type IN ('range', 'event', 'refresh', 'single')),
                    range_start    INTEGER,
                    range_end      INTEGER,
                    agents_found   INTEGER NOT NULL DEFAULT 0,
                    agents_new     INTEGER NOT NULL DEFAULT 0,
                    agents_updated INTEGER NOT NULL DEFAULT 0,
                    duration_ms    INTEGER,
                    error          TEXT,
                    created_at     TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_scan_log_created ON scan_log (created_at DESC)"
            )

    def get_agent(self, agentId: AgentId) -> Optional[CachedAgent]:
        row = self.conn.execute(
            "SELECT data FROM registry_cache WHERE agent_id = ?", (agentId,)
        ).fetchone()
        if row is None:
            return None
        return CachedAgent.from_dict(json.loads(row["data"]))

    def put_agent(self, agent: CachedAgent) -> None:
        data = agent.to_dict()
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO registry_cache (agent_id, data, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(agent_id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
                """,
                (agent.agentId, json.dumps(data), data["updatedAt"]),
            )

    def iter_agents(self) -> Iterator[CachedAgent]:
        rows = self.conn.execute("SELECT data FROM registry_cache ORDER BY agent_id").fetchall()
        for row in rows:
            yield CachedAgent.from_dict(json.loads(row["data"]))

    def count_agents(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM registry_cache").fetchone()[0]

    def append_scan_log(self, entry: ScanLogEntry) -> ScanLogEntry:
        data = entry.to_dict()
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO scan_log (scan_type, range_start, range_end, agents_found, agents_new,
                                      agents_updated, duration_ms, error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["scanType"], data["rangeStart"], data["rangeEnd"], data["agentsFound"],
                    data["agentsNew"], data["agentsUpdated"], data["durationMs"], data["error"],
                    data["createdAt"],
                ),
            )
        stored = copy.deepcopy(entry)
        stored.id = cursor.lastrowid
        return stored

    def iter_scan_log(self) -> Iterator[ScanLogEntry]:
        rows = self.conn.execute("SELECT * FROM scan_log ORDER BY id").fetchall()
        for row in rows:
            yield ScanLogEntry.from_dict({
                "id": row["id"],
                "scanType": row["scan_type"],
                "rangeStart": row["range_start"],
                "rangeEnd": row["range_end"],
                "agentsFound": row["agents_found"],
                "agentsNew": row["agents_new"],
                "agentsUpdated": row["agents_updated"],
                "durationMs": row["duration_ms"],
                "error": row["error"],
                "createdAt": row["created_at"],
            })

    def close(self) -> None:
        self.conn.close()
