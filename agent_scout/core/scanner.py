"""
Scanner: populates the registry cache from on-chain reads and agent metadata.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from .contracts import DEFAULT_SCAN_CONCURRENCY, EVENT_LOOKBACK_BLOCKS
from .metadata_resolver import MetadataResolver
from .models import (
    AgentId, BlockNumber, CachedAgent, OnChainIdentity, ScanResult, ScanType, utcnow
)
from .registry_cache import RegistryCache
from .registry_reader import RegistryReader

logger = logging.getLogger(__name__)


class Scanner:
    """Reads agents from the registry, enriches them and upserts them into the cache.

    Every scan returns counts instead of raising on partial failure; a
    failure on one agent is counted in ``errors`` and the scan moves on.
    Metadata is always re-fetched; the resolver's document cache is bypassed.
    """

    def __init__(
        self,
        reader: RegistryReader,
        resolver: MetadataResolver,
        cache: RegistryCache,
        concurrency: int = DEFAULT_SCAN_CONCURRENCY,
    ):
        self.reader = reader
        self.resolver = resolver
        self.cache = cache
        self.concurrency = concurrency

    async def _build_record(
        self,
        identity: OnChainIdentity,
        metadata_uri: Optional[str] = None,
        fetch_metadata: bool = True,
        fetch_reputation: bool = True,
    ) -> Dict[str, Any]:
        """Partial cache record holding only the fields actually obtained."""
        now = utcnow()
        uri = metadata_uri if metadata_uri is not None else identity.tokenURI
        record: Dict[str, Any] = {
            "agentId": identity.agentId,
            "owner": identity.owner,
            "agentWallet": identity.agentWallet,
            "metadataUri": uri,
            "lastScanned": now,
            "lastSeen": now,
        }

        if fetch_metadata and uri:
            meta = await self.resolver.fetch(uri, use_cache=False)
            if meta is not None:
                record["agentName"] = meta.name
                record["agentType"] = meta.type
                record["description"] = meta.description
                record["capabilities"] = meta.capabilities
                record["fleetMembers"] = meta.fleetMembers
                record["hasMetadata"] = True

        if fetch_reputation:
            rep = await self.reader.get_reputation(identity.agentId)
            if rep.hasScore:
                record["reputationScore"] = rep.score
                record["reputationCount"] = rep.count
                record["hasReputation"] = True

        return record

    def _log_scan(self, scan_type: ScanType, **kwargs: Any) -> None:
        try:
            self.cache.log_scan(scan_type, **kwargs)
        except Exception as e:
            logger.warning(f"Failed to write {scan_type.value} scan log entry: {e}")

    async def scan_and_cache_range(
        self,
        from_id: AgentId,
        to_id: AgentId,
        fetch_metadata: bool = True,
        fetch_reputation: bool = True,
    ) -> ScanResult:
        """Scan agent ids ``from_id..to_id`` and upsert every registered agent."""
        if to_id < from_id:
            raise ValueError(f"Invalid range: {from_id}..{to_id}")
        start = time.time()
        result = ScanResult(scanned=to_id - from_id + 1)

        try:
            identities = await self.reader.scan_range(from_id, to_id, self.concurrency)
        except Exception as e:
            logger.error(f"Range scan {from_id}..{to_id} failed: {e}")
            identities = []
            result.errors = result.scanned

        for identity in identities:
            if not identity.exists:
                continue
            result.found += 1
            try:
                existed = self.cache.exists(identity.agentId)
                record = await self._build_record(
                    identity, fetch_metadata=fetch_metadata, fetch_reputation=fetch_reputation
                )
                self.cache.upsert(record)
            except Exception as e:
                logger.warning(f"Failed to cache agent {identity.agentId}: {e}")
                result.errors += 1
                continue
            if existed:
                result.updated += 1
            else:
                result.newAgents += 1

        result.durationMs = int((time.time() - start) * 1000)
        self._log_scan(
            ScanType.RANGE,
            rangeStart=from_id,
            rangeEnd=to_id,
            agentsFound=result.found,
            agentsNew=result.newAgents,
            agentsUpdated=result.updated,
            durationMs=result.durationMs,
        )
        logger.info(
            f"Range scan {from_id}..{to_id}: {result.found} found, {result.newAgents} new, "
            f"{result.updated} updated, {result.errors} errors in {result.durationMs}ms"
        )
        return result

    async def scan_new_registrations(self, from_block: Optional[BlockNumber] = None) -> ScanResult:
        """Cache agents from Registered events since ``from_block`` (default: ~24h back)."""
        start = time.time()
        result = ScanResult()
        start_block = from_block
        latest_block: Optional[BlockNumber] = None
        window_error: Optional[str] = None

        try:
            latest_block = await self.reader.latest_block()
            if start_block is None:
                start_block = max(latest_block - EVENT_LOOKBACK_BLOCKS, 0)
            events = await self.reader.scan_events(start_block, latest_block)
        except Exception as e:
            logger.warning(f"Event window scan failed: {e}")
            window_error = str(e)
            result.errors += 1
            events = []

        result.found = len(events)
        result.scanned = len(events)

        for event in events:
            try:
                identity = await self.reader.get_identity(event.agentId)
                if not identity.exists:
                    continue
                record = await self._build_record(
                    identity, metadata_uri=identity.tokenURI or event.agentURI
                )
                registered_at = await self.reader.block_timestamp(event.blockNumber)
                if registered_at is not None:
                    record["registeredAt"] = registered_at
                existed = self.cache.exists(event.agentId)
                self.cache.upsert(record)
            except Exception as e:
                logger.warning(f"Failed to cache registered agent {event.agentId}: {e}")
                result.errors += 1
                continue
            if existed:
                result.updated += 1
            else:
                result.newAgents += 1

        result.durationMs = int((time.time() - start) * 1000)
        self._log_scan(
            ScanType.EVENT,
            rangeStart=start_block,
            rangeEnd=latest_block,
            agentsFound=result.found,
            agentsNew=result.newAgents,
            agentsUpdated=result.updated,
            durationMs=result.durationMs,
            error=window_error,
        )
        logger.info(
            f"Event scan from block {start_block}: {result.found} events, {result.newAgents} new, "
            f"{result.updated} updated, {result.errors} errors"
        )
        return result

    async def refresh_agent(self, agentId: AgentId) -> Optional[CachedAgent]:
        """Re-read one agent regardless of cache state.

        Returns None, leaving the cache untouched, when the agent does not
        exist on-chain or the cache write fails.
        """
        start = time.time()
        identity = await self.reader.get_identity(agentId)
        if not identity.exists:
            logger.info(f"Agent {agentId} not found on-chain; cache left unchanged")
            return None

        try:
            existed = self.cache.exists(agentId)
            record = await self._build_record(identity)
            agent = self.cache.upsert(record)
        except Exception as e:
            logger.error(f"Failed to refresh agent {agentId}: {e}")
            return None

        self._log_scan(
            ScanType.SINGLE,
            rangeStart=agentId,
            rangeEnd=agentId,
            agentsFound=1,
            agentsNew=0 if existed else 1,
            agentsUpdated=1 if existed else 0,
            durationMs=int((time.time() - start) * 1000),
        )
        return agent

    async def refresh_cached(self, limit: Optional[int] = None) -> ScanResult:
        """Re-read cached agents, least recently scanned first."""
        start = time.time()
        agents = self.cache.all()
        agents.sort(key=lambda a: (a.lastScanned is not None, a.lastScanned or utcnow(), a.agentId))
        if limit is not None:
            agents = agents[:limit]
        result = ScanResult(scanned=len(agents))

        for cached in agents:
            try:
                identity = await self.reader.get_identity(cached.agentId)
                if not identity.exists:
                    continue
                result.found += 1
                record = await self._build_record(identity)
                self.cache.upsert(record)
                result.updated += 1
            except Exception as e:
                logger.warning(f"Failed to refresh cached agent {cached.agentId}: {e}")
                result.errors += 1

        result.durationMs = int((time.time() - start) * 1000)
        self._log_scan(
            ScanType.REFRESH,
            rangeStart=agents[0].agentId if agents else None,
            rangeEnd=agents[-1].agentId if agents else None,
            agentsFound=result.found,
            agentsUpdated=result.updated,
            durationMs=result.durationMs,
        )
        return result
