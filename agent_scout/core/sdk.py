"""
Main Scout class: wires the registry reader, metadata resolver, cache,
scanners and search together.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple, Union

from .contracts import (
    BASE_MAINNET, DEFAULT_HISTORY_LIMIT, DEFAULT_IPFS_GATEWAY, DEFAULT_METADATA_TIMEOUT,
    DEFAULT_REGISTRIES, DEFAULT_SCAN_CONCURRENCY, IDENTITY_REGISTRY_ABI, REPUTATION_REGISTRY_ABI
)
from .metadata_resolver import MetadataResolver
from .models import (
    AgentId, Address, CachedAgent, DiscoveryStats, MemoryScanResult, Relationship,
    ScanLogEntry, ScanResult, SearchFilters, SearchResult
)
from .registry_cache import RegistryCache
from .registry_reader import RegistryReader
from .scanner import Scanner
from .search import SearchEngine
from .similarity import DEFAULT_MIN_SCORE, SimilarityScanner
from .store import MemoryStore, SQLiteStore
from .web3_client import Web3Client


class Scout:
    """Discovers, caches and searches agents registered on an ERC-8004 registry."""

    def __init__(
        self,
        rpcUrl: str,
        chainId: int = BASE_MAINNET,
        registryOverrides: Optional[Dict[int, Dict[str, Address]]] = None,
        store: Optional[Any] = None,  # MemoryStore, SQLiteStore or compatible
        cachePath: Optional[str] = None,  # shorthand for SQLiteStore(cachePath)
        ipfsGateway: str = DEFAULT_IPFS_GATEWAY,
        metadataTimeout: float = DEFAULT_METADATA_TIMEOUT,
        concurrency: int = DEFAULT_SCAN_CONCURRENCY,
        web3_client: Optional[Web3Client] = None,
    ):
        """Initialize the scout.

        Examples:
            scout = Scout(rpcUrl="https://mainnet.base.org")
            scout = Scout(rpcUrl=url, cachePath="scout.db")
            scout = Scout(rpcUrl=url, chainId=84532,
                          registryOverrides={84532: {"IDENTITY": "0x...", "REPUTATION": "0x..."}})
        """
        if store is not None and cachePath is not None:
            raise ValueError("Pass either store or cachePath, not both")

        self.chainId = chainId
        self.rpcUrl = rpcUrl
        self.registry_overrides = registryOverrides or {}
        self._registries = self._resolve_registries()

        self.web3_client = web3_client or Web3Client(rpcUrl, chain_id=chainId)

        identity_address = self._registries.get("IDENTITY")
        if not identity_address:
            raise ValueError(f"No identity registry address for chain {chainId}")
        identity_registry = self.web3_client.get_contract(identity_address, IDENTITY_REGISTRY_ABI)

        reputation_registry = None
        reputation_address = self._registries.get("REPUTATION")
        if reputation_address:
            reputation_registry = self.web3_client.get_contract(reputation_address, REPUTATION_REGISTRY_ABI)

        if cachePath is not None:
            store = SQLiteStore(cachePath)

        self.reader = RegistryReader(self.web3_client, identity_registry, reputation_registry)
        self.resolver = MetadataResolver(gateway=ipfsGateway, timeout=metadataTimeout)
        self.cache = RegistryCache(store if store is not None else MemoryStore())
        self.scanner = Scanner(self.reader, self.resolver, self.cache, concurrency=concurrency)
        self.search_engine = SearchEngine(self.cache)
        self.similarity = SimilarityScanner(self.reader, self.resolver, self.cache)

    def _resolve_registries(self) -> Dict[str, Address]:
        """Resolve registry addresses for current chain."""
        registries = DEFAULT_REGISTRIES.get(self.chainId, {}).copy()
        if self.chainId in self.registry_overrides:
            registries.update(self.registry_overrides[self.chainId])
        return registries

    @property
    def registries(self) -> Dict[str, Address]:
        return self._registries.copy()

    # Scanning
    def scanRange(
        self,
        fromId: AgentId,
        toId: AgentId,
        fetchMetadata: bool = True,
        fetchReputation: bool = True,
    ) -> ScanResult:
        """Scan an id range and cache every registered agent."""
        return asyncio.run(
            self.scanner.scan_and_cache_range(fromId, toId, fetchMetadata, fetchReputation)
        )

    def scanNewRegistrations(self, fromBlock: Optional[int] = None) -> ScanResult:
        """Cache agents registered since a block (default: roughly the last 24 hours)."""
        return asyncio.run(self.scanner.scan_new_registrations(fromBlock))

    def refreshAgent(self, agentId: AgentId) -> Optional[CachedAgent]:
        """Re-read one agent. None if it does not exist on-chain."""
        return asyncio.run(self.scanner.refresh_agent(agentId))

    def refreshCache(self, limit: Optional[int] = None) -> ScanResult:
        """Re-read cached agents, least recently scanned first."""
        return asyncio.run(self.scanner.refresh_cached(limit))

    def scanForMemoryAgents(
        self,
        idRange: Optional[Tuple[AgentId, AgentId]] = None,
        fromBlock: Optional[int] = None,
        minScore: float = DEFAULT_MIN_SCORE,
        maxAgents: Optional[int] = None,
        autoTag: bool = True,
    ) -> MemoryScanResult:
        """Rank agents by similarity to our memory architecture."""
        return asyncio.run(self.similarity.scan_for_memory_agents(
            id_range=idRange,
            from_block=fromBlock,
            min_score=minScore,
            max_agents=maxAgents,
            auto_tag=autoTag,
        ))

    # Search and classification
    def searchAgents(
        self,
        filters: Union[SearchFilters, Dict[str, Any], None] = None,
        **kwargs: Any,
    ) -> SearchResult:
        """Search the cache.

        Examples:
            scout.searchAgents(capabilities=["trading"], minReputation=0.5)
            scout.searchAgents(SearchFilters(query="oracle", limit=10))
        """
        return self.search_engine.search(filters, **kwargs)

    def getAgent(self, agentId: AgentId) -> Optional[CachedAgent]:
        return self.search_engine.get_agent(agentId)

    def setRelationship(
        self,
        agentId: AgentId,
        relationship: Union[Relationship, str],
        notes: Optional[str] = None,
    ) -> bool:
        return self.cache.set_relationship(agentId, relationship, notes)

    def setVerified(self, agentId: AgentId, verified: bool = True) -> bool:
        return self.cache.set_verified(agentId, verified)

    def addTags(self, agentId: AgentId, tags: List[str]) -> Optional[List[str]]:
        return self.cache.add_tags(agentId, tags)

    def getStats(self) -> DiscoveryStats:
        return self.cache.stats()

    def getScanHistory(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ScanLogEntry]:
        return self.cache.scan_history(limit)

    # Direct registry helpers
    def agentExists(self, agentId: AgentId) -> bool:
        return asyncio.run(self.reader.agent_exists(agentId))

    def agentExplorerUrl(self, agentId: AgentId) -> Optional[str]:
        return self.reader.explorer_agent_url(agentId)
