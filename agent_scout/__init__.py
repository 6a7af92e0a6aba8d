"""
Agent scout: discovery, caching and similarity scoring for ERC-8004 agents.
"""

from .core.models import (
    AgentMetadata,
    CachedAgent,
    DiscoveryStats,
    MemoryScanResult,
    MemorySimilarityMatch,
    OnChainIdentity,
    RegistrationEvent,
    Relationship,
    ReputationSummary,
    ScanLogEntry,
    ScanResult,
    ScanType,
    SearchFilters,
    SearchResult,
)
from .core.sdk import Scout
from .core.store import MemoryStore, SQLiteStore

__version__ = "0.1.0"

__all__ = [
    "Scout",
    "MemoryStore",
    "SQLiteStore",
    "AgentMetadata",
    "CachedAgent",
    "DiscoveryStats",
    "MemoryScanResult",
    "MemorySimilarityMatch",
    "OnChainIdentity",
    "RegistrationEvent",
    "Relationship",
    "ReputationSummary",
    "ScanLogEntry",
    "ScanResult",
    "ScanType",
    "SearchFilters",
    "SearchResult",
]
