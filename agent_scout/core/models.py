"""
Core data models for the agent scout.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .contracts import DEFAULT_SEARCH_LIMIT


# Type aliases
AgentId = int  # registry-assigned token id
Address = str  # 0x-hex
URI = str  # https://... or ipfs://...
BlockNumber = int


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Relationship(Enum):
    """Classification of a discovered agent relative to us."""
    UNKNOWN = "unknown"
    ALLY = "ally"
    NEUTRAL = "neutral"
    AVOIDED = "avoided"


class ScanType(Enum):
    """Kinds of scan recorded in the scan log."""
    RANGE = "range"
    EVENT = "event"
    REFRESH = "refresh"
    SINGLE = "single"


@dataclass
class OnChainIdentity:
    """Identity read from the IdentityRegistry. Fields are empty when exists is False."""
    agentId: AgentId
    owner: Address = ""
    agentWallet: Address = ""
    tokenURI: URI = ""
    exists: bool = False

    @classmethod
    def missing(cls, agentId: AgentId) -> OnChainIdentity:
        """Stub for an id that is unregistered or currently unreadable."""
        return cls(agentId=agentId)


@dataclass
class ReputationSummary:
    """Reputation summary from the ReputationRegistry."""
    count: int = 0
    rawValue: int = 0
    decimals: int = 0

    @property
    def hasScore(self) -> bool:
        return self.count > 0

    @property
    def score(self) -> float:
        if self.count == 0:
            return 0.0
        return self.rawValue / (10 ** self.decimals)

    @property
    def displayScore(self) -> str:
        return f"{self.score:.{self.decimals}f}"


@dataclass
class RegistrationEvent:
    """A Registered event observed on the IdentityRegistry."""
    agentId: AgentId
    owner: Address
    agentURI: URI
    blockNumber: BlockNumber
    txHash: str


@dataclass
class AgentMetadata:
    """Normalized view of an agent's metadata document."""
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    capabilities: List[str] = field(default_factory=list)
    fleetMembers: List[str] = field(default_factory=list)
    contracts: Optional[Dict[str, Any]] = None
    wallet: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)  # the full source document


@dataclass
class CachedAgent:
    """A row of the local registry cache, keyed by agentId."""
    agentId: AgentId
    owner: Address = ""
    agentWallet: Address = ""
    metadataUri: URI = ""
    agentName: Optional[str] = None
    agentType: Optional[str] = None
    description: Optional[str] = None
    capabilities: List[str] = field(default_factory=list)
    fleetMembers: List[str] = field(default_factory=list)
    reputationScore: float = 0.0
    reputationCount: int = 0
    registeredAt: Optional[datetime] = None
    lastSeen: Optional[datetime] = None
    lastScanned: Optional[datetime] = None
    relationship: Relationship = Relationship.UNKNOWN
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    isVerified: bool = False
    hasMetadata: bool = False
    hasReputation: bool = False
    createdAt: datetime = field(default_factory=utcnow)
    updatedAt: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["capabilities"] = list(self.capabilities)
        data["fleetMembers"] = list(self.fleetMembers)
        data["tags"] = list(self.tags)
        data["relationship"] = self.relationship.value
        for key in ("registeredAt", "lastSeen", "lastScanned", "createdAt", "updatedAt"):
            data[key] = _to_iso(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CachedAgent:
        """Create from dictionary (inverse of to_dict)."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["agentId"] = int(values["agentId"])
        if "relationship" in values:
            values["relationship"] = Relationship(values["relationship"])
        for key in ("registeredAt", "lastSeen", "lastScanned", "createdAt", "updatedAt"):
            if key in values:
                values[key] = _from_iso(values[key])
        for key in ("createdAt", "updatedAt"):
            if values.get(key) is None:
                values.pop(key, None)
        return cls(**values)


@dataclass
class ScanLogEntry:
    """Append-only record of one scan operation."""
    scanType: ScanType
    rangeStart: Optional[int] = None
    rangeEnd: Optional[int] = None
    agentsFound: int = 0
    agentsNew: int = 0
    agentsUpdated: int = 0
    durationMs: Optional[int] = None
    error: Optional[str] = None
    id: Optional[int] = None  # assigned by the store
    createdAt: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["scanType"] = self.scanType.value
        data["createdAt"] = _to_iso(self.createdAt)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScanLogEntry:
        values = dict(data)
        values["scanType"] = ScanType(values["scanType"])
        values["createdAt"] = _from_iso(values.get("createdAt")) or utcnow()
        return cls(**values)


@dataclass
class ScanResult:
    """Counts returned by every scanner operation."""
    scanned: int = 0
    found: int = 0
    newAgents: int = 0
    updated: int = 0
    errors: int = 0
    durationMs: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class DiscoveryStats:
    """Summary statistics computed from the cache at call time."""
    totalCached: int
    totalVerified: int
    totalWithReputation: int
    allies: int
    lastScanAt: Optional[datetime]
    recentRegistrations: int


SORT_FIELDS = ("agentId", "reputationScore", "registeredAt", "lastSeen")


@dataclass
class SearchFilters:
    """Filters for searching the cache. All supplied filters are ANDed."""
    idRange: Optional[Tuple[int, int]] = None  # inclusive
    capabilities: Optional[List[str]] = None  # any overlap
    minReputation: Optional[float] = None
    relationship: Optional[Relationship] = None
    activeWithinHours: Optional[float] = None
    tags: Optional[List[str]] = None  # any overlap
    verifiedOnly: bool = False
    query: Optional[str] = None  # case-insensitive substring of name, type, notes
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0
    orderBy: str = "agentId"
    orderDir: str = "desc"

    def __post_init__(self):
        if isinstance(self.relationship, str):
            self.relationship = Relationship(self.relationship)
        if self.idRange is not None:
            self.idRange = (int(self.idRange[0]), int(self.idRange[1]))
        if self.orderBy not in SORT_FIELDS:
            raise ValueError(f"Invalid orderBy: {self.orderBy}. Must be one of {SORT_FIELDS}")
        if self.orderDir not in ("asc", "desc"):
            raise ValueError(f"Invalid orderDir: {self.orderDir}. Must be 'asc' or 'desc'")
        if self.limit < 0 or self.offset < 0:
            raise ValueError("limit and offset must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, filtering out None values."""
        data = {k: v for k, v in self.__dict__.items() if v is not None}
        if self.relationship is not None:
            data["relationship"] = self.relationship.value
        return data


@dataclass
class SearchResult:
    """Page of cached agents plus the full filtered count."""
    agents: List[CachedAgent]
    total: int
    filters: SearchFilters
    scannedAt: datetime = field(default_factory=utcnow)


@dataclass
class MemorySimilarityMatch:
    """One agent scored against the memory-architecture category model."""
    agentId: AgentId
    owner: Address
    agentWallet: Address
    metadataUri: URI
    agentName: Optional[str]
    agentType: Optional[str]
    similarityScore: float
    breakdown: Dict[str, float]
    matchedKeywords: List[str] = field(default_factory=list)
    autoTags: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)
    metadataPreview: str = ""
    description: Optional[str] = None
    fleetMembers: List[str] = field(default_factory=list)


@dataclass
class MemoryScanResult:
    """Outcome of a memory-similarity scan."""
    matches: List[MemorySimilarityMatch] = field(default_factory=list)
    totalScanned: int = 0
    totalWithMetadata: int = 0
    totalMatched: int = 0
    durationMs: int = 0
    errors: int = 0
    idRange: Optional[Tuple[int, int]] = None
    blockRange: Optional[Tuple[int, int]] = None
