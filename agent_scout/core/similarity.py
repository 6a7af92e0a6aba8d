"""
Memory-architecture similarity scoring.

Agents are scored against a fixed keyword/category model describing our own
memory stack (recall, consciousness, on-chain anchoring, IPFS storage, dream
consolidation, fleets, ERC-8004 identity, self-evolving skills). The score is
deterministic: the same document always yields the same score and tags.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .contracts import SIMILARITY_BATCH_SIZE
from .metadata_resolver import MetadataResolver, parse_metadata
from .models import (
    AgentId, BlockNumber, MemoryScanResult, MemorySimilarityMatch, ScanType, utcnow
)
from .registry_cache import RegistryCache
from .registry_reader import RegistryReader

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 0.05
DEFAULT_ID_RANGE = (1, 500)
METADATA_PREVIEW_CHARS = 500

# A category saturates once this fraction of its keywords has been seen.
SATURATION_FRACTION = 0.4


@dataclass(frozen=True)
class MemoryCategory:
    name: str
    weight: float
    tag: str
    keywords: Tuple[str, ...]


MEMORY_CATEGORIES: Tuple[MemoryCategory, ...] = (
    MemoryCategory("memory", 0.25, "memory-system", (
        "memory", "memories", "recall", "remember", "remembrance",
        "context", "context-window", "long-term-memory", "short-term-memory",
    )),
    MemoryCategory("consciousness", 0.15, "consciousness", (
        "consciousness", "conscious", "soul", "sentience", "awareness",
        "self-awareness", "introspection", "metacognition",
    )),
    MemoryCategory("persistence", 0.15, "persistent-memory", (
        "anchor", "anchoring", "anchored", "persistence", "persistent",
        "on-chain-memory", "onchain-memory", "immutable-memory",
    )),
    MemoryCategory("storage", 0.10, "decentralized-storage", (
        "ipfs", "pinata", "arweave", "filecoin", "decentralized-storage",
    )),
    MemoryCategory("dreams", 0.10, "dream-synthesis", (
        "dream", "dreaming", "lucid-dream", "association", "associative",
        "crystal", "materia", "crystallize",
    )),
    MemoryCategory("fleet", 0.08, "multi-agent", (
        "swarm", "fleet", "multi-agent", "agent-network",
    )),
    MemoryCategory("identity", 0.10, "erc8004-identity", (
        "erc-8004", "erc8004", "identity-registry", "reputation",
        "agent-identity", "on-chain-identity",
    )),
    MemoryCategory("skills", 0.07, "self-evolving", (
        "skill", "capability", "evolve", "self-evolve", "self-improve",
        "learning", "adaptation",
    )),
)

_KEYWORD_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    keyword: re.compile(r"\b" + re.escape(keyword) + r"\b")
    for category in MEMORY_CATEGORIES
    for keyword in category.keywords
}


@dataclass
class SimilarityScore:
    score: float
    breakdown: Dict[str, float]
    matchedKeywords: List[str] = field(default_factory=list)
    autoTags: List[str] = field(default_factory=list)


def flatten_metadata(value: Any) -> str:
    """Flatten a JSON document (keys included) into one lowercase text blob."""
    parts: List[str] = []

    def walk(node: Any) -> None:
        if node is None:
            return
        if isinstance(node, str):
            parts.append(node.lower())
        elif isinstance(node, dict):
            for key, child in node.items():
                parts.append(str(key).lower())
                walk(child)
        elif isinstance(node, (list, tuple)):
            for child in node:
                walk(child)
        else:
            parts.append(str(node).lower())

    walk(value)
    return " ".join(parts)


def score_memory_similarity(document: Any) -> SimilarityScore:
    """Score a metadata document against the memory category model."""
    text = flatten_metadata(document)
    matched: List[str] = []
    breakdown: Dict[str, float] = {}
    auto_tags: List[str] = []
    total = 0.0

    for category in MEMORY_CATEGORIES:
        hits = 0
        for keyword in category.keywords:
            if _KEYWORD_PATTERNS[keyword].search(text):
                hits += 1
                matched.append(keyword)
        denominator = max(len(category.keywords) * SATURATION_FRACTION, 1)
        category_score = round(min(hits / denominator, 1.0), 2)
        breakdown[category.name] = category_score
        total += category.weight * category_score
        if category_score > 0:
            auto_tags.append(category.tag)

    score = round(min(max(total, 0.0), 1.0), 3)
    return SimilarityScore(score=score, breakdown=breakdown, matchedKeywords=matched, autoTags=auto_tags)


class SimilarityScanner:
    """Scans registry agents and ranks them by memory-architecture similarity."""

    def __init__(
        self,
        reader: RegistryReader,
        resolver: MetadataResolver,
        cache: Optional[RegistryCache] = None,
        batch_size: int = SIMILARITY_BATCH_SIZE,
    ):
        self.reader = reader
        self.resolver = resolver
        self.cache = cache
        self.batch_size = batch_size

    async def _score_candidate(
        self,
        agentId: AgentId,
        declared_uri: str = "",
    ) -> Tuple[Optional[MemorySimilarityMatch], bool]:
        """Score one agent. Returns (match or None, whether metadata was found)."""
        identity = await self.reader.get_identity(agentId)
        if not identity.exists:
            return None, False

        uri = identity.tokenURI or declared_uri
        document = await self.resolver.fetch_document(uri)
        if document is None:
            return None, False

        scored = score_memory_similarity(document)
        meta = parse_metadata(document)
        match = MemorySimilarityMatch(
            agentId=agentId,
            owner=identity.owner,
            agentWallet=identity.agentWallet,
            metadataUri=uri,
            agentName=meta.name,
            agentType=meta.type,
            similarityScore=scored.score,
            breakdown=scored.breakdown,
            matchedKeywords=scored.matchedKeywords,
            autoTags=scored.autoTags,
            capabilities=meta.capabilities,
            metadataPreview=json.dumps(document, default=str)[:METADATA_PREVIEW_CHARS],
            description=meta.description,
            fleetMembers=meta.fleetMembers,
        )
        return match, True

    async def _score_all(
        self,
        candidates: Sequence[Tuple[AgentId, str]],
        result: MemoryScanResult,
    ) -> List[MemorySimilarityMatch]:
        scored: List[MemorySimilarityMatch] = []
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._score_candidate(agent_id, uri) for agent_id, uri in batch),
                return_exceptions=True,
            )
            for (agent_id, _), outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.debug(f"Similarity scoring failed for agent {agent_id}: {outcome}")
                    result.errors += 1
                    continue
                match, has_metadata = outcome
                if has_metadata:
                    result.totalWithMetadata += 1
                if match is not None:
                    scored.append(match)
            result.totalScanned += len(batch)
        return scored

    def _auto_tag(self, matches: Sequence[MemorySimilarityMatch], result: MemoryScanResult) -> Tuple[int, int]:
        new = updated = 0
        now = utcnow()
        for match in matches:
            try:
                existed = self.cache.exists(match.agentId)
                self.cache.upsert({
                    "agentId": match.agentId,
                    "owner": match.owner,
                    "agentWallet": match.agentWallet,
                    "metadataUri": match.metadataUri,
                    "agentName": match.agentName,
                    "agentType": match.agentType,
                    "description": match.description,
                    "capabilities": match.capabilities,
                    "fleetMembers": match.fleetMembers,
                    "hasMetadata": True,
                    "lastScanned": now,
                    "lastSeen": now,
                    "tags": match.autoTags,
                })
            except Exception as e:
                logger.warning(f"Failed to auto-tag agent {match.agentId}: {e}")
                result.errors += 1
                continue
            if existed:
                updated += 1
            else:
                new += 1
        return new, updated

    async def scan_for_memory_agents(
        self,
        id_range: Optional[Tuple[AgentId, AgentId]] = None,
        from_block: Optional[BlockNumber] = None,
        min_score: float = DEFAULT_MIN_SCORE,
        max_agents: Optional[int] = None,
        auto_tag: bool = True,
    ) -> MemoryScanResult:
        """Find agents whose metadata resembles our memory architecture.

        Candidates come either from an id range or from Registered events since
        ``from_block``. With neither given, ids 1..500 are scanned.
        """
        if id_range is not None and from_block is not None:
            raise ValueError("id_range and from_block are mutually exclusive")
        start = time.time()
        result = MemoryScanResult()
        window_error: Optional[str] = None

        if from_block is not None:
            candidates: List[Tuple[AgentId, str]] = []
            try:
                latest_block = await self.reader.latest_block()
                result.blockRange = (from_block, latest_block)
                events = await self.reader.scan_events(from_block, latest_block)
                seen = set()
                for event in events:
                    if event.agentId not in seen:
                        seen.add(event.agentId)
                        candidates.append((event.agentId, event.agentURI))
            except Exception as e:
                logger.warning(f"Event window scan from block {from_block} failed: {e}")
                window_error = str(e)
                result.errors += 1
        else:
            low, high = id_range if id_range is not None else DEFAULT_ID_RANGE
            if high < low:
                raise ValueError(f"Invalid range: {low}..{high}")
            result.idRange = (low, high)
            candidates = [(agent_id, "") for agent_id in range(low, high + 1)]

        if max_agents is not None:
            candidates = candidates[:max_agents]

        scored = await self._score_all(candidates, result)
        matches = [m for m in scored if m.similarityScore >= min_score]
        matches.sort(key=lambda m: (-m.similarityScore, m.agentId))
        result.matches = matches
        result.totalMatched = len(matches)

        if auto_tag and self.cache is not None:
            new, updated = self._auto_tag(matches, result)
            result.durationMs = int((time.time() - start) * 1000)
            scan_range = result.idRange or result.blockRange or (from_block, None)
            try:
                self.cache.log_scan(
                    ScanType.EVENT if from_block is not None else ScanType.RANGE,
                    rangeStart=scan_range[0],
                    rangeEnd=scan_range[1],
                    agentsFound=result.totalMatched,
                    agentsNew=new,
                    agentsUpdated=updated,
                    durationMs=result.durationMs,
                    error=window_error,
                )
            except Exception as e:
                logger.warning(f"Failed to write similarity scan log entry: {e}")

        result.durationMs = int((time.time() - start) * 1000)
        logger.info(
            f"Memory scan: {result.totalScanned} scanned, {result.totalWithMetadata} with metadata, "
            f"{result.totalMatched} matched"
        )
        return result
