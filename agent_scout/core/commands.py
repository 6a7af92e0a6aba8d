"""
Natural-language memory-scan commands and markdown scan reports.

Lets a chat-driven operator say "scan agents 1-200 for memory similarity,
top 20" and get back a readable report.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from .models import MemoryScanResult, utcnow
from .similarity import DEFAULT_ID_RANGE, SimilarityScanner

logger = logging.getLogger(__name__)

SCAN_TRIGGERS = ["scan", "scout", "find", "discover", "search", "look for", "locate"]

TOPIC_MARKERS = [
    "memory",
    "consciousness",
    "erc8004",
    "erc-8004",
    "anchor",
    "persistence",
    "metadata",
    "similar",
    "agents",
    "identity",
]

_RANGE_RE = re.compile(r"(?:agents?|range|ids?)\s+(\d+)\s*(?:-|–|to)\s*(\d+)", re.IGNORECASE)
_BLOCK_RE = re.compile(r"(?:from|since)\s+block\s+(\d+)", re.IGNORECASE)
_TOP_RE = re.compile(r"(?:top|max|limit)\s+(\d+)", re.IGNORECASE)
_SCORE_RE = re.compile(r"(?:min(?:imum)?\s+score|threshold)\s+(\d+(?:\.\d+)?)", re.IGNORECASE)


@dataclass
class ScanParams:
    """Parameters pulled out of a scan command."""
    fromId: Optional[int] = None
    toId: Optional[int] = None
    fromBlock: Optional[int] = None
    minScore: Optional[float] = None
    maxAgents: Optional[int] = None


def is_memory_scan_command(message: str) -> bool:
    """True when a message asks for a memory-similarity scan.

    Needs one scan trigger and at least two topic markers.
    """
    lower = message.lower()
    has_trigger = any(trigger in lower for trigger in SCAN_TRIGGERS)
    topic_hits = sum(1 for marker in TOPIC_MARKERS if marker in lower)
    return has_trigger and topic_hits >= 2


def extract_scan_params(message: str) -> ScanParams:
    """Extract ranges, block, top-N and score threshold from command text."""
    params = ScanParams()

    range_match = _RANGE_RE.search(message)
    if range_match:
        params.fromId = int(range_match.group(1))
        params.toId = int(range_match.group(2))

    block_match = _BLOCK_RE.search(message)
    if block_match:
        params.fromBlock = int(block_match.group(1))

    top_match = _TOP_RE.search(message)
    if top_match:
        params.maxAgents = int(top_match.group(1))

    score_match = _SCORE_RE.search(message)
    if score_match:
        params.minScore = float(score_match.group(1))

    return params


async def run_memory_scan_command(scanner: SimilarityScanner, message: str) -> MemoryScanResult:
    """Run the scan a command asks for. A block takes precedence over an id range."""
    params = extract_scan_params(message)
    kwargs = {"auto_tag": True}
    if params.fromBlock is not None:
        kwargs["from_block"] = params.fromBlock
    else:
        kwargs["id_range"] = (
            params.fromId if params.fromId is not None else DEFAULT_ID_RANGE[0],
            params.toId if params.toId is not None else DEFAULT_ID_RANGE[1],
        )
    if params.minScore is not None:
        kwargs["min_score"] = params.minScore
    if params.maxAgents is not None:
        kwargs["max_agents"] = params.maxAgents

    logger.info(f"Running memory scan command with {kwargs}")
    return await scanner.scan_for_memory_agents(**kwargs)


def format_scan_report(result: MemoryScanResult) -> str:
    """Render a memory scan result as markdown."""
    lines: List[str] = []
    lines.append("# Memory-Similarity Scan Report\n")
    lines.append(f"**Scanned:** {result.totalScanned} agents")
    lines.append(f"**With metadata:** {result.totalWithMetadata}")
    lines.append(f"**Matches:** {result.totalMatched}")
    lines.append(f"**Duration:** {result.durationMs}ms\n")

    if result.idRange:
        lines.append(f"**Range:** Agent #{result.idRange[0]} - #{result.idRange[1]}\n")
    if result.blockRange:
        lines.append(f"**Block range:** {result.blockRange[0]} - {result.blockRange[1]}\n")

    if result.matches:
        lines.append("\n## Matching Agents\n")
        for m in result.matches:
            pct = f"{m.similarityScore * 100:.1f}"
            lines.append(f"### {m.agentName or f'Agent #{m.agentId}'} ({pct}% match)")
            lines.append(f"- **ID:** {m.agentId}")
            lines.append(f"- **Type:** {m.agentType or 'unknown'}")
            lines.append(f"- **Owner:** `{m.owner}`")
            if m.agentWallet:
                lines.append(f"- **Wallet:** `{m.agentWallet}`")
            lines.append(f"- **Score:** {m.similarityScore}")

            categories = ", ".join(
                f"{name}: {value * 100:.0f}%" for name, value in m.breakdown.items() if value > 0
            )
            if categories:
                lines.append(f"- **Categories:** {categories}")
            if m.matchedKeywords:
                lines.append(f"- **Keywords:** {', '.join(m.matchedKeywords)}")
            if m.autoTags:
                lines.append(f"- **Auto-tags:** {', '.join(m.autoTags)}")
            if m.capabilities:
                lines.append(f"- **Capabilities:** {', '.join(m.capabilities)}")
            lines.append("")
    else:
        lines.append("\n_No agents found with memory-system similarity in the scanned range._\n")
        lines.append("Try expanding the range or lowering the minimum score threshold.\n")

    lines.append(f"\n---\n_Scan completed at {utcnow().isoformat()}_\n")
    return "\n".join(lines)
