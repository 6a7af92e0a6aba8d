"""
Typed read access to the identity and reputation registries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from .contracts import DEFAULT_EXPLORERS, DEFAULT_SCAN_CONCURRENCY
from .models import (
    AgentId, Address, BlockNumber,
    OnChainIdentity, RegistrationEvent, ReputationSummary
)
from .web3_client import Web3Client

logger = logging.getLogger(__name__)


def _tx_hash_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


class RegistryReader:
    """Reads agent identities, reputation and registration events from chain.

    Identity and reputation reads never raise: an unreadable or unregistered
    agent comes back as ``exists=False`` / an empty summary. Event scans do
    raise, since a partial event window could silently miss registrations.
    """

    def __init__(
        self,
        web3_client: Web3Client,
        identity_registry: Any,
        reputation_registry: Any = None,
        explorer_url: Optional[str] = None,
    ):
        self.web3_client = web3_client
        self.identity_registry = identity_registry
        self.reputation_registry = reputation_registry
        if explorer_url is None:
            explorer_url = DEFAULT_EXPLORERS.get(getattr(web3_client, "chain_id", None))
        self.explorer_url = explorer_url

    async def get_identity(self, agentId: AgentId) -> OnChainIdentity:
        """Read owner, agent wallet and token URI for one agent."""
        try:
            owner, wallet, token_uri = await asyncio.gather(
                self.web3_client.call_contract(self.identity_registry, "ownerOf", agentId),
                self.web3_client.call_contract(self.identity_registry, "getAgentWallet", agentId),
                self.web3_client.call_contract(self.identity_registry, "tokenURI", agentId),
            )
        except Exception as e:
            logger.debug(f"Identity read failed for agent {agentId}: {e}")
            return OnChainIdentity.missing(agentId)

        return OnChainIdentity(
            agentId=agentId,
            owner=owner or "",
            agentWallet=wallet or "",
            tokenURI=token_uri or "",
            exists=True,
        )

    async def agent_exists(self, agentId: AgentId) -> bool:
        """Single ownerOf read; False for unregistered or unreadable ids."""
        try:
            await self.web3_client.call_contract(self.identity_registry, "ownerOf", agentId)
            return True
        except Exception:
            return False

    async def get_reputation(
        self,
        agentId: AgentId,
        clientAddresses: Sequence[Address] = (),
    ) -> ReputationSummary:
        """Read the reputation summary. An empty client list asks for the global summary."""
        if self.reputation_registry is None:
            return ReputationSummary()
        try:
            count, summary_value, decimals = await self.web3_client.call_contract(
                self.reputation_registry,
                "getSummary",
                agentId,
                list(clientAddresses),
                "",
                "",
            )
        except Exception as e:
            logger.debug(f"Reputation read failed for agent {agentId}: {e}")
            return ReputationSummary()

        return ReputationSummary(count=int(count), rawValue=int(summary_value), decimals=int(decimals))

    async def scan_range(
        self,
        from_id: AgentId,
        to_id: AgentId,
        concurrency: int = DEFAULT_SCAN_CONCURRENCY,
    ) -> List[OnChainIdentity]:
        """Read identities for ``from_id..to_id`` inclusive, in ascending id order.

        Ids are read in sequential batches of ``concurrency``; reads inside a
        batch run in parallel.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        ids = list(range(from_id, to_id + 1))
        results: List[OnChainIdentity] = []

        for start in range(0, len(ids), concurrency):
            batch = ids[start:start + concurrency]
            batch_results = await asyncio.gather(*(self.get_identity(agent_id) for agent_id in batch))
            results.extend(batch_results)

        return results

    async def scan_events(
        self,
        from_block: BlockNumber,
        to_block: Optional[BlockNumber] = None,
    ) -> List[RegistrationEvent]:
        """Return every Registered event between two blocks (``None`` = latest)."""
        logs = await self.web3_client.get_logs(
            self.identity_registry,
            "Registered",
            from_block,
            to_block if to_block is not None else "latest",
        )

        events = []
        for log in logs:
            args = log["args"]
            events.append(RegistrationEvent(
                agentId=int(args["agentId"]),
                owner=args.get("owner", "") or "",
                agentURI=args.get("agentURI", "") or "",
                blockNumber=int(log.get("blockNumber") or 0),
                txHash=_tx_hash_to_str(log.get("transactionHash")),
            ))
        return events

    async def latest_block(self) -> BlockNumber:
        return await self.web3_client.get_block_number()

    async def block_timestamp(self, block_number: BlockNumber) -> Optional[datetime]:
        """Timestamp of a block, or None if it cannot be read."""
        try:
            return await self.web3_client.get_block_timestamp(block_number)
        except Exception as e:
            logger.debug(f"Could not read timestamp for block {block_number}: {e}")
            return None

    def explorer_agent_url(self, agentId: AgentId) -> Optional[str]:
        """Block-explorer link for an agent token."""
        if not self.explorer_url:
            return None
        address = getattr(self.identity_registry, "address", "")
        return f"{self.explorer_url}/token/{address}?a={agentId}"

    def explorer_wallet_url(self, address: Address) -> Optional[str]:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}/address/{address}"
