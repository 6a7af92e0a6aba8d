"""
Shared fakes for the registry transport and metadata HTTP layer.
"""

import asyncio
import random
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from agent_scout.core.metadata_resolver import MetadataResolver
from agent_scout.core.registry_cache import RegistryCache
from agent_scout.core.registry_reader import RegistryReader
from agent_scout.core.scanner import Scanner
from agent_scout.core.similarity import SimilarityScanner
from agent_scout.core.store import MemoryStore

GATEWAY = "https://gateway.test/ipfs/"


class DummyContract:
    def __init__(self, address: str, abi: List[Dict[str, Any]]):
        self.address = address
        self.abi = abi


class FakeWeb3Client:
    """In-memory stand-in for Web3Client.

    agents: agentId -> (owner, wallet, tokenURI)
    reputation: agentId -> (count, summaryValue, decimals)
    """

    def __init__(self):
        self.chain_id = 8453
        self.agents: Dict[int, Tuple[str, str, str]] = {}
        self.reputation: Dict[int, Tuple[int, int, int]] = {}
        self.events: List[Dict[str, Any]] = []
        self.block_number = 1_000_000
        self.block_timestamps: Dict[int, Any] = {}
        self.failing_ids = set()
        self.jitter = False
        self.logs_error: Optional[Exception] = None
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def get_contract(self, address, abi):
        return DummyContract(address, abi)

    async def call_contract(self, contract, method, *args):
        self.calls.append((method, args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.jitter:
                await asyncio.sleep(random.uniform(0, 0.02))
            else:
                await asyncio.sleep(0)
            agent_id = args[0]
            if method == "getSummary":
                if agent_id not in self.reputation:
                    raise ValueError("no feedback")
                return self.reputation[agent_id]
            if agent_id in self.failing_ids:
                raise ConnectionError("rpc unavailable")
            if agent_id not in self.agents:
                raise ValueError("ERC721NonexistentToken")
            owner, wallet, uri = self.agents[agent_id]
            return {"ownerOf": owner, "getAgentWallet": wallet, "tokenURI": uri}[method]
        finally:
            self.in_flight -= 1

    async def get_block_number(self):
        return self.block_number

    async def get_block_timestamp(self, block_number):
        if block_number not in self.block_timestamps:
            raise ValueError("unknown block")
        return self.block_timestamps[block_number]

    async def get_logs(self, contract, event_name, from_block, to_block="latest"):
        if self.logs_error is not None:
            raise self.logs_error
        upper = self.block_number if to_block == "latest" else to_block
        return [e for e in self.events if from_block <= e["blockNumber"] <= upper]

    def add_event(self, agent_id, owner, uri, block_number, tx_hash=b"\x01" * 32):
        self.events.append({
            "args": {"agentId": agent_id, "agentURI": uri, "owner": owner},
            "blockNumber": block_number,
            "transactionHash": tx_hash,
        })


@pytest.fixture
def web3_client():
    return FakeWeb3Client()


@pytest.fixture
def reader(web3_client):
    return RegistryReader(web3_client, identity_registry="identity", reputation_registry="reputation")


@pytest.fixture
def documents():
    """URL -> JSON document served by the fake gateway."""
    return {}


@pytest.fixture
def resolver(documents):
    resolver = MetadataResolver(gateway=GATEWAY)
    resolver._fetch_http_content = AsyncMock(side_effect=lambda url, use_cache=True: documents.get(url))
    return resolver


@pytest.fixture
def cache():
    return RegistryCache(MemoryStore())


@pytest.fixture
def scanner(reader, resolver, cache):
    return Scanner(reader, resolver, cache)


@pytest.fixture
def similarity_scanner(reader, resolver, cache):
    return SimilarityScanner(reader, resolver, cache)


@pytest.fixture
def http_session():
    """Factory for an aiohttp.ClientSession replacement whose GET answers with a fixed status and payload."""

    def serving(status, payload):
        response = MagicMock()
        response.status = status
        response.json = AsyncMock(return_value=payload)

        request = MagicMock()
        request.__aenter__ = AsyncMock(return_value=response)
        request.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        session.get = Mock(return_value=request)

        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        return Mock(return_value=session_cm)

    return serving
