"""
Async web3 client used for all registry reads.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import aiohttp
from eth_utils import to_checksum_address
from web3 import AsyncWeb3

from .contracts import DEFAULT_RPC_TIMEOUT

logger = logging.getLogger(__name__)


class Web3Client:
    """Read-only async client for an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        chain_id: Optional[int] = None,
        timeout: int = DEFAULT_RPC_TIMEOUT,
        w3: Optional[AsyncWeb3] = None,
    ):
        """Initialize client.

        Args:
            rpc_url: JSON-RPC endpoint URL
            chain_id: Expected chain id (informational; not verified against the node)
            timeout: Per-request timeout in seconds
            w3: Pre-built AsyncWeb3 instance (mostly for tests)
        """
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
            )
        )

    def get_contract(self, address: str, abi: List[Dict[str, Any]]):
        """Get a contract instance bound to this client."""
        return self.w3.eth.contract(address=to_checksum_address(address), abi=abi)

    async def call_contract(self, contract: Any, method: str, *args: Any) -> Any:
        """Call a view function on a contract."""
        function = getattr(contract.functions, method)
        return await function(*args).call()

    async def get_block_number(self) -> int:
        return await self.w3.eth.block_number

    async def get_block_timestamp(self, block_number: int) -> datetime:
        block = await self.w3.eth.get_block(block_number)
        return datetime.fromtimestamp(block["timestamp"], tz=timezone.utc)

    async def get_logs(
        self,
        contract: Any,
        event_name: str,
        from_block: int,
        to_block: Union[int, str] = "latest",
    ) -> List[Any]:
        """Fetch decoded event logs for a contract event over a block range."""
        event = getattr(contract.events, event_name)
        logger.debug(f"Fetching {event_name} logs from block {from_block} to {to_block}")
        return await event.get_logs(from_block=from_block, to_block=to_block)

    @staticmethod
    def normalize_address(address: str) -> str:
        """Return the EIP-55 checksummed form of an address."""
        return to_checksum_address(address)
