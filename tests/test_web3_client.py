from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from agent_scout.core.contracts import IDENTITY_REGISTRY_ABI
from agent_scout.core.web3_client import Web3Client


class TestWeb3Client:
    @pytest.fixture
    def mock_w3(self):
        w3 = Mock()
        w3.eth.get_block = AsyncMock(return_value={"timestamp": 1_760_000_000})
        return w3

    @pytest.fixture
    def client(self, mock_w3):
        return Web3Client("https://rpc.example", chain_id=8453, w3=mock_w3)

    def test_get_contract_checksums_address(self, client, mock_w3):
        client.get_contract("0x8004a169fb4a3325136eb29fa0ceb6d2e539a432", IDENTITY_REGISTRY_ABI)

        mock_w3.eth.contract.assert_called_once_with(
            address="0x8004A169FB4a3325136EB29fA0ceB6D2e539a432", abi=IDENTITY_REGISTRY_ABI
        )

    @pytest.mark.asyncio
    async def test_call_contract(self, client):
        contract = Mock()
        contract.functions.tokenURI.return_value.call = AsyncMock(return_value="ipfs://QmA")

        assert await client.call_contract(contract, "tokenURI", 3) == "ipfs://QmA"
        contract.functions.tokenURI.assert_called_once_with(3)

    @pytest.mark.asyncio
    async def test_get_logs(self, client):
        contract = Mock()
        contract.events.Registered.get_logs = AsyncMock(return_value=["log"])

        logs = await client.get_logs(contract, "Registered", 10, 20)

        assert logs == ["log"]
        contract.events.Registered.get_logs.assert_awaited_once_with(from_block=10, to_block=20)

    @pytest.mark.asyncio
    async def test_block_timestamp_is_utc(self, client):
        timestamp = await client.get_block_timestamp(100)

        assert timestamp == datetime.fromtimestamp(1_760_000_000, tz=timezone.utc)
        assert timestamp.tzinfo is not None

    def test_normalize_address(self):
        assert Web3Client.normalize_address("0x8004baa17c55a88189ae136b182e5fda19de9b63") == (
            "0x8004BAa17C55a88189AE136b182e5fdA19dE9b63"
        )
