"""
Registry ABIs, default addresses and scout defaults.

Only the read paths the scout needs are included.
"""

IDENTITY_REGISTRY_ABI = [
    {
        "name": "ownerOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "getAgentWallet",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "agentId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "tokenURI",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "name": "Registered",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "agentId", "type": "uint256", "indexed": True},
            {"name": "agentURI", "type": "string", "indexed": False},
            {"name": "owner", "type": "address", "indexed": True},
        ],
    },
]

REPUTATION_REGISTRY_ABI = [
    {
        "name": "getSummary",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "agentId", "type": "uint256"},
            {"name": "clientAddresses", "type": "address[]"},
            {"name": "tag1", "type": "string"},
            {"name": "tag2", "type": "string"},
        ],
        "outputs": [
            {"name": "count", "type": "uint256"},
            {"name": "summaryValue", "type": "int128"},
            {"name": "summaryValueDecimals", "type": "uint8"},
        ],
    },
]

BASE_MAINNET = 8453

DEFAULT_REGISTRIES = {
    BASE_MAINNET: {
        "IDENTITY": "0x8004A169FB4a3325136EB29fA0ceB6D2e539a432",
        "REPUTATION": "0x8004BAa17C55a88189AE136b182e5fdA19dE9b63",
    },
}

DEFAULT_EXPLORERS = {
    BASE_MAINNET: "https://basescan.org",
}

DEFAULT_IPFS_GATEWAY = "https://gateway.pinata.cloud/ipfs/"

DEFAULT_RPC_TIMEOUT = 15  # seconds
DEFAULT_METADATA_TIMEOUT = 10  # seconds
DEFAULT_METADATA_CACHE_TTL = 60 * 60  # 1 hour

DEFAULT_SCAN_CONCURRENCY = 5
SIMILARITY_BATCH_SIZE = 10

# ~24 hours of 2s blocks
EVENT_LOOKBACK_BLOCKS = 43200

RECENT_REGISTRATION_DAYS = 7
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_HISTORY_LIMIT = 20
