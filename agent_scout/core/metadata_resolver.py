"""
Metadata resolver: fetches agent metadata documents from IPFS or HTTP(S)
and normalizes the shapes agents publish in the wild.
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from .contracts import DEFAULT_IPFS_GATEWAY, DEFAULT_METADATA_CACHE_TTL, DEFAULT_METADATA_TIMEOUT
from .models import URI, AgentMetadata

logger = logging.getLogger(__name__)


def _capabilities_from_list(data: Dict[str, Any]) -> Optional[List[str]]:
    capabilities = data.get("capabilities")
    if not isinstance(capabilities, list):
        return None
    return [c for c in capabilities if isinstance(c, str)]


def _capabilities_from_skills(data: Dict[str, Any]) -> Optional[List[str]]:
    skills = data.get("skills")
    if not isinstance(skills, list):
        return None
    result = []
    for skill in skills:
        if isinstance(skill, str):
            result.append(skill)
        elif isinstance(skill, dict):
            for name_field in ["id", "name"]:
                if isinstance(skill.get(name_field), str) and skill[name_field]:
                    result.append(skill[name_field])
                    break
    return result


def _capabilities_from_fleet(data: Dict[str, Any]) -> Optional[List[str]]:
    fleet = data.get("fleet")
    if not isinstance(fleet, list):
        return None
    return [f["role"] for f in fleet if isinstance(f, dict) and isinstance(f.get("role"), str) and f["role"]]


# Tried in order; the first shape yielding a non-empty list wins.
CAPABILITY_EXTRACTORS: List[Callable[[Dict[str, Any]], Optional[List[str]]]] = [
    _capabilities_from_list,
    _capabilities_from_skills,
    _capabilities_from_fleet,
]


def extract_capabilities(data: Dict[str, Any]) -> List[str]:
    """Extract capability strings from arbitrary metadata shapes."""
    for extractor in CAPABILITY_EXTRACTORS:
        capabilities = extractor(data)
        if capabilities:
            return capabilities
    return []


def extract_fleet_ids(fleet: Any) -> List[str]:
    """Extract fleet member ids from a list of strings and/or {id} objects."""
    if not isinstance(fleet, list):
        return []
    ids = []
    for member in fleet:
        if isinstance(member, str):
            ids.append(member)
        elif isinstance(member, dict) and "id" in member:
            ids.append(str(member["id"]))
        elif member is not None:
            ids.append(str(member))
    return [i for i in ids if i]


def _first_str(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def parse_metadata(data: Dict[str, Any]) -> AgentMetadata:
    """Normalize a raw metadata document."""
    wallet = data.get("wallet")
    if isinstance(wallet, dict):
        wallet = wallet.get("address")
    contracts = data.get("contracts")

    return AgentMetadata(
        name=_first_str(data, "name", "agent_name"),
        type=_first_str(data, "type", "agent_type"),
        description=_first_str(data, "description"),
        capabilities=extract_capabilities(data),
        fleetMembers=extract_fleet_ids(data.get("fleet") or data.get("fleet_members")),
        contracts=contracts if isinstance(contracts, dict) and contracts else None,
        wallet=wallet if isinstance(wallet, str) and wallet else None,
        raw=data,
    )


class MetadataResolver:
    """Fetches and parses agent metadata documents.

    A failed fetch is not an error: every failure mode returns None.
    """

    def __init__(
        self,
        gateway: str = DEFAULT_IPFS_GATEWAY,
        timeout: float = DEFAULT_METADATA_TIMEOUT,
        cache_ttl: float = DEFAULT_METADATA_CACHE_TTL,
    ):
        self.gateway = gateway if gateway.endswith("/") else gateway + "/"
        self.timeout = timeout
        self._http_cache: Dict[str, Any] = {}  # url -> (document, fetched_at)
        self._http_cache_ttl = cache_ttl

    def _is_ipfs_cid(self, uri: str) -> bool:
        """Check if string is a bare IPFS CID (Qm... v0 or baf... v1)."""
        if uri.startswith("Qm") and len(uri) == 46:
            return True
        return uri.startswith("baf") and len(uri) >= 8

    def resolve_url(self, uri: URI) -> Optional[str]:
        """Map a metadata URI to a fetchable HTTP(S) URL, or None if unsupported."""
        uri = uri.strip()
        if uri.startswith("ipfs://"):
            path = uri[len("ipfs://"):]
            if path.startswith("ipfs/"):
                path = path[len("ipfs/"):]
            return f"{self.gateway}{path}"
        if uri.startswith(("https://", "http://")):
            return uri
        if self._is_ipfs_cid(uri):
            return f"{self.gateway}{uri}"
        return None

    def _prune_http_cache(self, current_time: float) -> None:
        """Drop entries older than the TTL."""
        expired = [
            url for url, (_, timestamp) in self._http_cache.items()
            if current_time - timestamp >= self._http_cache_ttl
        ]
        for url in expired:
            del self._http_cache[url]

    async def _fetch_http_content(self, url: str, use_cache: bool = True) -> Optional[Any]:
        """GET a JSON document with a bounded timeout; None on any failure.

        With ``use_cache=False`` the cache is not read, but a successful
        fetch still refreshes it.
        """
        current_time = time.time()
        if use_cache and url in self._http_cache:
            cached_data, timestamp = self._http_cache[url]
            if current_time - timestamp < self._http_cache_ttl:
                return copy.deepcopy(cached_data)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={"Accept": "application/json"},
                ) as response:
                    if not 200 <= response.status < 300:
                        logger.warning(f"Failed to fetch {url}: HTTP {response.status}")
                        return None
                    content = await response.json(content_type=None)
        except Exception as e:
            logger.warning(f"Error fetching metadata from {url}: {e}")
            return None

        self._prune_http_cache(current_time)
        self._http_cache[url] = (copy.deepcopy(content), current_time)
        return content

    async def fetch_document(self, uri: Optional[URI], use_cache: bool = True) -> Optional[Dict[str, Any]]:
        """Fetch the raw metadata document (a JSON object) for a URI."""
        if not uri:
            return None
        url = self.resolve_url(uri)
        if url is None:
            logger.warning(f"Unsupported metadata URI: {uri}")
            return None
        document = await self._fetch_http_content(url, use_cache=use_cache)
        if not isinstance(document, dict):
            if document is not None:
                logger.warning(f"Metadata at {url} is not a JSON object")
            return None
        return document

    async def fetch(self, uri: Optional[URI], use_cache: bool = True) -> Optional[AgentMetadata]:
        """Fetch and normalize an agent's metadata. None means unknown."""
        document = await self.fetch_document(uri, use_cache=use_cache)
        if document is None:
            return None
        return parse_metadata(document)

    def clear_cache(self) -> None:
        self._http_cache.clear()
