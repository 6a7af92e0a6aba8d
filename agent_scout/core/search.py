"""
Search over the registry cache.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from .models import AgentId, CachedAgent, SearchFilters, SearchResult, utcnow
from .registry_cache import RegistryCache

logger = logging.getLogger(__name__)


class SearchEngine:
    """Filtered, sorted, paginated queries over cached agents."""

    def __init__(self, cache: RegistryCache):
        self.cache = cache

    def get_agent(self, agentId: AgentId) -> Optional[CachedAgent]:
        return self.cache.get(agentId)

    def search(
        self,
        filters: Union[SearchFilters, Dict[str, Any], None] = None,
        **kwargs: Any,
    ) -> SearchResult:
        """Search cached agents.

        Examples:
            engine.search(minReputation=0.5, tags=["alpha"])
            engine.search(SearchFilters(query="oracle", limit=10))
            engine.search({"idRange": (1, 100), "orderBy": "lastSeen"}, limit=10)

        Keyword arguments override the matching fields of ``filters``.
        """
        if filters is None:
            filters = SearchFilters(**kwargs)
        elif isinstance(filters, dict):
            filters = SearchFilters(**{**filters, **kwargs})
        elif kwargs:
            filters = replace(filters, **kwargs)

        matched = self._apply_filters(self.cache.all(), filters)
        ordered = self._apply_sorting(matched, filters.orderBy, filters.orderDir)
        page = ordered[filters.offset:filters.offset + filters.limit]

        logger.debug(f"Search matched {len(matched)} agents, returning {len(page)}")
        return SearchResult(agents=page, total=len(matched), filters=filters)

    def _apply_filters(self, agents: List[CachedAgent], filters: SearchFilters) -> List[CachedAgent]:
        """Apply search filters to agents."""
        filtered = agents

        if filters.idRange is not None:
            low, high = filters.idRange
            filtered = [a for a in filtered if low <= a.agentId <= high]

        if filters.capabilities:
            wanted = set(filters.capabilities)
            filtered = [a for a in filtered if wanted.intersection(a.capabilities)]

        if filters.minReputation is not None:
            filtered = [a for a in filtered if a.reputationScore >= filters.minReputation]

        if filters.relationship is not None:
            filtered = [a for a in filtered if a.relationship == filters.relationship]

        if filters.activeWithinHours:
            since = utcnow() - timedelta(hours=filters.activeWithinHours)
            filtered = [a for a in filtered if a.lastSeen is not None and a.lastSeen >= since]

        if filters.tags:
            wanted = set(filters.tags)
            filtered = [a for a in filtered if wanted.intersection(a.tags)]

        if filters.verifiedOnly:
            filtered = [a for a in filtered if a.isVerified]

        if filters.query:
            term = filters.query.lower()
            filtered = [
                a for a in filtered
                if any(term in (value or "").lower() for value in (a.agentName, a.agentType, a.notes))
            ]

        return filtered

    def _apply_sorting(self, agents: List[CachedAgent], order_by: str, order_dir: str) -> List[CachedAgent]:
        """Sort by one field; rows without a value go last in either direction."""
        reverse = order_dir == "desc"
        present = [a for a in agents if getattr(a, order_by) is not None]
        absent = [a for a in agents if getattr(a, order_by) is None]
        present.sort(key=lambda a: (getattr(a, order_by), a.agentId), reverse=reverse)
        absent.sort(key=lambda a: a.agentId, reverse=reverse)
        return present + absent
