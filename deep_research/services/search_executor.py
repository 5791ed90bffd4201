from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from loguru import logger

from deep_research.exceptions import ConfigurationError, ProviderError
from deep_research.models.research import (
    SearchQuery,
    SearchRequest,
    SearchResponse,
    TimeScope,
)
from deep_research.tools import tavily_search

SearchFn = Callable[[SearchRequest], Awaitable[SearchResponse]]

MAX_RESULTS_CAP = 8
ADVANCED_DEPTH_AFTER = 2


@dataclass(slots=True)
class QueryOutcome:
    query: SearchQuery
    response: SearchResponse

    @property
    def urls(self) -> list[str]:
        return [r.url for r in self.response.results]


def build_search_request(
    query: SearchQuery, depth_index: int, time_scope: TimeScope
) -> SearchRequest:
    """Map a prioritized query onto provider parameters for one depth level."""
    return SearchRequest(
        query=query.query,
        max_results=min(MAX_RESULTS_CAP, 15 - query.priority),
        search_depth="advanced" if depth_index > ADVANCED_DEPTH_AFTER else "basic",
        topic="news" if time_scope == TimeScope.RECENT else "general",
    )


class SearchExecutor:
    """Issues one provider call per query behind a shared concurrency gate."""

    def __init__(
        self,
        gate: asyncio.Semaphore,
        *,
        search_fn: Optional[SearchFn] = None,
    ):
        self.gate = gate
        self.search_fn: SearchFn = search_fn or tavily_search.search

    async def execute_one(
        self, query: SearchQuery, depth_index: int, time_scope: TimeScope
    ) -> QueryOutcome | None:
        request = build_search_request(query, depth_index, time_scope)
        try:
            async with self.gate:
                response = await self.search_fn(request)
        except ConfigurationError as exc:
            logger.warning(f"Search skipped for '{query.query[:80]}': {exc}")
            return None
        except ProviderError as exc:
            logger.warning(f"Search failed for '{query.query[:80]}': {exc}")
            return None
        except Exception as exc:
            logger.warning(f"Unexpected search error for '{query.query[:80]}': {exc}")
            return None

        if not response.results:
            logger.info(f"No results for '{query.query[:80]}'")
        return QueryOutcome(query=query, response=response)

    async def execute_many(
        self,
        queries: list[SearchQuery],
        depth_index: int,
        time_scope: TimeScope,
    ) -> list[QueryOutcome | None]:
        """Search every query and wait for all of them; order matches ``queries``."""
        return list(
            await asyncio.gather(
                *(self.execute_one(q, depth_index, time_scope) for q in queries)
            )
        )
