from __future__ import annotations

from typing import Any

from pydantic import ValidationError
from tavily import AsyncTavilyClient

from deep_research.config import settings
from deep_research.exceptions import ConfigurationError, ProviderError
from deep_research.models.research import SearchRequest, SearchResponse, SearchResult
from deep_research.services import logger as log_service


def _parse_results(raw_results: Any) -> list[SearchResult]:
    """Validate provider result items, dropping malformed ones."""
    if not isinstance(raw_results, list):
        return []
    parsed: list[SearchResult] = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(
                SearchResult.model_validate(
                    {
                        "title": item.get("title") or "",
                        "url": item.get("url") or "",
                        "content": item.get("content") or "",
                        "score": item.get("score") or 0.0,
                    }
                )
            )
        except ValidationError:
            continue
    return parsed


async def search(request: SearchRequest) -> SearchResponse:
    """Execute a Tavily web search and return validated results."""
    if not settings.tavily_api_key:
        raise ConfigurationError("TAVILY_API_KEY is not configured")

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    try:
        response = await client.search(
            query=request.query,
            search_depth=request.search_depth,
            max_results=request.max_results,
            topic=request.topic,
            include_answer=True,
            include_images=False,
            include_raw_content=False,
        )
    except Exception as exc:
        raise ProviderError(f"Tavily search failed for '{request.query[:80]}': {exc}") from exc

    if not isinstance(response, dict):
        raise ProviderError("Tavily returned a non-object response")

    raw_results = response.get("results", [])
    results = _parse_results(raw_results)
    dropped = len(raw_results) - len(results) if isinstance(raw_results, list) else 0
    if dropped:
        log_service.log_event(
            event_type="search_results_dropped",
            message="Dropped malformed Tavily result items",
            query=request.query[:100],
            dropped=dropped,
        )

    answer = response.get("answer")
    return SearchResponse(
        results=results,
        answer=answer if isinstance(answer, str) else None,
    )

