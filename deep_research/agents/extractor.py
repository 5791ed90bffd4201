from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from deep_research.llm_client import StructuredGenerationService
from deep_research.models.research import Citation, LearningExtraction, SearchResult
from deep_research.services.prompt_store import render_prompt, researcher_system_prompt

RESULT_CONTENT_CHARS = 2000
FALLBACK_QUOTE_CHARS = 150
FALLBACK_CITATION_COUNT = 3
FALLBACK_RELEVANCE = 5
MAX_FOLLOW_UPS = 3


@dataclass
class ExtractionResult:
    learnings: list[str]
    follow_up_questions: list[str]
    citations: list[Citation] = field(default_factory=list)
    fallback: bool = False


def max_learnings_for_depth(depth_index: int) -> int:
    return max(1, min(4, 8 - depth_index))


def empty_result_fallback(query: str) -> ExtractionResult:
    return ExtractionResult(
        learnings=[
            f'Based on the query "{query}", further research is needed to provide comprehensive insights.'
        ],
        follow_up_questions=[
            f"What are the key aspects of {query}?",
            f"What recent developments relate to {query}?",
        ],
        fallback=True,
    )


def failed_extraction_fallback(
    query: str, results: list[SearchResult], max_learnings: int
) -> ExtractionResult:
    learnings = [
        f'Research on "{query}" indicates this is an active area requiring further investigation.',
        f"The available information suggests multiple perspectives exist on {query}.",
        f"Additional analysis would be beneficial to understand the full scope of {query}.",
    ][: max(max_learnings, 1)]
    citations = [
        Citation(
            url=result.url,
            title=result.title or "Untitled Source",
            content=f"{result.content[:FALLBACK_QUOTE_CHARS]}...",
            relevance=FALLBACK_RELEVANCE,
        )
        for result in results[:FALLBACK_CITATION_COUNT]
    ]
    return ExtractionResult(
        learnings=learnings,
        follow_up_questions=[
            f"What are the latest developments in {query}?",
            f"How does {query} impact current trends?",
        ],
        citations=citations,
        fallback=True,
    )


def _clean(values: list[str], limit: int) -> list[str]:
    cleaned: list[str] = []
    for value in values:
        text = " ".join(value.split())
        if text:
            cleaned.append(text)
        if len(cleaned) >= limit:
            break
    return cleaned


class LearningExtractor:
    """Distils one query's search results into learnings and citations.

    Never raises for a bad reply or a failed call: both turn into the
    deterministic fallback, as does an empty result list.
    """

    name = "extractor"

    def __init__(
        self,
        generator: StructuredGenerationService,
        *,
        model: Optional[str] = None,
        gate: Optional[asyncio.Semaphore] = None,
    ):
        self.generator = generator
        self.model = model
        self.gate = gate

    def _build_prompt(self, query: str, results: list[SearchResult], max_learnings: int) -> str:
        blocks = [
            f"[{idx + 1}] {item.title}\nURL: {item.url}\nContent: {item.content[:RESULT_CONTENT_CHARS]}..."
            for idx, item in enumerate(results)
        ]
        return render_prompt(
            "extractor.user",
            query=query,
            results_block="\n\n".join(blocks),
            max_learnings=max_learnings,
            max_citations=len(results),
        )

    async def extract(
        self,
        query: str,
        results: list[SearchResult],
        max_learnings: int,
    ) -> ExtractionResult:
        max_learnings = max(int(max_learnings), 1)
        if not any(r.content.strip() for r in results):
            logger.info(f"No usable content for '{query[:80]}', using fallback learning")
            return empty_result_fallback(query)

        try:
            async with AsyncExitStack() as stack:
                if self.gate is not None:
                    await stack.enter_async_context(self.gate)
                payload = await self.generator.generate(
                    researcher_system_prompt(),
                    self._build_prompt(query, results, max_learnings),
                    LearningExtraction,
                    caller="extractor.extract",
                    model=self.model,
                )
        except Exception as exc:
            logger.warning(f"Learning extraction failed for '{query[:80]}': {exc}")
            return failed_extraction_fallback(query, results, max_learnings)

        learnings = _clean(payload.learnings, max_learnings)
        follow_ups = _clean(payload.follow_up_questions, MAX_FOLLOW_UPS)
        if not learnings:
            return failed_extraction_fallback(query, results, max_learnings)
        if not follow_ups:
            follow_ups = empty_result_fallback(query).follow_up_questions

        citations = [
            Citation(
                url=c.url,
                title=c.title,
                content=c.relevant_quote,
                relevance=c.relevance,
            )
            for c in payload.citations[: len(results)]
        ]
        return ExtractionResult(
            learnings=learnings,
            follow_up_questions=follow_ups,
            citations=citations,
        )
