from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from deep_research.llm_client import StructuredGenerationService
from deep_research.models.research import QueryPlan, ResearchStrategy, SearchQuery
from deep_research.services.prompt_store import render_prompt, researcher_system_prompt


@dataclass
class StrategyResult:
    queries: list[SearchQuery]
    strategy: ResearchStrategy


def default_strategy(query: str) -> ResearchStrategy:
    return ResearchStrategy(
        approach=f"Comprehensive research on: {query}",
        expected_outcomes="Detailed insights and actionable findings",
    )


def fallback_plan(query: str) -> StrategyResult:
    """Single top-priority query on the topic itself."""
    return StrategyResult(
        queries=[
            SearchQuery(query=query, research_goal=f"Research the topic: {query}", priority=5)
        ],
        strategy=default_strategy(query),
    )


class StrategyGenerator:
    """Turns a topic and prior learnings into prioritized search queries."""

    name = "strategy"

    def __init__(self, generator: StructuredGenerationService, *, model: Optional[str] = None):
        self.generator = generator
        self.model = model

    def _build_prompt(self, query: str, prior_learnings: list[str], num_queries: int) -> str:
        if prior_learnings:
            learnings_block = render_prompt(
                "strategy.learnings_present", learnings="\n".join(prior_learnings)
            )
        else:
            learnings_block = render_prompt("strategy.learnings_absent")
        return render_prompt(
            "strategy.user",
            query=query,
            num_queries=num_queries,
            learnings_block=learnings_block,
        )

    async def generate(
        self,
        query: str,
        prior_learnings: list[str],
        num_queries: int,
    ) -> StrategyResult:
        num_queries = max(int(num_queries), 1)
        try:
            plan = await self.generator.generate(
                researcher_system_prompt(),
                self._build_prompt(query, prior_learnings, num_queries),
                QueryPlan,
                caller="strategy.generate",
                model=self.model,
            )
        except Exception as exc:
            logger.warning(f"Query generation failed, using fallback plan: {exc}")
            return fallback_plan(query)

        queries: list[SearchQuery] = []
        seen: set[str] = set()
        for item in plan.queries:
            text = " ".join(item.query.split())
            key = text.lower()
            if not text or key in seen:
                continue
            seen.add(key)
            queries.append(item.model_copy(update={"query": text}))
            if len(queries) >= num_queries:
                break

        if not queries:
            logger.warning("Query generation returned no usable queries, using fallback plan")
            return fallback_plan(query)

        return StrategyResult(
            queries=queries,
            strategy=plan.research_strategy or default_strategy(query),
        )
