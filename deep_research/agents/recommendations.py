from __future__ import annotations

from typing import Optional

from deep_research.llm_client import StructuredGenerationService
from deep_research.models.research import Recommendations
from deep_research.services.prompt_store import render_prompt, researcher_system_prompt

RECOMMENDATION_LEARNINGS_LIMIT = 10


class RecommendationGenerator:
    """Derives prioritized actions from the accumulated learnings."""

    name = "recommendations"

    def __init__(self, generator: StructuredGenerationService, *, model: Optional[str] = None):
        self.generator = generator
        self.model = model

    async def generate(self, query: str, learnings: list[str]) -> Recommendations:
        prompt = render_prompt(
            "recommendations.user",
            query=query,
            learnings="\n".join(learnings[:RECOMMENDATION_LEARNINGS_LIMIT]) or "none",
        )
        return await self.generator.generate(
            researcher_system_prompt(),
            prompt,
            Recommendations,
            caller="recommendations.generate",
            model=self.model,
        )
