"""Shared fakes for the research pipeline tests."""
from __future__ import annotations

import os
import re

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("OPENROUTER_API_KEY", "")
os.environ.setdefault("TAVILY_API_KEY", "")

import pytest

from deep_research.models.research import (
    ConfidenceAssessment,
    ExtractedCitation,
    FinalReport,
    LearningExtraction,
    QueryPlan,
    Recommendations,
    ResearchStrategy,
    SearchQuery,
    SearchRequest,
    SearchResponse,
    SearchResult,
)

_EXTRACT_QUERY = re.compile(r'for the query "(.*?)"')
_EXTRACT_URL = re.compile(r"URL: (\S+)")


def make_report(**overrides) -> FinalReport:
    payload = dict(
        title="Findings",
        executive_summary="Short summary.",
        main_findings=["finding one"],
        detailed_analysis="Analysis.",
        recommendations=["do the thing"],
        knowledge_gaps=["unknowns"],
        confidence_assessment=ConfidenceAssessment(score=7, reasoning="decent coverage"),
    )
    payload.update(overrides)
    return FinalReport(**payload)


class FakeGenerator:
    """Structured generation double keyed by schema.

    A handler may be a model instance, an exception (raised), or a callable
    ``(system_prompt, user_prompt) -> model``. Schemas without a handler get
    a deterministic default.
    """

    def __init__(self, handlers: dict | None = None):
        self.handlers = dict(handlers or {})
        self.calls: list[dict] = []
        self._plan_counter = 0

    async def generate(self, system_prompt, user_prompt, schema, *, caller, model=None):
        self.calls.append(
            {"schema": schema, "caller": caller, "model": model, "prompt": user_prompt}
        )
        handler = self.handlers.get(schema)
        if handler is None:
            return self._default(schema, user_prompt)
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return handler(system_prompt, user_prompt)
        return handler

    def calls_for(self, schema) -> list[dict]:
        return [c for c in self.calls if c["schema"] is schema]

    def _default(self, schema, user_prompt):
        if schema is QueryPlan:
            self._plan_counter += 1
            round_no = self._plan_counter
            return QueryPlan(
                queries=[
                    SearchQuery(query=f"q{round_no}-{i}", research_goal="goal", priority=5 - i)
                    for i in range(5)
                ],
                research_strategy=ResearchStrategy(
                    approach="broad then narrow", expected_outcomes="an overview"
                ),
            )
        if schema is LearningExtraction:
            match = _EXTRACT_QUERY.search(user_prompt)
            query = match.group(1) if match else "unknown"
            urls = _EXTRACT_URL.findall(user_prompt)
            return LearningExtraction(
                learnings=[f"learning about {query}"],
                follow_up_questions=[f"what next for {query}?"],
                citations=[
                    ExtractedCitation(
                        url=url, title=f"source {url}", relevant_quote="quote", relevance=6
                    )
                    for url in urls[:1]
                ],
            )
        if schema is FinalReport:
            return make_report()
        if schema is Recommendations:
            return Recommendations(immediate_actions=["act now"])
        raise AssertionError(f"unexpected schema {schema}")


def make_search(results_per_query: int = 2, content: str = "useful content"):
    """Search double returning per-query URLs; records every request."""
    requests: list[SearchRequest] = []

    async def search(request: SearchRequest) -> SearchResponse:
        requests.append(request)
        slug = request.query.replace(" ", "-")
        return SearchResponse(
            results=[
                SearchResult(
                    title=f"{request.query} #{i}",
                    url=f"https://example.com/{slug}/{i}",
                    content=content,
                    score=0.5,
                )
                for i in range(results_per_query)
            ]
        )

    search.requests = requests
    return search


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fake_search():
    return make_search()
