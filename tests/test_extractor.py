from __future__ import annotations

import asyncio

import pytest

from conftest import FakeGenerator
from deep_research.agents.extractor import (
    LearningExtractor,
    empty_result_fallback,
    failed_extraction_fallback,
    max_learnings_for_depth,
)
from deep_research.exceptions import ProviderError
from deep_research.models.research import ExtractedCitation, LearningExtraction, SearchResult


def _results(count: int = 2, content: str = "body text") -> list[SearchResult]:
    return [
        SearchResult(title=f"T{i}", url=f"https://example.com/{i}", content=content)
        for i in range(count)
    ]


def test_max_learnings_for_depth():
    assert [max_learnings_for_depth(d) for d in (1, 2, 3, 4)] == [4, 4, 4, 4]
    assert max_learnings_for_depth(6) == 2
    assert max_learnings_for_depth(10) == 1


@pytest.mark.asyncio
async def test_empty_results_use_fallback_without_generation(fake_generator):
    extractor = LearningExtractor(fake_generator)
    result = await extractor.extract("fusion startups", [], 4)

    assert result.fallback
    assert result.learnings == empty_result_fallback("fusion startups").learnings
    assert len(result.follow_up_questions) == 2
    assert result.citations == []
    assert fake_generator.calls == []


@pytest.mark.asyncio
async def test_results_without_content_count_as_empty(fake_generator):
    extractor = LearningExtractor(fake_generator)
    result = await extractor.extract("fusion startups", _results(content="   "), 4)

    assert result.fallback
    assert fake_generator.calls == []


@pytest.mark.asyncio
async def test_extract_caps_learnings_and_citations():
    payload = LearningExtraction(
        learnings=[f"fact {i}" for i in range(6)],
        follow_up_questions=["why?"],
        citations=[
            ExtractedCitation(url=f"https://example.com/{i}", title="t", relevant_quote="q", relevance=9)
            for i in range(5)
        ],
    )
    extractor = LearningExtractor(FakeGenerator({LearningExtraction: payload}))
    result = await extractor.extract("fusion startups", _results(2), 3)

    assert not result.fallback
    assert result.learnings == ["fact 0", "fact 1", "fact 2"]
    assert len(result.citations) == 2
    assert result.citations[0].content == "q"
    assert result.citations[0].relevance == 9


@pytest.mark.asyncio
async def test_extract_failure_uses_result_based_fallback():
    long_content = "x" * 400
    extractor = LearningExtractor(FakeGenerator({LearningExtraction: ProviderError("down")}))
    result = await extractor.extract("fusion startups", _results(5, long_content), 4)

    assert result.fallback
    assert len(result.learnings) == 3
    assert len(result.citations) == 3
    assert all(c.relevance == 5 for c in result.citations)
    assert result.citations[0].content == "x" * 150 + "..."
    assert result == failed_extraction_fallback("fusion startups", _results(5, long_content), 4)


@pytest.mark.asyncio
async def test_extract_failure_respects_small_learning_cap():
    extractor = LearningExtractor(FakeGenerator({LearningExtraction: RuntimeError("boom")}))
    result = await extractor.extract("q", _results(1), 1)

    assert len(result.learnings) == 1


@pytest.mark.asyncio
async def test_blank_learnings_are_treated_as_failure():
    payload = LearningExtraction(learnings=["   "], follow_up_questions=["?"])
    extractor = LearningExtractor(FakeGenerator({LearningExtraction: payload}))
    result = await extractor.extract("q", _results(1), 4)

    assert result.fallback


@pytest.mark.asyncio
async def test_extract_prompt_lists_results(fake_generator):
    extractor = LearningExtractor(fake_generator, model="extract-model")
    await extractor.extract("fusion startups", _results(2), 4)

    call = fake_generator.calls[0]
    assert call["model"] == "extract-model"
    assert 'for the query "fusion startups"' in call["prompt"]
    assert "URL: https://example.com/1" in call["prompt"]
    assert "between 1 and 4 learnings" in call["prompt"]


@pytest.mark.asyncio
async def test_extract_waits_for_gate():
    gate = asyncio.Semaphore(1)
    extractor = LearningExtractor(FakeGenerator(), gate=gate)

    await gate.acquire()
    task = asyncio.create_task(extractor.extract("q", _results(1), 4))
    await asyncio.sleep(0.01)
    assert not task.done()

    gate.release()
    result = await asyncio.wait_for(task, timeout=1)
    assert result.learnings == ["learning about q"]
