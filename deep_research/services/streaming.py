from __future__ import annotations

from typing import Any

from deep_research.models.events import EventType, SSEEvent
from deep_research.models.research import ResearchStep
from deep_research.models.schemas import ResearchFailure, ResearchResult


def research_started(research_id: str, query: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_STARTED,
        data={"research_id": research_id, "query": query, **kwargs},
    )


def research_step(step: ResearchStep) -> SSEEvent:
    return SSEEvent(event=EventType.RESEARCH_STEP, data=step.model_dump(mode="json"))


def research_complete(result: ResearchResult) -> SSEEvent:
    return SSEEvent(event=EventType.RESEARCH_COMPLETE, data=result.model_dump(mode="json"))


def research_failed(failure: ResearchFailure) -> SSEEvent:
    return SSEEvent(event=EventType.RESEARCH_FAILED, data=failure.model_dump(mode="json"))


def error(message: str) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message})
