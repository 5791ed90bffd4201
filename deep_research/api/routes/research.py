from __future__ import annotations

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from deep_research.agents.orchestrator import ResearchOrchestrator
from deep_research.api.deps import get_orchestrator
from deep_research.models.schemas import ResearchFailure, ResearchRequest, ResearchResult
from deep_research.services import logger as log_service
from deep_research.services import streaming

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("", response_model=ResearchResult | ResearchFailure)
async def run_research(
    request: ResearchRequest,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """Run a research session to completion.

    Both outcomes return HTTP 200; ``status`` tells them apart.
    """
    return await orchestrator.run(request)


@router.post("/stream")
async def stream_research(
    request: ResearchRequest,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """SSE endpoint that streams step progress, then the final response."""

    async def event_generator():
        try:
            async for event in orchestrator.research(request):
                yield event.to_message()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
                query=request.query[:100],
            )
            yield streaming.error("Research stream failed unexpectedly.").to_message()

    return EventSourceResponse(event_generator())
