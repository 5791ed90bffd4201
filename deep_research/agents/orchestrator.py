from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
from typing import AsyncGenerator, Optional
from uuid import uuid4

from loguru import logger

from deep_research.agents.depth_controller import DepthController
from deep_research.agents.extractor import LearningExtractor
from deep_research.agents.recommendations import RecommendationGenerator
from deep_research.agents.strategy import StrategyGenerator
from deep_research.agents.synthesizer import ReportSynthesizer
from deep_research.config import settings
from deep_research.exceptions import SessionFailure
from deep_research.llm_client import (
    StructuredGenerationService,
    generator as default_generator,
    get_report_model,
    get_strategy_model,
)
from deep_research.models.events import SSEEvent
from deep_research.models.research import (
    FinalReport,
    Recommendations,
    SessionStatus,
    StepMetadata,
    StepStatus,
    StepType,
)
from deep_research.models.schemas import (
    PartialResults,
    ResearchFailure,
    ResearchMetadata,
    ResearchRequest,
    ResearchResponse,
    ResearchResult,
)
from deep_research.models.session import ResearchSession
from deep_research.services import logger as log_service
from deep_research.services import streaming
from deep_research.services.progress import ProgressReporter, QueueProgressReporter, StepTracker
from deep_research.services.search_executor import SearchExecutor, SearchFn

KEY_LEARNINGS_LIMIT = 10
CITATIONS_LIMIT = 20


@dataclass
class _Pipeline:
    strategy: StrategyGenerator
    controller: DepthController
    synthesizer: ReportSynthesizer
    recommender: RecommendationGenerator


@dataclass
class _Outputs:
    report: FinalReport
    recommendations: Recommendations


class ResearchOrchestrator:
    """Runs one research session end to end.

    Flow:
      1. Generate the research strategy and first-level queries
      2. For each depth level: search in parallel (bounded), extract
         learnings per query, merge in query order
      3. Synthesize the structured report
      4. Generate recommendations

    ``run`` always returns a response; failures, cancellation and timeouts
    become a ``failed`` response carrying partial results. Progress is
    reported through an optional ``ProgressReporter``; ``research`` streams
    the same run as SSE events.
    """

    def __init__(
        self,
        generator: Optional[StructuredGenerationService] = None,
        *,
        search_fn: Optional[SearchFn] = None,
        max_parallel: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        strategy_model: Optional[str] = None,
        report_model: Optional[str] = None,
    ):
        self._generator = generator
        self.search_fn = search_fn
        self.max_parallel = max(int(max_parallel or settings.search_max_parallel_requests), 1)
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.research_timeout_seconds
        )
        self.strategy_model = strategy_model
        self.report_model = report_model

    def _build_pipeline(self) -> _Pipeline:
        generator = self._generator or default_generator()
        strategy_model = self.strategy_model or get_strategy_model()
        report_model = self.report_model or get_report_model()
        # One gate per run: every search and extraction call in the session shares it.
        gate = asyncio.Semaphore(self.max_parallel)
        strategy = StrategyGenerator(generator, model=strategy_model)
        return _Pipeline(
            strategy=strategy,
            controller=DepthController(
                strategy,
                SearchExecutor(gate, search_fn=self.search_fn),
                LearningExtractor(generator, model=strategy_model, gate=gate),
            ),
            synthesizer=ReportSynthesizer(generator, model=report_model),
            recommender=RecommendationGenerator(generator, model=report_model),
        )

    async def _execute(self, session: ResearchSession, tracker: StepTracker) -> _Outputs:
        with tracker.phase(
            "init",
            StepType.STRATEGY,
            "Initializing research",
            f'Research on "{session.query}"',
            progress=0,
            done_progress=5,
            metadata=StepMetadata(depth=session.depth, breadth=session.breadth),
        ):
            pipeline = self._build_pipeline()

        with tracker.phase(
            "strategy",
            StepType.STRATEGY,
            "Generating research strategy",
            "Planning search queries and approach",
            progress=5,
            done_progress=10,
        ) as phase:
            plan = await pipeline.strategy.generate(session.strategy_topic, [], session.breadth)
            session.strategy = plan.strategy
            phase.details = plan.strategy.approach
            phase.metadata = StepMetadata(query_count=len(plan.queries))
        logger.info(f"Research strategy: {plan.strategy.approach}")

        await pipeline.controller.run(session, plan.queries, tracker)

        with tracker.phase(
            "synthesize",
            StepType.SYNTHESIZE,
            "Synthesizing report",
            f"Building a {session.output_format.value} from accumulated findings",
            progress=85,
            done_progress=90,
            metadata=StepMetadata(
                learning_count=len(session.learnings),
                source_count=len(session.citations),
            ),
        ):
            report = await pipeline.synthesizer.synthesize(session)

        with tracker.phase(
            "report",
            StepType.REPORT,
            "Generating recommendations",
            "Deriving actionable recommendations and finalizing",
            progress=90,
            done_progress=100,
        ) as phase:
            recommendations = await pipeline.recommender.generate(session.query, session.learnings)
            phase.metadata = StepMetadata(duration_ms=session.elapsed_ms())

        return _Outputs(report=report, recommendations=recommendations)

    async def run(
        self,
        request: ResearchRequest,
        *,
        progress: Optional[ProgressReporter] = None,
        cancel_event: Optional[asyncio.Event] = None,
        research_id: Optional[str] = None,
    ) -> ResearchResponse:
        session = ResearchSession.from_request(request)
        if research_id:
            session.id = research_id
        tracker = StepTracker(session.id, progress)
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            research_id=session.id,
            query=session.query[:100],
            depth=session.depth,
            breadth=session.breadth,
        )

        task = asyncio.create_task(self._execute(session, tracker))
        waiters: set[asyncio.Future] = {task}
        cancel_waiter: Optional[asyncio.Task] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_waiter)

        timeout = self.timeout_seconds if self.timeout_seconds and self.timeout_seconds > 0 else None
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            with suppress(asyncio.CancelledError):
                await asyncio.shield(self._abandon(task))
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        error: Optional[str] = None
        outputs: Optional[_Outputs] = None
        if task in done:
            exc = task.exception()
            if exc is None:
                outputs = task.result()
            else:
                error = str(self._to_failure(exc, tracker))
                logger.opt(exception=exc).error(f"Research {session.id} failed: {error}")
        else:
            reason = (
                "Research cancelled"
                if cancel_event is not None and cancel_event.is_set()
                else f"Research timed out after {timeout:g}s"
            )
            await self._abandon(task)
            error = reason
            logger.warning(f"{reason} ({session.id}); returning partial results")

        session.steps = tracker.steps
        if outputs is not None:
            session.finish(SessionStatus.COMPLETED)
            response: ResearchResponse = self._build_result(session, outputs)
        else:
            session.finish(SessionStatus.FAILED, error or "Unknown error occurred")
            response = self._build_failure(session)

        log_service.log_event(
            event_type="research_finished",
            message=f"Research {session.status.value}",
            research_id=session.id,
            duration_ms=session.elapsed_ms(),
            learnings=len(session.learnings),
            citations=len(session.citations),
        )
        return response

    @staticmethod
    async def _abandon(task: asyncio.Task) -> None:
        """Cancel the session task and wait for its phases to unwind."""
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.warning(f"Abandoned research task raised while unwinding: {exc}")

    @staticmethod
    def _to_failure(exc: BaseException, tracker: StepTracker) -> SessionFailure:
        if isinstance(exc, SessionFailure):
            return exc
        failed = next(
            (s for s in reversed(tracker.steps) if s.status is StepStatus.FAILED), None
        )
        phase = failed.id if failed else "session"
        return SessionFailure(phase, str(exc) or exc.__class__.__name__)

    @staticmethod
    def _build_result(session: ResearchSession, outputs: _Outputs) -> ResearchResult:
        ranked = sorted(session.citations, key=lambda c: c.relevance, reverse=True)
        return ResearchResult(
            research_id=session.id,
            original_query=session.query,
            research_strategy=session.strategy,
            total_sources=len(session.visited_urls),
            unique_sources=len(session.unique_urls),
            key_learnings=session.learnings[:KEY_LEARNINGS_LIMIT],
            comprehensive_report=outputs.report,
            citations=ranked[:CITATIONS_LIMIT],
            research_metadata=ResearchMetadata(
                depth_completed=session.depth_completed,
                breadth_completed=session.breadth,
                total_searches=session.total_searches,
                duration_ms=session.elapsed_ms(),
                focus_areas=session.focus_areas,
                time_scope=session.time_scope,
            ),
            recommendations=outputs.recommendations,
            research_steps=session.steps,
        )

    @staticmethod
    def _build_failure(session: ResearchSession) -> ResearchFailure:
        return ResearchFailure(
            research_id=session.id,
            error=session.error or "Unknown error occurred",
            partial_results=PartialResults(
                learnings=list(session.learnings),
                citations=list(session.citations),
                duration_ms=session.elapsed_ms(),
            ),
            research_steps=session.steps,
        )

    async def research(
        self,
        request: ResearchRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[SSEEvent, None]:
        """Stream step events live, then the final response event."""
        reporter = QueueProgressReporter()
        research_id = uuid4().hex
        run_task = asyncio.create_task(
            self.run(
                request, progress=reporter, cancel_event=cancel_event, research_id=research_id
            )
        )
        yield streaming.research_started(
            research_id, request.query, depth=request.depth, breadth=request.breadth
        )

        get_task: Optional[asyncio.Task] = None
        try:
            while True:
                get_task = asyncio.create_task(reporter.queue.get())
                done, _ = await asyncio.wait(
                    {get_task, run_task}, return_when=asyncio.FIRST_COMPLETED
                )
                if get_task in done:
                    yield streaming.research_step(get_task.result())
                    continue
                get_task.cancel()
                break

            while not reporter.queue.empty():
                yield streaming.research_step(reporter.queue.get_nowait())

            response = run_task.result()
            if isinstance(response, ResearchResult):
                yield streaming.research_complete(response)
            else:
                yield streaming.research_failed(response)
        finally:
            if get_task is not None and not get_task.done():
                get_task.cancel()
            if not run_task.done():
                run_task.cancel()
                with suppress(asyncio.CancelledError):
                    await run_task
