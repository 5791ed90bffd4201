from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from loguru import logger

from deep_research.agents.extractor import ExtractionResult, LearningExtractor, max_learnings_for_depth
from deep_research.agents.strategy import StrategyGenerator
from deep_research.models.research import Citation, SearchQuery, StepMetadata, StepType
from deep_research.models.session import ResearchSession
from deep_research.services.progress import StepTracker
from deep_research.services.search_executor import QueryOutcome, SearchExecutor

RECENT_LEARNINGS_WINDOW = 5
MIN_LEVEL_BREADTH = 2
DEPTH_PROGRESS_START = 10
DEPTH_PROGRESS_END = 85
FOLLOW_UPS_IN_DETAILS = 5


def level_breadth(breadth: int, depth_index: int) -> int:
    """Queries per level shrink with depth, but never below two."""
    return max(MIN_LEVEL_BREADTH, breadth // depth_index)


def depth_progress(depth_index: int, total_depth: int, fraction: float) -> int:
    span = (DEPTH_PROGRESS_END - DEPTH_PROGRESS_START) / max(total_depth, 1)
    return int(DEPTH_PROGRESS_START + span * (depth_index - 1 + fraction))


@dataclass
class LevelResult:
    depth: int
    queries: list[SearchQuery]
    outcomes: list[QueryOutcome | None]
    extractions: list[ExtractionResult]

    @property
    def successful_searches(self) -> int:
        return sum(1 for o in self.outcomes if o is not None)

    def merged(self) -> tuple[list[str], list[str], list[Citation]]:
        """Flatten in query submission order."""
        learnings: list[str] = []
        urls: list[str] = []
        citations: list[Citation] = []
        for outcome, extraction in zip(self.outcomes, self.extractions):
            learnings.extend(extraction.learnings)
            citations.extend(extraction.citations)
            if outcome is not None:
                urls.extend(outcome.urls)
        return learnings, urls, citations


class DepthController:
    """Drives the depth x breadth iteration for one session."""

    def __init__(
        self,
        strategy: StrategyGenerator,
        executor: SearchExecutor,
        extractor: LearningExtractor,
    ):
        self.strategy = strategy
        self.executor = executor
        self.extractor = extractor

    async def run(
        self,
        session: ResearchSession,
        initial_queries: list[SearchQuery],
        tracker: StepTracker,
    ) -> None:
        for depth_index in range(1, session.depth + 1):
            breadth_d = level_breadth(session.breadth, depth_index)
            if depth_index == 1:
                queries = initial_queries
            else:
                plan = await self.strategy.generate(
                    session.query,
                    session.recent_learnings(RECENT_LEARNINGS_WINDOW),
                    breadth_d,
                )
                queries = plan.queries

            logger.info(
                f"Depth {depth_index}/{session.depth}: processing {len(queries)} queries"
            )
            level = await self._search_level(session, queries, depth_index, breadth_d, tracker)
            self._analyze_level(session, level, tracker)
            logger.info(
                f"Completed depth {depth_index}: {len(session.learnings)} total learnings"
            )

    async def _search_level(
        self,
        session: ResearchSession,
        queries: list[SearchQuery],
        depth_index: int,
        breadth_d: int,
        tracker: StepTracker,
    ) -> LevelResult:
        t0 = time.monotonic()
        with tracker.phase(
            f"search-depth-{depth_index}",
            StepType.SEARCH,
            f"Searching (depth {depth_index}/{session.depth})",
            "; ".join(q.query for q in queries),
            progress=depth_progress(depth_index, session.depth, 0.0),
            done_progress=depth_progress(depth_index, session.depth, 0.5),
            metadata=StepMetadata(
                query_count=len(queries), depth=depth_index, breadth=breadth_d
            ),
        ) as phase:
            outcomes = await self.executor.execute_many(queries, depth_index, session.time_scope)
            max_learnings = max_learnings_for_depth(depth_index)
            extractions = await asyncio.gather(
                *(
                    self.extractor.extract(
                        query.query,
                        outcome.response.results if outcome is not None else [],
                        max_learnings,
                    )
                    for query, outcome in zip(queries, outcomes)
                )
            )
            level = LevelResult(
                depth=depth_index,
                queries=queries,
                outcomes=outcomes,
                extractions=list(extractions),
            )
            phase.metadata = StepMetadata(duration_ms=int((time.monotonic() - t0) * 1000))
            phase.details = (
                f"{level.successful_searches}/{len(queries)} searches returned results"
            )
        return level

    def _analyze_level(
        self,
        session: ResearchSession,
        level: LevelResult,
        tracker: StepTracker,
    ) -> None:
        with tracker.phase(
            f"analyze-depth-{level.depth}",
            StepType.ANALYZE,
            f"Analyzing findings (depth {level.depth}/{session.depth})",
            f"Merging learnings and citations from {len(level.queries)} queries",
            progress=depth_progress(level.depth, session.depth, 0.5),
            done_progress=depth_progress(level.depth, session.depth, 1.0),
            metadata=StepMetadata(depth=level.depth),
        ) as phase:
            learnings, urls, citations = level.merged()
            session.merge_level(
                learnings=learnings,
                urls=urls,
                citations=citations,
                searches=level.successful_searches,
            )
            follow_ups = [q for e in level.extractions for q in e.follow_up_questions]
            phase.metadata = StepMetadata(source_count=len(urls), learning_count=len(learnings))
            if follow_ups:
                phase.details = "Open questions: " + " | ".join(follow_ups[:FOLLOW_UPS_IN_DETAILS])
