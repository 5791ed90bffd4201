from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from deep_research.models.research import (
    Citation,
    OutputFormat,
    ResearchStep,
    ResearchStrategy,
    SessionStatus,
    TimeScope,
)
from deep_research.models.schemas import ResearchRequest


@dataclass
class ResearchSession:
    """Accumulated state of one research run.

    ``learnings``, ``citations`` and ``visited_urls`` are append-only and are
    written only by ``merge_level`` after a depth level has joined.
    """

    query: str
    depth: int
    breadth: int
    focus_areas: list[str] = field(default_factory=list)
    time_scope: TimeScope = TimeScope.COMPREHENSIVE
    output_format: OutputFormat = OutputFormat.DETAILED_REPORT
    id: str = field(default_factory=lambda: uuid4().hex)
    status: SessionStatus = SessionStatus.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    learnings: list[str] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    visited_urls: list[str] = field(default_factory=list)
    steps: list[ResearchStep] = field(default_factory=list)
    strategy: Optional[ResearchStrategy] = None
    total_searches: int = 0
    depth_completed: int = 0
    error: Optional[str] = None
    _t0: float = field(default_factory=time.monotonic, repr=False)

    @classmethod
    def from_request(cls, request: ResearchRequest) -> "ResearchSession":
        return cls(
            query=request.query,
            depth=request.depth,
            breadth=request.breadth,
            focus_areas=list(request.focus_areas),
            time_scope=request.time_scope,
            output_format=request.output_format,
        )

    @property
    def strategy_topic(self) -> str:
        if self.focus_areas:
            return f"{self.query}. Focus specifically on: {', '.join(self.focus_areas)}"
        return self.query

    @property
    def unique_urls(self) -> list[str]:
        return list(dict.fromkeys(self.visited_urls))

    @property
    def is_terminal(self) -> bool:
        return self.status is not SessionStatus.RUNNING

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._t0) * 1000)

    def recent_learnings(self, count: int = 5) -> list[str]:
        return self.learnings[-count:] if count > 0 else []

    def merge_level(
        self,
        *,
        learnings: list[str],
        urls: list[str],
        citations: list[Citation],
        searches: int,
    ) -> None:
        """Append one depth level's results in query submission order."""
        if self.is_terminal:
            raise RuntimeError(f"Session {self.id} is already {self.status.value}")
        self.learnings.extend(learnings)
        self.visited_urls.extend(urls)
        self.citations.extend(citations)
        self.total_searches += searches
        self.depth_completed += 1

    def finish(self, status: SessionStatus, error: Optional[str] = None) -> None:
        if status is SessionStatus.RUNNING:
            raise ValueError("A session can only finish in a terminal status")
        if self.is_terminal:
            raise RuntimeError(f"Session {self.id} status already set to {self.status.value}")
        self.status = status
        self.error = error
