"""Progress reporting for research sessions.

``StepTracker`` owns the lifecycle of every ``ResearchStep`` in a session:
it stamps strictly increasing timestamps, refuses status regressions, logs
each transition and forwards a snapshot to the session's ``ProgressReporter``.
Reporters are an observability side channel; one that raises is logged and
otherwise ignored.
"""
from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional, Protocol, runtime_checkable

from loguru import logger

from deep_research.models.research import (
    ResearchStep,
    StepMetadata,
    StepStatus,
    StepType,
)
from deep_research.services import logger as log_service


@runtime_checkable
class ProgressReporter(Protocol):
    def emit(self, step: ResearchStep) -> None: ...


class NullProgressReporter:
    def emit(self, step: ResearchStep) -> None:
        return None


class CollectingProgressReporter:
    """Keeps every emitted snapshot in order."""

    def __init__(self) -> None:
        self.events: list[ResearchStep] = []

    def emit(self, step: ResearchStep) -> None:
        self.events.append(step)


class QueueProgressReporter:
    """Feeds snapshots to an unbounded queue for live streaming."""

    def __init__(self, queue: Optional[asyncio.Queue] = None) -> None:
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    def emit(self, step: ResearchStep) -> None:
        self.queue.put_nowait(step)


class StepTracker:
    def __init__(self, session_id: str, reporter: Optional[ProgressReporter] = None):
        self.session_id = session_id
        self.reporter: ProgressReporter = reporter or NullProgressReporter()
        self._steps: dict[str, ResearchStep] = {}
        self._last_ts: Optional[datetime] = None

    @property
    def steps(self) -> list[ResearchStep]:
        """Latest state of every step, in creation order."""
        return [step.model_copy(deep=True) for step in self._steps.values()]

    def _next_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _publish(self, step: ResearchStep) -> None:
        log_service.log_research_step(
            self.session_id,
            step.id,
            step.status.value,
            step.metadata.model_dump(exclude_none=True) if step.metadata else None,
        )
        try:
            self.reporter.emit(step.model_copy(deep=True))
        except Exception as exc:
            logger.warning(f"Progress reporter failed on step {step.id}: {exc}")

    def start(
        self,
        step_id: str,
        step_type: StepType,
        title: str,
        description: str = "",
        *,
        progress: Optional[int] = None,
        metadata: Optional[StepMetadata] = None,
    ) -> ResearchStep:
        if step_id in self._steps:
            raise ValueError(f"Step {step_id} already exists")
        step = ResearchStep(
            id=step_id,
            type=step_type,
            title=title,
            description=description,
            status=StepStatus.IN_PROGRESS,
            timestamp=self._next_timestamp(),
            progress=progress,
            metadata=metadata,
        )
        self._steps[step_id] = step
        self._publish(step)
        return step

    def advance(
        self,
        step_id: str,
        status: StepStatus,
        *,
        progress: Optional[int] = None,
        details: Optional[str] = None,
        metadata: Optional[StepMetadata] = None,
    ) -> ResearchStep:
        current = self._steps[step_id]
        if not current.status.can_advance_to(status):
            raise ValueError(
                f"Step {step_id} cannot move from {current.status.value} to {status.value}"
            )
        updates: dict = {"status": status, "timestamp": self._next_timestamp()}
        if progress is not None:
            updates["progress"] = progress
        if details is not None:
            updates["details"] = details
        if metadata is not None:
            merged = (current.metadata or StepMetadata()).model_dump(exclude_none=True)
            merged.update(metadata.model_dump(exclude_none=True))
            updates["metadata"] = StepMetadata(**merged)
        step = current.model_copy(update=updates)
        self._steps[step_id] = step
        self._publish(step)
        return step

    @contextmanager
    def phase(
        self,
        step_id: str,
        step_type: StepType,
        title: str,
        description: str = "",
        *,
        progress: Optional[int] = None,
        done_progress: Optional[int] = None,
        metadata: Optional[StepMetadata] = None,
    ) -> Iterator["PhaseHandle"]:
        """Run a block as one step: in-progress, then completed or failed."""
        self.start(step_id, step_type, title, description, progress=progress, metadata=metadata)
        handle = PhaseHandle()
        try:
            yield handle
        except BaseException as exc:
            self.advance(
                step_id,
                StepStatus.FAILED,
                details=str(exc) or exc.__class__.__name__,
                metadata=handle.metadata,
            )
            raise
        self.advance(
            step_id,
            StepStatus.COMPLETED,
            progress=done_progress,
            details=handle.details,
            metadata=handle.metadata,
        )


class PhaseHandle:
    """Lets a phase body attach completion details to its step."""

    def __init__(self) -> None:
        self.details: Optional[str] = None
        self.metadata: Optional[StepMetadata] = None
