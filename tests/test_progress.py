from __future__ import annotations

import asyncio

import pytest

from deep_research.models.research import StepMetadata, StepStatus, StepType
from deep_research.services.progress import (
    CollectingProgressReporter,
    ProgressReporter,
    QueueProgressReporter,
    StepTracker,
)


def test_reporters_satisfy_protocol():
    assert isinstance(CollectingProgressReporter(), ProgressReporter)
    assert isinstance(QueueProgressReporter(), ProgressReporter)


def test_phase_marks_step_completed_with_details():
    reporter = CollectingProgressReporter()
    tracker = StepTracker("s1", reporter)

    with tracker.phase(
        "strategy", StepType.STRATEGY, "Plan", progress=5, done_progress=10,
        metadata=StepMetadata(depth=2),
    ) as phase:
        phase.details = "approach"
        phase.metadata = StepMetadata(query_count=3)

    statuses = [e.status for e in reporter.events]
    assert statuses == [StepStatus.IN_PROGRESS, StepStatus.COMPLETED]
    final = tracker.steps[0]
    assert final.progress == 10
    assert final.details == "approach"
    assert final.metadata.depth == 2
    assert final.metadata.query_count == 3


def test_phase_marks_step_failed_and_reraises():
    tracker = StepTracker("s1")
    with pytest.raises(ValueError):
        with tracker.phase("synthesize", StepType.SYNTHESIZE, "Report"):
            raise ValueError("model unavailable")

    step = tracker.steps[0]
    assert step.status is StepStatus.FAILED
    assert step.details == "model unavailable"


def test_timestamps_strictly_increase():
    reporter = CollectingProgressReporter()
    tracker = StepTracker("s1", reporter)
    for idx in range(20):
        tracker.start(f"step-{idx}", StepType.SEARCH, "Search")
        tracker.advance(f"step-{idx}", StepStatus.COMPLETED)

    stamps = [e.timestamp for e in reporter.events]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))


def test_status_cannot_regress():
    tracker = StepTracker("s1")
    tracker.start("a", StepType.ANALYZE, "Analyze")
    tracker.advance("a", StepStatus.IN_PROGRESS, progress=30)
    tracker.advance("a", StepStatus.COMPLETED)

    with pytest.raises(ValueError):
        tracker.advance("a", StepStatus.IN_PROGRESS)
    with pytest.raises(ValueError):
        tracker.advance("a", StepStatus.FAILED)


def test_duplicate_step_id_rejected():
    tracker = StepTracker("s1")
    tracker.start("a", StepType.ANALYZE, "Analyze")
    with pytest.raises(ValueError):
        tracker.start("a", StepType.ANALYZE, "Analyze again")


def test_steps_are_snapshots():
    reporter = CollectingProgressReporter()
    tracker = StepTracker("s1", reporter)
    tracker.start("a", StepType.SEARCH, "Search")
    tracker.steps[0].title = "mutated"
    reporter.events[0].title = "mutated too"

    assert tracker.steps[0].title == "Search"


def test_failing_reporter_does_not_break_tracking():
    class ExplodingReporter:
        def emit(self, step):
            raise RuntimeError("socket closed")

    tracker = StepTracker("s1", ExplodingReporter())
    with tracker.phase("init", StepType.STRATEGY, "Init"):
        pass

    assert tracker.steps[0].status is StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_queue_reporter_enqueues_in_order():
    reporter = QueueProgressReporter(asyncio.Queue())
    tracker = StepTracker("s1", reporter)
    with tracker.phase("init", StepType.STRATEGY, "Init"):
        pass

    first = await reporter.queue.get()
    second = await reporter.queue.get()
    assert (first.status, second.status) == (StepStatus.IN_PROGRESS, StepStatus.COMPLETED)
