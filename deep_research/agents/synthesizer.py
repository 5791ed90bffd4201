from __future__ import annotations

from typing import Optional

from deep_research.llm_client import StructuredGenerationService
from deep_research.models.research import Citation, FinalReport, OutputFormat
from deep_research.models.session import ResearchSession
from deep_research.services.prompt_store import render_prompt, researcher_system_prompt

REPORT_LEARNINGS_LIMIT = 20
REPORT_CITATIONS_LIMIT = 15

REPORT_LENGTHS = {
    OutputFormat.SUMMARY: "2-3 paragraphs",
    OutputFormat.EXECUTIVE_BRIEF: "1-2 pages",
    OutputFormat.DETAILED_REPORT: "3-5 pages",
}


def select_report_context(
    learnings: list[str], citations: list[Citation]
) -> tuple[list[str], list[Citation]]:
    """First learnings and citations in accumulation order."""
    return learnings[:REPORT_LEARNINGS_LIMIT], citations[:REPORT_CITATIONS_LIMIT]


def format_learnings(learnings: list[str]) -> str:
    return "\n".join(f"{idx + 1}. {learning}" for idx, learning in enumerate(learnings))


def format_citations(citations: list[Citation]) -> str:
    return "\n".join(
        f'[{idx + 1}] {c.title}\n   {c.url}\n   "{c.content}"\n'
        for idx, c in enumerate(citations)
    )


class ReportSynthesizer:
    """Builds the final structured report. Errors propagate to the session."""

    name = "synthesizer"

    def __init__(self, generator: StructuredGenerationService, *, model: Optional[str] = None):
        self.generator = generator
        self.model = model

    def build_prompt(self, session: ResearchSession) -> str:
        learnings, citations = select_report_context(session.learnings, session.citations)
        strategy = session.strategy
        return render_prompt(
            "report.user",
            query=session.query,
            approach=strategy.approach if strategy else "",
            expected_outcomes=strategy.expected_outcomes if strategy else "",
            learnings=format_learnings(learnings) or "none",
            citations=format_citations(citations) or "none",
            sources_count=len(session.citations),
            depth=session.depth,
            focus_areas=", ".join(session.focus_areas) or "General",
            time_scope=session.time_scope.value,
            report_length=REPORT_LENGTHS[session.output_format],
            output_format=session.output_format.value,
        )

    async def synthesize(self, session: ResearchSession) -> FinalReport:
        return await self.generator.generate(
            researcher_system_prompt(),
            self.build_prompt(session),
            FinalReport,
            caller="synthesizer.report",
            model=self.model,
        )
