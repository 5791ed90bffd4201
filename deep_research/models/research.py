"""Core data model of a research session.

Generation schemas (``QueryPlan``, ``LearningExtraction``, ``FinalReport``,
``Recommendations``) double as the JSON Schemas sent to the structured
generation service, so every field carries a description.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class TimeScope(str, Enum):
    RECENT = "recent"
    HISTORICAL = "historical"
    COMPREHENSIVE = "comprehensive"


class OutputFormat(str, Enum):
    SUMMARY = "summary"
    DETAILED_REPORT = "detailed_report"
    EXECUTIVE_BRIEF = "executive_brief"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepType(str, Enum):
    STRATEGY = "strategy"
    SEARCH = "search"
    ANALYZE = "analyze"
    SYNTHESIZE = "synthesize"
    REPORT = "report"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STEP_RANK[self]

    def can_advance_to(self, other: StepStatus) -> bool:
        """Steps only move forward; an in-progress step may be refreshed."""
        if self is StepStatus.IN_PROGRESS and other is StepStatus.IN_PROGRESS:
            return True
        return other.rank > self.rank


_STEP_RANK = {
    StepStatus.PENDING: 0,
    StepStatus.IN_PROGRESS: 1,
    StepStatus.COMPLETED: 2,
    StepStatus.FAILED: 2,
}


# --- Strategy ---


class SearchQuery(BaseModel):
    query: str = Field(..., min_length=1, description="The search query")
    research_goal: str = Field(
        default="",
        description="The specific research goal this query aims to accomplish",
    )
    priority: int = Field(
        ..., ge=1, le=5, description="Priority level (1-5, 5 being highest)"
    )


class ResearchStrategy(BaseModel):
    approach: str = Field(..., description="Overall research approach")
    expected_outcomes: str = Field(..., description="What we expect to discover")


class QueryPlan(BaseModel):
    queries: list[SearchQuery] = Field(..., description="List of search queries")
    research_strategy: Optional[ResearchStrategy] = Field(
        default=None, description="Research strategy and expectations"
    )


# --- Search provider boundary ---


class SearchRequest(BaseModel):
    query: str
    max_results: int = Field(..., ge=1)
    search_depth: Literal["basic", "advanced"] = "basic"
    topic: Literal["general", "news"] = "general"


class SearchResult(BaseModel):
    title: str = ""
    url: str = Field(..., min_length=1)
    content: str = ""
    score: float = 0.0


class SearchResponse(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    answer: Optional[str] = None


# --- Extraction ---


class ExtractedCitation(BaseModel):
    url: str = Field(..., min_length=1, description="URL of the cited search result")
    title: str = Field(..., min_length=1, description="Title of the cited source")
    relevant_quote: str = Field(..., description="Quote or excerpt supporting a learning")
    relevance: int = Field(..., ge=1, le=10, description="Relevance score (1-10)")


class LearningExtraction(BaseModel):
    learnings: list[str] = Field(
        ..., min_length=1, description="Key learnings and insights"
    )
    follow_up_questions: list[str] = Field(
        ..., min_length=1, max_length=3, description="1-3 follow-up questions for deeper research"
    )
    citations: list[ExtractedCitation] = Field(
        default_factory=list, description="Most relevant citations with quotes"
    )


class Citation(BaseModel):
    url: str
    title: str
    content: str
    relevance: int = Field(..., ge=1, le=10)


# --- Report ---


class ConfidenceAssessment(BaseModel):
    score: int = Field(..., ge=1, le=10, description="Overall confidence in findings (1-10)")
    reasoning: str = Field(..., description="Explanation of confidence level")


class FinalReport(BaseModel):
    title: str = Field(..., description="Compelling title for the research report")
    executive_summary: str = Field(..., description="Brief executive summary (2-3 sentences)")
    main_findings: list[str] = Field(..., description="3-5 key findings with supporting evidence")
    detailed_analysis: str = Field(
        ..., description="Comprehensive analysis addressing the research question"
    )
    recommendations: list[str] = Field(
        ..., description="Actionable recommendations based on findings"
    )
    knowledge_gaps: list[str] = Field(..., description="Areas requiring further research")
    confidence_assessment: ConfidenceAssessment


class Recommendations(BaseModel):
    immediate_actions: list[str] = Field(
        default_factory=list, description="Actions that can be taken immediately"
    )
    short_term_strategies: list[str] = Field(
        default_factory=list, description="Strategies for next 1-3 months"
    )
    long_term_initiatives: list[str] = Field(
        default_factory=list, description="Long-term initiatives (6+ months)"
    )
    risk_considerations: list[str] = Field(
        default_factory=list, description="Key risks to consider"
    )
    success_metrics: list[str] = Field(
        default_factory=list, description="How to measure success"
    )


# --- Progress ---


class StepMetadata(BaseModel):
    query_count: Optional[int] = None
    source_count: Optional[int] = None
    depth: Optional[int] = None
    breadth: Optional[int] = None
    learning_count: Optional[int] = None
    duration_ms: Optional[int] = None


class ResearchStep(BaseModel):
    """One observable phase of a session (e.g. ``search-depth-2``)."""

    id: str
    type: StepType
    title: str
    description: str = ""
    status: StepStatus = StepStatus.PENDING
    timestamp: datetime
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    details: Optional[str] = None
    metadata: Optional[StepMetadata] = None
