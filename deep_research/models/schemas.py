from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field

from deep_research.models.research import (
    Citation,
    FinalReport,
    OutputFormat,
    Recommendations,
    ResearchStep,
    ResearchStrategy,
    TimeScope,
)


# --- Requests ---


class ResearchRequest(BaseModel):
    query: str = Field(..., min_length=1, description="The main research question or topic")
    depth: int = Field(default=2, ge=1, le=4, description="Research depth (1-4)")
    breadth: int = Field(default=3, ge=2, le=6, description="Parallel research paths per level")
    focus_areas: list[str] = Field(default_factory=list)
    time_scope: TimeScope = TimeScope.COMPREHENSIVE
    output_format: OutputFormat = OutputFormat.DETAILED_REPORT


# --- Responses ---


class ResearchMetadata(BaseModel):
    depth_completed: int
    breadth_completed: int
    total_searches: int
    duration_ms: int
    focus_areas: list[str]
    time_scope: TimeScope


class ResearchResult(BaseModel):
    research_id: str
    status: Literal["completed"] = "completed"
    original_query: str
    research_strategy: ResearchStrategy
    total_sources: int
    unique_sources: int
    key_learnings: list[str] = Field(..., max_length=10)
    comprehensive_report: FinalReport
    citations: list[Citation] = Field(..., max_length=20)
    research_metadata: ResearchMetadata
    recommendations: Recommendations
    research_steps: list[ResearchStep]


class PartialResults(BaseModel):
    learnings: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    duration_ms: int = 0


class ResearchFailure(BaseModel):
    research_id: str
    status: Literal["failed"] = "failed"
    error: str = Field(..., min_length=1)
    partial_results: PartialResults
    research_steps: list[ResearchStep] = Field(default_factory=list)


ResearchResponse = Union[ResearchResult, ResearchFailure]
