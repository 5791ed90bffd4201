from __future__ import annotations

from deep_research.agents.orchestrator import ResearchOrchestrator


def get_orchestrator() -> ResearchOrchestrator:
    """Orchestrator wired to the configured LLM and search providers."""
    return ResearchOrchestrator()
