"""Exceptions raised by the research pipeline."""


class DeepResearchError(Exception):
    """Base exception for deep research errors."""

    pass


class ConfigurationError(DeepResearchError):
    """Raised when a provider credential or setting is missing."""

    pass


class ProviderError(DeepResearchError):
    """Raised when the search provider or generation service call fails."""

    pass


class StructuredOutputError(DeepResearchError):
    """Raised when generated output still violates its schema after retries."""

    def __init__(self, message: str, *, attempts: int = 0, raw_text: str = ""):
        super().__init__(message)
        self.attempts = attempts
        self.raw_text = raw_text


class SessionFailure(DeepResearchError):
    """Raised when a phase-level error aborts a research session."""

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase} failed: {message}")
        self.phase = phase
