"""LLM-backed patient summarization."""

from .providers import (
    BaseLLMProvider,
    GeminiProvider,
    GenerationRequest,
    LLMResponse,
    ProviderConfig,
)
from .summarizer import (
    FailureKind,
    PatientSummarizer,
    SummaryFailure,
    SummaryResult,
    SummarySuccess,
    build_summary_prompt,
)

__all__ = [
    "BaseLLMProvider",
    "GeminiProvider",
    "GenerationRequest",
    "LLMResponse",
    "ProviderConfig",
    "FailureKind",
    "PatientSummarizer",
    "SummaryFailure",
    "SummaryResult",
    "SummarySuccess",
    "build_summary_prompt",
]
