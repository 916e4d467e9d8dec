"""LLM provider implementations."""

from .base import BaseLLMProvider, GenerationRequest, LLMResponse, ProviderConfig
from .gemini import GeminiProvider, build_request_body, parse_response

__all__ = [
    "BaseLLMProvider",
    "GenerationRequest",
    "LLMResponse",
    "ProviderConfig",
    "GeminiProvider",
    "build_request_body",
    "parse_response",
]
