"""
Provider interface for the text-generation backends behind patient summaries.

A provider turns one GenerationRequest into one LLMResponse. The shared
generate() entry point resolves the model, times the call and rejects empty
output, so concrete providers only implement the wire call in _complete().
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from cb_core_lib.exceptions import RemoteUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """One prompt sent to a provider"""

    prompt: str
    model: str
    max_tokens: int
    temperature: float
    stop_sequences: Tuple[str, ...] = ()


@dataclass
class LLMResponse:
    """Text produced by a provider"""

    content: str
    provider: str
    model: str
    tokens_used: int = 0
    response_time_ms: int = 0
    finish_reason: Optional[str] = None


@dataclass
class ProviderConfig:
    """Credentials and model list for one provider"""

    name: str
    api_key: Optional[str] = field(default=None, repr=False)
    base_url: Optional[str] = None
    models: List[str] = field(default_factory=list)
    timeout: int = 30
    default_model: Optional[str] = None

    def __post_init__(self):
        if self.default_model is None and self.models:
            self.default_model = self.models[0]


class BaseLLMProvider(ABC):
    """Abstract base class for summary providers"""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def _complete(self, request: GenerationRequest) -> LLMResponse:
        """Send request to the backend.

        Raises:
            RemoteUnavailable: If the backend cannot be reached or rejects the request
        """
        pass

    def is_available(self) -> bool:
        """Configured with a key and a model to call"""
        return bool(self.config.api_key and self.config.default_model)

    def get_supported_models(self) -> List[str]:
        return list(self.config.models)

    def resolve_model(self, requested: Optional[str] = None) -> str:
        """requested if this provider serves it, else the configured default"""
        if requested and requested in self.config.models:
            return requested
        if self.config.default_model:
            return self.config.default_model
        raise ValueError(f"No model configured for provider {self.provider_name}")

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        stop_sequences: Tuple[str, ...] = (),
    ) -> LLMResponse:
        """Generate text for prompt.

        Returns:
            LLMResponse whose content is stripped and non-empty

        Raises:
            RemoteUnavailable: On backend failure or when no text came back
        """
        request = GenerationRequest(
            prompt=prompt,
            model=self.resolve_model(model),
            max_tokens=max_tokens,
            temperature=temperature,
            stop_sequences=tuple(stop_sequences),
        )

        started = time.monotonic()
        response = await self._complete(request)
        response.response_time_ms = int((time.monotonic() - started) * 1000)

        content = (response.content or "").strip()
        if not content:
            raise RemoteUnavailable(
                f"{self.provider_name} returned no text (finish_reason={response.finish_reason})",
                context={"model": request.model, "finish_reason": response.finish_reason},
            )
        response.content = content

        logger.debug(
            f"{self.provider_name}/{request.model} answered in {response.response_time_ms}ms "
            f"using {response.tokens_used} tokens"
        )
        return response
