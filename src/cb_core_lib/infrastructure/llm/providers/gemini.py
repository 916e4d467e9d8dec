"""
Google Gemini provider.

POST {base_url}/models/{model}:generateContent?key=... with aiohttp. Request
and response bodies are built and read by the two module functions below so
they can be checked without a network.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from cb_core_lib.exceptions import RemoteUnavailable

from .base import BaseLLMProvider, GenerationRequest, LLMResponse, ProviderConfig

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


def build_request_body(
    request: GenerationRequest,
    safety_settings: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    generation_config: Dict[str, Any] = {
        "temperature": request.temperature,
        "maxOutputTokens": request.max_tokens,
    }
    if request.stop_sequences:
        generation_config["stopSequences"] = list(request.stop_sequences)
    return {
        "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
        "generationConfig": generation_config,
        "safetySettings": safety_settings if safety_settings is not None else DEFAULT_SAFETY_SETTINGS,
    }


def parse_response(data: Dict[str, Any], model: str) -> LLMResponse:
    """Join the text parts of the first candidate.

    A prompt blocked by the safety filters comes back without candidates;
    its blockReason is reported as the finish reason.
    """
    candidates = data.get("candidates") or []
    if not candidates:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        return LLMResponse(content="", provider="gemini", model=model, finish_reason=block_reason)

    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    usage = data.get("usageMetadata") or {}
    return LLMResponse(
        content="".join(part.get("text", "") for part in parts),
        provider="gemini",
        model=model,
        tokens_used=usage.get("totalTokenCount", 0),
        finish_reason=candidate.get("finishReason"),
    )


class GeminiProvider(BaseLLMProvider):
    """Gemini over its REST API"""

    def __init__(
        self,
        config: ProviderConfig,
        safety_settings: Optional[List[Dict[str, str]]] = None,
    ):
        super().__init__(config)
        self.safety_settings = safety_settings

    @property
    def provider_name(self) -> str:
        return "gemini"

    def is_available(self) -> bool:
        return super().is_available() and bool(self.config.base_url)

    async def _complete(self, request: GenerationRequest) -> LLMResponse:
        url = f"{self.config.base_url.rstrip('/')}/models/{request.model}:generateContent"
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            ) as session:
                async with session.post(
                    url,
                    params={"key": self.config.api_key},
                    json=build_request_body(request, self.safety_settings),
                ) as response:
                    if response.status != 200:
                        detail = await response.text()
                        logger.warning(f"Gemini {request.model} answered {response.status}")
                        raise RemoteUnavailable(
                            f"Gemini request failed with status {response.status}: {detail[:200]}",
                            context={"status": response.status, "model": request.model},
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteUnavailable(
                f"Gemini unreachable: {e}",
                context={"model": request.model},
            ) from e

        return parse_response(data, request.model)
