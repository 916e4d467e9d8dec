import asyncio

from cb_core_lib.config import LLMSettings
from cb_core_lib.exceptions import RemoteUnavailable
from cb_core_lib.infrastructure.llm import (
    FailureKind,
    PatientSummarizer,
    build_summary_prompt,
)
from cb_core_lib.infrastructure.llm.providers import (
    BaseLLMProvider,
    GeminiProvider,
    GenerationRequest,
    LLMResponse,
    ProviderConfig,
    build_request_body,
    parse_response,
)


class StubProvider(BaseLLMProvider):
    def __init__(self, reply=None, error=None):
        super().__init__(ProviderConfig(name="stub", api_key="k", models=["stub-1"]))
        self.reply = reply
        self.error = error
        self.prompts = []

    @property
    def provider_name(self):
        return "stub"

    async def _complete(self, request):
        self.prompts.append(request.prompt)
        if self.error:
            raise self.error
        return LLMResponse(content=self.reply, provider="stub", model=request.model, tokens_used=42)


def test_prompt_lists_patient_record(patient):
    prompt = build_summary_prompt(patient)
    assert "- Name: John Doe" in prompt
    assert "- Blood Type: O+" in prompt
    assert "- Medical History: Hypertension, Type 2 diabetes" in prompt
    assert "- Current Medications: Lisinopril 10mg, Metformin 500mg" in prompt
    assert prompt.rstrip().endswith("Please generate the summary now.")


def test_summary_success(patient):
    provider = StubProvider(reply="Patient Profile: 54-year-old male.")
    result = asyncio.run(PatientSummarizer(provider).summarize(patient))
    assert result.ok
    assert result.text == "Patient Profile: 54-year-old male."
    assert result.model == "stub-1"
    assert "John Doe" in provider.prompts[0]


def test_backend_failure_becomes_result(patient):
    provider = StubProvider(error=RemoteUnavailable("503 from backend"))
    result = asyncio.run(PatientSummarizer(provider).summarize(patient))
    assert not result.ok
    assert result.kind == FailureKind.UNAVAILABLE
    assert "503 from backend" in result.reason


def test_not_configured(patient):
    summarizer = PatientSummarizer(provider=None)
    result = asyncio.run(summarizer.summarize(patient))
    assert not summarizer.configured
    assert result.kind == FailureKind.NOT_CONFIGURED
    assert result.reason == "AI Service is not configured. Please ensure the API key is set."


def test_from_settings():
    assert not PatientSummarizer.from_settings(LLMSettings()).configured

    summarizer = PatientSummarizer.from_settings(LLMSettings(api_key="gemini-key", model="gemini-2.5-pro"))
    assert summarizer.configured
    assert isinstance(summarizer.provider, GeminiProvider)
    assert summarizer.provider.resolve_model() == "gemini-2.5-pro"


def test_blank_output_is_a_failure(patient):
    result = asyncio.run(PatientSummarizer(StubProvider(reply="   \n")).summarize(patient))
    assert not result.ok
    assert result.kind == FailureKind.UNAVAILABLE


def test_gemini_request_body():
    request = GenerationRequest(prompt="Summarize", model="gemini-2.5-flash", max_tokens=512, temperature=0.3)
    body = build_request_body(request)
    assert body["contents"] == [{"role": "user", "parts": [{"text": "Summarize"}]}]
    assert body["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 512}
    assert {s["threshold"] for s in body["safetySettings"]} == {"BLOCK_MEDIUM_AND_ABOVE"}


def test_gemini_response_parsing():
    response = parse_response({
        "candidates": [{
            "content": {"parts": [{"text": "Patient Profile: "}, {"text": "54-year-old male."}]},
            "finishReason": "STOP",
        }],
        "usageMetadata": {"totalTokenCount": 321},
    }, "gemini-2.5-flash")
    assert response.content == "Patient Profile: 54-year-old male."
    assert response.tokens_used == 321
    assert response.finish_reason == "STOP"

    blocked = parse_response({"promptFeedback": {"blockReason": "SAFETY"}}, "gemini-2.5-flash")
    assert blocked.content == ""
    assert blocked.finish_reason == "SAFETY"
