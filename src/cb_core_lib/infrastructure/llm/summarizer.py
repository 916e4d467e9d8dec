"""
Patient record summarization for specialist consultations.

The summarizer never raises for backend trouble: callers get either a
SummarySuccess with the generated text or a SummaryFailure saying why there
is none, and decide what to show.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from cb_core_lib.exceptions import RemoteUnavailable
from cb_core_lib.models import Patient

from .providers import BaseLLMProvider, GeminiProvider, ProviderConfig

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SummarySuccess:
    text: str
    model: str = ""

    ok = True


@dataclass(frozen=True)
class SummaryFailure:
    reason: str
    kind: FailureKind = FailureKind.UNAVAILABLE

    ok = False


SummaryResult = Union[SummarySuccess, SummaryFailure]


SUMMARY_PROMPT = """\
You are a helpful medical assistant. Your task is to summarize a patient's record for a consultation with a specialist.
The summary should be concise, professional, and highlight the most critical information for the specialist.
Structure the summary into the following sections:
- Patient Profile: A brief one-liner.
- Key Medical History: Bullet points of relevant history.
- Current Medications: List of current medications.
- Physician's Notes / Reason for Consultation: A clear summary of the primary doctor's observations and the reason for the referral.

Here is the patient data:
- Name: {name}
- Age: {age}
- Gender: {gender}
- Blood Type: {blood_type}
- Medical History: {medical_history}
- Current Medications: {current_medications}
- Doctor's Notes: {doctor_notes}

Please generate the summary now.
"""


def build_summary_prompt(patient: Patient) -> str:
    return SUMMARY_PROMPT.format(
        name=patient.name,
        age=patient.age,
        gender=patient.gender.value,
        blood_type=patient.blood_type,
        medical_history=", ".join(patient.medical_history),
        current_medications=", ".join(patient.current_medications),
        doctor_notes=patient.doctor_notes,
    )


class PatientSummarizer:
    """Generates referral summaries of patient records with an LLM provider."""

    def __init__(
        self,
        provider: Optional[BaseLLMProvider],
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        if provider is None or not provider.is_available():
            logger.warning("LLM provider not configured; patient summaries are disabled")

    @classmethod
    def from_settings(cls, settings) -> "PatientSummarizer":
        """Build from an LLMSettings instance; no API key means no provider."""
        if settings.api_key is None:
            return cls(provider=None)

        if settings.provider != "gemini":
            raise ValueError(f"Unsupported LLM provider: {settings.provider}")

        provider = GeminiProvider(ProviderConfig(
            name=settings.provider,
            api_key=settings.api_key.get_secret_value(),
            base_url=settings.base_url,
            models=[settings.model],
            timeout=settings.request_timeout,
        ))
        return cls(
            provider=provider,
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )

    @property
    def configured(self) -> bool:
        return self.provider is not None and self.provider.is_available()

    async def summarize(self, patient: Patient) -> SummaryResult:
        if not self.configured:
            return SummaryFailure(
                reason="AI Service is not configured. Please ensure the API key is set.",
                kind=FailureKind.NOT_CONFIGURED,
            )

        try:
            response = await self.provider.generate(
                build_summary_prompt(patient),
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except RemoteUnavailable as e:
            logger.error(f"Summary generation for patient {patient.id} failed: {e}")
            return SummaryFailure(
                reason=f"Could not generate summary. The AI service may be unavailable. Details: {e}",
            )

        logger.info(
            f"Generated summary for patient {patient.id} with {response.model} "
            f"in {response.response_time_ms}ms"
        )
        return SummarySuccess(text=response.content, model=response.model)
