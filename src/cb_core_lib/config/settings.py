"""Unified settings for CareBridge clients.

Configuration is environment driven so the same code runs against a local
emulator, a staging backend and production without changes.

Environment Variables:
    CAREBRIDGE_STORE_URL                 Document store REST endpoint
    CAREBRIDGE_STORE_TIMEOUT             Store request timeout in seconds
    CAREBRIDGE_STORE_STREAM_PATH         Suffix of the SSE snapshot endpoint
    CAREBRIDGE_AUTH_URL                  Identity REST endpoint
    CAREBRIDGE_AUTH_API_KEY              Identity API key (in-memory accounts when unset)
    CAREBRIDGE_AUTH_TIMEOUT              Identity request timeout in seconds
    CAREBRIDGE_AUTH_REFRESH_BUFFER       Seconds before expiry to refresh the id token
    GEMINI_API_KEY                       Gemini API key (summaries disabled when unset)
    GEMINI_MODEL                         Gemini model name
    GEMINI_BASE_URL                      Gemini REST endpoint
    LLM_REQUEST_TIMEOUT                  LLM request timeout in seconds
    CAREBRIDGE_PRIMARY_ZONE / CAREBRIDGE_PRIMARY_LABEL       First display calendar
    CAREBRIDGE_SECONDARY_ZONE / CAREBRIDGE_SECONDARY_LABEL   Second display calendar
    CAREBRIDGE_MAX_ATTACHMENT_BYTES      Largest inline chat attachment

A .env file in the working directory is loaded on first access.
"""

import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr

logger = logging.getLogger(__name__)


class StoreSettings(BaseModel):
    base_url: str = Field(default="http://localhost:8080/v1")
    request_timeout: float = Field(default=30.0, gt=0)
    stream_path: str = Field(default="stream", description="Suffix of the SSE snapshot endpoint")


class AuthSettings(BaseModel):
    base_url: str = Field(default="https://identitytoolkit.googleapis.com/v1")
    api_key: Optional[SecretStr] = Field(default=None)
    request_timeout: float = Field(default=10.0, gt=0)
    refresh_buffer_seconds: int = Field(default=300, ge=0)


class LLMSettings(BaseModel):
    provider: str = Field(default="gemini")
    api_key: Optional[SecretStr] = Field(default=None)
    base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    model: str = Field(default="gemini-2.5-flash")
    request_timeout: int = Field(default=60, gt=0)
    max_tokens: int = Field(default=1024, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)


class SchedulingSettings(BaseModel):
    """The two fixed reference calendars every instant is rendered in."""

    primary_zone: str = Field(default="Asia/Kolkata")
    primary_label: str = Field(default="IST")
    secondary_zone: str = Field(default="America/New_York")
    secondary_label: str = Field(default="US-ET")


class ChatSettings(BaseModel):
    max_inline_attachment_bytes: int = Field(
        default=5 * 1024 * 1024,
        gt=0,
        description="Attachments are stored inline in the case document",
    )


# (section, field) -> environment variable
ENV_VARS = {
    ("store", "base_url"): "CAREBRIDGE_STORE_URL",
    ("store", "request_timeout"): "CAREBRIDGE_STORE_TIMEOUT",
    ("store", "stream_path"): "CAREBRIDGE_STORE_STREAM_PATH",
    ("auth", "base_url"): "CAREBRIDGE_AUTH_URL",
    ("auth", "api_key"): "CAREBRIDGE_AUTH_API_KEY",
    ("auth", "request_timeout"): "CAREBRIDGE_AUTH_TIMEOUT",
    ("auth", "refresh_buffer_seconds"): "CAREBRIDGE_AUTH_REFRESH_BUFFER",
    ("llm", "api_key"): "GEMINI_API_KEY",
    ("llm", "model"): "GEMINI_MODEL",
    ("llm", "base_url"): "GEMINI_BASE_URL",
    ("llm", "request_timeout"): "LLM_REQUEST_TIMEOUT",
    ("scheduling", "primary_zone"): "CAREBRIDGE_PRIMARY_ZONE",
    ("scheduling", "primary_label"): "CAREBRIDGE_PRIMARY_LABEL",
    ("scheduling", "secondary_zone"): "CAREBRIDGE_SECONDARY_ZONE",
    ("scheduling", "secondary_label"): "CAREBRIDGE_SECONDARY_LABEL",
    ("chat", "max_inline_attachment_bytes"): "CAREBRIDGE_MAX_ATTACHMENT_BYTES",
}


class PortalSettings(BaseModel):
    """Root settings object."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'PortalSettings':
        """Build settings from environment variables; unset variables keep defaults.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        sections: dict = {}
        for (section, field), env_key in ENV_VARS.items():
            value = environ.get(env_key)
            if value is not None and value != "":
                sections.setdefault(section, {})[field] = value
        return cls.model_validate(sections)


# Singleton instance for global access
_settings_instance: Optional[PortalSettings] = None


def get_settings() -> PortalSettings:
    """Get or create the global PortalSettings instance.

    Example:
        ```python
        from cb_core_lib.config import get_settings

        settings = get_settings()
        zone = settings.scheduling.primary_zone
        ```
    """
    global _settings_instance

    if _settings_instance is None:
        load_dotenv()
        _settings_instance = PortalSettings.from_env()
        logger.info(
            f"PortalSettings loaded: store={_settings_instance.store.base_url}, "
            f"llm_provider={_settings_instance.llm.provider}, "
            f"llm_configured={_settings_instance.llm.api_key is not None}"
        )

    return _settings_instance


def reset_settings():
    """Reset the global PortalSettings instance.

    Used for testing or reconfiguration.
    """
    global _settings_instance
    _settings_instance = None
    logger.warning("PortalSettings instance reset")
