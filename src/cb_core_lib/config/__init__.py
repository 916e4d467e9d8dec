"""Settings Module

Environment-driven configuration for the store, auth, LLM and scheduling clients.
"""

from .settings import (
    PortalSettings,
    StoreSettings,
    AuthSettings,
    LLMSettings,
    SchedulingSettings,
    ChatSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "PortalSettings",
    "StoreSettings",
    "AuthSettings",
    "LLMSettings",
    "SchedulingSettings",
    "ChatSettings",
    "get_settings",
    "reset_settings",
]
