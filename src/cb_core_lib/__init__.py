"""CareBridge Core Library

Case lifecycle, chat, video-call scheduling and snapshot sync for the
cross-border physician consultation portal.
"""

__version__ = "0.1.0"

# Export shared models first (no dependencies)
from cb_core_lib.models import (
    Case, CaseStatus, CaseStatusTransition, ChatMessage, Attachment,
    VideoCallSchedule, ScheduleStatus, Patient, PhysicianProfile, Jurisdiction,
)

from cb_core_lib.exceptions import (
    PortalError,
    ValidationError,
    ForbiddenTransition,
    RemoteUnavailable,
    AuthError,
    AuthErrorCode,
)

from cb_core_lib.config import get_settings, reset_settings


# Lazy import for the facade and store clients; they pull in httpx/aiohttp
def __getattr__(name):
    """Lazy import for CasePortal and the store implementations."""
    if name == "CasePortal":
        from cb_core_lib.services import CasePortal
        return CasePortal
    if name in ("InMemoryDocumentStore", "HttpDocumentStore"):
        from cb_core_lib import store
        return getattr(store, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Models
    "Case", "CaseStatus", "CaseStatusTransition", "ChatMessage", "Attachment",
    "VideoCallSchedule", "ScheduleStatus", "Patient", "PhysicianProfile", "Jurisdiction",
    # Errors
    "PortalError", "ValidationError", "ForbiddenTransition", "RemoteUnavailable",
    "AuthError", "AuthErrorCode",
    # Settings
    "get_settings", "reset_settings",
    # Lazy loaded
    "CasePortal", "InMemoryDocumentStore", "HttpDocumentStore",
]
