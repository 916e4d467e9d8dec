"""
Shared data models for CareBridge.

This package provides the Pydantic models exchanged between the domain
operations, the snapshot sync adapter and the portal facade.
"""

from cb_core_lib.models.case import (
    # Core case model
    Case,
    CaseStatus,
    CaseStatusTransition,
    VALID_TRANSITIONS,
    is_valid_transition,

    # Chat
    ChatMessage,
    Attachment,
    AttachmentKind,
)
from cb_core_lib.models.scheduling import (
    VideoCallSchedule,
    ScheduleStatus,
    MAX_PROPOSED_SLOTS,
)
from cb_core_lib.models.people import (
    Patient,
    PhysicianProfile,
    Jurisdiction,
    Specialty,
    Gender,
    Availability,
    REFERRER_JURISDICTION,
    SPECIALIST_JURISDICTION,
)
from cb_core_lib.models.common import (
    utc_now,
    ensure_utc,
    parse_utc_timestamp,
)

__all__ = [
    # Core case
    "Case", "CaseStatus", "CaseStatusTransition", "VALID_TRANSITIONS", "is_valid_transition",
    # Chat
    "ChatMessage", "Attachment", "AttachmentKind",
    # Scheduling
    "VideoCallSchedule", "ScheduleStatus", "MAX_PROPOSED_SLOTS",
    # People
    "Patient", "PhysicianProfile", "Jurisdiction", "Specialty", "Gender", "Availability",
    "REFERRER_JURISDICTION", "SPECIALIST_JURISDICTION",
    # Timestamps
    "utc_now", "ensure_utc", "parse_utc_timestamp",
]
