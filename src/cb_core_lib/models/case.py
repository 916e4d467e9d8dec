"""Case data models.

Key Models:
- Case: one referral collaboration between a referring physician and a specialist
- CaseStatus: lifecycle status (ASSIGNED → IN_PROGRESS → PENDING_REVIEW → CLOSED, ARCHIVED)
- CaseStatusTransition: audit record of one status change
- ChatMessage / Attachment: the append-only chat log of a case

Transition rules (who may move a case, and when) live in
cb_core_lib.core.lifecycle; this module only enforces the structural
invariants every persisted Case must satisfy.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from cb_core_lib.exceptions import ValidationError
from cb_core_lib.models.common import camel_alias, ensure_utc, new_id, optional_utc, utc_now
from cb_core_lib.models.people import Patient, PhysicianProfile
from cb_core_lib.models.scheduling import VideoCallSchedule


# ============================================================
# Status & Lifecycle
# ============================================================

class CaseStatus(str, Enum):
    """
    Case lifecycle status.

    Lifecycle Flow:
      ASSIGNED → IN_PROGRESS → PENDING_REVIEW → CLOSED (terminal)
             ↘______________↗
      any state → ARCHIVED (terminal)

    Terminal States: CLOSED, ARCHIVED (chat becomes read-only)
    """

    ASSIGNED = "Assigned"
    """Initial state, set at case creation."""

    IN_PROGRESS = "In Progress"
    """Work has begun: entered when the first chat message is appended."""

    PENDING_REVIEW = "Pending Review"
    """The specialist has finished their review."""

    CLOSED = "Closed"
    """
    TERMINAL STATE: the referring physician accepted the review.

    closed_at is set at the transition time.
    """

    ARCHIVED = "Archived"
    """TERMINAL STATE: parallel to CLOSED, reachable from every other state."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal"""
        return self in [CaseStatus.CLOSED, CaseStatus.ARCHIVED]


VALID_TRANSITIONS: Dict[CaseStatus, List[CaseStatus]] = {
    CaseStatus.ASSIGNED: [CaseStatus.IN_PROGRESS, CaseStatus.PENDING_REVIEW, CaseStatus.ARCHIVED],
    CaseStatus.IN_PROGRESS: [CaseStatus.PENDING_REVIEW, CaseStatus.ARCHIVED],
    CaseStatus.PENDING_REVIEW: [CaseStatus.CLOSED, CaseStatus.ARCHIVED],
    CaseStatus.CLOSED: [CaseStatus.ARCHIVED],
    CaseStatus.ARCHIVED: [],
}


def is_valid_transition(from_status: CaseStatus, to_status: CaseStatus) -> bool:
    """
    Validate status transition.

    Valid Transitions:
    - ASSIGNED → IN_PROGRESS (first chat message)
    - ASSIGNED | IN_PROGRESS → PENDING_REVIEW
    - PENDING_REVIEW → CLOSED
    - any non-archived state → ARCHIVED

    Invalid:
    - ARCHIVED → *
    - any backward move
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


class CaseStatusTransition(BaseModel):
    """
    Record of one status change.
    Provides audit trail for case lifecycle.
    """

    from_status: CaseStatus = Field(description="Status before transition")

    to_status: CaseStatus = Field(description="Status after transition")

    triggered_at: datetime = Field(
        default_factory=utc_now,
        description="When transition occurred"
    )

    triggered_by: str = Field(
        description="Who triggered: user id or 'system' for implicit transitions",
        min_length=1,
    )

    @field_validator('triggered_at')
    @classmethod
    def triggered_at_utc(cls, v):
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_transition(self):
        """Ensure transition is valid"""
        if not is_valid_transition(self.from_status, self.to_status):
            raise ValueError(f"Invalid transition: {self.from_status.value} → {self.to_status.value}")
        return self

    class Config:
        frozen = True
        alias_generator = camel_alias
        populate_by_name = True


# ============================================================
# Chat
# ============================================================

class AttachmentKind(str, Enum):
    IMAGE = "image"
    FILE = "file"


class Attachment(BaseModel):
    """Binary/text payload bound to exactly one chat message."""

    name: str = Field(min_length=1, max_length=255, description="Display name")

    url: str = Field(
        min_length=1,
        description="Inline data: URL or externally hosted location",
    )

    kind: AttachmentKind = Field(alias="type")

    size: int = Field(ge=0, description="Payload size in bytes")

    @property
    def is_inline(self) -> bool:
        return self.url.startswith("data:")

    class Config:
        frozen = True
        populate_by_name = True


class ChatMessage(BaseModel):
    """
    One entry of a case's chat log.

    Immutable once created. content may be empty only when an attachment
    is present.
    """

    id: str = Field(default_factory=lambda: new_id("M"), min_length=1)

    sender_id: str = Field(min_length=1)

    content: str = Field(default="")

    created_at: datetime = Field(default_factory=utc_now)

    attachment: Optional[Attachment] = Field(default=None)

    @field_validator('created_at')
    @classmethod
    def created_at_utc(cls, v):
        return ensure_utc(v)

    @model_validator(mode='after')
    def content_or_attachment(self) -> 'ChatMessage':
        if not self.content.strip() and self.attachment is None:
            raise ValueError("message needs text content or an attachment")
        return self

    class Config:
        frozen = True
        alias_generator = camel_alias
        populate_by_name = True


# ============================================================
# Core Case Model
# ============================================================

class Case(BaseModel):
    """
    Root case entity.

    The id is assigned by the document store and is never part of the
    stored document body.
    """

    # ============================================================
    # Core Identity
    # ============================================================
    id: Optional[str] = Field(
        default=None,
        description="Document id assigned by the store (None until created)",
    )

    patient: Patient = Field(description="Point-in-time copy of the patient record")

    created_by: PhysicianProfile = Field(
        frozen=True,
        description="Referring physician (jurisdiction A)",
    )

    assigned_to: PhysicianProfile = Field(
        frozen=True,
        description="Consulted specialist (jurisdiction B)",
    )

    summary: str = Field(default="", description="AI-generated summary of the patient record")

    # ============================================================
    # Status
    # ============================================================
    status: CaseStatus = Field(default=CaseStatus.ASSIGNED)

    status_history: List[CaseStatusTransition] = Field(
        default_factory=list,
        description="Complete history of status changes"
    )

    # ============================================================
    # Collaboration
    # ============================================================
    chat: List[ChatMessage] = Field(
        default_factory=list,
        description="Append-only chat log; display order is list order"
    )

    video_calls: List[VideoCallSchedule] = Field(
        default_factory=list,
        description="Negotiation threads, oldest first; never deleted"
    )

    final_report_url: Optional[str] = Field(default=None)

    # ============================================================
    # Timestamps
    # ============================================================
    created_at: datetime = Field(default_factory=utc_now)

    closed_at: Optional[datetime] = Field(
        default=None,
        description="When case reached a terminal state (CLOSED or ARCHIVED)"
    )

    # ============================================================
    # Computed Properties
    # ============================================================
    @property
    def participant_ids(self) -> List[str]:
        return [self.created_by.id, self.assigned_to.id]

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def other_participant(self, user_id: str) -> str:
        """Id of the participant that is not user_id"""
        if user_id == self.created_by.id:
            return self.assigned_to.id
        if user_id == self.assigned_to.id:
            return self.created_by.id
        raise ValueError(f"{user_id} is not a participant of case {self.id}")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def chat_enabled(self) -> bool:
        """New messages may be composed only while the case is not terminal"""
        return not self.is_terminal

    @property
    def time_to_close(self) -> Optional[timedelta]:
        if self.closed_at:
            return self.closed_at - self.created_at
        return None

    def get_schedule(self, schedule_id: str) -> Optional[VideoCallSchedule]:
        for schedule in self.video_calls:
            if schedule.id == schedule_id:
                return schedule
        return None

    def evolve(self, **changes: Any) -> 'Case':
        """Return a validated copy with changes applied; self is untouched."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        try:
            return type(self).model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Case {self.id} would become invalid: {e.errors()[0]['msg']}",
                context={"case_id": self.id, "fields": sorted(changes)},
            ) from e

    # ============================================================
    # Validation
    # ============================================================
    @field_validator('created_at')
    @classmethod
    def created_at_utc(cls, v):
        return ensure_utc(v)

    @field_validator('closed_at')
    @classmethod
    def closed_at_utc(cls, v):
        return optional_utc(v)

    @model_validator(mode='after')
    def validate_status_timestamp_consistency(self) -> 'Case':
        """closed_at is set if and only if status is terminal"""
        if self.status.is_terminal and self.closed_at is None:
            raise ValueError(f"Terminal status {self.status.value} requires closed_at timestamp")
        if not self.status.is_terminal and self.closed_at is not None:
            raise ValueError(
                f"closed_at can only be set when status is Closed or Archived (current: {self.status.value})"
            )
        return self

    @model_validator(mode='after')
    def validate_participants(self) -> 'Case':
        if self.created_by.id == self.assigned_to.id:
            raise ValueError("creator and assignee must be different physicians")
        participants = set(self.participant_ids)
        for schedule in self.video_calls:
            if {schedule.requester_id, schedule.responder_id} != participants:
                raise ValueError(
                    f"video call {schedule.id} must be between the two case participants"
                )
        return self

    @model_validator(mode='after')
    def status_history_ordered(self) -> 'Case':
        history = self.status_history
        for earlier, later in zip(history, history[1:]):
            if earlier.triggered_at > later.triggered_at:
                raise ValueError("Status history must be chronologically ordered")
        return self

    class Config:
        validate_assignment = True
        alias_generator = camel_alias
        populate_by_name = True
