"""Video-call scheduling models.

A VideoCallSchedule is one negotiation thread: the requester proposes up to
three absolute instants, the responder (the other case participant) confirms
exactly one of them.

Lifecycle Flow:
  PROPOSED → CONFIRMED
           ↘ CANCELLED (withdrawn before confirmation)

COMPLETED is part of the taxonomy but no operation reaches it.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from cb_core_lib.models.common import camel_alias, ensure_utc, new_id, optional_utc

MAX_PROPOSED_SLOTS = 3


class ScheduleStatus(str, Enum):
    PROPOSED = "Proposed"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"

    @property
    def is_open(self) -> bool:
        """Awaiting the responder's decision"""
        return self == ScheduleStatus.PROPOSED


class VideoCallSchedule(BaseModel):
    """
    One proposed meeting between the two case participants.

    Invariants:
    - 1 to 3 distinct proposed instants, kept in proposal order
    - confirmed_slot is set iff status is CONFIRMED
    - confirmed_slot, when set, is one of proposed_slots
    - requester and responder differ
    """

    id: str = Field(default_factory=lambda: new_id("VC"), min_length=1)

    requester_id: str = Field(min_length=1)

    responder_id: str = Field(min_length=1)

    proposed_slots: List[datetime] = Field(
        min_length=1,
        max_length=MAX_PROPOSED_SLOTS,
        description="Absolute instants, independent of any display timezone",
    )

    status: ScheduleStatus = Field(default=ScheduleStatus.PROPOSED)

    confirmed_slot: Optional[datetime] = Field(default=None)

    @field_validator('proposed_slots')
    @classmethod
    def slots_are_utc(cls, v):
        slots = [ensure_utc(slot) for slot in v]
        if len(set(slots)) != len(slots):
            raise ValueError("proposed_slots must not repeat the same instant")
        return slots

    @field_validator('confirmed_slot')
    @classmethod
    def confirmed_is_utc(cls, v):
        return optional_utc(v)

    @model_validator(mode='after')
    def validate_parties(self) -> 'VideoCallSchedule':
        if self.requester_id == self.responder_id:
            raise ValueError("requester and responder must be different participants")
        return self

    @model_validator(mode='after')
    def validate_confirmation(self) -> 'VideoCallSchedule':
        if self.status == ScheduleStatus.CONFIRMED:
            if self.confirmed_slot is None:
                raise ValueError("CONFIRMED schedule requires confirmed_slot")
            if self.confirmed_slot not in self.proposed_slots:
                raise ValueError("confirmed_slot must be one of proposed_slots")
        elif self.confirmed_slot is not None:
            raise ValueError(
                f"confirmed_slot can only be set when status is CONFIRMED (current: {self.status.value})"
            )
        return self

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.responder_id)

    class Config:
        alias_generator = camel_alias
        populate_by_name = True
