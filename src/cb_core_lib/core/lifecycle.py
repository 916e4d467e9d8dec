"""Case state machine.

Pure transition functions over Case: each returns a new Case and never
mutates its input. Role gating is expressed against the two fixed
participants of a case:

    ASSIGNED | IN_PROGRESS → PENDING_REVIEW   assignee only ("my review is done")
    PENDING_REVIEW → CLOSED                  creator only (final acceptance)
    ASSIGNED → IN_PROGRESS                   implicit, on first chat message
    any (except ARCHIVED) → ARCHIVED         either participant

A rejected attempt raises ForbiddenTransition and produces no new state.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from cb_core_lib.exceptions import ForbiddenTransition, ValidationError
from cb_core_lib.models import (
    Case,
    CaseStatus,
    CaseStatusTransition,
    ChatMessage,
    Patient,
    PhysicianProfile,
    ensure_utc,
    is_valid_transition,
    utc_now,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class ActorRole(str, Enum):
    CREATOR = "creator"
    ASSIGNEE = "assignee"
    PARTICIPANT = "participant"
    SYSTEM = "system"


# Who may request a move into each target status
TRANSITION_ROLES: Dict[CaseStatus, ActorRole] = {
    CaseStatus.IN_PROGRESS: ActorRole.SYSTEM,
    CaseStatus.PENDING_REVIEW: ActorRole.ASSIGNEE,
    CaseStatus.CLOSED: ActorRole.CREATOR,
    CaseStatus.ARCHIVED: ActorRole.PARTICIPANT,
}


def opening_message_text(patient: Patient, summary: str) -> str:
    return f"Case created for {patient.name}. Summary: {summary}"


def open_case(
    patient: Patient,
    creator: PhysicianProfile,
    assignee: PhysicianProfile,
    summary: str,
    now: Optional[datetime] = None,
) -> Case:
    """Build a new ASSIGNED case for patient, seeded with one opening message.

    Args:
        patient: Patient record; copied into the case as a snapshot
        creator: Referring physician (must be in the referrer jurisdiction)
        assignee: Specialist (must be in the specialist jurisdiction)
        summary: Summary text shown to the specialist
        now: Creation instant (defaults to current UTC time)

    Returns:
        Case without an id; the store assigns one on create

    Raises:
        ValidationError: If the physicians are not a referrer/specialist pair
    """
    if not creator.is_referrer:
        raise ValidationError(
            f"Cases can only be opened by referring physicians ({creator.country.value} is not eligible)",
            context={"creator_id": creator.id},
        )
    if not assignee.is_specialist:
        raise ValidationError(
            f"Cases can only be assigned to specialists ({assignee.country.value} is not eligible)",
            context={"assignee_id": assignee.id},
        )

    created_at = now or utc_now()
    opening = ChatMessage(
        sender_id=creator.id,
        content=opening_message_text(patient, summary),
        created_at=created_at,
    )
    return Case(
        patient=patient.model_copy(deep=True),
        created_by=creator,
        assigned_to=assignee,
        summary=summary,
        status=CaseStatus.ASSIGNED,
        chat=[opening],
        created_at=created_at,
    )


def role_of(case: Case, actor_id: str) -> Optional[ActorRole]:
    if actor_id == SYSTEM_ACTOR:
        return ActorRole.SYSTEM
    if actor_id == case.created_by.id:
        return ActorRole.CREATOR
    if actor_id == case.assigned_to.id:
        return ActorRole.ASSIGNEE
    return None


def _role_permits(required: ActorRole, actual: Optional[ActorRole]) -> bool:
    if actual is None:
        return False
    if required == ActorRole.PARTICIPANT:
        return actual in (ActorRole.CREATOR, ActorRole.ASSIGNEE)
    return required == actual


def _transition(
    case: Case,
    to_status: CaseStatus,
    actor_id: str,
    now: Optional[datetime] = None,
) -> Case:
    from_status = case.status

    if not is_valid_transition(from_status, to_status):
        raise ForbiddenTransition(
            f"Case cannot move from {from_status.value} to {to_status.value}",
            context={"case_id": case.id, "actor_id": actor_id},
        )

    required = TRANSITION_ROLES[to_status]
    actual = role_of(case, actor_id)
    if not _role_permits(required, actual):
        raise ForbiddenTransition(
            f"Only the {required.value} may move a case to {to_status.value}",
            context={"case_id": case.id, "actor_id": actor_id, "actor_role": actual and actual.value},
        )

    at = ensure_utc(now) if now else utc_now()
    # Clocks differ between participants; history stays ordered
    if case.status_history and at < case.status_history[-1].triggered_at:
        at = case.status_history[-1].triggered_at
    record = CaseStatusTransition(
        from_status=from_status,
        to_status=to_status,
        triggered_at=at,
        triggered_by=actor_id,
    )
    changes = {
        "status": to_status,
        "status_history": [*case.status_history, record],
    }
    if to_status.is_terminal and case.closed_at is None:
        changes["closed_at"] = at

    logger.info(f"Case {case.id}: {from_status.value} → {to_status.value} by {actor_id}")
    return case.evolve(**changes)


def submit_for_review(case: Case, actor_id: str, now: Optional[datetime] = None) -> Case:
    """ASSIGNED | IN_PROGRESS → PENDING_REVIEW, assignee only."""
    return _transition(case, CaseStatus.PENDING_REVIEW, actor_id, now)


def close_case(case: Case, actor_id: str, now: Optional[datetime] = None) -> Case:
    """PENDING_REVIEW → CLOSED, creator only. Sets closed_at."""
    return _transition(case, CaseStatus.CLOSED, actor_id, now)


def archive_case(case: Case, actor_id: str, now: Optional[datetime] = None) -> Case:
    """Move to ARCHIVED; keeps an existing closed_at."""
    return _transition(case, CaseStatus.ARCHIVED, actor_id, now)


def mark_in_progress(case: Case, now: Optional[datetime] = None) -> Case:
    """ASSIGNED → IN_PROGRESS once work begins; unchanged in every other state."""
    if case.status != CaseStatus.ASSIGNED:
        return case
    return _transition(case, CaseStatus.IN_PROGRESS, SYSTEM_ACTOR, now)


def can_chat(case: Case) -> bool:
    return case.chat_enabled


def is_read_only(case: Case) -> bool:
    return not case.chat_enabled


def allowed_transitions(case: Case, actor_id: str) -> List[CaseStatus]:
    """Explicit transitions actor_id may request right now (drives the action buttons)."""
    actual = role_of(case, actor_id)
    return [
        target
        for target, required in TRANSITION_ROLES.items()
        if required != ActorRole.SYSTEM
        and is_valid_transition(case.status, target)
        and _role_permits(required, actual)
    ]
