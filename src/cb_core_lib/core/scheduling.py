"""Cross-timezone video-call scheduling negotiation.

Protocol (two parties, asynchronous):

1. Propose: the requester submits 1-3 candidate instants. Each candidate is
   captured from a wall-clock input in the requester's own timezone and
   converted to an absolute instant before it is stored.
2. Confirm: the responder (the other participant) picks exactly one of the
   candidates. Nobody else may confirm, a schedule is confirmed at most once,
   and the chosen instant must be one of the candidates.
3. Cancel: either participant may withdraw a proposal that has not been
   confirmed yet. Unconfirmed proposals never expire on their own.

Display: every instant is rendered in both fixed reference calendars, e.g.
"Mar 15, 2024, 3:00 PM (IST) / Mar 15, 2024, 5:30 AM (US-ET)". Rendering
depends only on the instant and the configured zones, never on the locale
or timezone of the process doing the rendering.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cb_core_lib.config import SchedulingSettings
from cb_core_lib.exceptions import ForbiddenTransition, ValidationError
from cb_core_lib.models import (
    MAX_PROPOSED_SLOTS,
    Case,
    ScheduleStatus,
    VideoCallSchedule,
    ensure_utc,
    parse_utc_timestamp,
)

logger = logging.getLogger(__name__)

SlotInput = Union[datetime, str, None]

# Month abbreviations are spelled out so output does not depend on the C locale.
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# ============================================================
# Display
# ============================================================

def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name}", context={"zone": name}) from e


@dataclass(frozen=True)
class DisplayZone:
    """One fixed reference calendar."""

    zone_name: str
    label: str

    @property
    def zone(self) -> ZoneInfo:
        return load_zone(self.zone_name)


@dataclass(frozen=True)
class TimezonePair:
    """The two calendars every instant is rendered in, in display order."""

    primary: DisplayZone
    secondary: DisplayZone

    @classmethod
    def from_settings(cls, settings: SchedulingSettings) -> 'TimezonePair':
        return cls(
            primary=DisplayZone(settings.primary_zone, settings.primary_label),
            secondary=DisplayZone(settings.secondary_zone, settings.secondary_label),
        )


DEFAULT_ZONES = TimezonePair.from_settings(SchedulingSettings())


def format_instant(instant: datetime, zone: DisplayZone) -> str:
    """Render instant as wall-clock time in zone, e.g. 'Mar 15, 2024, 3:00 PM'.

    Raises:
        ValidationError: If instant is naive (not an absolute point in time)
    """
    if instant.tzinfo is None:
        raise ValidationError("Cannot render a naive datetime; an absolute instant is required")

    local = instant.astimezone(zone.zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{_MONTHS[local.month - 1]} {local.day}, {local.year}, "
        f"{hour}:{local.minute:02d} {meridiem}"
    )


def format_dual(instant: datetime, zones: TimezonePair = DEFAULT_ZONES) -> str:
    """Composite label showing instant in both reference calendars."""
    return (
        f"{format_instant(instant, zones.primary)} ({zones.primary.label}) / "
        f"{format_instant(instant, zones.secondary)} ({zones.secondary.label})"
    )


# ============================================================
# Slot capture
# ============================================================

def to_instant(value: Union[datetime, str], local_zone: Optional[tzinfo] = None) -> datetime:
    """Convert one captured slot into an absolute UTC instant.

    Args:
        value: Aware datetime, naive datetime, or ISO / datetime-local string
        local_zone: Zone of the person who typed the value; required for naive input

    Raises:
        ValidationError: If the value cannot be parsed or is naive without a zone
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            if text.endswith("Z"):
                return parse_utc_timestamp(text)
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid time slot: {value!r}") from e

    if value.tzinfo is None:
        if local_zone is None:
            raise ValidationError(
                "A local time slot needs the proposer's timezone to become an instant",
                context={"slot": value.isoformat()},
            )
        value = value.replace(tzinfo=local_zone)
    return ensure_utc(value)


def collect_slots(
    slots: Sequence[SlotInput],
    requester_timezone: Optional[str] = None,
) -> list:
    """Drop empty inputs, convert the rest to instants, collapse duplicates."""
    if len(slots) > MAX_PROPOSED_SLOTS:
        raise ValidationError(
            f"At most {MAX_PROPOSED_SLOTS} time slots can be proposed",
            context={"received": len(slots)},
        )

    local_zone = load_zone(requester_timezone) if requester_timezone else None
    instants = []
    for raw in slots:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        instant = to_instant(raw, local_zone)
        if instant not in instants:
            instants.append(instant)

    if not instants:
        raise ValidationError("Propose at least one valid time slot")
    return instants


# ============================================================
# Negotiation
# ============================================================

def _require_schedule(case: Case, schedule_id: str) -> VideoCallSchedule:
    schedule = case.get_schedule(schedule_id)
    if schedule is None:
        raise ValidationError(
            f"Unknown video call {schedule_id}",
            context={"case_id": case.id, "schedule_id": schedule_id},
        )
    return schedule


def _replace_schedule(case: Case, updated: VideoCallSchedule) -> Case:
    return case.evolve(
        video_calls=[updated if s.id == updated.id else s for s in case.video_calls]
    )


def propose_call(
    case: Case,
    requester_id: str,
    slots: Sequence[SlotInput],
    requester_timezone: Optional[str] = None,
) -> Tuple[Case, VideoCallSchedule]:
    """Open a new negotiation thread on case.

    Args:
        case: Case the call is about
        requester_id: Participant proposing the call
        slots: Up to three candidates; empty entries are ignored
        requester_timezone: IANA zone used to interpret naive/local inputs

    Returns:
        (updated case, new schedule)

    Raises:
        ValidationError: No valid slot, too many slots, unparseable slot
        ForbiddenTransition: Requester not a participant, or case is closed
    """
    if not case.is_participant(requester_id):
        raise ForbiddenTransition(
            "Only the case participants may propose a video call",
            context={"case_id": case.id, "requester_id": requester_id},
        )
    if case.is_terminal:
        raise ForbiddenTransition(
            f"Case is {case.status.value}; no new calls can be proposed",
            context={"case_id": case.id},
        )

    instants = collect_slots(slots, requester_timezone)
    schedule = VideoCallSchedule(
        requester_id=requester_id,
        responder_id=case.other_participant(requester_id),
        proposed_slots=instants,
        status=ScheduleStatus.PROPOSED,
    )

    logger.info(
        f"Case {case.id}: {requester_id} proposed call {schedule.id} with {len(instants)} slot(s)"
    )
    return case.evolve(video_calls=[*case.video_calls, schedule]), schedule


def confirm_call(
    case: Case,
    schedule_id: str,
    actor_id: str,
    slot: Union[datetime, str],
) -> Case:
    """Responder picks one of the proposed instants.

    Raises:
        ValidationError: Unknown schedule, or slot not among the proposed instants
        ForbiddenTransition: Actor is not the responder, schedule no longer open,
            or case is closed
    """
    schedule = _require_schedule(case, schedule_id)

    if actor_id != schedule.responder_id:
        raise ForbiddenTransition(
            "Only the invited participant can confirm a proposed call",
            context={"schedule_id": schedule_id, "actor_id": actor_id},
        )
    if not schedule.status.is_open:
        raise ForbiddenTransition(
            f"Video call {schedule_id} is already {schedule.status.value}",
            context={"schedule_id": schedule_id},
        )
    if case.is_terminal:
        raise ForbiddenTransition(
            f"Case is {case.status.value}; calls can no longer be confirmed",
            context={"case_id": case.id},
        )

    instant = to_instant(slot)
    if instant not in schedule.proposed_slots:
        raise ValidationError(
            "The selected time is not one of the proposed slots",
            context={"schedule_id": schedule_id, "slot": instant.isoformat()},
        )

    confirmed = VideoCallSchedule.model_validate(
        {**schedule.model_dump(), "status": ScheduleStatus.CONFIRMED, "confirmed_slot": instant}
    )
    logger.info(f"Case {case.id}: call {schedule_id} confirmed for {instant.isoformat()}")
    return _replace_schedule(case, confirmed)


def cancel_call(case: Case, schedule_id: str, actor_id: str) -> Case:
    """Withdraw a proposal that has not been confirmed.

    Raises:
        ValidationError: Unknown schedule
        ForbiddenTransition: Actor not a participant, or schedule no longer open
    """
    schedule = _require_schedule(case, schedule_id)

    if not schedule.is_participant(actor_id):
        raise ForbiddenTransition(
            "Only the case participants may cancel a proposed call",
            context={"schedule_id": schedule_id, "actor_id": actor_id},
        )
    if not schedule.status.is_open:
        raise ForbiddenTransition(
            f"Video call {schedule_id} is {schedule.status.value} and cannot be cancelled",
            context={"schedule_id": schedule_id},
        )

    cancelled = VideoCallSchedule.model_validate(
        {**schedule.model_dump(), "status": ScheduleStatus.CANCELLED}
    )
    logger.info(f"Case {case.id}: call {schedule_id} cancelled by {actor_id}")
    return _replace_schedule(case, cancelled)


def pending_for(case: Case, user_id: str) -> list:
    """Open proposals waiting on user_id's confirmation."""
    return [
        s for s in case.video_calls
        if s.status.is_open and s.responder_id == user_id
    ]
