"""Snapshot sync adapter.

The only place that knows how domain entities look inside the document store.

Decode: store document → domain model. Every instant-typed field arrives as
a StoreTimestamp (or, from older clients, a datetime / ISO string) and is
converted to an aware UTC datetime:
    createdAt, closedAt, statusHistory[].triggeredAt,
    chat[].createdAt, videoCalls[].proposedSlots[], videoCalls[].confirmedSlot
Missing optional instants decode to absent.

Encode: the inverse. Only instant-typed fields are converted; everything else
is passed through in its JSON form. The case id is positional (the document
id) and is never written into the document body.

No merging happens here: each decode fully replaces the caller's previous
view of that entity.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from cb_core_lib.exceptions import ValidationError
from cb_core_lib.models import (
    Case,
    CaseStatusTransition,
    ChatMessage,
    Patient,
    PhysicianProfile,
    VideoCallSchedule,
    ensure_utc,
    parse_utc_timestamp,
)
from cb_core_lib.store.base import CollectionSnapshot, DocumentSnapshot, StoreTimestamp

logger = logging.getLogger(__name__)

# ============================================================
# Instant conversion
# ============================================================

def to_datetime(value: Any) -> Optional[datetime]:
    """Convert a stored instant to an aware UTC datetime; None stays None."""
    if value is None:
        return None
    if isinstance(value, StoreTimestamp):
        return value.to_datetime()
    if StoreTimestamp.is_wire(value):
        return StoreTimestamp.from_wire(value).to_datetime()
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return parse_utc_timestamp(value)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp string: {value!r}") from e
    raise ValidationError(f"Unsupported timestamp value: {value!r}")


def to_store_timestamp(value: Optional[datetime]) -> Optional[StoreTimestamp]:
    return StoreTimestamp.from_datetime(value) if value is not None else None


def _decode_instant_field(data: Dict[str, Any], key: str) -> None:
    if key in data:
        decoded = to_datetime(data[key])
        if decoded is None:
            del data[key]
        else:
            data[key] = decoded


def _set_instant(doc: Dict[str, Any], key: str, value: Optional[datetime]) -> None:
    if value is None:
        doc.pop(key, None)
    else:
        doc[key] = to_store_timestamp(value)


# ============================================================
# Nested entities
# ============================================================

def encode_message(message: ChatMessage) -> Dict[str, Any]:
    doc = message.model_dump(mode="json", by_alias=True, exclude_none=True)
    _set_instant(doc, "createdAt", message.created_at)
    return doc


def decode_message(data: Dict[str, Any]) -> ChatMessage:
    data = dict(data)
    _decode_instant_field(data, "createdAt")
    return ChatMessage.model_validate(data)


def encode_schedule(schedule: VideoCallSchedule) -> Dict[str, Any]:
    doc = schedule.model_dump(mode="json", by_alias=True, exclude_none=True)
    doc["proposedSlots"] = [to_store_timestamp(slot) for slot in schedule.proposed_slots]
    _set_instant(doc, "confirmedSlot", schedule.confirmed_slot)
    return doc


def decode_schedule(data: Dict[str, Any]) -> VideoCallSchedule:
    data = dict(data)
    data["proposedSlots"] = [to_datetime(slot) for slot in data.get("proposedSlots") or []]
    _decode_instant_field(data, "confirmedSlot")
    return VideoCallSchedule.model_validate(data)


def encode_transition(record: CaseStatusTransition) -> Dict[str, Any]:
    doc = record.model_dump(mode="json", by_alias=True)
    doc["triggeredAt"] = to_store_timestamp(record.triggered_at)
    return doc


def decode_transition(data: Dict[str, Any]) -> CaseStatusTransition:
    data = dict(data)
    _decode_instant_field(data, "triggeredAt")
    return CaseStatusTransition.model_validate(data)


# ============================================================
# Case
# ============================================================

def encode_case(case: Case) -> Dict[str, Any]:
    """Document body for case (without its id)."""
    doc = case.model_dump(
        mode="json",
        by_alias=True,
        exclude_none=True,
        exclude={"id", "chat", "video_calls", "status_history"},
    )
    _set_instant(doc, "createdAt", case.created_at)
    _set_instant(doc, "closedAt", case.closed_at)
    doc["chat"] = [encode_message(m) for m in case.chat]
    doc["videoCalls"] = [encode_schedule(s) for s in case.video_calls]
    doc["statusHistory"] = [encode_transition(t) for t in case.status_history]
    return doc


def decode_case(doc_id: str, data: Dict[str, Any]) -> Case:
    """Build a Case from its document id and body.

    Raises:
        ValidationError: If the document does not describe a valid case
    """
    body = {k: v for k, v in data.items() if k != "id"}
    _decode_instant_field(body, "createdAt")
    _decode_instant_field(body, "closedAt")

    try:
        body["chat"] = [decode_message(m) for m in body.get("chat") or []]
        body["videoCalls"] = [decode_schedule(s) for s in body.get("videoCalls") or []]
        body["statusHistory"] = [decode_transition(t) for t in body.get("statusHistory") or []]
        return Case.model_validate({**body, "id": doc_id})
    except ModelValidationError as e:
        raise ValidationError(
            f"Document cases/{doc_id} is not a valid case: {e.error_count()} error(s)",
            context={"doc_id": doc_id, "errors": e.errors(include_url=False)},
        ) from e


def status_update(case: Case) -> Dict[str, Any]:
    """Partial document carrying only the lifecycle fields of case."""
    doc: Dict[str, Any] = {
        "status": case.status.value,
        "statusHistory": [encode_transition(t) for t in case.status_history],
    }
    if case.closed_at is not None:
        doc["closedAt"] = to_store_timestamp(case.closed_at)
    return doc


def schedules_update(case: Case) -> Dict[str, Any]:
    """Partial document carrying only the video call list of case."""
    return {"videoCalls": [encode_schedule(s) for s in case.video_calls]}


# ============================================================
# Reference data
# ============================================================

def encode_patient(patient: Patient) -> Dict[str, Any]:
    return patient.model_dump(mode="json", by_alias=True, exclude={"id"})


def decode_patient(doc_id: str, data: Dict[str, Any]) -> Patient:
    try:
        return Patient.model_validate({**data, "id": doc_id})
    except ModelValidationError as e:
        raise ValidationError(f"Document patients/{doc_id} is not a valid patient: {e}") from e


def encode_user(user: PhysicianProfile) -> Dict[str, Any]:
    return user.model_dump(mode="json", by_alias=True, exclude={"id"}, exclude_none=True)


def decode_user(doc_id: str, data: Dict[str, Any]) -> PhysicianProfile:
    try:
        return PhysicianProfile.model_validate({**data, "id": doc_id})
    except ModelValidationError as e:
        raise ValidationError(f"Document users/{doc_id} is not a valid user: {e}") from e


DECODERS: Dict[str, Callable[[str, Dict[str, Any]], Any]] = {
    "cases": decode_case,
    "patients": decode_patient,
    "users": decode_user,
}


def decode_document(collection: str, doc: DocumentSnapshot) -> Any:
    decoder = DECODERS.get(collection)
    if decoder is None:
        raise ValidationError(f"No decoder for collection {collection}")
    return decoder(doc.id, doc.data)


def decode_snapshot(snapshot: CollectionSnapshot) -> List[Any]:
    """Decode every document of a snapshot, in delivery order.

    Documents that cannot be decoded are logged and left out so one bad
    document does not hide the rest of the collection.
    """
    entities = []
    for doc in snapshot.documents:
        try:
            entities.append(decode_document(snapshot.collection, doc))
        except ValidationError as e:
            logger.warning(f"Skipping undecodable document {snapshot.collection}/{doc.id}: {e}")
    return entities
