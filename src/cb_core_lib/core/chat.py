"""Chat append log.

Messages are composed client-side, validated, and appended to the end of a
case's chat list. The persisted list order is the display order; messages are
never re-sorted by timestamp.

Attachments are captured inline as base64 data: URLs at send time. There is
no separate upload step and no cleanup of attachments, so every attachment
grows the case document.
"""

import base64
import logging
from datetime import datetime
from typing import Optional

from cb_core_lib.core.lifecycle import mark_in_progress
from cb_core_lib.exceptions import ForbiddenTransition, ValidationError
from cb_core_lib.models import Attachment, AttachmentKind, Case, ChatMessage, utc_now

logger = logging.getLogger(__name__)


def attachment_from_bytes(
    name: str,
    data: bytes,
    mime_type: str,
    max_bytes: Optional[int] = None,
) -> Attachment:
    """Encode a selected file as an inline attachment.

    Args:
        name: Original filename, used as display name
        data: Raw file content
        mime_type: Content type reported by the picker (e.g. "image/png")
        max_bytes: Optional upper bound on the raw payload size

    Returns:
        Attachment whose url is a data: URL

    Raises:
        ValidationError: If name is empty or data exceeds max_bytes
    """
    if not name or not name.strip():
        raise ValidationError("Attachment needs a file name")
    if max_bytes is not None and len(data) > max_bytes:
        raise ValidationError(
            f"Attachment {name} is {len(data)} bytes; inline attachments are limited to {max_bytes} bytes",
            context={"size": len(data), "max_bytes": max_bytes},
        )

    mime_type = mime_type or "application/octet-stream"
    encoded = base64.b64encode(data).decode("ascii")
    kind = AttachmentKind.IMAGE if mime_type.startswith("image/") else AttachmentKind.FILE

    return Attachment(
        name=name.strip(),
        url=f"data:{mime_type};base64,{encoded}",
        kind=kind,
        size=len(data),
    )


def decode_inline_attachment(attachment: Attachment) -> bytes:
    """Raw bytes of an inline attachment."""
    if not attachment.is_inline:
        raise ValidationError(f"Attachment {attachment.name} is not stored inline")
    header, _, payload = attachment.url.partition(",")
    if not header.endswith(";base64"):
        raise ValidationError(f"Attachment {attachment.name} is not base64 encoded")
    return base64.b64decode(payload)


def compose_message(
    sender_id: str,
    content: str = "",
    attachment: Optional[Attachment] = None,
    now: Optional[datetime] = None,
) -> ChatMessage:
    """Create a new message ready to be appended.

    Raises:
        ValidationError: If both content and attachment are empty
    """
    if not content.strip() and attachment is None:
        raise ValidationError("A message needs text or an attachment")
    return ChatMessage(
        sender_id=sender_id,
        content=content,
        attachment=attachment,
        created_at=now or utc_now(),
    )


def append_message(case: Case, message: ChatMessage, now: Optional[datetime] = None) -> Case:
    """Append message to the case log and apply the implicit IN_PROGRESS transition.

    Raises:
        ForbiddenTransition: If the sender is not a participant or the case is read-only
    """
    if not case.is_participant(message.sender_id):
        raise ForbiddenTransition(
            "Only the case participants may post messages",
            context={"case_id": case.id, "sender_id": message.sender_id},
        )
    if not case.chat_enabled:
        raise ForbiddenTransition(
            f"Case is {case.status.value}; the chat is read-only",
            context={"case_id": case.id},
        )

    appended = case.evolve(chat=[*case.chat, message])
    logger.debug(f"Case {case.id}: appended message {message.id} from {message.sender_id}")
    return mark_in_progress(appended, now=now or message.created_at)
