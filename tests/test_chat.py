from datetime import timedelta

import pytest

from cb_core_lib.core import (
    append_message,
    archive_case,
    attachment_from_bytes,
    compose_message,
    decode_inline_attachment,
    submit_for_review,
)
from cb_core_lib.exceptions import ForbiddenTransition, ValidationError
from cb_core_lib.models import AttachmentKind, CaseStatus

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


def test_first_reply_moves_case_in_progress(case, specialist, t0):
    message = compose_message(specialist.id, "Reviewing the ECG now.", now=t0 + timedelta(minutes=5))
    updated = append_message(case, message)

    assert updated.status == CaseStatus.IN_PROGRESS
    assert updated.chat[-1] == message
    assert len(updated.chat) == 2
    assert updated.status_history[-1].to_status == CaseStatus.IN_PROGRESS
    assert updated.status_history[-1].triggered_at == message.created_at
    assert case.status == CaseStatus.ASSIGNED


def test_later_messages_keep_status(case, referrer, specialist):
    started = append_message(case, compose_message(specialist.id, "hello"))
    reviewed = submit_for_review(started, specialist.id)
    after = append_message(reviewed, compose_message(referrer.id, "Thanks, reading it."))
    assert after.status == CaseStatus.PENDING_REVIEW
    assert len(after.status_history) == len(reviewed.status_history)


def test_chat_order_is_append_order(case, specialist, t0):
    earlier = compose_message(specialist.id, "sent from a skewed clock", now=t0 - timedelta(days=1))
    updated = append_message(case, earlier)
    assert updated.chat[-1].id == earlier.id


def test_outsider_cannot_post(case, outsider):
    with pytest.raises(ForbiddenTransition):
        append_message(case, compose_message(outsider.id, "hi"))


def test_read_only_after_terminal(case, referrer):
    archived = archive_case(case, referrer.id)
    with pytest.raises(ForbiddenTransition):
        append_message(archived, compose_message(referrer.id, "one more thing"))


def test_compose_rejects_empty_message(specialist):
    with pytest.raises(ValidationError):
        compose_message(specialist.id, "   ")


def test_attachment_only_message(specialist):
    attachment = attachment_from_bytes("ecg.png", PNG_BYTES, "image/png")
    message = compose_message(specialist.id, attachment=attachment)
    assert message.content == ""
    assert message.attachment.kind == AttachmentKind.IMAGE


def test_attachment_from_bytes():
    attachment = attachment_from_bytes("ecg.png", PNG_BYTES, "image/png")
    assert attachment.size == len(PNG_BYTES)
    assert attachment.url.startswith("data:image/png;base64,")
    assert attachment.is_inline
    assert decode_inline_attachment(attachment) == PNG_BYTES

    report = attachment_from_bytes("report.pdf", b"%PDF-1.7", "application/pdf")
    assert report.kind == AttachmentKind.FILE


def test_attachment_size_limit():
    with pytest.raises(ValidationError):
        attachment_from_bytes("scan.dcm", b"x" * 11, "application/dicom", max_bytes=10)


def test_attachment_serializes_kind_as_type():
    attachment = attachment_from_bytes("ecg.png", PNG_BYTES, "image/png")
    assert attachment.model_dump(by_alias=True)["type"] == "image"
