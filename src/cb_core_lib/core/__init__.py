"""Domain operations: case lifecycle, chat log and call scheduling.

All functions here are pure: they take a Case and return a new Case (or
raise), leaving persistence to the caller.
"""

from cb_core_lib.core.lifecycle import (
    SYSTEM_ACTOR,
    ActorRole,
    open_case,
    submit_for_review,
    close_case,
    archive_case,
    mark_in_progress,
    can_chat,
    is_read_only,
    allowed_transitions,
)
from cb_core_lib.core.chat import (
    attachment_from_bytes,
    decode_inline_attachment,
    compose_message,
    append_message,
)
from cb_core_lib.core.scheduling import (
    DisplayZone,
    TimezonePair,
    DEFAULT_ZONES,
    format_instant,
    format_dual,
    to_instant,
    propose_call,
    confirm_call,
    cancel_call,
    pending_for,
)

__all__ = [
    # Lifecycle
    "SYSTEM_ACTOR", "ActorRole", "open_case", "submit_for_review", "close_case",
    "archive_case", "mark_in_progress", "can_chat", "is_read_only", "allowed_transitions",
    # Chat
    "attachment_from_bytes", "decode_inline_attachment", "compose_message", "append_message",
    # Scheduling
    "DisplayZone", "TimezonePair", "DEFAULT_ZONES", "format_instant", "format_dual",
    "to_instant", "propose_call", "confirm_call", "cancel_call", "pending_for",
]
