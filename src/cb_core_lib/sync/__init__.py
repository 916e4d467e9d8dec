"""Snapshot sync: decode store documents into domain models and keep a live view."""

from cb_core_lib.sync.adapter import (
    to_datetime,
    to_store_timestamp,
    encode_case,
    decode_case,
    encode_message,
    decode_message,
    encode_schedule,
    decode_schedule,
    encode_patient,
    decode_patient,
    encode_user,
    decode_user,
    decode_snapshot,
    status_update,
    schedules_update,
)
from cb_core_lib.sync.feed import SnapshotFeed, involving

__all__ = [
    "to_datetime", "to_store_timestamp",
    "encode_case", "decode_case",
    "encode_message", "decode_message",
    "encode_schedule", "decode_schedule",
    "encode_patient", "decode_patient",
    "encode_user", "decode_user",
    "decode_snapshot", "status_update", "schedules_update",
    "SnapshotFeed", "involving",
]
