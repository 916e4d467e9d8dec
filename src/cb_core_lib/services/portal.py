"""
Case portal facade.

Connects the pure domain operations to the collaborators: every operation
reads the case from the latest snapshot (falling back to a direct read),
applies the domain rule, and issues the smallest write that records the
result. State is never written back from here into the feed; the next
snapshot is authoritative.

Each write carries a fresh idempotency key so a retried request is applied
at most once.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, List, Optional, Sequence
from uuid import uuid4

from cb_core_lib.auth import (
    AuthProvider,
    AuthSession,
    IdentityToolkitAuthProvider,
    InMemoryAuthProvider,
    SignUpForm,
    build_profile,
    validate_sign_in,
    validate_sign_up,
)
from cb_core_lib.config import PortalSettings, get_settings
from cb_core_lib.core import (
    DEFAULT_ZONES,
    TimezonePair,
    append_message,
    archive_case,
    attachment_from_bytes,
    cancel_call,
    close_case,
    compose_message,
    confirm_call,
    format_dual,
    open_case,
    propose_call,
    submit_for_review,
)
from cb_core_lib.exceptions import RemoteUnavailable, ValidationError
from cb_core_lib.infrastructure.llm import PatientSummarizer, SummaryResult
from cb_core_lib.models import (
    Attachment,
    Case,
    ChatMessage,
    Patient,
    PhysicianProfile,
    Specialty,
    VideoCallSchedule,
)
from cb_core_lib.store import CASES, USERS, DocumentStore, HttpDocumentStore
from cb_core_lib.sync import (
    SnapshotFeed,
    decode_case,
    encode_case,
    encode_message,
    encode_user,
    schedules_update,
    status_update,
)

logger = logging.getLogger(__name__)


def _idempotency_key() -> str:
    return uuid4().hex


class CasePortal:
    """Entry point for the referral workflows of one signed-in physician.

    Usage:
        portal = CasePortal.from_settings()
        await portal.sign_in("dr.reed@clinic.example", password)
        await portal.start()
        case_id = await portal.create_case(patient, me, specialist, summary)
        await portal.send_message(case_id, me.id, "Imaging attached")
    """

    def __init__(
        self,
        store: DocumentStore,
        auth: Optional[AuthProvider] = None,
        summarizer: Optional[PatientSummarizer] = None,
        zones: Optional[TimezonePair] = None,
        max_inline_attachment_bytes: Optional[int] = None,
    ):
        self.store = store
        self.auth = auth or InMemoryAuthProvider()
        self.summarizer = summarizer or PatientSummarizer(provider=None)
        self.zones = zones or DEFAULT_ZONES
        self.max_inline_attachment_bytes = max_inline_attachment_bytes
        self.feed = SnapshotFeed(store)

    @classmethod
    def from_settings(cls, settings: Optional[PortalSettings] = None) -> "CasePortal":
        """Wire the hosted collaborators described by settings."""
        settings = settings or get_settings()

        if settings.auth.api_key is not None:
            auth = IdentityToolkitAuthProvider.from_settings(settings.auth)
        else:
            logger.warning("CAREBRIDGE_AUTH_API_KEY not set; using in-memory accounts")
            auth = InMemoryAuthProvider(refresh_buffer_seconds=settings.auth.refresh_buffer_seconds)

        store = HttpDocumentStore(
            base_url=settings.store.base_url,
            timeout=settings.store.request_timeout,
            token_source=auth.get_token,
            stream_path=settings.store.stream_path,
        )
        return cls(
            store=store,
            auth=auth,
            summarizer=PatientSummarizer.from_settings(settings.llm),
            zones=TimezonePair.from_settings(settings.scheduling),
            max_inline_attachment_bytes=settings.chat.max_inline_attachment_bytes,
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    @property
    def session(self) -> Optional[AuthSession]:
        return self.auth.current_session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        validate_sign_in(email, password)
        return await self.auth.sign_in(email, password)

    async def sign_out(self) -> None:
        self.feed.close()
        self.feed = SnapshotFeed(self.store)
        await self.auth.sign_out()

    async def register(self, form: SignUpForm) -> PhysicianProfile:
        """Create the account, then its users document.

        Raises:
            ValidationError: Password mismatch or complexity rule
            AuthError: Backend rejected the account
            RemoteUnavailable: Profile could not be written
        """
        validate_sign_up(form)
        session = await self.auth.sign_up(form.email, form.password)
        profile = build_profile(session.uid, form)
        await self._write(
            f"create profile {session.uid}",
            self.store.set(USERS, session.uid, encode_user(profile)),
        )
        return profile

    async def start(self, user_id: Optional[str] = None) -> None:
        """Subscribe the feed to patients, users and (scoped) cases."""
        if user_id is None and self.session is not None:
            user_id = self.session.uid
        await self.feed.watch_portal(user_id)

    async def close(self) -> None:
        self.feed.close()
        await self.store.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _write(self, description: str, operation: Awaitable[Any]) -> Any:
        try:
            return await operation
        except RemoteUnavailable as e:
            logger.error(f"Failed to {description}: {e}")
            raise

    async def load_case(self, case_id: str) -> Case:
        """Latest known state of case_id.

        Raises:
            ValidationError: If the case does not exist
            RemoteUnavailable: If the store cannot be read
        """
        case = self.feed.case(case_id)
        if case is not None:
            return case

        try:
            doc = await self.store.get(CASES, case_id)
        except RemoteUnavailable as e:
            logger.error(f"Failed to load case {case_id}: {e}")
            raise
        if doc is None:
            raise ValidationError(f"Case {case_id} not found", context={"case_id": case_id})
        return decode_case(doc.id, doc.data)

    async def _save_status(self, case: Case, description: str) -> Case:
        await self._write(
            f"{description} case {case.id}",
            self.store.update(CASES, case.id, status_update(case), idempotency_key=_idempotency_key()),
        )
        return case

    async def _save_schedules(self, case: Case, description: str) -> Case:
        await self._write(
            f"{description} on case {case.id}",
            self.store.update(CASES, case.id, schedules_update(case), idempotency_key=_idempotency_key()),
        )
        return case

    # ------------------------------------------------------------------
    # Cases
    # ------------------------------------------------------------------
    async def create_case(
        self,
        patient: Patient,
        creator: PhysicianProfile,
        assignee: PhysicianProfile,
        summary: str,
        now: Optional[datetime] = None,
    ) -> str:
        case = open_case(patient, creator, assignee, summary, now=now)
        case_id = await self._write(
            f"create case for patient {patient.id}",
            self.store.create(CASES, encode_case(case), idempotency_key=_idempotency_key()),
        )
        logger.info(f"Case {case_id} opened by {creator.id} for {assignee.id}")
        return case_id

    async def submit_for_review(self, case_id: str, actor_id: str) -> Case:
        case = submit_for_review(await self.load_case(case_id), actor_id)
        return await self._save_status(case, "submit")

    async def close_case(self, case_id: str, actor_id: str) -> Case:
        case = close_case(await self.load_case(case_id), actor_id)
        return await self._save_status(case, "close")

    async def archive_case(self, case_id: str, actor_id: str) -> Case:
        case = archive_case(await self.load_case(case_id), actor_id)
        return await self._save_status(case, "archive")

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------
    def attach(self, name: str, data: bytes, mime_type: str) -> Attachment:
        return attachment_from_bytes(name, data, mime_type, max_bytes=self.max_inline_attachment_bytes)

    async def send_message(
        self,
        case_id: str,
        sender_id: str,
        content: str = "",
        attachment: Optional[Attachment] = None,
    ) -> ChatMessage:
        """Append a message; the first reply also moves the case to In Progress."""
        case = await self.load_case(case_id)
        message = compose_message(sender_id, content, attachment)
        updated = append_message(case, message)

        updates = status_update(updated) if updated.status != case.status else None
        await self._write(
            f"send message on case {case_id}",
            self.store.append(
                CASES,
                case_id,
                "chat",
                encode_message(message),
                updates=updates,
                idempotency_key=_idempotency_key(),
            ),
        )
        return message

    # ------------------------------------------------------------------
    # Video calls
    # ------------------------------------------------------------------
    async def propose_call(
        self,
        case_id: str,
        requester_id: str,
        slots: Sequence[Any],
        requester_timezone: Optional[str] = None,
    ) -> VideoCallSchedule:
        case, schedule = propose_call(
            await self.load_case(case_id), requester_id, slots, requester_timezone
        )
        await self._save_schedules(case, f"propose call {schedule.id}")
        return schedule

    async def confirm_call(self, case_id: str, schedule_id: str, actor_id: str, slot: Any) -> Case:
        case = confirm_call(await self.load_case(case_id), schedule_id, actor_id, slot)
        return await self._save_schedules(case, f"confirm call {schedule_id}")

    async def cancel_call(self, case_id: str, schedule_id: str, actor_id: str) -> Case:
        case = cancel_call(await self.load_case(case_id), schedule_id, actor_id)
        return await self._save_schedules(case, f"cancel call {schedule_id}")

    def describe_slot(self, instant: datetime) -> str:
        """Instant rendered in both reference calendars."""
        return format_dual(instant, self.zones)

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------
    async def summarize_patient(self, patient: Patient) -> SummaryResult:
        return await self.summarizer.summarize(patient)

    def list_specialists(self, specialty: Optional[Specialty] = None) -> List[PhysicianProfile]:
        specialists = self.feed.specialists()
        if specialty is None:
            return specialists
        return [s for s in specialists if s.specialty == specialty]

    def my_cases(self, user_id: Optional[str] = None) -> List[Case]:
        user_id = user_id or (self.session.uid if self.session else None)
        if user_id is None:
            return []
        return self.feed.cases_for(user_id)
