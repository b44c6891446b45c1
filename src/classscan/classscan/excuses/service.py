from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from ..attendance.repository import AttendanceRepository
from ..audit.service import AuditService
from ..common.datetime_utils import now_utc
from ..common.validators import require_min_length
from ..core.constants import EXCUSE_REASON_MIN_LENGTH
from ..core.enums import ExcuseCategory, ExcuseStatus
from ..core.exceptions import (
    AuthorizationError,
    ExcuseAlreadyReviewed,
    ExcuseAlreadySubmitted,
    ExcuseNotFound,
    NotEnrolled,
    RoundNotFound,
    SessionNotFound,
    ValidationError,
)
from ..database.unit_of_work import UnitOfWork
from ..roster.repository import RosterDirectory
from ..sessions.model import Session
from ..sessions.repository import SessionRepository
from .model import ExcuseRequest, ExcuseView
from .repository import ExcuseRepository

logger = logging.getLogger(__name__)

_DECISIONS = {
    "approve": ExcuseStatus.APPROVED,
    "reject": ExcuseStatus.REJECTED,
}


class ExcuseService:
    def __init__(
        self,
        excuses: ExcuseRepository,
        sessions: SessionRepository,
        roster: RosterDirectory,
        attendance: AttendanceRepository,
        uow: UnitOfWork,
        audit: AuditService,
    ):
        self._excuses = excuses
        self._sessions = sessions
        self._roster = roster
        self._attendance = attendance
        self._uow = uow
        self._audit = audit

    @staticmethod
    def _parse_category(value: Optional[str]) -> ExcuseCategory:
        if not value:
            return ExcuseCategory.ABSENCE
        try:
            return ExcuseCategory(str(value).strip().lower())
        except ValueError:
            raise ValidationError("Invalid category")

    def submit(
        self,
        student_id: int,
        round_id: int,
        reason: str,
        *,
        category: Optional[str] = None,
        attachment_path: Optional[str] = None,
    ) -> ExcuseRequest:
        reason = require_min_length(reason, "reason", EXCUSE_REASON_MIN_LENGTH)
        parsed_category = self._parse_category(category)

        round_ = self._sessions.get_round(int(round_id))
        if not round_:
            raise RoundNotFound()
        session = self._sessions.get_session(round_.session_id)
        if not session:
            raise RoundNotFound()
        if not self._roster.is_enrolled(student_id=int(student_id), group_id=session.group_id):
            raise NotEnrolled("Not enrolled for this round.")

        if self._excuses.find_pending(round_id=round_.round_id, student_id=int(student_id)):
            raise ExcuseAlreadySubmitted()

        excuse_id = self._excuses.create(
            round_id=round_.round_id,
            student_id=int(student_id),
            reason=reason,
            category=parsed_category,
            attachment_path=(attachment_path or "").strip() or None,
        )
        excuse = self._excuses.get(excuse_id)
        if not excuse:
            raise ExcuseNotFound()

        logger.info(
            "excuse submitted: excuse_id=%s student=%s round=%s session=%s",
            excuse.excuse_id,
            student_id,
            round_.round_id,
            session.session_id,
        )
        return excuse

    def review(
        self,
        professor_id: int,
        excuse_id: int,
        decision: str,
        note: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> ExcuseRequest:
        status = _DECISIONS.get((decision or "").strip().lower())
        if status is None:
            raise ValidationError("Invalid decision")
        now = now or now_utc()

        excuse = self._excuses.get(int(excuse_id))
        if not excuse:
            raise ExcuseNotFound()

        round_ = self._sessions.get_round(excuse.round_id)
        session = self._sessions.get_session(round_.session_id) if round_ else None
        if not session or session.professor_id != int(professor_id):
            raise AuthorizationError("You do not own this session.")

        if excuse.status != ExcuseStatus.PENDING:
            raise ExcuseAlreadyReviewed()

        note = (note or "").strip() or None
        with self._uow.transaction():
            decided = self._excuses.decide(
                excuse_id=excuse.excuse_id,
                status=status,
                reviewed_by=int(professor_id),
                reviewed_at=now,
                resolution_note=note,
            )
            if not decided:
                raise ExcuseAlreadyReviewed()
            if status == ExcuseStatus.APPROVED:
                self._attendance.upsert_excused(round_id=excuse.round_id, student_id=excuse.student_id, recorded_at=now)
            updated = self._excuses.get(excuse.excuse_id)

        logger.info(
            "excuse reviewed: excuse_id=%s decision=%s professor=%s round=%s",
            excuse.excuse_id,
            status.value,
            professor_id,
            excuse.round_id,
        )
        self._audit.log(
            action="excuse_approve" if status == ExcuseStatus.APPROVED else "excuse_reject",
            entity_type="excuse",
            entity_id=excuse.excuse_id,
            actor_id=int(professor_id),
            before=excuse,
            after=updated,
            reason=note,
        )
        return updated or excuse

    def list_for_student(self, student_id: int) -> Sequence[ExcuseView]:
        return self._excuses.list_for_student(int(student_id))

    def list_for_session(
        self,
        professor_id: int,
        session_id: int,
        status: Optional[str] = None,
    ) -> Sequence[ExcuseView]:
        self._owned_session(professor_id, session_id)
        parsed: Optional[ExcuseStatus] = None
        if status:
            try:
                parsed = ExcuseStatus(str(status).strip().upper())
            except ValueError:
                raise ValidationError("Invalid status filter")
        return self._excuses.list_for_session(session_id=int(session_id), status=parsed)

    def _owned_session(self, professor_id: int, session_id: int) -> Session:
        session = self._sessions.get_session(int(session_id))
        if not session:
            raise SessionNotFound()
        if session.professor_id != int(professor_id):
            raise AuthorizationError("You do not own this session.")
        return session
