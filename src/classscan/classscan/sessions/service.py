from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..attendance.repository import AttendanceRepository
from ..audit.service import AuditService
from ..common.datetime_utils import now_utc
from ..core.exceptions import (
    AuthorizationError,
    ConflictError,
    CourseNotFound,
    GroupNotFound,
    RoundNotActive,
    SessionNotActive,
    SessionNotFound,
    UniqueViolation,
)
from ..database.unit_of_work import UnitOfWork
from ..events.publisher import EventPublisher
from ..roster.repository import RosterDirectory
from ..tokens.service import TokenService
from .events import publish_qr_updated, publish_round_started, publish_session_ended, round_qr_payload
from .model import Round, RoundOptions, RoundStart, Session, SessionStart, SessionStats, SessionSummary
from .repository import SessionRepository

logger = logging.getLogger(__name__)


class SessionService:
    """Session and round lifecycle for the professor.

    A session has at most one active round; opening a round closes the
    previous one in the same transaction that inserts it.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        roster: RosterDirectory,
        tokens: TokenService,
        attendance: AttendanceRepository,
        uow: UnitOfWork,
        publisher: EventPublisher,
        audit: AuditService,
    ):
        self._sessions = sessions
        self._roster = roster
        self._tokens = tokens
        self._attendance = attendance
        self._uow = uow
        self._publisher = publisher
        self._audit = audit

    def start_session(
        self,
        professor_id: int,
        group_id: int,
        options: Optional[RoundOptions] = None,
        *,
        now: datetime | None = None,
    ) -> SessionStart:
        now = now or now_utc()
        group = self._roster.get_group(int(group_id))
        if not group:
            raise GroupNotFound()
        course = self._roster.get_course(group.course_id)
        if not course:
            raise CourseNotFound()
        if course.professor_id != int(professor_id):
            raise AuthorizationError("You do not teach this group.")

        with self._uow.transaction():
            session = self._sessions.create_session(
                group_id=group.group_id,
                course_id=course.course_id,
                professor_id=int(professor_id),
                starts_at=now,
            )
            started = self._open_round(session, options or RoundOptions(), now)

        self._publish_round(started)
        logger.info(
            "session started: session_id=%s group_id=%s professor_id=%s",
            session.session_id,
            group.group_id,
            professor_id,
        )
        self._audit.log(
            action="session_start",
            entity_type="session",
            entity_id=session.session_id,
            actor_id=int(professor_id),
            after=session,
        )
        return SessionStart(
            session=session,
            round=started.round,
            token=started.token,
            qr_payload=started.qr_payload,
            course=course,
            group=group,
        )

    def start_round(
        self,
        professor_id: int,
        session_id: int,
        options: Optional[RoundOptions] = None,
        *,
        now: datetime | None = None,
    ) -> RoundStart:
        now = now or now_utc()
        session = self._owned_session(professor_id, session_id)
        if not session.is_active:
            raise SessionNotActive()

        with self._uow.transaction():
            started = self._open_round(session, options or RoundOptions(), now)

        self._publish_round(started)
        logger.info(
            "round started: session_id=%s round_id=%s number=%s",
            session.session_id,
            started.round.round_id,
            started.round.round_number,
        )
        return started

    def close_round(
        self,
        professor_id: int,
        session_id: int,
        round_id: int,
        *,
        now: datetime | None = None,
    ) -> Round:
        now = now or now_utc()
        session = self._owned_session(professor_id, session_id)
        round_ = self._sessions.get_round(int(round_id))
        if not round_ or round_.session_id != session.session_id or not round_.is_active:
            raise RoundNotActive()
        if not self._sessions.close_round(round_id=round_.round_id, ended_at=now):
            raise RoundNotActive()

        logger.info("round closed: session_id=%s round_id=%s", session.session_id, round_.round_id)
        return Round(
            round_id=round_.round_id,
            session_id=round_.session_id,
            round_number=round_.round_number,
            starts_at=round_.starts_at,
            ends_at=now,
            is_active=False,
            geofence_enabled=round_.geofence_enabled,
            latitude=round_.latitude,
            longitude=round_.longitude,
            geofence_radius_m=round_.geofence_radius_m,
            is_break_round=round_.is_break_round,
        )

    def end_session(self, professor_id: int, session_id: int, *, now: datetime | None = None) -> SessionSummary:
        now = now or now_utc()
        session = self._owned_session(professor_id, session_id)
        if not session.is_active:
            raise SessionNotActive()

        with self._uow.transaction():
            self._sessions.close_active_rounds(session_id=session.session_id, ended_at=now)
            if not self._sessions.end_session(session_id=session.session_id, ended_at=now):
                raise SessionNotActive()
            total_rounds = self._sessions.count_rounds(session.session_id)
            attendance_count = self._attendance.count_for_session(session.session_id)

        ended = self._sessions.get_session(session.session_id) or session
        summary = SessionSummary(
            session=ended,
            ended_at=now,
            total_rounds=total_rounds,
            attendance_count=attendance_count,
        )
        publish_session_ended(self._publisher, summary)
        logger.info(
            "session ended: session_id=%s rounds=%s attendance=%s",
            session.session_id,
            total_rounds,
            attendance_count,
        )
        self._audit.log(
            action="session_end",
            entity_type="session",
            entity_id=session.session_id,
            actor_id=int(professor_id),
            before=session,
            after={"endedAt": now.isoformat(), "totalRounds": total_rounds, "attendanceCount": attendance_count},
        )
        return summary

    def session_stats(self, professor_id: int, session_id: int) -> SessionStats:
        session = self._owned_session(professor_id, session_id)
        return SessionStats(session_id=session.session_id, rounds=tuple(self._sessions.round_stats(session.session_id)))

    def get_owned_session(self, professor_id: int, session_id: int) -> Session:
        return self._owned_session(professor_id, session_id)

    def _owned_session(self, professor_id: int, session_id: int) -> Session:
        session = self._sessions.get_session(int(session_id))
        if not session:
            raise SessionNotFound()
        if session.professor_id != int(professor_id):
            raise AuthorizationError("You do not own this session.")
        return session

    def _open_round(self, session: Session, options: RoundOptions, now: datetime) -> RoundStart:
        # Caller holds the transaction.
        self._sessions.close_active_rounds(session_id=session.session_id, ended_at=now)
        number = self._sessions.next_round_number(session.session_id)
        try:
            round_ = self._sessions.create_round(
                session_id=session.session_id,
                round_number=number,
                starts_at=now,
                options=options,
            )
        except UniqueViolation:
            raise ConflictError("Another round was started at the same time, try again.")
        token = self._tokens.issue(round_.round_id, now=now)
        return RoundStart(round=round_, token=token, qr_payload=round_qr_payload(session, round_, token))

    def _publish_round(self, started: RoundStart) -> None:
        publish_round_started(self._publisher, started.round)
        publish_qr_updated(self._publisher, started.round, started.token, started.qr_payload)
