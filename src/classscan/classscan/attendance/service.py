from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence

from ..common.datetime_utils import now_utc
from ..common.geo import haversine_distance_m
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.exceptions import (
    AlreadyRecorded,
    CourseNotFound,
    DomainError,
    DuplicateOfflineScan,
    GeofenceMisconfigured,
    LocationRequired,
    NotEnrolled,
    OutsideGeofence,
    RoundNotActive,
    SessionNotActive,
    UniqueViolation,
)
from ..database.unit_of_work import UnitOfWork
from ..events.publisher import EventPublisher
from ..fraud.dispatcher import FraudCheckDispatcher
from ..fraud.heuristics import ScanContext
from ..policies.service import PolicyService
from ..roster.model import Course
from ..roster.repository import RosterDirectory
from ..sessions.events import publish_qr_updated, round_qr_payload
from ..sessions.model import Round, Session
from ..sessions.repository import SessionRepository
from ..tokens.service import TokenService
from .factory import AttendanceStrategyFactory
from .model import (
    AttendanceHistoryRow,
    AttendanceRecord,
    AttendanceSummary,
    NewAttendanceRecord,
    ScanLocation,
    ScanResult,
)
from .repository import ROUND_STUDENT_CLIENT_CONSTRAINT, AttendanceRepository
from .strategies.base import StatusDecision

logger = logging.getLogger(__name__)


class AttendanceRecorder:
    """Turns a scanned QR token into exactly one attendance record.

    Checks run in a fixed order so the same bad scan always gets the same
    error. Everything up to the insert shares one transaction; fraud checks
    and the token rotation happen after commit and cannot fail the scan.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        sessions: SessionRepository,
        roster: RosterDirectory,
        tokens: TokenService,
        policies: PolicyService,
        uow: UnitOfWork,
        fraud: FraudCheckDispatcher,
        publisher: EventPublisher,
        *,
        strategy_factory: AttendanceStrategyFactory | None = None,
    ):
        self._attendance = attendance
        self._sessions = sessions
        self._roster = roster
        self._tokens = tokens
        self._policies = policies
        self._uow = uow
        self._fraud = fraud
        self._publisher = publisher
        self._factory = strategy_factory or AttendanceStrategyFactory()

    def record_scan(
        self,
        student_id: int,
        round_id: int,
        raw_token: str,
        *,
        location: Optional[ScanLocation] = None,
        device_fingerprint: Optional[str] = None,
        client_scan_id: Optional[str] = None,
        captured_at_client: Optional[datetime] = None,
        now: datetime | None = None,
    ) -> ScanResult:
        now = now or now_utc()
        student_id = int(student_id)
        round_id = int(round_id)
        client_scan_id = (client_scan_id or "").strip() or None
        device_fingerprint = (device_fingerprint or "").strip() or None

        try:
            with self._uow.transaction():
                round_, session, course = self._load_scan_target(round_id, student_id)
                self._ensure_not_recorded(round_id, student_id, client_scan_id)
                self._check_geofence(round_, student_id, location)

                token = self._tokens.consume(round_id, raw_token, now=now)

                policy = self._policies.resolve(course.course_id, course.faculty_id, now=now)
                decision = self._factory.decide(
                    now=now,
                    round_starts_at=round_.starts_at,
                    rules=policy.rules,
                    is_break_round=round_.is_break_round,
                )

                record = self._insert(
                    NewAttendanceRecord(
                        round_id=round_id,
                        student_id=student_id,
                        status=decision.status,
                        recorded_at=now,
                        recorded_at_client=captured_at_client,
                        device_fingerprint=device_fingerprint,
                        latitude=location.latitude if location else None,
                        longitude=location.longitude if location else None,
                        client_scan_id=client_scan_id,
                        qr_token_id=token.token_id,
                    )
                )
        except DomainError as e:
            logger.warning("scan rejected: round=%s student=%s code=%s", round_id, student_id, e.code)
            raise

        logger.info(
            "attendance recorded: round=%s student=%s status=%s delta=%ss threshold=%ss policy=%s:%s v%s",
            round_id,
            student_id,
            record.status.value,
            decision.delta_seconds,
            decision.threshold_seconds,
            policy.scope_type.value,
            policy.scope_id,
            policy.version,
        )

        self._dispatch_fraud_checks(record, session, course, decision)
        self._rotate_token(session, round_, now)

        return ScanResult(round_id=round_id, recorded_at=record.recorded_at, status=record.status)

    # -------- Read side --------
    def my_attendance(self, student_id: int) -> List[AttendanceSummary]:
        summaries: List[AttendanceSummary] = []
        for group in self._roster.list_enrolled_groups(int(student_id)):
            summaries.append(
                AttendanceSummary(
                    course_id=group.course_id,
                    course_name=group.course_name,
                    group_id=group.group_id,
                    group_name=group.group_name,
                    total_rounds=self._attendance.count_rounds_for_group(group.group_id),
                    attended_rounds=self._attendance.count_attended_for_group(
                        student_id=int(student_id), group_id=group.group_id
                    ),
                )
            )
        return summaries

    def attendance_history(self, student_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[AttendanceHistoryRow]:
        return self._attendance.list_history(student_id=int(student_id), limit=int(limit))

    # -------- Steps --------
    def _load_scan_target(self, round_id: int, student_id: int) -> tuple[Round, Session, Course]:
        round_ = self._sessions.get_round(round_id)
        if not round_ or not round_.is_active:
            raise RoundNotActive()

        session = self._sessions.get_session(round_.session_id)
        if not session or not session.is_active:
            raise SessionNotActive()

        if not self._roster.is_enrolled(student_id=student_id, group_id=session.group_id):
            raise NotEnrolled()

        course = self._roster.get_course(session.course_id)
        if not course:
            raise CourseNotFound()
        return round_, session, course

    def _ensure_not_recorded(self, round_id: int, student_id: int, client_scan_id: Optional[str]) -> None:
        existing = self._attendance.get_for_round_and_student(round_id=round_id, student_id=student_id)
        if existing:
            raise self._duplicate_error(existing, client_scan_id)

    @staticmethod
    def _duplicate_error(existing: Optional[AttendanceRecord], client_scan_id: Optional[str]) -> DomainError:
        if existing and client_scan_id and existing.client_scan_id == client_scan_id:
            return DuplicateOfflineScan()
        return AlreadyRecorded()

    def _check_geofence(self, round_: Round, student_id: int, location: Optional[ScanLocation]) -> None:
        if not round_.geofence_enabled:
            return
        if location is None or location.latitude is None or location.longitude is None:
            raise LocationRequired()
        if not round_.has_valid_geofence:
            logger.error("geofence misconfiguration: round=%s", round_.round_id)
            raise GeofenceMisconfigured()

        if not (math.isfinite(location.latitude) and math.isfinite(location.longitude)):
            raise OutsideGeofence()

        distance = haversine_distance_m(round_.latitude, round_.longitude, location.latitude, location.longitude)
        if not math.isfinite(distance) or distance > round_.geofence_radius_m:
            logger.warning(
                "scan outside geofence: round=%s student=%s distance=%.0fm radius=%sm",
                round_.round_id,
                student_id,
                distance,
                round_.geofence_radius_m,
            )
            raise OutsideGeofence()

    def _insert(self, record: NewAttendanceRecord) -> AttendanceRecord:
        try:
            return self._attendance.insert(record)
        except UniqueViolation as e:
            # A concurrent scan won the race. The snapshot read cannot see its row,
            # so re-read with a lock to tell offline replays apart by client id.
            if e.constraint == ROUND_STUDENT_CLIENT_CONSTRAINT:
                raise DuplicateOfflineScan()
            existing = self._attendance.get_for_round_and_student(
                round_id=record.round_id, student_id=record.student_id, for_update=True
            )
            raise self._duplicate_error(existing, record.client_scan_id)

    def _dispatch_fraud_checks(
        self,
        record: AttendanceRecord,
        session: Session,
        course: Course,
        decision: StatusDecision,
    ) -> None:
        context = ScanContext(
            session_id=session.session_id,
            round_id=record.round_id,
            student_id=record.student_id,
            course_id=course.course_id,
            recorded_at=record.recorded_at,
            delta_seconds=decision.delta_seconds,
            threshold_seconds=decision.threshold_seconds,
            latitude=record.latitude,
            longitude=record.longitude,
            device_fingerprint=record.device_fingerprint,
            device_binding_enabled=course.device_binding_enabled,
        )
        try:
            self._fraud.dispatch(context)
        except Exception:
            logger.exception("fraud dispatch failed: round=%s student=%s", record.round_id, record.student_id)

    def _rotate_token(self, session: Session, round_: Round, now: datetime) -> None:
        # The record is committed; a failed rotation only delays the next code.
        try:
            token = self._tokens.issue(round_.round_id, now=now)
            publish_qr_updated(self._publisher, round_, token, round_qr_payload(session, round_, token))
        except Exception:
            logger.exception("token rotation failed: round=%s", round_.round_id)
