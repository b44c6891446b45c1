from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceHistoryRow, AttendanceRecord, NewAttendanceRecord

ROUND_STUDENT_CONSTRAINT = "uq_attendance_round_student"
ROUND_STUDENT_CLIENT_CONSTRAINT = "uq_attendance_round_student_client"


class AttendanceRepository(Protocol):
    def get_for_round_and_student(
        self, *, round_id: int, student_id: int, for_update: bool = False
    ) -> Optional[AttendanceRecord]:
        """``for_update`` takes a locking read, which sees rows committed after the transaction began."""

        raise NotImplementedError

    def insert(self, record: NewAttendanceRecord) -> AttendanceRecord:
        """Insert a record; raises UniqueViolation naming the violated constraint."""

        raise NotImplementedError

    def upsert_excused(self, *, round_id: int, student_id: int, recorded_at: datetime) -> None:
        """Excuse approval only; scans never update records."""

        raise NotImplementedError

    def count_for_session(self, session_id: int) -> int:
        raise NotImplementedError

    def count_rounds_for_group(self, group_id: int) -> int:
        raise NotImplementedError

    def count_attended_for_group(self, *, student_id: int, group_id: int) -> int:
        raise NotImplementedError

    def list_history(self, *, student_id: int, limit: int) -> Sequence[AttendanceHistoryRow]:
        raise NotImplementedError
