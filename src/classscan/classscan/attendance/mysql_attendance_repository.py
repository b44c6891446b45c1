from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..core.enums import AttendanceStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_float, db_cursor, fetchall, fetchone, translate_unique_violation
from .model import AttendanceHistoryRow, AttendanceRecord, NewAttendanceRecord
from .repository import ROUND_STUDENT_CLIENT_CONSTRAINT, ROUND_STUDENT_CONSTRAINT, AttendanceRepository


def _to_record(r: Dict[str, Any]) -> AttendanceRecord:
    return AttendanceRecord(
        record_id=int(r["record_id"]),
        round_id=int(r["round_id"]),
        student_id=int(r["student_id"]),
        status=AttendanceStatus(r["status"]),
        recorded_at=r["recorded_at"],
        recorded_at_client=r.get("recorded_at_client"),
        device_fingerprint=r.get("device_fingerprint"),
        latitude=as_float(r.get("recorded_latitude")),
        longitude=as_float(r.get("recorded_longitude")),
        client_scan_id=r.get("client_scan_id"),
        qr_token_id=int(r["qr_token_id"]) if r.get("qr_token_id") is not None else None,
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for_round_and_student(
        self, *, round_id: int, student_id: int, for_update: bool = False
    ) -> Optional[AttendanceRecord]:
        lock_clause = " FOR UPDATE" if for_update else ""
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT record_id, round_id, student_id, qr_token_id, status, recorded_at, recorded_at_client,
                       device_fingerprint, recorded_latitude, recorded_longitude, client_scan_id
                FROM attendance_records
                WHERE round_id=%s AND student_id=%s{lock_clause}
                """,
                (int(round_id), int(student_id)),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def insert(self, record: NewAttendanceRecord) -> AttendanceRecord:
        constraints = (ROUND_STUDENT_CONSTRAINT, ROUND_STUDENT_CLIENT_CONSTRAINT)
        with translate_unique_violation(*constraints), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_records(
                    round_id, student_id, qr_token_id, status, recorded_at, recorded_at_client,
                    device_fingerprint, recorded_latitude, recorded_longitude, client_scan_id
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(record.round_id),
                    int(record.student_id),
                    record.qr_token_id,
                    record.status.value,
                    record.recorded_at,
                    record.recorded_at_client,
                    record.device_fingerprint,
                    record.latitude,
                    record.longitude,
                    record.client_scan_id,
                ),
            )
            record_id = int(cur.lastrowid)
        return AttendanceRecord(
            record_id=record_id,
            round_id=record.round_id,
            student_id=record.student_id,
            status=record.status,
            recorded_at=record.recorded_at,
            recorded_at_client=record.recorded_at_client,
            device_fingerprint=record.device_fingerprint,
            latitude=record.latitude,
            longitude=record.longitude,
            client_scan_id=record.client_scan_id,
            qr_token_id=record.qr_token_id,
        )

    def upsert_excused(self, *, round_id: int, student_id: int, recorded_at: datetime) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_records(round_id, student_id, status, recorded_at)
                VALUES(%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE status=VALUES(status)
                """,
                (int(round_id), int(student_id), AttendanceStatus.EXCUSED.value, recorded_at),
            )

    def count_for_session(self, session_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(rec.record_id) AS total
                FROM attendance_records rec
                JOIN attendance_rounds ar ON ar.round_id = rec.round_id
                WHERE ar.session_id=%s
                """,
                (int(session_id),),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def count_rounds_for_group(self, group_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(ar.round_id) AS total
                FROM attendance_rounds ar
                JOIN sessions s ON s.session_id = ar.session_id
                WHERE s.group_id=%s
                """,
                (int(group_id),),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def count_attended_for_group(self, *, student_id: int, group_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(rec.record_id) AS total
                FROM attendance_records rec
                JOIN attendance_rounds ar ON ar.round_id = rec.round_id
                JOIN sessions s ON s.session_id = ar.session_id
                WHERE s.group_id=%s AND rec.student_id=%s
                """,
                (int(group_id), int(student_id)),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def list_history(self, *, student_id: int, limit: int) -> Sequence[AttendanceHistoryRow]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT rec.record_id, rec.recorded_at, rec.status,
                       ar.round_id, ar.round_number, s.session_id,
                       c.course_id, c.name AS course_name, g.name AS group_name
                FROM attendance_records rec
                JOIN attendance_rounds ar ON ar.round_id = rec.round_id
                JOIN sessions s ON s.session_id = ar.session_id
                JOIN courses c ON c.course_id = s.course_id
                JOIN course_groups g ON g.group_id = s.group_id
                WHERE rec.student_id=%s
                ORDER BY rec.recorded_at DESC, rec.record_id DESC
                LIMIT %s
                """,
                (int(student_id), int(limit)),
            )
            return [
                AttendanceHistoryRow(
                    record_id=int(r["record_id"]),
                    recorded_at=r["recorded_at"],
                    status=AttendanceStatus(r["status"]),
                    round_id=int(r["round_id"]),
                    round_number=int(r["round_number"]),
                    session_id=int(r["session_id"]),
                    course_id=int(r["course_id"]),
                    course_name=str(r["course_name"]),
                    group_name=str(r["group_name"]),
                )
                for r in fetchall(cur)
            ]
