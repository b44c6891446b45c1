from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Sequence

from ..core.enums import FraudSeverity, FraudType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_json, fetchall, fetchone, load_json
from .model import FraudSignal
from .repository import FraudSignalRepository, ScanActivityReader


def _to_signal(r: Dict[str, Any]) -> FraudSignal:
    return FraudSignal(
        signal_id=int(r["signal_id"]),
        type=FraudType(r["type"]),
        severity=FraudSeverity(r["severity"]),
        session_id=int(r["session_id"]) if r.get("session_id") is not None else None,
        round_id=int(r["round_id"]) if r.get("round_id") is not None else None,
        student_id=int(r["student_id"]) if r.get("student_id") is not None else None,
        details=load_json(r.get("details_json")) or {},
        created_at=r.get("created_at"),
    )


class MySQLFraudRepository(FraudSignalRepository, ScanActivityReader):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def insert(self, signal: FraudSignal) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO fraud_signals(type, severity, session_id, round_id, student_id, details_json)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    signal.type.value,
                    signal.severity.value,
                    signal.session_id,
                    signal.round_id,
                    signal.student_id,
                    dump_json(signal.details) if signal.details else None,
                ),
            )
            return int(cur.lastrowid)

    def list_for_session(self, session_id: int) -> Sequence[FraudSignal]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT signal_id, type, severity, session_id, round_id, student_id, details_json, created_at
                FROM fraud_signals
                WHERE session_id=%s
                ORDER BY created_at DESC, signal_id DESC
                """,
                (int(session_id),),
            )
            return [_to_signal(r) for r in fetchall(cur)]

    def count_student_records_since(self, *, session_id: int, student_id: int, since: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(rec.record_id) AS total
                FROM attendance_records rec
                JOIN attendance_rounds ar ON ar.round_id = rec.round_id
                WHERE ar.session_id=%s AND rec.student_id=%s AND rec.recorded_at >= %s
                """,
                (int(session_id), int(student_id), since),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def count_nearby_other_students(
        self,
        *,
        session_id: int,
        student_id: int,
        since: datetime,
        latitude: float,
        longitude: float,
        tolerance: float,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(rec.record_id) AS total
                FROM attendance_records rec
                JOIN attendance_rounds ar ON ar.round_id = rec.round_id
                WHERE ar.session_id=%s
                  AND rec.student_id <> %s
                  AND rec.recorded_at >= %s
                  AND rec.recorded_latitude BETWEEN %s AND %s
                  AND rec.recorded_longitude BETWEEN %s AND %s
                """,
                (
                    int(session_id),
                    int(student_id),
                    since,
                    latitude - tolerance,
                    latitude + tolerance,
                    longitude - tolerance,
                    longitude + tolerance,
                ),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def count_other_fingerprints(self, *, session_id: int, student_id: int, fingerprint: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(rec.record_id) AS total
                FROM attendance_records rec
                JOIN attendance_rounds ar ON ar.round_id = rec.round_id
                WHERE ar.session_id=%s
                  AND rec.student_id=%s
                  AND rec.device_fingerprint IS NOT NULL
                  AND rec.device_fingerprint <> %s
                """,
                (int(session_id), int(student_id), fingerprint),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0
