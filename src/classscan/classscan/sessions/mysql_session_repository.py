from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..core.enums import SessionStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_bool, as_float, db_cursor, fetchall, fetchone, translate_unique_violation
from .model import Round, RoundOptions, RoundStats, Session
from .repository import SessionRepository

ROUND_NUMBER_CONSTRAINT = "uq_rounds_session_number"

_ROUND_COLUMNS = """
    round_id, session_id, round_number, starts_at, ends_at, is_active,
    geofence_enabled, latitude, longitude, geofence_radius_m, is_break_round
"""


def _to_session(r: Dict[str, Any]) -> Session:
    return Session(
        session_id=int(r["session_id"]),
        group_id=int(r["group_id"]),
        course_id=int(r["course_id"]),
        professor_id=int(r["professor_id"]),
        starts_at=r["starts_at"],
        ends_at=r.get("ends_at"),
        is_active=as_bool(r["is_active"]),
        status=SessionStatus(r["status"]),
    )


def _to_round(r: Dict[str, Any]) -> Round:
    return Round(
        round_id=int(r["round_id"]),
        session_id=int(r["session_id"]),
        round_number=int(r["round_number"]),
        starts_at=r["starts_at"],
        ends_at=r.get("ends_at"),
        is_active=as_bool(r["is_active"]),
        geofence_enabled=as_bool(r["geofence_enabled"]),
        latitude=as_float(r.get("latitude")),
        longitude=as_float(r.get("longitude")),
        geofence_radius_m=as_float(r.get("geofence_radius_m")),
        is_break_round=as_bool(r["is_break_round"]),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create_session(self, *, group_id: int, course_id: int, professor_id: int, starts_at: datetime) -> Session:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO sessions(group_id, course_id, professor_id, starts_at, is_active, status)
                VALUES(%s,%s,%s,%s,1,%s)
                """,
                (int(group_id), int(course_id), int(professor_id), starts_at, SessionStatus.ACTIVE.value),
            )
            session_id = int(cur.lastrowid)
        return Session(
            session_id=session_id,
            group_id=int(group_id),
            course_id=int(course_id),
            professor_id=int(professor_id),
            starts_at=starts_at,
            ends_at=None,
            is_active=True,
            status=SessionStatus.ACTIVE,
        )

    def get_session(self, session_id: int) -> Optional[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT session_id, group_id, course_id, professor_id, starts_at, ends_at, is_active, status
                FROM sessions
                WHERE session_id=%s
                """,
                (int(session_id),),
            )
            r = fetchone(cur)
            return _to_session(r) if r else None

    def end_session(self, *, session_id: int, ended_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE sessions
                SET is_active=0, ends_at=%s, status=%s
                WHERE session_id=%s AND is_active=1
                """,
                (ended_at, SessionStatus.ENDED.value, int(session_id)),
            )
            return cur.rowcount == 1

    def get_round(self, round_id: int) -> Optional[Round]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_ROUND_COLUMNS} FROM attendance_rounds WHERE round_id=%s", (int(round_id),))
            r = fetchone(cur)
            return _to_round(r) if r else None

    def next_round_number(self, session_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COALESCE(MAX(round_number), 0) AS max_number FROM attendance_rounds WHERE session_id=%s",
                (int(session_id),),
            )
            r = fetchone(cur)
            return (int(r["max_number"]) if r else 0) + 1

    def create_round(self, *, session_id: int, round_number: int, starts_at: datetime, options: RoundOptions) -> Round:
        with translate_unique_violation(ROUND_NUMBER_CONSTRAINT), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_rounds(
                    session_id, round_number, starts_at, is_active,
                    geofence_enabled, latitude, longitude, geofence_radius_m, is_break_round
                )
                VALUES(%s,%s,%s,1,%s,%s,%s,%s,%s)
                """,
                (
                    int(session_id),
                    int(round_number),
                    starts_at,
                    int(options.geofence_enabled),
                    options.latitude,
                    options.longitude,
                    options.geofence_radius_m,
                    int(options.is_break_round),
                ),
            )
            round_id = int(cur.lastrowid)
        return Round(
            round_id=round_id,
            session_id=int(session_id),
            round_number=int(round_number),
            starts_at=starts_at,
            is_active=True,
            geofence_enabled=options.geofence_enabled,
            latitude=options.latitude,
            longitude=options.longitude,
            geofence_radius_m=options.geofence_radius_m,
            is_break_round=options.is_break_round,
        )

    def close_round(self, *, round_id: int, ended_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE attendance_rounds SET is_active=0, ends_at=%s WHERE round_id=%s AND is_active=1",
                (ended_at, int(round_id)),
            )
            return cur.rowcount == 1

    def close_active_rounds(self, *, session_id: int, ended_at: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE attendance_rounds SET is_active=0, ends_at=%s WHERE session_id=%s AND is_active=1",
                (ended_at, int(session_id)),
            )
            return int(cur.rowcount or 0)

    def count_rounds(self, session_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS total FROM attendance_rounds WHERE session_id=%s", (int(session_id),))
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def round_stats(self, session_id: int) -> Sequence[RoundStats]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT ar.round_id, ar.round_number, ar.starts_at, ar.ends_at, ar.is_active,
                       COUNT(rec.record_id) AS attendance_count
                FROM attendance_rounds ar
                LEFT JOIN attendance_records rec ON rec.round_id = ar.round_id
                WHERE ar.session_id=%s
                GROUP BY ar.round_id, ar.round_number, ar.starts_at, ar.ends_at, ar.is_active
                ORDER BY ar.round_number ASC
                """,
                (int(session_id),),
            )
            return [
                RoundStats(
                    round_id=int(r["round_id"]),
                    round_number=int(r["round_number"]),
                    starts_at=r["starts_at"],
                    ends_at=r.get("ends_at"),
                    is_active=as_bool(r["is_active"]),
                    attendance_count=int(r["attendance_count"] or 0),
                )
                for r in fetchall(cur)
            ]
