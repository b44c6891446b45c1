from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..core.enums import ExcuseCategory, ExcuseStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import ExcuseRequest, ExcuseView
from .repository import ExcuseRepository

_EXCUSE_COLUMNS = """
    e.excuse_id, e.round_id, e.student_id, e.reason, e.category, e.status, e.created_at,
    e.attachment_path, e.resolution_note, e.reviewed_by, e.reviewed_at
"""


def _to_excuse(r: Dict[str, Any]) -> ExcuseRequest:
    return ExcuseRequest(
        excuse_id=int(r["excuse_id"]),
        round_id=int(r["round_id"]),
        student_id=int(r["student_id"]),
        reason=str(r["reason"]),
        category=ExcuseCategory(r["category"]),
        status=ExcuseStatus(r["status"]),
        created_at=r["created_at"],
        attachment_path=r.get("attachment_path"),
        resolution_note=r.get("resolution_note"),
        reviewed_by=int(r["reviewed_by"]) if r.get("reviewed_by") is not None else None,
        reviewed_at=r.get("reviewed_at"),
    )


def _to_view(r: Dict[str, Any]) -> ExcuseView:
    return ExcuseView(
        excuse=_to_excuse(r),
        session_id=int(r["session_id"]),
        round_number=int(r["round_number"]),
        student_username=r.get("username"),
        student_display_name=r.get("display_name"),
    )


class MySQLExcuseRepository(ExcuseRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(
        self,
        *,
        round_id: int,
        student_id: int,
        reason: str,
        category: ExcuseCategory,
        attachment_path: Optional[str] = None,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO excuse_requests(round_id, student_id, reason, category, attachment_path, status)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(round_id),
                    int(student_id),
                    reason,
                    category.value,
                    attachment_path,
                    ExcuseStatus.PENDING.value,
                ),
            )
            return int(cur.lastrowid)

    def get(self, excuse_id: int) -> Optional[ExcuseRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_EXCUSE_COLUMNS} FROM excuse_requests e WHERE e.excuse_id=%s", (int(excuse_id),))
            r = fetchone(cur)
            return _to_excuse(r) if r else None

    def find_pending(self, *, round_id: int, student_id: int) -> Optional[ExcuseRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_EXCUSE_COLUMNS}
                FROM excuse_requests e
                WHERE e.round_id=%s AND e.student_id=%s AND e.status=%s
                ORDER BY e.excuse_id DESC
                LIMIT 1
                """,
                (int(round_id), int(student_id), ExcuseStatus.PENDING.value),
            )
            r = fetchone(cur)
            return _to_excuse(r) if r else None

    def decide(
        self,
        *,
        excuse_id: int,
        status: ExcuseStatus,
        reviewed_by: int,
        reviewed_at: datetime,
        resolution_note: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE excuse_requests
                SET status=%s, reviewed_by=%s, reviewed_at=%s, resolution_note=%s
                WHERE excuse_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(reviewed_by),
                    reviewed_at,
                    resolution_note,
                    int(excuse_id),
                    ExcuseStatus.PENDING.value,
                ),
            )
            return cur.rowcount == 1

    def list_for_student(self, student_id: int) -> Sequence[ExcuseView]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_EXCUSE_COLUMNS}, ar.session_id, ar.round_number, u.username, u.display_name
                FROM excuse_requests e
                JOIN attendance_rounds ar ON ar.round_id = e.round_id
                JOIN users u ON u.user_id = e.student_id
                WHERE e.student_id=%s
                ORDER BY e.created_at DESC, e.excuse_id DESC
                """,
                (int(student_id),),
            )
            return [_to_view(r) for r in fetchall(cur)]

    def list_for_session(self, *, session_id: int, status: Optional[ExcuseStatus] = None) -> Sequence[ExcuseView]:
        where: List[str] = ["ar.session_id=%s"]
        params: List[Any] = [int(session_id)]
        if status is not None:
            where.append("e.status=%s")
            params.append(status.value)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_EXCUSE_COLUMNS}, ar.session_id, ar.round_number, u.username, u.display_name
                FROM excuse_requests e
                JOIN attendance_rounds ar ON ar.round_id = e.round_id
                JOIN users u ON u.user_id = e.student_id
                WHERE {" AND ".join(where)}
                ORDER BY e.created_at DESC, e.excuse_id DESC
                """,
                tuple(params),
            )
            return [_to_view(r) for r in fetchall(cur)]
