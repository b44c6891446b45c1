from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_bool, db_cursor, fetchall, fetchone
from .model import Course, EnrolledGroup, Group
from .repository import RosterDirectory


class MySQLRosterDirectory(RosterDirectory):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_course(self, course_id: int) -> Optional[Course]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT course_id, code, name, professor_id, faculty_id, device_binding_enabled
                FROM courses
                WHERE course_id=%s
                """,
                (int(course_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Course(
                course_id=int(r["course_id"]),
                code=r["code"],
                name=r["name"],
                professor_id=int(r["professor_id"]),
                faculty_id=r.get("faculty_id"),
                device_binding_enabled=as_bool(r.get("device_binding_enabled")),
            )

    def get_group(self, group_id: int) -> Optional[Group]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT group_id, course_id, name FROM course_groups WHERE group_id=%s",
                (int(group_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Group(group_id=int(r["group_id"]), course_id=int(r["course_id"]), name=r["name"])

    def is_enrolled(self, *, student_id: int, group_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS ok FROM enrollments WHERE student_id=%s AND group_id=%s LIMIT 1",
                (int(student_id), int(group_id)),
            )
            return fetchone(cur) is not None

    def list_enrolled_groups(self, student_id: int) -> Sequence[EnrolledGroup]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT c.course_id, c.name AS course_name, g.group_id, g.name AS group_name
                FROM enrollments e
                JOIN course_groups g ON g.group_id = e.group_id
                JOIN courses c ON c.course_id = g.course_id
                WHERE e.student_id=%s
                ORDER BY c.name, g.name
                """,
                (int(student_id),),
            )
            return [
                EnrolledGroup(
                    course_id=int(r["course_id"]),
                    course_name=r["course_name"],
                    group_id=int(r["group_id"]),
                    group_name=r["group_name"],
                )
                for r in fetchall(cur)
            ]
