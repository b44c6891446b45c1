from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..core.enums import PolicyScope
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_bool, db_cursor, fetchall, fetchone, translate_unique_violation
from .model import Policy, PolicyHistoryEntry
from .repository import SCOPE_VERSION_CONSTRAINT, PolicyRepository

_POLICY_COLUMNS = """
    p.policy_id, p.name, p.scope_type, p.scope_id, p.version, p.rules_json,
    p.effective_from, p.is_active, p.created_by, p.created_at
"""


def _to_policy(r: Dict[str, Any]) -> Policy:
    return Policy(
        policy_id=int(r["policy_id"]),
        scope_type=PolicyScope(r["scope_type"]),
        scope_id=r.get("scope_id"),
        version=int(r["version"]),
        rules_json=r["rules_json"],
        effective_from=r["effective_from"],
        is_active=as_bool(r["is_active"]),
        name=r.get("name"),
        created_by=r.get("created_by"),
        created_at=r.get("created_at"),
    )


class MySQLPolicyRepository(PolicyRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def find_assigned_policy(self, *, course_id: int, now: datetime) -> Optional[Policy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_POLICY_COLUMNS}
                FROM course_policy_assignments a
                JOIN attendance_policies p ON p.policy_id = a.policy_id
                WHERE a.course_id=%s AND p.is_active=1 AND p.effective_from <= %s
                ORDER BY p.version DESC, p.effective_from DESC
                LIMIT 1
                """,
                (int(course_id), now),
            )
            r = fetchone(cur)
            return _to_policy(r) if r else None

    def find_scope_policy(self, *, scope_type: PolicyScope, scope_id: Optional[int], now: datetime) -> Optional[Policy]:
        scope_clause = "p.scope_id IS NULL" if scope_id is None else "p.scope_id=%s"
        params: list[object] = [scope_type.value]
        if scope_id is not None:
            params.append(int(scope_id))
        params.append(now)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_POLICY_COLUMNS}
                FROM attendance_policies p
                WHERE p.scope_type=%s AND {scope_clause} AND p.is_active=1 AND p.effective_from <= %s
                ORDER BY p.version DESC, p.effective_from DESC
                LIMIT 1
                """,
                tuple(params),
            )
            r = fetchone(cur)
            return _to_policy(r) if r else None

    def has_active_global(self) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS ok FROM attendance_policies WHERE scope_type='global' AND is_active=1 LIMIT 1"
            )
            return fetchone(cur) is not None

    def max_version(self, *, scope_type: PolicyScope, scope_id: Optional[int]) -> int:
        scope_clause = "scope_id IS NULL" if scope_id is None else "scope_id=%s"
        params: tuple = (scope_type.value,) if scope_id is None else (scope_type.value, int(scope_id))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT COALESCE(MAX(version), 0) AS max_version
                FROM attendance_policies
                WHERE scope_type=%s AND {scope_clause}
                """,
                params,
            )
            r = fetchone(cur)
            return int(r["max_version"]) if r else 0

    def insert(
        self,
        *,
        scope_type: PolicyScope,
        scope_id: Optional[int],
        version: int,
        rules_json: str,
        effective_from: datetime,
        is_active: bool,
        name: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> Policy:
        with translate_unique_violation(SCOPE_VERSION_CONSTRAINT), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_policies(
                    name, scope_type, scope_id, version, rules_json, effective_from, is_active, created_by
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (name, scope_type.value, scope_id, int(version), rules_json, effective_from, int(bool(is_active)), created_by),
            )
            policy_id = int(cur.lastrowid)

        policy = self.get_by_id(policy_id)
        if policy is None:
            raise RuntimeError(f"policy {policy_id} vanished after insert")
        return policy

    def get_by_id(self, policy_id: int) -> Optional[Policy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_POLICY_COLUMNS} FROM attendance_policies p WHERE p.policy_id=%s", (int(policy_id),))
            r = fetchone(cur)
            return _to_policy(r) if r else None

    def list_all(self) -> Sequence[Policy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_POLICY_COLUMNS}
                FROM attendance_policies p
                ORDER BY p.effective_from DESC, p.version DESC
                """
            )
            return [_to_policy(r) for r in fetchall(cur)]

    def set_active(self, *, policy_id: int, is_active: bool) -> Optional[Policy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE attendance_policies SET is_active=%s WHERE policy_id=%s",
                (int(bool(is_active)), int(policy_id)),
            )
        return self.get_by_id(policy_id)

    def append_history(self, policy: Policy) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_policy_history(
                    policy_id, name, scope_type, scope_id, version, rules_json, effective_from, is_active
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    policy.policy_id,
                    policy.name,
                    policy.scope_type.value,
                    policy.scope_id,
                    policy.version,
                    policy.rules_json,
                    policy.effective_from,
                    int(policy.is_active),
                ),
            )
            return int(cur.lastrowid)

    def list_history(self, policy_id: int) -> Sequence[PolicyHistoryEntry]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT history_id, policy_id, name, scope_type, scope_id, version, rules_json,
                       effective_from, is_active, recorded_at
                FROM attendance_policy_history
                WHERE policy_id=%s
                ORDER BY history_id ASC
                """,
                (int(policy_id),),
            )
            return [
                PolicyHistoryEntry(
                    history_id=int(r["history_id"]),
                    policy_id=int(r["policy_id"]),
                    scope_type=PolicyScope(r["scope_type"]),
                    scope_id=r.get("scope_id"),
                    version=int(r["version"]),
                    rules_json=r["rules_json"],
                    effective_from=r["effective_from"],
                    is_active=as_bool(r["is_active"]),
                    name=r.get("name"),
                    recorded_at=r.get("recorded_at"),
                )
                for r in fetchall(cur)
            ]

    def upsert_course_assignment(self, *, course_id: int, policy_id: int, assigned_at: datetime) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO course_policy_assignments(course_id, policy_id, assigned_at)
                VALUES(%s,%s,%s)
                ON DUPLICATE KEY UPDATE policy_id=VALUES(policy_id), assigned_at=VALUES(assigned_at)
                """,
                (int(course_id), int(policy_id), assigned_at),
            )

    def list_assigned_courses(self, policy_id: int) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT course_id FROM course_policy_assignments WHERE policy_id=%s", (int(policy_id),))
            return [int(r["course_id"]) for r in fetchall(cur)]
