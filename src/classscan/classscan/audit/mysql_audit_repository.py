from __future__ import annotations

from typing import Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_json, fetchall, load_json
from .model import AuditLogEntry
from .repository import AuditRepository


class MySQLAuditRepository(AuditRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def insert(self, entry: AuditLogEntry) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO audit_logs(actor_id, action, entity_type, entity_id, before_json, after_json, reason)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    entry.actor_id,
                    entry.action,
                    entry.entity_type,
                    entry.entity_id,
                    dump_json(entry.before),
                    dump_json(entry.after),
                    entry.reason,
                ),
            )
            return int(cur.lastrowid)

    def list_for_entity(self, *, entity_type: str, entity_id: str, limit: int = 200) -> Sequence[AuditLogEntry]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT actor_id, action, entity_type, entity_id, before_json, after_json, reason, created_at
                FROM audit_logs
                WHERE entity_type=%s AND entity_id=%s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (entity_type, str(entity_id), int(limit)),
            )
            return [
                AuditLogEntry(
                    action=r["action"],
                    entity_type=r["entity_type"],
                    entity_id=r.get("entity_id"),
                    actor_id=r.get("actor_id"),
                    before=load_json(r.get("before_json")),
                    after=load_json(r.get("after_json")),
                    reason=r.get("reason"),
                    created_at=r.get("created_at"),
                )
                for r in fetchall(cur)
            ]
