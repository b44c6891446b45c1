from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_bool, db_cursor, fetchone
from .model import ScanToken
from .repository import TokenRepository


class MySQLTokenRepository(TokenRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def insert(self, *, round_id: int, token_hash: str, expires_at: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO qr_tokens(round_id, token_hash, expires_at, consumed)
                VALUES(%s,%s,%s,0)
                """,
                (int(round_id), token_hash, expires_at),
            )
            return int(cur.lastrowid)

    def find_by_hash(self, *, round_id: int, token_hash: str) -> Optional[ScanToken]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT token_id, round_id, token_hash, expires_at, consumed
                FROM qr_tokens
                WHERE round_id=%s AND token_hash=%s
                LIMIT 1
                """,
                (int(round_id), token_hash),
            )
            r = fetchone(cur)
            if not r:
                return None
            return ScanToken(
                token_id=int(r["token_id"]),
                round_id=int(r["round_id"]),
                token_hash=r["token_hash"],
                expires_at=r["expires_at"],
                consumed=as_bool(r["consumed"]),
            )

    def mark_consumed(self, *, token_id: int, now: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE qr_tokens
                SET consumed=1
                WHERE token_id=%s AND consumed=0 AND expires_at > %s
                """,
                (int(token_id), now),
            )
            return cur.rowcount == 1

    def delete_expired(self, *, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM qr_tokens WHERE expires_at < %s", (now,))
            return int(cur.rowcount or 0)
