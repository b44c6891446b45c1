from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import mysql.connector
from mysql.connector import errorcode

from ..core.exceptions import UniqueViolation
from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    shared = conn_factory.current()
    if shared is not None:
        cur = shared.cursor(dictionary=dictionary)
        try:
            yield shared, cur
        finally:
            cur.close()
        return

    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


@contextmanager
def translate_unique_violation(*constraints: str):
    """Re-raise MySQL duplicate-key errors on the named keys as UniqueViolation.

    MySQL reports the key as ``Duplicate entry '...' for key 'table.key_name'``;
    the longest matching constraint name wins so composite keys sharing a
    prefix are told apart.
    """

    try:
        yield
    except mysql.connector.IntegrityError as e:
        if e.errno != errorcode.ER_DUP_ENTRY:
            raise
        message = str(e.msg or e)
        matches = [c for c in constraints if f"{c}'" in message]
        if not matches:
            raise
        raise UniqueViolation(max(matches, key=len)) from e


def as_bool(value: Any) -> bool:
    return bool(int(value)) if value is not None else False


def as_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, separators=(",", ":"))


def load_json(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    return json.loads(value)
