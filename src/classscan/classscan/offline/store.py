from __future__ import annotations

import sqlite3
import threading
from collections import OrderedDict
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Protocol

from ..common.datetime_utils import parse_iso_datetime
from .model import OfflineScan


class OfflineScanStore(Protocol):
    """Device-local queue of scans, in capture order, keyed by client_scan_id."""

    def put(self, scan: OfflineScan) -> None:
        raise NotImplementedError

    def list_pending(self) -> List[OfflineScan]:
        raise NotImplementedError

    def delete(self, client_scan_id: str) -> None:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError


class InMemoryOfflineScanStore(OfflineScanStore):
    def __init__(self):
        self._scans: "OrderedDict[str, OfflineScan]" = OrderedDict()
        self._lock = threading.Lock()

    def put(self, scan: OfflineScan) -> None:
        with self._lock:
            self._scans[scan.client_scan_id] = scan

    def list_pending(self) -> List[OfflineScan]:
        with self._lock:
            return list(self._scans.values())

    def delete(self, client_scan_id: str) -> None:
        with self._lock:
            self._scans.pop(client_scan_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._scans)


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS offline_scans (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    client_scan_id TEXT NOT NULL UNIQUE,
    round_id INTEGER NOT NULL,
    token TEXT NOT NULL,
    latitude REAL,
    longitude REAL,
    device_fingerprint TEXT,
    captured_at TEXT NOT NULL
)
"""


class SQLiteOfflineScanStore(OfflineScanStore):
    """File-backed queue so captured scans survive an app restart."""

    def __init__(self, path: str | Path):
        self._path = str(path)
        self._lock = threading.Lock()
        with self._connect() as conn:
            conn.execute(_CREATE_TABLE)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def put(self, scan: OfflineScan) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO offline_scans(
                    client_scan_id, round_id, token, latitude, longitude, device_fingerprint, captured_at
                )
                VALUES(?,?,?,?,?,?,?)
                ON CONFLICT(client_scan_id) DO UPDATE SET
                    round_id=excluded.round_id,
                    token=excluded.token,
                    latitude=excluded.latitude,
                    longitude=excluded.longitude,
                    device_fingerprint=excluded.device_fingerprint,
                    captured_at=excluded.captured_at
                """,
                (
                    scan.client_scan_id,
                    int(scan.round_id),
                    scan.token,
                    scan.latitude,
                    scan.longitude,
                    scan.device_fingerprint,
                    scan.captured_at.isoformat(),
                ),
            )

    def list_pending(self) -> List[OfflineScan]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT client_scan_id, round_id, token, latitude, longitude, device_fingerprint, captured_at
                FROM offline_scans
                ORDER BY seq ASC
                """
            ).fetchall()
        return [
            OfflineScan(
                client_scan_id=row[0],
                round_id=int(row[1]),
                token=row[2],
                latitude=row[3],
                longitude=row[4],
                device_fingerprint=row[5],
                captured_at=parse_iso_datetime(row[6]),
            )
            for row in rows
        ]

    def delete(self, client_scan_id: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("DELETE FROM offline_scans WHERE client_scan_id = ?", (client_scan_id,))

    def count(self) -> int:
        with self._lock, self._connect() as conn:
            (total,) = conn.execute("SELECT COUNT(*) FROM offline_scans").fetchone()
        return int(total)
