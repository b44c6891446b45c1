from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..attendance.model import ScanLocation
from ..core.exceptions import DomainError, DuplicateOfflineScan, TokenAlreadyConsumed, TokenExpired
from .model import OfflineScan, SyncReport
from .store import OfflineScanStore

logger = logging.getLogger(__name__)

Submitter = Callable[[OfflineScan], Any]


def recorder_submitter(recorder, student_id: int) -> Submitter:
    """Replay through AttendanceRecorder.record_scan, the same entry point as live scans."""

    def submit(scan: OfflineScan):
        location = None
        if scan.latitude is not None and scan.longitude is not None:
            location = ScanLocation(latitude=scan.latitude, longitude=scan.longitude)
        return recorder.record_scan(
            student_id,
            scan.round_id,
            scan.token,
            location=location,
            device_fingerprint=scan.device_fingerprint,
            client_scan_id=scan.client_scan_id,
            captured_at_client=scan.captured_at,
        )

    return submit


class OfflineReconciler:
    """Replays queued scans in capture order.

    - accepted or already on the server: removed
    - token expired or already used: dropped, the round has moved on
    - anything else: kept, and the pass stops so later scans stay behind it
    """

    def __init__(
        self,
        store: OfflineScanStore,
        submit: Submitter,
        *,
        on_synced: Optional[Callable[[], None]] = None,
    ):
        self._store = store
        self._submit = submit
        self._on_synced = on_synced

    def queue(self, scan: OfflineScan) -> None:
        self._store.put(scan)
        logger.info("scan saved offline: client_scan_id=%s round=%s", scan.client_scan_id, scan.round_id)

    def pending_count(self) -> int:
        return self._store.count()

    def sync(self) -> SyncReport:
        synced = 0
        dropped = 0
        for scan in self._store.list_pending():
            try:
                self._submit(scan)
            except DuplicateOfflineScan:
                self._store.delete(scan.client_scan_id)
                synced += 1
                continue
            except (TokenExpired, TokenAlreadyConsumed) as e:
                self._store.delete(scan.client_scan_id)
                dropped += 1
                logger.info("queued scan expired before sync: client_scan_id=%s code=%s", scan.client_scan_id, e.code)
                continue
            except DomainError as e:
                logger.warning("queued scan sync failed: client_scan_id=%s code=%s", scan.client_scan_id, e.code)
                return self._report(synced, dropped, failed=scan, error=e.code)
            except Exception as e:
                logger.warning("queued scan sync failed: client_scan_id=%s error=%s", scan.client_scan_id, e)
                return self._report(synced, dropped, failed=scan, error=str(e) or type(e).__name__)

            self._store.delete(scan.client_scan_id)
            synced += 1

        report = self._report(synced, dropped)
        if (synced or dropped) and self._on_synced is not None:
            try:
                self._on_synced()
            except Exception:
                logger.exception("offline sync refresh hook failed")
        return report

    def _report(
        self,
        synced: int,
        dropped: int,
        *,
        failed: Optional[OfflineScan] = None,
        error: Optional[str] = None,
    ) -> SyncReport:
        return SyncReport(
            synced=synced,
            dropped=dropped,
            remaining=self._store.count(),
            failed_scan_id=failed.client_scan_id if failed else None,
            error=error,
        )
