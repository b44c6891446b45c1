from __future__ import annotations

import logging
import threading
from typing import Optional

from .model import SyncReport
from .reconciler import OfflineReconciler

logger = logging.getLogger(__name__)


class OfflineSyncWorker:
    """Single background loop that replays the queue whenever the device is back online."""

    def __init__(self, reconciler: OfflineReconciler):
        self._reconciler = reconciler
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_report: Optional[SyncReport] = None
        self._passes = 0
        self._idle = threading.Condition()

    @property
    def last_report(self) -> Optional[SyncReport]:
        return self._last_report

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="offline-sync", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread:
            self._thread.join(timeout)

    def notify_online(self) -> None:
        self._wake.set()

    def wait_for_pass(self, passes: int = 1, timeout: float | None = None) -> bool:
        """Block until at least ``passes`` sync passes have completed."""
        with self._idle:
            return self._idle.wait_for(lambda: self._passes >= passes, timeout)

    def _run(self) -> None:
        while True:
            self._wake.wait()
            if self._stop.is_set():
                return
            self._wake.clear()
            try:
                self._last_report = self._reconciler.sync()
            except Exception:
                logger.exception("offline sync pass crashed")
            with self._idle:
                self._passes += 1
                self._idle.notify_all()
