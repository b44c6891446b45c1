from __future__ import annotations

import logging
import threading
from typing import Optional

from ..core.constants import TOKEN_SWEEP_INTERVAL_SECONDS
from .service import TokenService

logger = logging.getLogger(__name__)


class TokenSweeper:
    """Periodically deletes expired tokens. Housekeeping only."""

    def __init__(self, tokens: TokenService, *, interval_seconds: float = TOKEN_SWEEP_INTERVAL_SECONDS):
        self._tokens = tokens
        self._interval = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="qr-token-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self._tokens.sweep_expired()
