from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from ..core.constants import FRAUD_WORKERS
from .heuristics import ScanContext
from .service import FraudService

logger = logging.getLogger(__name__)


class FraudCheckDispatcher(Protocol):
    def dispatch(self, context: ScanContext) -> None:
        raise NotImplementedError


class FraudDispatcher(FraudCheckDispatcher):
    """Fire-and-forget fraud checks on a small worker pool, off the scan path."""

    def __init__(self, fraud: FraudService, *, max_workers: int = FRAUD_WORKERS):
        self._fraud = fraud
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="fraud-check")

    def dispatch(self, context: ScanContext) -> None:
        try:
            future = self._executor.submit(self._fraud.run_checks, context)
        except RuntimeError:
            logger.warning("fraud dispatcher is shut down; skipped checks for round=%s", context.round_id)
            return
        future.add_done_callback(self._log_failure)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("fraud checks crashed", exc_info=error)


class InlineFraudDispatcher(FraudCheckDispatcher):
    """Runs checks on the caller's thread (tests, CLI tools)."""

    def __init__(self, fraud: FraudService):
        self._fraud = fraud

    def dispatch(self, context: ScanContext) -> None:
        try:
            self._fraud.run_checks(context)
        except Exception:
            logger.exception("fraud checks crashed: round=%s", context.round_id)
