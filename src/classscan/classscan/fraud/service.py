from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from .heuristics import DEFAULT_DETECTORS, Detector, ScanContext
from .model import FraudSignal
from .repository import FraudSignalRepository, ScanActivityReader

logger = logging.getLogger(__name__)


class FraudService:
    """Runs the scan heuristics and stores what they flag.

    Nothing here may fail a scan: storage and detector errors are logged
    and swallowed.
    """

    def __init__(
        self,
        signals: FraudSignalRepository,
        activity: ScanActivityReader,
        *,
        detectors: Iterable[Detector] = DEFAULT_DETECTORS,
    ):
        self._signals = signals
        self._activity = activity
        self._detectors = tuple(detectors)

    def emit(self, signal: FraudSignal) -> bool:
        try:
            self._signals.insert(signal)
        except Exception:
            logger.exception("failed to emit fraud signal: type=%s session=%s", signal.type.value, signal.session_id)
            return False
        logger.warning(
            "fraud signal: type=%s severity=%s session=%s round=%s student=%s details=%s",
            signal.type.value,
            signal.severity.value,
            signal.session_id,
            signal.round_id,
            signal.student_id,
            signal.details,
        )
        return True

    def run_checks(self, context: ScanContext) -> List[FraudSignal]:
        emitted: List[FraudSignal] = []
        for detector in self._detectors:
            try:
                signal = detector(context, self._activity)
            except Exception:
                logger.exception(
                    "fraud detector failed: detector=%s round=%s student=%s",
                    getattr(detector, "__name__", detector),
                    context.round_id,
                    context.student_id,
                )
                continue
            if signal is not None and self.emit(signal):
                emitted.append(signal)
        return emitted

    def list_signals(self, session_id: int) -> Sequence[FraudSignal]:
        return self._signals.list_for_session(int(session_id))
