from __future__ import annotations

from ...core.enums import AttendanceStatus
from .base import AttendanceStrategy, StatusDecision


class LateStrategy(AttendanceStrategy):
    """Late scan."""

    def decide_scan(self, *, delta_seconds: int, threshold_seconds: int) -> StatusDecision:
        return StatusDecision(
            status=AttendanceStatus.LATE,
            delta_seconds=delta_seconds,
            threshold_seconds=threshold_seconds,
        )
