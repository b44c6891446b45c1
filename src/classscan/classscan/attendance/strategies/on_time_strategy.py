from __future__ import annotations

from ...core.enums import AttendanceStatus
from .base import AttendanceStrategy, StatusDecision


class OnTimeStrategy(AttendanceStrategy):
    """Scan at or before the late threshold."""

    def decide_scan(self, *, delta_seconds: int, threshold_seconds: int) -> StatusDecision:
        return StatusDecision(
            status=AttendanceStatus.ON_TIME,
            delta_seconds=delta_seconds,
            threshold_seconds=threshold_seconds,
        )
