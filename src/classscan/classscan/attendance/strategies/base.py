from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ...core.enums import AttendanceStatus


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    delta_seconds: int
    threshold_seconds: int


class AttendanceStrategy(ABC):
    """Strategy Pattern: encapsulate how we decide a scan's attendance status."""

    @abstractmethod
    def decide_scan(self, *, delta_seconds: int, threshold_seconds: int) -> StatusDecision:
        raise NotImplementedError
