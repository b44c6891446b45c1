from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..common.datetime_utils import to_iso
from ..core.enums import AttendanceStatus


@dataclass(frozen=True)
class ScanLocation:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one student's attendance for one round."""

    record_id: int
    round_id: int
    student_id: int
    status: AttendanceStatus
    recorded_at: datetime
    recorded_at_client: Optional[datetime] = None
    device_fingerprint: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    client_scan_id: Optional[str] = None
    qr_token_id: Optional[int] = None


@dataclass(frozen=True)
class NewAttendanceRecord:
    round_id: int
    student_id: int
    status: AttendanceStatus
    recorded_at: datetime
    recorded_at_client: Optional[datetime] = None
    device_fingerprint: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    client_scan_id: Optional[str] = None
    qr_token_id: Optional[int] = None


@dataclass(frozen=True)
class ScanResult:
    round_id: int
    recorded_at: datetime
    status: AttendanceStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roundId": self.round_id,
            "recordedAt": to_iso(self.recorded_at),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class AttendanceSummary:
    """Read-model: attended vs total rounds per enrolled group."""

    course_id: int
    course_name: str
    group_id: int
    group_name: str
    total_rounds: int
    attended_rounds: int

    @property
    def attendance_percentage(self) -> int:
        if self.total_rounds == 0:
            return 0
        return round(self.attended_rounds / self.total_rounds * 100)


@dataclass(frozen=True)
class AttendanceHistoryRow:
    record_id: int
    recorded_at: datetime
    status: AttendanceStatus
    round_id: int
    round_number: int
    session_id: int
    course_id: int
    course_name: str
    group_name: str
