from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Caller roles used for permission checks."""

    ADMIN = "admin"
    PROFESSOR = "professor"
    STUDENT = "student"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"


class AttendanceStatus(str, Enum):
    """Attendance status as stored in the database."""

    ON_TIME = "on_time"
    LATE = "late"
    EXCUSED = "excused"


class PolicyScope(str, Enum):
    """Policy scopes, most specific first when resolving."""

    COURSE = "course"
    FACULTY = "faculty"
    GLOBAL = "global"


class ExcuseStatus(str, Enum):
    """Excuse review workflow; APPROVED and REJECTED are terminal."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ExcuseCategory(str, Enum):
    ABSENCE = "absence"
    LATE = "late"


class FraudType(str, Enum):
    RAPID_BURST = "rapid_burst"
    GPS_CLUSTER = "gps_cluster"
    EDGE_SCAN = "edge_scan"
    MULTIPLE_DEVICE = "multiple_device"


class FraudSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
