from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..common.validators import optional_bool, optional_float, optional_latitude, optional_longitude
from ..core.enums import SessionStatus
from ..core.exceptions import ValidationError
from ..roster.model import Course, Group
from ..tokens.model import IssuedToken


@dataclass(frozen=True)
class Session:
    session_id: int
    group_id: int
    course_id: int
    professor_id: int
    starts_at: datetime
    ends_at: Optional[datetime]
    is_active: bool
    status: SessionStatus


@dataclass(frozen=True)
class Round:
    round_id: int
    session_id: int
    round_number: int
    starts_at: datetime
    ends_at: Optional[datetime] = None
    is_active: bool = True
    geofence_enabled: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geofence_radius_m: Optional[float] = None
    is_break_round: bool = False

    @property
    def has_valid_geofence(self) -> bool:
        values = (self.latitude, self.longitude, self.geofence_radius_m)
        if any(v is None or not math.isfinite(v) for v in values):
            return False
        return abs(self.latitude) <= 90 and abs(self.longitude) <= 180 and self.geofence_radius_m > 0


@dataclass(frozen=True)
class RoundOptions:
    geofence_enabled: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geofence_radius_m: Optional[float] = None
    is_break_round: bool = False

    @classmethod
    def from_payload(cls, data: Optional[Mapping[str, Any]]) -> "RoundOptions":
        data = data or {}
        radius = optional_float(data.get("geofenceRadiusM", data.get("geofence_radius_m")), "geofenceRadiusM")
        if radius is not None and radius <= 0:
            raise ValidationError("geofenceRadiusM must be greater than 0")
        return cls(
            geofence_enabled=optional_bool(
                data.get("geofenceEnabled", data.get("geofence_enabled")), "geofenceEnabled"
            ),
            latitude=optional_latitude(data.get("latitude")),
            longitude=optional_longitude(data.get("longitude")),
            geofence_radius_m=radius,
            is_break_round=optional_bool(data.get("isBreakRound", data.get("is_break_round")), "isBreakRound"),
        )


@dataclass(frozen=True)
class RoundStart:
    round: Round
    token: IssuedToken
    qr_payload: str


@dataclass(frozen=True)
class SessionStart:
    session: Session
    round: Round
    token: IssuedToken
    qr_payload: str
    course: Course
    group: Group


@dataclass(frozen=True)
class SessionSummary:
    session: Session
    ended_at: datetime
    total_rounds: int
    attendance_count: int


@dataclass(frozen=True)
class RoundStats:
    round_id: int
    round_number: int
    starts_at: datetime
    ends_at: Optional[datetime]
    is_active: bool
    attendance_count: int


@dataclass(frozen=True)
class SessionStats:
    session_id: int
    rounds: Sequence[RoundStats] = field(default_factory=tuple)

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)

    @property
    def total_attendance(self) -> int:
        return sum(r.attendance_count for r in self.rounds)
