"""Scan heuristics.

Each detector looks at one accepted scan and returns a signal or None.
Detectors only read; persisting and logging is the service's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..core.constants import (
    EDGE_SCAN_SECONDS,
    GPS_CLUSTER_MIN_COUNT,
    GPS_CLUSTER_TOLERANCE_DEGREES,
    GPS_CLUSTER_WINDOW_SECONDS,
    GPS_ROUNDING_DIGITS,
    RAPID_BURST_MIN_COUNT,
    RAPID_BURST_WINDOW_SECONDS,
)
from ..core.enums import FraudSeverity, FraudType
from .model import FraudSignal
from .repository import ScanActivityReader


@dataclass(frozen=True)
class ScanContext:
    """Everything the detectors know about an accepted scan."""

    session_id: int
    round_id: int
    student_id: int
    course_id: int
    recorded_at: datetime
    delta_seconds: int
    threshold_seconds: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    device_fingerprint: Optional[str] = None
    device_binding_enabled: bool = False


Detector = Callable[[ScanContext, ScanActivityReader], Optional[FraudSignal]]


def round_coordinate(value: float) -> float:
    return round(float(value), GPS_ROUNDING_DIGITS)


def detect_rapid_burst(ctx: ScanContext, activity: ScanActivityReader) -> Optional[FraudSignal]:
    since = ctx.recorded_at - timedelta(seconds=RAPID_BURST_WINDOW_SECONDS)
    count = activity.count_student_records_since(session_id=ctx.session_id, student_id=ctx.student_id, since=since)
    if count < RAPID_BURST_MIN_COUNT:
        return None
    return FraudSignal(
        type=FraudType.RAPID_BURST,
        severity=FraudSeverity.MEDIUM,
        session_id=ctx.session_id,
        student_id=ctx.student_id,
        details={"windowSeconds": RAPID_BURST_WINDOW_SECONDS, "priorCount": count},
    )


def detect_gps_cluster(ctx: ScanContext, activity: ScanActivityReader) -> Optional[FraudSignal]:
    if ctx.latitude is None or ctx.longitude is None:
        return None
    latitude = round_coordinate(ctx.latitude)
    longitude = round_coordinate(ctx.longitude)
    count = activity.count_nearby_other_students(
        session_id=ctx.session_id,
        student_id=ctx.student_id,
        since=ctx.recorded_at - timedelta(seconds=GPS_CLUSTER_WINDOW_SECONDS),
        latitude=latitude,
        longitude=longitude,
        tolerance=GPS_CLUSTER_TOLERANCE_DEGREES,
    )
    if count < GPS_CLUSTER_MIN_COUNT:
        return None
    return FraudSignal(
        type=FraudType.GPS_CLUSTER,
        severity=FraudSeverity.LOW,
        session_id=ctx.session_id,
        round_id=ctx.round_id,
        student_id=ctx.student_id,
        details={"latitude": latitude, "longitude": longitude, "withinSeconds": GPS_CLUSTER_WINDOW_SECONDS},
    )


def detect_edge_scan(ctx: ScanContext, activity: ScanActivityReader) -> Optional[FraudSignal]:
    if abs(ctx.delta_seconds - ctx.threshold_seconds) > EDGE_SCAN_SECONDS:
        return None
    return FraudSignal(
        type=FraudType.EDGE_SCAN,
        severity=FraudSeverity.LOW,
        session_id=ctx.session_id,
        round_id=ctx.round_id,
        student_id=ctx.student_id,
        details={"deltaSeconds": ctx.delta_seconds, "thresholdSeconds": ctx.threshold_seconds},
    )


def detect_multiple_device(ctx: ScanContext, activity: ScanActivityReader) -> Optional[FraudSignal]:
    if not ctx.device_fingerprint or not ctx.device_binding_enabled:
        return None
    count = activity.count_other_fingerprints(
        session_id=ctx.session_id,
        student_id=ctx.student_id,
        fingerprint=ctx.device_fingerprint,
    )
    if count <= 0:
        return None
    return FraudSignal(
        type=FraudType.MULTIPLE_DEVICE,
        severity=FraudSeverity.MEDIUM,
        session_id=ctx.session_id,
        student_id=ctx.student_id,
        details={"fingerprintsSeen": count + 1},
    )


DEFAULT_DETECTORS: tuple[Detector, ...] = (
    detect_rapid_burst,
    detect_gps_cluster,
    detect_edge_scan,
    detect_multiple_device,
)
