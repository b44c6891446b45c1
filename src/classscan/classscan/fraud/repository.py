from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from .model import FraudSignal


class FraudSignalRepository(Protocol):
    def insert(self, signal: FraudSignal) -> int:
        raise NotImplementedError

    def list_for_session(self, session_id: int) -> Sequence[FraudSignal]:
        raise NotImplementedError


class ScanActivityReader(Protocol):
    """Counts over recorded scans that the detectors need."""

    def count_student_records_since(self, *, session_id: int, student_id: int, since: datetime) -> int:
        raise NotImplementedError

    def count_nearby_other_students(
        self,
        *,
        session_id: int,
        student_id: int,
        since: datetime,
        latitude: float,
        longitude: float,
        tolerance: float,
    ) -> int:
        raise NotImplementedError

    def count_other_fingerprints(self, *, session_id: int, student_id: int, fingerprint: str) -> int:
        raise NotImplementedError
