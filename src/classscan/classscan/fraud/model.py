from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..common.datetime_utils import to_iso
from ..core.enums import FraudSeverity, FraudType


@dataclass(frozen=True)
class FraudSignal:
    """Advisory suspicion about a scan. Never blocks or reverses attendance."""

    type: FraudType
    severity: FraudSeverity
    session_id: Optional[int] = None
    round_id: Optional[int] = None
    student_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    signal_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.signal_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "sessionId": self.session_id,
            "roundId": self.round_id,
            "studentId": self.student_id,
            "details": dict(self.details),
            "createdAt": to_iso(self.created_at),
        }
