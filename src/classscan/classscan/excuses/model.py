from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..common.datetime_utils import to_iso
from ..core.enums import ExcuseCategory, ExcuseStatus


@dataclass(frozen=True)
class ExcuseRequest:
    excuse_id: int
    round_id: int
    student_id: int
    reason: str
    category: ExcuseCategory
    status: ExcuseStatus
    created_at: datetime
    attachment_path: Optional[str] = None
    resolution_note: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.excuse_id,
            "roundId": self.round_id,
            "studentId": self.student_id,
            "reason": self.reason,
            "category": self.category.value,
            "status": self.status.value,
            "attachmentPath": self.attachment_path,
            "resolutionNote": self.resolution_note,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": to_iso(self.reviewed_at),
            "createdAt": to_iso(self.created_at),
        }


@dataclass(frozen=True)
class ExcuseView:
    """Excuse joined with its round/session and student, for listings."""

    excuse: ExcuseRequest
    session_id: int
    round_number: int
    student_username: Optional[str] = None
    student_display_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.excuse.to_dict()
        data.update(
            {
                "sessionId": self.session_id,
                "roundNumber": self.round_number,
                "student": {
                    "id": self.excuse.student_id,
                    "username": self.student_username,
                    "displayName": self.student_display_name,
                },
            }
        )
        return data
