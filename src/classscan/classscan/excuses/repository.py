from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import ExcuseCategory, ExcuseStatus
from .model import ExcuseRequest, ExcuseView


class ExcuseRepository(Protocol):
    def create(
        self,
        *,
        round_id: int,
        student_id: int,
        reason: str,
        category: ExcuseCategory,
        attachment_path: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    def get(self, excuse_id: int) -> Optional[ExcuseRequest]:
        raise NotImplementedError

    def find_pending(self, *, round_id: int, student_id: int) -> Optional[ExcuseRequest]:
        raise NotImplementedError

    def decide(
        self,
        *,
        excuse_id: int,
        status: ExcuseStatus,
        reviewed_by: int,
        reviewed_at: datetime,
        resolution_note: Optional[str] = None,
    ) -> bool:
        """Move a PENDING excuse to a terminal status; False if it was already decided."""

        raise NotImplementedError

    def list_for_student(self, student_id: int) -> Sequence[ExcuseView]:
        raise NotImplementedError

    def list_for_session(self, *, session_id: int, status: Optional[ExcuseStatus] = None) -> Sequence[ExcuseView]:
        raise NotImplementedError
