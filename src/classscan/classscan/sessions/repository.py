from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import Round, RoundOptions, RoundStats, Session


class SessionRepository(Protocol):
    def create_session(self, *, group_id: int, course_id: int, professor_id: int, starts_at: datetime) -> Session:
        raise NotImplementedError

    def get_session(self, session_id: int) -> Optional[Session]:
        raise NotImplementedError

    def end_session(self, *, session_id: int, ended_at: datetime) -> bool:
        """Flip an active session to ended; False if it was not active anymore."""

        raise NotImplementedError

    def get_round(self, round_id: int) -> Optional[Round]:
        raise NotImplementedError

    def next_round_number(self, session_id: int) -> int:
        raise NotImplementedError

    def create_round(self, *, session_id: int, round_number: int, starts_at: datetime, options: RoundOptions) -> Round:
        """Insert a round; raises UniqueViolation on a duplicate round number."""

        raise NotImplementedError

    def close_round(self, *, round_id: int, ended_at: datetime) -> bool:
        raise NotImplementedError

    def close_active_rounds(self, *, session_id: int, ended_at: datetime) -> int:
        raise NotImplementedError

    def count_rounds(self, session_id: int) -> int:
        raise NotImplementedError

    def round_stats(self, session_id: int) -> Sequence[RoundStats]:
        raise NotImplementedError
