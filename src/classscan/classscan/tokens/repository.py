from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .model import ScanToken


class TokenRepository(Protocol):
    def insert(self, *, round_id: int, token_hash: str, expires_at: datetime) -> int:
        raise NotImplementedError

    def find_by_hash(self, *, round_id: int, token_hash: str) -> Optional[ScanToken]:
        raise NotImplementedError

    def mark_consumed(self, *, token_id: int, now: datetime) -> bool:
        """Atomically flip ``consumed`` only if still unconsumed and unexpired.

        Returns False when no row changed (another scanner won the race or the
        token expired in between).
        """

        raise NotImplementedError

    def delete_expired(self, *, now: datetime) -> int:
        raise NotImplementedError
