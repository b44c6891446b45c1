from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ScanToken:
    """Stored token row: only the SHA-256 of the secret is ever persisted."""

    token_id: int
    round_id: int
    token_hash: str
    expires_at: datetime
    consumed: bool = False


@dataclass(frozen=True)
class IssuedToken:
    """Freshly issued token; ``raw_secret`` goes into the QR payload and nowhere else."""

    token_id: int
    round_id: int
    raw_secret: str
    expires_at: datetime
