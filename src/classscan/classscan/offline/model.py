from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import now_utc


@dataclass(frozen=True)
class OfflineScan:
    """A scan captured while the device was offline, replayed later."""

    client_scan_id: str
    round_id: int
    token: str
    captured_at: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    device_fingerprint: Optional[str] = None

    @classmethod
    def new(
        cls,
        round_id: int,
        token: str,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        device_fingerprint: Optional[str] = None,
        captured_at: Optional[datetime] = None,
    ) -> "OfflineScan":
        return cls(
            client_scan_id=str(uuid.uuid4()),
            round_id=int(round_id),
            token=token,
            captured_at=captured_at or now_utc(),
            latitude=latitude,
            longitude=longitude,
            device_fingerprint=device_fingerprint,
        )


@dataclass(frozen=True)
class SyncReport:
    synced: int = 0
    dropped: int = 0
    remaining: int = 0
    failed_scan_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def stopped(self) -> bool:
        return self.failed_scan_id is not None
