from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class AuditLogEntry:
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    actor_id: Optional[int] = None
    before: Any = None
    after: Any = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
