from __future__ import annotations

from typing import Protocol, Sequence

from .model import AuditLogEntry


class AuditRepository(Protocol):
    def insert(self, entry: AuditLogEntry) -> int:
        raise NotImplementedError

    def list_for_entity(self, *, entity_type: str, entity_id: str, limit: int = 200) -> Sequence[AuditLogEntry]:
        raise NotImplementedError
