from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Optional

from .model import AuditLogEntry
from .repository import AuditRepository

logger = logging.getLogger(__name__)


def snapshot(value: Any) -> Any:
    """Turn domain dataclasses into JSON-friendly dicts for the audit trail."""
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {k: snapshot(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [snapshot(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


class AuditService:
    """Append-only audit trail. Never fails the caller."""

    def __init__(self, audit: AuditRepository):
        self._audit = audit

    def log(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: Any = None,
        actor_id: Optional[int] = None,
        before: Any = None,
        after: Any = None,
        reason: Optional[str] = None,
    ) -> None:
        entry = AuditLogEntry(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            actor_id=actor_id,
            before=snapshot(before),
            after=snapshot(after),
            reason=reason,
        )
        try:
            self._audit.insert(entry)
        except Exception:
            logger.exception("audit log insert failed: action=%s entity=%s:%s", action, entity_type, entity_id)
