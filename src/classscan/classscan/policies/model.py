from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.enums import PolicyScope


@dataclass(frozen=True)
class PolicyRules:
    first_hour_late_minutes: float
    break_late_minutes: float
    grace_minutes: float = 0
    max_absences: Optional[int] = None

    def late_after_minutes(self, *, is_break_round: bool) -> float:
        return self.break_late_minutes if is_break_round else self.first_hour_late_minutes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lateAfterMinutes": {
                "first_hour": self.first_hour_late_minutes,
                "break": self.break_late_minutes,
            },
            "graceMinutes": self.grace_minutes,
            "maxAbsences": self.max_absences,
        }


@dataclass(frozen=True)
class Policy:
    """Stored policy version. ``rules_json`` is kept raw so bad rows can fail closed."""

    policy_id: int
    scope_type: PolicyScope
    scope_id: Optional[int]
    version: int
    rules_json: str
    effective_from: datetime
    is_active: bool
    name: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ResolvedPolicy:
    scope_type: PolicyScope
    scope_id: Optional[int]
    version: int
    rules: PolicyRules
    policy_id: Optional[int] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.policy_id,
            "scopeType": self.scope_type.value,
            "scopeId": self.scope_id,
            "version": self.version,
            "name": self.name,
            "rules": self.rules.to_dict(),
        }


@dataclass(frozen=True)
class PolicyHistoryEntry:
    history_id: int
    policy_id: int
    scope_type: PolicyScope
    scope_id: Optional[int]
    version: int
    rules_json: str
    effective_from: datetime
    is_active: bool
    name: Optional[str] = None
    recorded_at: Optional[datetime] = None
