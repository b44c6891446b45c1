from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import PolicyScope
from .model import Policy, PolicyHistoryEntry

SCOPE_VERSION_CONSTRAINT = "uq_policies_scope_version"


class PolicyRepository(Protocol):
    def find_assigned_policy(self, *, course_id: int, now: datetime) -> Optional[Policy]:
        """Policy bound to the course through its assignment, if active and effective."""

        raise NotImplementedError

    def find_scope_policy(self, *, scope_type: PolicyScope, scope_id: Optional[int], now: datetime) -> Optional[Policy]:
        """Highest version (then latest effective_from) active policy effective at ``now``."""

        raise NotImplementedError

    def has_active_global(self) -> bool:
        raise NotImplementedError

    def max_version(self, *, scope_type: PolicyScope, scope_id: Optional[int]) -> int:
        raise NotImplementedError

    def insert(
        self,
        *,
        scope_type: PolicyScope,
        scope_id: Optional[int],
        version: int,
        rules_json: str,
        effective_from: datetime,
        is_active: bool,
        name: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> Policy:
        raise NotImplementedError

    def get_by_id(self, policy_id: int) -> Optional[Policy]:
        raise NotImplementedError

    def list_all(self) -> Sequence[Policy]:
        raise NotImplementedError

    def set_active(self, *, policy_id: int, is_active: bool) -> Optional[Policy]:
        raise NotImplementedError

    def append_history(self, policy: Policy) -> int:
        raise NotImplementedError

    def list_history(self, policy_id: int) -> Sequence[PolicyHistoryEntry]:
        raise NotImplementedError

    def upsert_course_assignment(self, *, course_id: int, policy_id: int, assigned_at: datetime) -> None:
        raise NotImplementedError

    def list_assigned_courses(self, policy_id: int) -> Sequence[int]:
        raise NotImplementedError
