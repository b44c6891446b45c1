from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence

from ..audit.service import AuditService
from ..common.datetime_utils import now_utc
from ..core.constants import DEFAULT_POLICY_NAME
from ..core.enums import PolicyScope
from ..core.exceptions import ConflictError, CourseNotFound, PolicyNotFound, UniqueViolation, ValidationError
from ..database.unit_of_work import UnitOfWork
from ..roster.repository import RosterDirectory
from .cache import PolicyCache
from .model import Policy, PolicyHistoryEntry, ResolvedPolicy
from .repository import PolicyRepository
from .rules import DEFAULT_POLICY_RULES, parse_rules, rules_from_json, rules_to_json

logger = logging.getLogger(__name__)

PolicyLookup = Callable[[], Optional[Policy]]

DEFAULT_RESOLVED_POLICY = ResolvedPolicy(
    scope_type=PolicyScope.GLOBAL,
    scope_id=None,
    version=1,
    rules=DEFAULT_POLICY_RULES,
    name=DEFAULT_POLICY_NAME,
)


def resolve_chain(lookups: Iterable[PolicyLookup]) -> Optional[Policy]:
    """Return the first policy found, trying candidates from most to least specific."""
    for lookup in lookups:
        policy = lookup()
        if policy is not None:
            return policy
    return None


def to_resolved(policy: Optional[Policy]) -> ResolvedPolicy:
    if policy is None:
        return DEFAULT_RESOLVED_POLICY
    return ResolvedPolicy(
        scope_type=policy.scope_type,
        scope_id=policy.scope_id,
        version=policy.version,
        rules=rules_from_json(policy.rules_json),
        policy_id=policy.policy_id,
        name=policy.name,
    )


class PolicyService:
    """Resolves and administers lateness policies (course > faculty > global)."""

    def __init__(
        self,
        policies: PolicyRepository,
        roster: RosterDirectory,
        uow: UnitOfWork,
        audit: AuditService,
        *,
        cache: PolicyCache | None = None,
    ):
        self._policies = policies
        self._roster = roster
        self._uow = uow
        self._audit = audit
        self._cache = cache or PolicyCache()
        self._seed_lock = threading.Lock()
        self._default_seeded = False

    @property
    def cache(self) -> PolicyCache:
        return self._cache

    # -------- Resolution --------
    def resolve(
        self,
        course_id: Optional[int] = None,
        faculty_id: Optional[int] = None,
        *,
        now: datetime | None = None,
    ) -> ResolvedPolicy:
        now = now or now_utc()
        self._ensure_default_policy(now)

        cached = self._cache.get(course_id, faculty_id, now=now)
        if cached is not None:
            return cached

        lookups: list[PolicyLookup] = []
        if course_id is not None:
            lookups.append(lambda: self._policies.find_assigned_policy(course_id=course_id, now=now))
            lookups.append(
                lambda: self._policies.find_scope_policy(scope_type=PolicyScope.COURSE, scope_id=course_id, now=now)
            )
        if faculty_id is not None:
            lookups.append(
                lambda: self._policies.find_scope_policy(scope_type=PolicyScope.FACULTY, scope_id=faculty_id, now=now)
            )
        lookups.append(lambda: self._policies.find_scope_policy(scope_type=PolicyScope.GLOBAL, scope_id=None, now=now))

        resolved = to_resolved(resolve_chain(lookups))
        self._cache.put(course_id, faculty_id, resolved, now=now)
        return resolved

    get_active_policy = resolve

    def _ensure_default_policy(self, now: datetime) -> None:
        if self._default_seeded:
            return
        with self._seed_lock:
            if self._default_seeded:
                return
            if self._policies.has_active_global():
                self._default_seeded = True
                return
            # The seed may join the caller's transaction and be rolled back with it,
            # so the flag is only set once a later call sees the row.
            try:
                with self._uow.transaction():
                    policy = self._policies.insert(
                        scope_type=PolicyScope.GLOBAL,
                        scope_id=None,
                        version=self._policies.max_version(scope_type=PolicyScope.GLOBAL, scope_id=None) + 1,
                        rules_json=rules_to_json(DEFAULT_POLICY_RULES),
                        effective_from=now,
                        is_active=True,
                        name=DEFAULT_POLICY_NAME,
                    )
                    self._policies.append_history(policy)
            except UniqueViolation:
                logger.info("default global attendance policy seeded elsewhere")
                return
            finally:
                self._cache.clear()
            logger.info("seeded default global attendance policy: policy_id=%s", policy.policy_id)

    # -------- Administration --------
    def create_policy(
        self,
        *,
        scope_type: PolicyScope | str,
        rules: Any,
        scope_id: Optional[int] = None,
        effective_from: datetime | None = None,
        name: Optional[str] = None,
        is_active: bool = True,
        created_by: Optional[int] = None,
        now: datetime | None = None,
    ) -> Policy:
        try:
            scope = PolicyScope(scope_type)
        except ValueError:
            raise ValidationError("scope_type must be one of course, faculty, global")

        if scope != PolicyScope.GLOBAL and scope_id is None:
            raise ValidationError("scope_id is required for course or faculty policies")
        if scope == PolicyScope.GLOBAL:
            scope_id = None

        parsed = parse_rules(rules)
        effective_from = effective_from or now or now_utc()

        with self._uow.transaction():
            version = self._policies.max_version(scope_type=scope, scope_id=scope_id) + 1
            try:
                policy = self._policies.insert(
                    scope_type=scope,
                    scope_id=scope_id,
                    version=version,
                    rules_json=rules_to_json(parsed),
                    effective_from=effective_from,
                    is_active=is_active,
                    name=(name or "").strip() or None,
                    created_by=created_by,
                )
            except UniqueViolation:
                raise ConflictError("Another policy version was created for this scope at the same time, try again.")
            self._policies.append_history(policy)
            self._evict_for(policy)

        # A resolve racing the commit may have re-cached the old row.
        self._evict_for(policy)

        logger.info(
            "attendance policy created: policy_id=%s scope=%s:%s version=%s",
            policy.policy_id,
            scope.value,
            scope_id,
            version,
        )
        self._audit.log(
            action="policy_create",
            entity_type="attendance_policy",
            entity_id=policy.policy_id,
            actor_id=created_by,
            after=policy,
        )
        return policy

    def set_policy_active(self, policy_id: int, is_active: bool, *, actor_id: Optional[int] = None) -> Policy:
        with self._uow.transaction():
            current = self._policies.get_by_id(int(policy_id))
            if not current:
                raise PolicyNotFound()
            self._policies.append_history(current)
            updated = self._policies.set_active(policy_id=current.policy_id, is_active=bool(is_active))
            if updated is None:
                raise PolicyNotFound()
            self._evict_for(updated)

        self._evict_for(updated)
        self._audit.log(
            action="policy_activate" if is_active else "policy_deactivate",
            entity_type="attendance_policy",
            entity_id=updated.policy_id,
            actor_id=actor_id if actor_id is not None else current.created_by,
            before=current,
            after=updated,
        )
        return updated

    def assign_to_course(
        self,
        policy_id: int,
        course_id: int,
        *,
        actor_id: Optional[int] = None,
        now: datetime | None = None,
    ) -> Policy:
        now = now or now_utc()
        policy = self._policies.get_by_id(int(policy_id))
        if not policy:
            raise PolicyNotFound()
        course = self._roster.get_course(int(course_id))
        if not course:
            raise CourseNotFound()

        with self._uow.transaction():
            self._policies.upsert_course_assignment(course_id=course.course_id, policy_id=policy.policy_id, assigned_at=now)
            self._cache.invalidate_course(course.course_id)

        self._cache.invalidate_course(course.course_id)
        self._audit.log(
            action="policy_assign_course",
            entity_type="course",
            entity_id=course.course_id,
            actor_id=actor_id,
            after={"policyId": policy.policy_id, "courseId": course.course_id},
        )
        return policy

    def list_policies(self) -> Sequence[Policy]:
        return self._policies.list_all()

    def policy_history(self, policy_id: int) -> Sequence[PolicyHistoryEntry]:
        if not self._policies.get_by_id(int(policy_id)):
            raise PolicyNotFound()
        return self._policies.list_history(int(policy_id))

    def _evict_for(self, policy: Policy) -> None:
        if policy.scope_type == PolicyScope.GLOBAL:
            self._cache.clear()
            return
        if policy.scope_type == PolicyScope.FACULTY and policy.scope_id is not None:
            self._cache.invalidate_faculty(int(policy.scope_id))
        elif policy.scope_type == PolicyScope.COURSE and policy.scope_id is not None:
            self._cache.invalidate_course(int(policy.scope_id))

        for course_id in self._policies.list_assigned_courses(policy.policy_id):
            self._cache.invalidate_course(course_id)
