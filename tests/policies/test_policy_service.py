from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from classscan.core.constants import DEFAULT_POLICY_NAME
from classscan.core.enums import PolicyScope
from classscan.core.exceptions import ConflictError, CourseNotFound, InvalidPolicyRules, PolicyNotFound, ValidationError
from classscan.policies.rules import DEFAULT_POLICY_RULES, parse_rules, rules_from_json, rules_to_json
from fakes import ADMIN_ID, COURSE_ID, FACULTY_ID, T0


def _rules(first_hour, brk=10, grace=0):
    return {"lateAfterMinutes": {"first_hour": first_hour, "break": brk}, "graceMinutes": grace}


def test_first_resolve_seeds_the_global_default(engine):
    resolved = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)

    assert resolved.scope_type == PolicyScope.GLOBAL
    assert resolved.rules == DEFAULT_POLICY_RULES
    assert resolved.rules.first_hour_late_minutes == 20
    assert resolved.rules.break_late_minutes == 10
    assert resolved.name == DEFAULT_POLICY_NAME
    assert len(engine.policy_repo.policies) == 1
    assert len(engine.policy_repo.history) == 1


def test_default_is_seeded_only_once(engine):
    engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)
    engine.policies.cache.clear()
    engine.policies.resolve(None, None, now=T0)

    assert len(engine.policy_repo.policies) == 1


def test_seed_rolled_back_with_the_caller_is_retried(engine):
    with pytest.raises(RuntimeError):
        with engine.uow.transaction():
            engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)
            raise RuntimeError("scan failed after the policy lookup")
    # What a rollback of the shared transaction leaves behind.
    engine.policy_repo.policies.clear()
    engine.policy_repo.history.clear()

    resolved = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)

    assert resolved.name == DEFAULT_POLICY_NAME
    assert engine.policy_repo.has_active_global()
    assert len(engine.policy_repo.policies) == 1


def test_seed_raced_by_another_process_is_not_an_error(engine, monkeypatch):
    monkeypatch.setattr(engine.policy_repo, "has_active_global", lambda: False)
    monkeypatch.setattr(engine.policy_repo, "max_version", lambda **_: 0)
    engine.policy_repo.insert(
        scope_type=PolicyScope.GLOBAL,
        scope_id=None,
        version=1,
        rules_json=rules_to_json(DEFAULT_POLICY_RULES),
        effective_from=T0,
        is_active=True,
    )

    resolved = engine.policies.resolve(None, None, now=T0)

    assert resolved.rules == DEFAULT_POLICY_RULES
    assert len(engine.policy_repo.policies) == 1


def test_course_beats_faculty_beats_global(engine):
    engine.policies.create_policy(scope_type="global", rules=_rules(25), now=T0)
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).rules.first_hour_late_minutes == 25

    engine.policies.create_policy(scope_type="faculty", scope_id=FACULTY_ID, rules=_rules(15), now=T0)
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).rules.first_hour_late_minutes == 15

    engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(5), now=T0)
    resolved = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)
    assert resolved.scope_type == PolicyScope.COURSE
    assert resolved.rules.first_hour_late_minutes == 5

    # A different course in the same faculty still gets the faculty policy.
    assert engine.policies.resolve(999, FACULTY_ID, now=T0).rules.first_hour_late_minutes == 15


def test_assigned_policy_wins_over_course_scope(engine):
    engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(30), now=T0)
    assigned = engine.policies.create_policy(scope_type="faculty", scope_id=77, rules=_rules(3), now=T0)

    engine.policies.assign_to_course(assigned.policy_id, COURSE_ID, actor_id=ADMIN_ID, now=T0)

    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).rules.first_hour_late_minutes == 3
    assert engine.audit_repo.entries[-1].action == "policy_assign_course"
    assert engine.audit_repo.entries[-1].actor_id == ADMIN_ID


def test_future_and_inactive_policies_are_ignored(engine):
    engine.policies.create_policy(
        scope_type="course", scope_id=COURSE_ID, rules=_rules(1), effective_from=T0 + timedelta(days=1), now=T0
    )
    engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(2), is_active=False, now=T0)

    resolved = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)
    assert resolved.scope_type == PolicyScope.GLOBAL


def test_highest_version_wins_within_a_scope(engine):
    first = engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(12), now=T0)
    second = engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(8), now=T0)

    assert (first.version, second.version) == (1, 2)
    resolved = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)
    assert resolved.version == 2
    assert resolved.rules.first_hour_late_minutes == 8


def test_resolution_is_cached_until_ttl(engine):
    policy = engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(12), now=T0)
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).rules.first_hour_late_minutes == 12

    # Change the row behind the service's back: the cache still answers.
    engine.policy_repo.policies[policy.policy_id] = replace(policy, is_active=False)
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0 + timedelta(seconds=30)).scope_type == PolicyScope.COURSE

    after_ttl = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0 + timedelta(seconds=61))
    assert after_ttl.scope_type == PolicyScope.GLOBAL


def test_writes_evict_the_cache(engine):
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).scope_type == PolicyScope.GLOBAL

    course_policy = engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(7), now=T0)
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).rules.first_hour_late_minutes == 7

    engine.policies.set_policy_active(course_policy.policy_id, False, actor_id=ADMIN_ID)
    assert engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0).scope_type == PolicyScope.GLOBAL


def test_malformed_stored_rules_fail_closed(engine):
    broken = engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(4), now=T0)
    engine.policy_repo.policies[broken.policy_id] = replace(broken, rules_json="{not json")
    engine.policies.cache.clear()

    resolved = engine.policies.resolve(COURSE_ID, FACULTY_ID, now=T0)
    assert resolved.scope_type == PolicyScope.COURSE
    assert resolved.rules == DEFAULT_POLICY_RULES


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"scope_type": "department", "rules": _rules(5)}, ValidationError),
        ({"scope_type": "course", "rules": _rules(5)}, ValidationError),
        ({"scope_type": "global", "rules": {"lateAfterMinutes": {"first_hour": -1, "break": 5}}}, InvalidPolicyRules),
        ({"scope_type": "global", "rules": {"graceMinutes": 2}}, InvalidPolicyRules),
        ({"scope_type": "global", "rules": "20 minutes"}, InvalidPolicyRules),
    ],
)
def test_create_policy_validates_input(engine, kwargs, error):
    with pytest.raises(error):
        engine.policies.create_policy(now=T0, **kwargs)
    assert engine.policy_repo.policies == {}


def test_concurrent_version_bump_is_a_conflict(engine, monkeypatch):
    engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(30), now=T0)
    # A second writer read the same max version before the first one committed.
    monkeypatch.setattr(engine.policy_repo, "max_version", lambda **_: 0)

    with pytest.raises(ConflictError):
        engine.policies.create_policy(scope_type="course", scope_id=COURSE_ID, rules=_rules(5), now=T0)

    versions = [p.version for p in engine.policy_repo.policies.values() if p.scope_type == PolicyScope.COURSE]
    assert versions == [1]
    assert engine.uow.rollbacks >= 1


def test_global_policy_drops_scope_id(engine):
    policy = engine.policies.create_policy(scope_type=PolicyScope.GLOBAL, scope_id=42, rules=_rules(20), now=T0)
    assert policy.scope_id is None


def test_toggle_records_history_and_audit(engine):
    policy = engine.policies.create_policy(
        scope_type="faculty", scope_id=FACULTY_ID, rules=_rules(9), created_by=ADMIN_ID, now=T0
    )

    updated = engine.policies.set_policy_active(policy.policy_id, False, actor_id=ADMIN_ID)

    assert updated.is_active is False
    history = engine.policies.policy_history(policy.policy_id)
    assert len(history) == 2
    assert {h.is_active for h in history} == {True}
    assert engine.audit_repo.actions()[-2:] == ["policy_create", "policy_deactivate"]


def test_unknown_policy_or_course(engine):
    policy = engine.policies.create_policy(scope_type="global", rules=_rules(20), now=T0)

    with pytest.raises(PolicyNotFound):
        engine.policies.set_policy_active(404, True)
    with pytest.raises(PolicyNotFound):
        engine.policies.policy_history(404)
    with pytest.raises(PolicyNotFound):
        engine.policies.assign_to_course(404, COURSE_ID)
    with pytest.raises(CourseNotFound):
        engine.policies.assign_to_course(policy.policy_id, 404)


def test_parse_rules_accepts_snake_case_and_defaults_grace():
    rules = parse_rules({"late_after_minutes": {"firstHour": 12, "break": 6}, "max_absences": 3})
    assert rules.first_hour_late_minutes == 12
    assert rules.break_late_minutes == 6
    assert rules.grace_minutes == 0
    assert rules.max_absences == 3


def test_rules_from_json_handles_empty_values():
    assert rules_from_json(None) == DEFAULT_POLICY_RULES
    assert rules_from_json('{"lateAfterMinutes": "soon"}') == DEFAULT_POLICY_RULES
