from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from ..common.validators import is_number
from ..core.constants import DEFAULT_BREAK_LATE_MINUTES, DEFAULT_FIRST_HOUR_LATE_MINUTES, DEFAULT_GRACE_MINUTES
from ..core.exceptions import InvalidPolicyRules
from .model import PolicyRules

logger = logging.getLogger(__name__)

DEFAULT_POLICY_RULES = PolicyRules(
    first_hour_late_minutes=DEFAULT_FIRST_HOUR_LATE_MINUTES,
    break_late_minutes=DEFAULT_BREAK_LATE_MINUTES,
    grace_minutes=DEFAULT_GRACE_MINUTES,
    max_absences=None,
)


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _minutes(value: Any, field_name: str) -> float:
    if not is_number(value) or value < 0:
        raise InvalidPolicyRules(f"{field_name} must be a non-negative number")
    return value


def parse_rules(payload: Any) -> PolicyRules:
    """Validate a rules payload, accepting camelCase (wire) or snake_case keys."""
    if isinstance(payload, PolicyRules):
        payload = payload.to_dict()
    if not isinstance(payload, Mapping):
        raise InvalidPolicyRules("rules must be an object")

    late = _pick(payload, "lateAfterMinutes", "late_after_minutes")
    if not isinstance(late, Mapping):
        raise InvalidPolicyRules("lateAfterMinutes must be an object with first_hour and break")

    first_hour = _minutes(_pick(late, "first_hour", "firstHour"), "lateAfterMinutes.first_hour")
    break_minutes = _minutes(_pick(late, "break"), "lateAfterMinutes.break")

    grace = _pick(payload, "graceMinutes", "grace_minutes")
    grace = DEFAULT_GRACE_MINUTES if grace is None else _minutes(grace, "graceMinutes")

    max_absences = _pick(payload, "maxAbsences", "max_absences")
    if max_absences is not None:
        if not isinstance(max_absences, int) or isinstance(max_absences, bool) or max_absences < 0:
            raise InvalidPolicyRules("maxAbsences must be a non-negative integer")

    return PolicyRules(
        first_hour_late_minutes=first_hour,
        break_late_minutes=break_minutes,
        grace_minutes=grace,
        max_absences=max_absences,
    )


def rules_to_json(rules: PolicyRules) -> str:
    return json.dumps(rules.to_dict(), separators=(",", ":"))


def rules_from_json(raw: str | None) -> PolicyRules:
    """Parse stored rules; malformed rows fail closed to the default rules."""
    try:
        return parse_rules(json.loads(raw or ""))
    except (ValueError, InvalidPolicyRules):
        logger.warning("invalid stored policy rules, falling back to default: %r", raw)
        return DEFAULT_POLICY_RULES
