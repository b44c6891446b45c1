from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..common.web import current_user_id, json_body, role_required
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import ValidationError
from .model import Policy, PolicyHistoryEntry
from .rules import rules_from_json


def _policy_to_dict(p: Policy) -> Dict[str, Any]:
    return {
        "id": p.policy_id,
        "name": p.name,
        "scopeType": p.scope_type.value,
        "scopeId": p.scope_id,
        "version": p.version,
        "rules": rules_from_json(p.rules_json).to_dict(),
        "effectiveFrom": to_iso(p.effective_from),
        "isActive": p.is_active,
        "createdBy": p.created_by,
        "createdAt": to_iso(p.created_at),
    }


def _history_to_dict(h: PolicyHistoryEntry) -> Dict[str, Any]:
    return {
        "id": h.history_id,
        "policyId": h.policy_id,
        "name": h.name,
        "scopeType": h.scope_type.value,
        "scopeId": h.scope_id,
        "version": h.version,
        "rules": rules_from_json(h.rules_json).to_dict(),
        "effectiveFrom": to_iso(h.effective_from),
        "isActive": h.is_active,
        "recordedAt": to_iso(h.recorded_at),
    }


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")


def register(app: Flask, container: Container) -> None:
    @app.route("/api/admin/policies", methods=["GET"], endpoint="api_list_policies")
    @role_required(Role.ADMIN)
    def api_list_policies():
        policies = container.policy_service.list_policies()
        return jsonify({"success": True, "policies": [_policy_to_dict(p) for p in policies]})

    @app.route("/api/admin/policies", methods=["POST"], endpoint="api_create_policy")
    @role_required(Role.ADMIN)
    def api_create_policy():
        data = json_body()
        raw_effective = data.get("effectiveFrom")
        try:
            effective_from = parse_iso_datetime(raw_effective if isinstance(raw_effective, str) else None)
        except ValueError:
            raise ValidationError("effectiveFrom must be an ISO-8601 timestamp")

        policy = container.policy_service.create_policy(
            scope_type=str(data.get("scopeType") or data.get("scope_type") or ""),
            scope_id=_optional_int(data.get("scopeId", data.get("scope_id")), "scopeId"),
            rules=data.get("rules"),
            effective_from=effective_from,
            name=data.get("name") if isinstance(data.get("name"), str) else None,
            is_active=bool(data.get("isActive", True)),
            created_by=current_user_id(),
        )
        return jsonify({"success": True, "policy": _policy_to_dict(policy)}), 201

    @app.route("/api/admin/policies/active", methods=["GET"], endpoint="api_active_policy")
    @role_required(Role.ADMIN, Role.PROFESSOR)
    def api_active_policy():
        resolved = container.policy_service.get_active_policy(
            _optional_int(request.args.get("courseId"), "courseId"),
            _optional_int(request.args.get("facultyId"), "facultyId"),
        )
        return jsonify({"success": True, "policy": resolved.to_dict()})

    @app.route("/api/admin/policies/<int:policy_id>/active", methods=["POST"], endpoint="api_set_policy_active")
    @role_required(Role.ADMIN)
    def api_set_policy_active(policy_id: int):
        data = json_body()
        if "isActive" not in data:
            raise ValidationError("isActive is required")
        policy = container.policy_service.set_policy_active(
            policy_id,
            bool(data["isActive"]),
            actor_id=current_user_id(),
        )
        return jsonify({"success": True, "policy": _policy_to_dict(policy)})

    @app.route("/api/admin/policies/<int:policy_id>/assign", methods=["POST"], endpoint="api_assign_policy")
    @role_required(Role.ADMIN)
    def api_assign_policy(policy_id: int):
        course_id = _optional_int(json_body().get("courseId"), "courseId")
        if course_id is None:
            raise ValidationError("courseId is required")
        policy = container.policy_service.assign_to_course(policy_id, course_id, actor_id=current_user_id())
        return jsonify({"success": True, "policy": _policy_to_dict(policy), "courseId": course_id})

    @app.route("/api/admin/policies/<int:policy_id>/history", methods=["GET"], endpoint="api_policy_history")
    @role_required(Role.ADMIN)
    def api_policy_history(policy_id: int):
        history = container.policy_service.policy_history(policy_id)
        return jsonify({"success": True, "history": [_history_to_dict(h) for h in history]})
