from __future__ import annotations

from flask import Flask, jsonify

from ..common.web import current_user_id, json_body, role_required
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import ValidationError


def register(app: Flask, container: Container) -> None:
    @app.route("/api/excuses", methods=["POST"], endpoint="api_submit_excuse")
    @role_required(Role.STUDENT)
    def api_submit_excuse():
        data = json_body()
        round_id = data.get("roundId")
        try:
            round_id = int(round_id)
        except (TypeError, ValueError):
            raise ValidationError("roundId is required")

        excuse = container.excuse_service.submit(
            current_user_id(),
            round_id,
            str(data.get("reason") or ""),
            category=data.get("category"),
            attachment_path=str(data["attachmentPath"]) if data.get("attachmentPath") else None,
        )
        return jsonify({"success": True, "excuse": excuse.to_dict()}), 201

    @app.route("/api/excuses/<int:excuse_id>/review", methods=["POST"], endpoint="api_review_excuse")
    @role_required(Role.PROFESSOR)
    def api_review_excuse(excuse_id: int):
        data = json_body()
        excuse = container.excuse_service.review(
            current_user_id(),
            excuse_id,
            str(data.get("decision") or ""),
            data.get("note"),
        )
        return jsonify({"success": True, "excuse": excuse.to_dict()})

    @app.route("/api/me/excuses", methods=["GET"], endpoint="api_my_excuses")
    @role_required(Role.STUDENT)
    def api_my_excuses():
        excuses = container.excuse_service.list_for_student(current_user_id())
        return jsonify({"success": True, "excuses": [e.to_dict() for e in excuses]})
