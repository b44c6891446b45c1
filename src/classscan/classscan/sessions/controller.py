from __future__ import annotations

from typing import Any, Dict

from flask import Flask, jsonify, request

from ..common.datetime_utils import to_iso
from ..common.web import current_user_id, json_body, role_required
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import ValidationError
from ..tokens.model import IssuedToken
from ..tokens.qr import render_qr_data_url
from .model import Round, RoundOptions, Session


def _session_to_dict(s: Session) -> Dict[str, Any]:
    return {
        "id": s.session_id,
        "groupId": s.group_id,
        "courseId": s.course_id,
        "professorId": s.professor_id,
        "startsAt": to_iso(s.starts_at),
        "endsAt": to_iso(s.ends_at),
        "isActive": s.is_active,
        "status": s.status.value,
    }


def _round_to_dict(r: Round) -> Dict[str, Any]:
    return {
        "id": r.round_id,
        "sessionId": r.session_id,
        "roundNumber": r.round_number,
        "startsAt": to_iso(r.starts_at),
        "endsAt": to_iso(r.ends_at),
        "isActive": r.is_active,
        "geofenceEnabled": r.geofence_enabled,
        "latitude": r.latitude,
        "longitude": r.longitude,
        "geofenceRadiusM": r.geofence_radius_m,
        "isBreakRound": r.is_break_round,
    }


def _qr_to_dict(token: IssuedToken, qr_payload: str) -> Dict[str, Any]:
    return {
        "token": token.raw_secret,
        "expiresAt": to_iso(token.expires_at),
        "qrPayload": qr_payload,
        "qrImage": render_qr_data_url(qr_payload),
    }


def register(app: Flask, container: Container) -> None:
    @app.route("/api/sessions", methods=["POST"], endpoint="api_start_session")
    @role_required(Role.PROFESSOR)
    def api_start_session():
        data = json_body()
        group_id = data.get("groupId")
        if group_id in (None, ""):
            raise ValidationError("groupId is required")
        try:
            group_id = int(group_id)
        except (TypeError, ValueError):
            raise ValidationError("groupId must be an integer")

        started = container.session_service.start_session(
            current_user_id(),
            group_id,
            RoundOptions.from_payload(data),
        )
        return (
            jsonify(
                {
                    "success": True,
                    "session": _session_to_dict(started.session),
                    "round": _round_to_dict(started.round),
                    "course": {"id": started.course.course_id, "code": started.course.code, "name": started.course.name},
                    "group": {"id": started.group.group_id, "name": started.group.name},
                    **_qr_to_dict(started.token, started.qr_payload),
                }
            ),
            201,
        )

    @app.route("/api/sessions/<int:session_id>/rounds", methods=["POST"], endpoint="api_start_round")
    @role_required(Role.PROFESSOR)
    def api_start_round(session_id: int):
        started = container.session_service.start_round(
            current_user_id(),
            session_id,
            RoundOptions.from_payload(json_body()),
        )
        return (
            jsonify({"success": True, "round": _round_to_dict(started.round), **_qr_to_dict(started.token, started.qr_payload)}),
            201,
        )

    @app.route(
        "/api/sessions/<int:session_id>/rounds/<int:round_id>/close",
        methods=["POST"],
        endpoint="api_close_round",
    )
    @role_required(Role.PROFESSOR)
    def api_close_round(session_id: int, round_id: int):
        closed = container.session_service.close_round(current_user_id(), session_id, round_id)
        return jsonify({"success": True, "round": _round_to_dict(closed)})

    @app.route("/api/sessions/<int:session_id>/end", methods=["POST"], endpoint="api_end_session")
    @role_required(Role.PROFESSOR)
    def api_end_session(session_id: int):
        summary = container.session_service.end_session(current_user_id(), session_id)
        return jsonify(
            {
                "success": True,
                "session": _session_to_dict(summary.session),
                "endedAt": to_iso(summary.ended_at),
                "summary": {"totalRounds": summary.total_rounds, "attendanceCount": summary.attendance_count},
            }
        )

    @app.route("/api/sessions/<int:session_id>/stats", methods=["GET"], endpoint="api_session_stats")
    @role_required(Role.PROFESSOR)
    def api_session_stats(session_id: int):
        stats = container.session_service.session_stats(current_user_id(), session_id)
        return jsonify(
            {
                "success": True,
                "sessionId": stats.session_id,
                "totalRounds": stats.total_rounds,
                "totalAttendance": stats.total_attendance,
                "rounds": [
                    {
                        "id": r.round_id,
                        "roundNumber": r.round_number,
                        "startsAt": to_iso(r.starts_at),
                        "endsAt": to_iso(r.ends_at),
                        "isActive": r.is_active,
                        "attendanceCount": r.attendance_count,
                    }
                    for r in stats.rounds
                ],
            }
        )

    @app.route("/api/sessions/<int:session_id>/fraud-signals", methods=["GET"], endpoint="api_session_fraud_signals")
    @role_required(Role.PROFESSOR)
    def api_session_fraud_signals(session_id: int):
        session = container.session_service.get_owned_session(current_user_id(), session_id)
        signals = container.fraud_service.list_signals(session.session_id)
        return jsonify({"success": True, "signals": [s.to_dict() for s in signals]})

    @app.route("/api/sessions/<int:session_id>/excuses", methods=["GET"], endpoint="api_session_excuses")
    @role_required(Role.PROFESSOR)
    def api_session_excuses(session_id: int):
        excuses = container.excuse_service.list_for_session(
            current_user_id(),
            session_id,
            request.args.get("status"),
        )
        return jsonify({"success": True, "excuses": [e.to_dict() for e in excuses]})
