from __future__ import annotations

from flask import Flask, current_app, jsonify
from flask_limiter import Limiter

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..common.validators import optional_latitude, optional_longitude
from ..common.web import current_user_id, json_body, role_required
from ..container import Container
from ..core.constants import SCAN_RATE_LIMIT_MESSAGE
from ..core.enums import Role
from ..core.exceptions import InvalidToken, ValidationError
from ..tokens.qr import parse_qr_payload
from .model import ScanLocation


def register(app: Flask, container: Container, limiter: Limiter) -> None:
    @app.route("/api/rounds/<int:round_id>/scans", methods=["POST"], endpoint="api_record_scan")
    @limiter.limit(lambda: current_app.config["SCAN_RATE_LIMIT"], error_message=SCAN_RATE_LIMIT_MESSAGE)
    @role_required(Role.STUDENT)
    def api_record_scan(round_id: int):
        data = json_body()

        token = data.get("token")
        if not token and data.get("qrPayload"):
            scanned = parse_qr_payload(str(data["qrPayload"]))
            if str(scanned["roundId"]) != str(round_id):
                raise InvalidToken("This QR code belongs to another round.")
            token = scanned["token"]
        if not isinstance(token, str) or not token.strip():
            raise ValidationError("Token is required")

        latitude = optional_latitude(data.get("latitude"))
        longitude = optional_longitude(data.get("longitude"))
        location = None
        if latitude is not None and longitude is not None:
            location = ScanLocation(latitude=latitude, longitude=longitude)

        raw_captured = data.get("offlineCapturedAt") or data.get("capturedAtClient")
        try:
            captured_at = parse_iso_datetime(raw_captured if isinstance(raw_captured, str) else None)
        except ValueError:
            raise ValidationError("offlineCapturedAt must be an ISO-8601 timestamp")

        fingerprint = data.get("deviceFingerprint")
        client_scan_id = data.get("clientScanId") or data.get("client_scan_id")

        result = container.attendance_recorder.record_scan(
            current_user_id(),
            round_id,
            token.strip(),
            location=location,
            device_fingerprint=fingerprint if isinstance(fingerprint, str) else None,
            client_scan_id=client_scan_id if isinstance(client_scan_id, str) else None,
            captured_at_client=captured_at,
        )
        return jsonify({"success": True, **result.to_dict()}), 201

    @app.route("/api/me/attendance", methods=["GET"], endpoint="api_my_attendance")
    @role_required(Role.STUDENT)
    def api_my_attendance():
        summaries = container.attendance_recorder.my_attendance(current_user_id())
        return jsonify(
            {
                "success": True,
                "courses": [
                    {
                        "courseId": s.course_id,
                        "courseName": s.course_name,
                        "groupId": s.group_id,
                        "groupName": s.group_name,
                        "totalRounds": s.total_rounds,
                        "attendedRounds": s.attended_rounds,
                        "attendancePercentage": s.attendance_percentage,
                    }
                    for s in summaries
                ],
            }
        )

    @app.route("/api/me/history", methods=["GET"], endpoint="api_my_history")
    @role_required(Role.STUDENT)
    def api_my_history():
        rows = container.attendance_recorder.attendance_history(current_user_id())
        return jsonify(
            {
                "success": True,
                "history": [
                    {
                        "id": r.record_id,
                        "recordedAt": to_iso(r.recorded_at),
                        "status": r.status.value,
                        "roundId": r.round_id,
                        "roundNumber": r.round_number,
                        "sessionId": r.session_id,
                        "courseId": r.course_id,
                        "courseName": r.course_name,
                        "groupName": r.group_name,
                    }
                    for r in rows
                ],
            }
        )
