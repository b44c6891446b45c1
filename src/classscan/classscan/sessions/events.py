from __future__ import annotations

from ..common.datetime_utils import to_iso
from ..events.publisher import ROUND_QR_UPDATED, ROUND_STARTED, SESSION_ENDED, EventPublisher
from ..tokens.model import IssuedToken
from ..tokens.qr import build_qr_payload
from .model import Round, Session, SessionSummary


def round_qr_payload(session: Session, round_: Round, token: IssuedToken) -> str:
    return build_qr_payload(
        round_id=round_.round_id,
        token=token.raw_secret,
        session_id=session.session_id,
        course_id=session.course_id,
        group_id=session.group_id,
        geofence_enabled=round_.geofence_enabled,
        latitude=round_.latitude,
        longitude=round_.longitude,
        geofence_radius_m=round_.geofence_radius_m,
        is_break_round=round_.is_break_round,
    )


def publish_round_started(publisher: EventPublisher, round_: Round) -> None:
    publisher.publish(
        round_.session_id,
        ROUND_STARTED,
        {
            "sessionId": round_.session_id,
            "roundId": round_.round_id,
            "roundNumber": round_.round_number,
            "startsAt": to_iso(round_.starts_at),
        },
    )


def publish_qr_updated(publisher: EventPublisher, round_: Round, token: IssuedToken, qr_payload: str) -> None:
    publisher.publish(
        round_.session_id,
        ROUND_QR_UPDATED,
        {
            "sessionId": round_.session_id,
            "roundId": round_.round_id,
            "token": token.raw_secret,
            "expiresAt": to_iso(token.expires_at),
            "qrPayload": qr_payload,
        },
    )


def publish_session_ended(publisher: EventPublisher, summary: SessionSummary) -> None:
    publisher.publish(
        summary.session.session_id,
        SESSION_ENDED,
        {
            "sessionId": summary.session.session_id,
            "endedAt": to_iso(summary.ended_at),
            "summary": {
                "totalRounds": summary.total_rounds,
                "attendanceCount": summary.attendance_count,
            },
        },
    )
