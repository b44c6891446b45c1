from __future__ import annotations

import base64
import io
import json
from typing import Any, Dict, Optional

import qrcode

from ..core.exceptions import InvalidToken


def build_qr_payload(
    *,
    round_id: int,
    token: str,
    session_id: int,
    course_id: Optional[int] = None,
    group_id: Optional[int] = None,
    geofence_enabled: bool = False,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    geofence_radius_m: Optional[float] = None,
    is_break_round: bool = False,
) -> str:
    """Serialize round metadata into the JSON string the scanning client expects.

    ``token`` is the raw single-use secret, never its hash.
    """

    payload: Dict[str, Any] = {
        "roundId": round_id,
        "token": token,
        "sessionId": session_id,
    }
    if course_id is not None:
        payload["courseId"] = course_id
    if group_id is not None:
        payload["groupId"] = group_id
    payload.update(
        {
            "geofenceEnabled": bool(geofence_enabled),
            "latitude": latitude,
            "longitude": longitude,
            "geofenceRadiusM": geofence_radius_m,
            "isBreakRound": bool(is_break_round),
        }
    )
    return json.dumps(payload, separators=(",", ":"))


def parse_qr_payload(raw: str) -> Dict[str, Any]:
    """Decode a scanned QR string; used by scanning clients before submitting."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise InvalidToken("Invalid QR code format.")
    if not isinstance(data, dict) or "roundId" not in data or not data.get("token"):
        raise InvalidToken("Invalid QR code format.")
    return data


def render_qr_png(payload: str) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_url(payload: str) -> str:
    return "data:image/png;base64," + base64.b64encode(render_qr_png(payload)).decode("ascii")
