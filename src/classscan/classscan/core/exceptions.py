from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations.

    Each subclass carries a stable ``code`` and the HTTP status the boundary
    layer answers with, so controllers never need to inspect messages.
    """

    code = "domain_error"
    http_status = 400
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"success": False, "code": self.code, "message": self.message}


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "validation_error"


class AuthenticationError(DomainError):
    """Raised when the caller is not identified."""

    code = "not_authenticated"
    http_status = 401
    default_message = "Please sign in to continue."


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    code = "forbidden"
    http_status = 403
    default_message = "You are not allowed to do this."


class NotFoundError(DomainError):
    code = "not_found"
    http_status = 404
    default_message = "Not found."


class ConflictError(DomainError):
    code = "conflict"
    http_status = 409


# -------- Scan validation --------
class NotEnrolled(AuthorizationError):
    code = "not_enrolled"
    default_message = "You are not enrolled in this group."


class SessionNotActive(ValidationError):
    code = "session_not_active"
    default_message = "This session is not active."


class RoundNotActive(NotFoundError):
    code = "round_not_active"
    default_message = "This round is not active."


class GeofenceMisconfigured(DomainError):
    """Round has geofencing on but no usable center/radius (operator error)."""

    code = "geofence_misconfigured"
    http_status = 500
    default_message = "Geofence configuration missing for this round."


class LocationRequired(ValidationError):
    code = "location_required"
    default_message = "Location required for this round."


class OutsideGeofence(AuthorizationError):
    code = "outside_geofence"
    default_message = "You are outside the allowed scan area."


# -------- Tokens --------
class InvalidToken(ValidationError):
    code = "invalid_token"
    default_message = "Invalid QR code, scan the code on screen again."


class TokenExpired(ValidationError):
    code = "token_expired"
    default_message = "QR code has expired, scan again."


class TokenAlreadyConsumed(ConflictError):
    code = "token_already_consumed"
    default_message = "QR code already used, scan the new code."


# -------- Idempotency --------
class AlreadyRecorded(ConflictError):
    code = "already_recorded"
    default_message = "Attendance already recorded for this round."


class DuplicateOfflineScan(ConflictError):
    code = "duplicate_offline_scan"
    default_message = "Duplicate offline scan."


# -------- Policies --------
class InvalidPolicyRules(ValidationError):
    code = "invalid_policy_rules"
    default_message = "Invalid policy rules."


class PolicyNotFound(NotFoundError):
    code = "policy_not_found"
    default_message = "Policy not found."


class CourseNotFound(NotFoundError):
    code = "course_not_found"
    default_message = "Course not found."


# -------- Sessions / rounds --------
class GroupNotFound(NotFoundError):
    code = "group_not_found"
    default_message = "Group not found."


class SessionNotFound(NotFoundError):
    code = "session_not_found"
    default_message = "Session not found."


class RoundNotFound(NotFoundError):
    code = "round_not_found"
    default_message = "Round not found."


# -------- Excuses --------
class ExcuseNotFound(NotFoundError):
    code = "excuse_not_found"
    default_message = "Excuse not found."


class ExcuseAlreadySubmitted(ConflictError):
    code = "excuse_already_submitted"
    default_message = "Excuse already submitted for this round."


class ExcuseAlreadyReviewed(ConflictError):
    code = "excuse_already_reviewed"
    default_message = "Excuse already reviewed."


class UniqueViolation(Exception):
    """Raised by repositories when a storage unique constraint rejects a write."""

    def __init__(self, constraint: str):
        super().__init__(f"unique constraint violated: {constraint}")
        self.constraint = constraint
