from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from ..common.datetime_utils import now_utc
from ..core.constants import TOKEN_SECRET_BYTES, TOKEN_TTL_SECONDS
from ..core.exceptions import InvalidToken, TokenAlreadyConsumed, TokenExpired
from .model import IssuedToken, ScanToken
from .repository import TokenRepository

logger = logging.getLogger(__name__)


def hash_token(raw_secret: str) -> str:
    return hashlib.sha256(raw_secret.encode("utf-8")).hexdigest()


class TokenService:
    """Issues short-lived single-use scan tokens and consumes them exactly once."""

    def __init__(self, tokens: TokenRepository, *, ttl_seconds: int = TOKEN_TTL_SECONDS):
        self._tokens = tokens
        self._ttl = timedelta(seconds=int(ttl_seconds))

    def issue(self, round_id: int, *, now: datetime | None = None) -> IssuedToken:
        now = now or now_utc()
        raw_secret = secrets.token_hex(TOKEN_SECRET_BYTES)
        expires_at = now + self._ttl
        token_id = self._tokens.insert(round_id=int(round_id), token_hash=hash_token(raw_secret), expires_at=expires_at)
        return IssuedToken(token_id=token_id, round_id=int(round_id), raw_secret=raw_secret, expires_at=expires_at)

    def consume(self, round_id: int, raw_secret: str, *, now: datetime | None = None) -> ScanToken:
        now = now or now_utc()
        if not raw_secret:
            raise InvalidToken()

        record = self._tokens.find_by_hash(round_id=int(round_id), token_hash=hash_token(raw_secret))
        if not record:
            raise InvalidToken()
        if record.consumed:
            raise TokenAlreadyConsumed()
        if record.expires_at <= now:
            raise TokenExpired()

        # The read above is advisory; this conditional update is the real guard.
        if not self._tokens.mark_consumed(token_id=record.token_id, now=now):
            raise TokenAlreadyConsumed()

        return ScanToken(
            token_id=record.token_id,
            round_id=record.round_id,
            token_hash=record.token_hash,
            expires_at=record.expires_at,
            consumed=True,
        )

    def sweep_expired(self, *, now: datetime | None = None) -> int:
        now = now or now_utc()
        try:
            deleted = self._tokens.delete_expired(now=now)
        except Exception:
            logger.exception("expired QR token cleanup failed")
            return 0
        logger.info("expired QR token cleanup finished: deleted=%s", deleted)
        return deleted
