from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta

import pytest

from classscan.core.exceptions import InvalidToken, TokenAlreadyConsumed, TokenExpired
from classscan.tokens.qr import build_qr_payload, parse_qr_payload, render_qr_data_url
from classscan.tokens.service import TokenService, hash_token
from fakes import FakeTokenRepo

NOW = datetime(2026, 3, 2, 9, 0, 0)


def test_issue_persists_only_the_hash():
    repo = FakeTokenRepo()
    svc = TokenService(repo, ttl_seconds=15)

    issued = svc.issue(7, now=NOW)

    stored = repo.tokens[issued.token_id]
    assert stored.token_hash == hash_token(issued.raw_secret)
    assert stored.token_hash != issued.raw_secret
    assert issued.expires_at == NOW + timedelta(seconds=15)
    assert len(issued.raw_secret) == 48


def test_each_issue_gets_a_fresh_secret():
    svc = TokenService(FakeTokenRepo())
    first = svc.issue(7, now=NOW)
    second = svc.issue(7, now=NOW)
    assert first.raw_secret != second.raw_secret


def test_consume_once_then_already_consumed():
    svc = TokenService(FakeTokenRepo(), ttl_seconds=15)
    issued = svc.issue(7, now=NOW)

    consumed = svc.consume(7, issued.raw_secret, now=NOW + timedelta(seconds=3))
    assert consumed.consumed is True
    assert consumed.token_id == issued.token_id

    with pytest.raises(TokenAlreadyConsumed):
        svc.consume(7, issued.raw_secret, now=NOW + timedelta(seconds=4))


def test_unknown_blank_or_foreign_round_token_is_invalid():
    svc = TokenService(FakeTokenRepo())
    issued = svc.issue(7, now=NOW)

    with pytest.raises(InvalidToken):
        svc.consume(7, "not-a-real-secret", now=NOW)
    with pytest.raises(InvalidToken):
        svc.consume(7, "", now=NOW)
    with pytest.raises(InvalidToken):
        svc.consume(8, issued.raw_secret, now=NOW)


def test_token_expires_exactly_at_ttl():
    svc = TokenService(FakeTokenRepo(), ttl_seconds=15)
    issued = svc.issue(7, now=NOW)

    with pytest.raises(TokenExpired):
        svc.consume(7, issued.raw_secret, now=NOW + timedelta(seconds=15))


def test_concurrent_consume_has_exactly_one_winner():
    svc = TokenService(FakeTokenRepo(), ttl_seconds=15)
    issued = svc.issue(7, now=NOW)

    workers = 16
    barrier = threading.Barrier(workers)
    wins = []
    losses = []

    def attempt():
        barrier.wait()
        try:
            svc.consume(7, issued.raw_secret, now=NOW + timedelta(seconds=1))
            wins.append(1)
        except TokenAlreadyConsumed:
            losses.append(1)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert len(losses) == workers - 1


def test_sweep_deletes_only_expired_tokens():
    repo = FakeTokenRepo()
    svc = TokenService(repo, ttl_seconds=15)
    old = svc.issue(7, now=NOW)
    fresh = svc.issue(7, now=NOW + timedelta(minutes=5))

    deleted = svc.sweep_expired(now=NOW + timedelta(minutes=1))

    assert deleted == 1
    assert old.token_id not in repo.tokens
    assert fresh.token_id in repo.tokens


def test_sweep_failure_is_logged_not_raised(caplog):
    class BrokenRepo(FakeTokenRepo):
        def delete_expired(self, *, now):
            raise RuntimeError("db down")

    svc = TokenService(BrokenRepo())

    assert svc.sweep_expired(now=NOW) == 0
    assert "expired QR token cleanup failed" in caplog.text


def test_qr_payload_carries_raw_token_and_round_metadata():
    payload = build_qr_payload(
        round_id=3,
        token="abc123",
        session_id=1,
        course_id=10,
        group_id=20,
        geofence_enabled=True,
        latitude=10.5,
        longitude=106.7,
        geofence_radius_m=150,
    )

    data = json.loads(payload)
    assert data["roundId"] == 3
    assert data["token"] == "abc123"
    assert data["geofenceEnabled"] is True
    assert data["geofenceRadiusM"] == 150
    assert parse_qr_payload(payload)["token"] == "abc123"


@pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", '{"roundId": 3}', '{"token": "x"}'])
def test_parse_rejects_malformed_qr(raw):
    with pytest.raises(InvalidToken):
        parse_qr_payload(raw)


def test_render_qr_data_url_is_png():
    url = render_qr_data_url(build_qr_payload(round_id=1, token="t", session_id=1))
    assert url.startswith("data:image/png;base64,")
