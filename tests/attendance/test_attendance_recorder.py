from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import timedelta

import pytest

from classscan.attendance.model import ScanLocation
from classscan.core.enums import AttendanceStatus, FraudType
from classscan.core.exceptions import (
    AlreadyRecorded,
    DuplicateOfflineScan,
    GeofenceMisconfigured,
    InvalidToken,
    LocationRequired,
    NotEnrolled,
    OutsideGeofence,
    RoundNotActive,
    SessionNotActive,
    TokenAlreadyConsumed,
)
from classscan.events.publisher import ROUND_QR_UPDATED
from classscan.sessions.model import RoundOptions
from fakes import (
    BOUND_GROUP_ID,
    CLASSMATE_ID,
    COURSE_ID,
    GROUP_ID,
    OTHER_PROFESSOR_ID,
    OUTSIDER_ID,
    PROFESSOR_ID,
    STUDENT_ID,
    T0,
)

THIRD_STUDENT_ID = 102

CAMPUS = (10.7769, 106.7009)


def _start(engine, options=None, now=T0):
    return engine.sessions.start_session(PROFESSOR_ID, GROUP_ID, options, now=now)


def _token_at(engine, round_id, at):
    """A token issued just before ``at`` so it is still valid then."""
    return engine.tokens.issue(round_id, now=at - timedelta(seconds=1)).raw_secret


def test_scan_records_on_time_and_rotates_the_code(engine):
    started = _start(engine)
    rid = started.round.round_id

    result = engine.recorder.record_scan(STUDENT_ID, rid, started.token.raw_secret, now=T0 + timedelta(seconds=5))

    assert result.status == AttendanceStatus.ON_TIME
    assert result.recorded_at == T0 + timedelta(seconds=5)
    assert result.to_dict()["status"] == "on_time"
    record = engine.attendance_repo.get_for_round_and_student(round_id=rid, student_id=STUDENT_ID)
    assert record.qr_token_id == started.token.token_id

    rotated = engine.latest_token(rid)
    assert rotated != started.token.raw_secret
    assert engine.publisher.names().count(ROUND_QR_UPDATED) == 2

    with pytest.raises(TokenAlreadyConsumed):
        engine.recorder.record_scan(CLASSMATE_ID, rid, started.token.raw_secret, now=T0 + timedelta(seconds=6))
    engine.recorder.record_scan(CLASSMATE_ID, rid, rotated, now=T0 + timedelta(seconds=6))


def test_exactly_twenty_minutes_is_on_time_and_one_second_more_is_late(engine):
    started = _start(engine)
    rid = started.round.round_id
    boundary = T0 + timedelta(minutes=20)
    after = boundary + timedelta(seconds=1)

    on_time = engine.recorder.record_scan(STUDENT_ID, rid, _token_at(engine, rid, boundary), now=boundary)
    late = engine.recorder.record_scan(CLASSMATE_ID, rid, _token_at(engine, rid, after), now=after)

    assert on_time.status == AttendanceStatus.ON_TIME
    assert late.status == AttendanceStatus.LATE


def test_break_round_uses_the_break_threshold(engine):
    started = _start(engine)
    break_start = T0 + timedelta(minutes=50)
    second = engine.sessions.start_round(
        PROFESSOR_ID, started.session.session_id, RoundOptions(is_break_round=True), now=break_start
    )
    rid = second.round.round_id

    at_ten = break_start + timedelta(minutes=10)
    past_ten = at_ten + timedelta(seconds=1)
    assert engine.recorder.record_scan(STUDENT_ID, rid, _token_at(engine, rid, at_ten), now=at_ten).status == (
        AttendanceStatus.ON_TIME
    )
    assert engine.recorder.record_scan(CLASSMATE_ID, rid, _token_at(engine, rid, past_ten), now=past_ten).status == (
        AttendanceStatus.LATE
    )


def test_grace_minutes_extend_the_threshold(engine):
    engine.policies.create_policy(
        scope_type="course",
        scope_id=COURSE_ID,
        rules={"lateAfterMinutes": {"first_hour": 20, "break": 10}, "graceMinutes": 2},
        now=T0 - timedelta(days=1),
    )
    started = _start(engine)
    rid = started.round.round_id

    edge = T0 + timedelta(minutes=22)
    assert engine.recorder.record_scan(STUDENT_ID, rid, _token_at(engine, rid, edge), now=edge).status == (
        AttendanceStatus.ON_TIME
    )
    past = edge + timedelta(seconds=1)
    assert engine.recorder.record_scan(CLASSMATE_ID, rid, _token_at(engine, rid, past), now=past).status == (
        AttendanceStatus.LATE
    )


def test_client_clock_never_decides_status(engine):
    started = _start(engine)
    rid = started.round.round_id
    scanned_at = T0 + timedelta(minutes=30)

    result = engine.recorder.record_scan(
        STUDENT_ID,
        rid,
        _token_at(engine, rid, scanned_at),
        captured_at_client=T0 + timedelta(minutes=1),
        now=scanned_at,
    )

    assert result.status == AttendanceStatus.LATE
    record = engine.attendance_repo.get_for_round_and_student(round_id=rid, student_id=STUDENT_ID)
    assert record.recorded_at == scanned_at
    assert record.recorded_at_client == T0 + timedelta(minutes=1)


def test_geofence_accepts_a_scan_ten_meters_from_center(engine):
    started = _start(
        engine,
        RoundOptions(geofence_enabled=True, latitude=CAMPUS[0], longitude=CAMPUS[1], geofence_radius_m=150),
    )
    nearby = ScanLocation(latitude=CAMPUS[0] + 0.00009, longitude=CAMPUS[1])

    result = engine.recorder.record_scan(
        STUDENT_ID, started.round.round_id, started.token.raw_secret, location=nearby, now=T0 + timedelta(seconds=3)
    )

    assert result.status == AttendanceStatus.ON_TIME


def test_geofence_rejections(engine):
    started = _start(
        engine,
        RoundOptions(geofence_enabled=True, latitude=CAMPUS[0], longitude=CAMPUS[1], geofence_radius_m=150),
    )
    rid = started.round.round_id
    token = started.token.raw_secret
    now = T0 + timedelta(seconds=3)

    with pytest.raises(LocationRequired):
        engine.recorder.record_scan(STUDENT_ID, rid, token, now=now)
    with pytest.raises(OutsideGeofence):
        engine.recorder.record_scan(
            STUDENT_ID, rid, token, location=ScanLocation(latitude=CAMPUS[0] + 0.005, longitude=CAMPUS[1]), now=now
        )

    # Rejected scans leave the code unused.
    assert not engine.token_repo.tokens[started.token.token_id].consumed


def test_geofence_without_center_is_a_configuration_error(engine, caplog):
    started = _start(engine, RoundOptions(geofence_enabled=True, geofence_radius_m=150))

    with pytest.raises(GeofenceMisconfigured):
        engine.recorder.record_scan(
            STUDENT_ID,
            started.round.round_id,
            started.token.raw_secret,
            location=ScanLocation(latitude=CAMPUS[0], longitude=CAMPUS[1]),
            now=T0 + timedelta(seconds=3),
        )
    assert "geofence misconfiguration" in caplog.text


@pytest.mark.parametrize(
    "latitude, longitude",
    [(float("nan"), float("nan")), (float("nan"), CAMPUS[1]), (float("inf"), CAMPUS[1]), (CAMPUS[0], float("-inf"))],
)
def test_non_finite_location_is_outside_the_geofence(engine, latitude, longitude):
    started = _start(
        engine,
        RoundOptions(geofence_enabled=True, latitude=CAMPUS[0], longitude=CAMPUS[1], geofence_radius_m=150),
    )

    with pytest.raises(OutsideGeofence):
        engine.recorder.record_scan(
            STUDENT_ID,
            started.round.round_id,
            started.token.raw_secret,
            location=ScanLocation(latitude=latitude, longitude=longitude),
            now=T0 + timedelta(seconds=3),
        )
    assert engine.attendance_repo.records == {}
    assert not engine.token_repo.tokens[started.token.token_id].consumed


def test_non_finite_radius_is_a_configuration_error(engine):
    started = _start(
        engine,
        RoundOptions(geofence_enabled=True, latitude=CAMPUS[0], longitude=CAMPUS[1], geofence_radius_m=float("nan")),
    )

    with pytest.raises(GeofenceMisconfigured):
        engine.recorder.record_scan(
            STUDENT_ID,
            started.round.round_id,
            started.token.raw_secret,
            location=ScanLocation(latitude=45.0, longitude=-120.0),
            now=T0 + timedelta(seconds=3),
        )
    assert engine.attendance_repo.records == {}


def test_enrollment_is_checked_before_the_token(engine):
    started = _start(engine)

    with pytest.raises(NotEnrolled):
        engine.recorder.record_scan(OUTSIDER_ID, started.round.round_id, "garbage", now=T0 + timedelta(seconds=1))
    with pytest.raises(InvalidToken):
        engine.recorder.record_scan(STUDENT_ID, started.round.round_id, "garbage", now=T0 + timedelta(seconds=1))

    # The failed attempts did not burn the real code.
    engine.recorder.record_scan(
        STUDENT_ID, started.round.round_id, started.token.raw_secret, now=T0 + timedelta(seconds=2)
    )


def test_closed_round_and_ended_session(engine):
    started = _start(engine)
    sid = started.session.session_id
    rid = started.round.round_id

    with pytest.raises(RoundNotActive):
        engine.recorder.record_scan(STUDENT_ID, 404, started.token.raw_secret, now=T0)

    # Session flipped to inactive while the round row still says active.
    engine.session_repo.sessions[sid] = replace(engine.session_repo.sessions[sid], is_active=False)
    with pytest.raises(SessionNotActive):
        engine.recorder.record_scan(STUDENT_ID, rid, started.token.raw_secret, now=T0 + timedelta(seconds=1))

    engine.session_repo.close_round(round_id=rid, ended_at=T0 + timedelta(seconds=2))
    with pytest.raises(RoundNotActive):
        engine.recorder.record_scan(STUDENT_ID, rid, started.token.raw_secret, now=T0 + timedelta(seconds=3))


def test_second_scan_is_already_recorded_and_keeps_the_token(engine):
    started = _start(engine)
    rid = started.round.round_id
    engine.recorder.record_scan(STUDENT_ID, rid, started.token.raw_secret, now=T0 + timedelta(seconds=1))
    rotated = engine.latest_token(rid)

    with pytest.raises(AlreadyRecorded):
        engine.recorder.record_scan(STUDENT_ID, rid, rotated, now=T0 + timedelta(seconds=2))

    engine.recorder.record_scan(CLASSMATE_ID, rid, rotated, now=T0 + timedelta(seconds=3))
    assert len(engine.attendance_repo.records) == 2


def test_replayed_offline_scan_is_reported_as_duplicate(engine):
    started = _start(engine)
    rid = started.round.round_id
    engine.recorder.record_scan(
        STUDENT_ID, rid, started.token.raw_secret, client_scan_id="scan-1", now=T0 + timedelta(seconds=1)
    )

    with pytest.raises(DuplicateOfflineScan):
        engine.recorder.record_scan(
            STUDENT_ID, rid, engine.latest_token(rid), client_scan_id="scan-1", now=T0 + timedelta(seconds=2)
        )
    with pytest.raises(AlreadyRecorded):
        engine.recorder.record_scan(
            STUDENT_ID, rid, engine.latest_token(rid), client_scan_id="scan-2", now=T0 + timedelta(seconds=2)
        )


def test_lost_insert_race_is_mapped_by_constraint(engine):
    started = _start(engine)
    rid = started.round.round_id
    engine.recorder.record_scan(
        STUDENT_ID, rid, started.token.raw_secret, client_scan_id="scan-1", now=T0 + timedelta(seconds=1)
    )

    retry_at = T0 + timedelta(seconds=2)
    engine.attendance_repo.hide_next_lookups = 1
    with pytest.raises(DuplicateOfflineScan):
        engine.recorder.record_scan(
            STUDENT_ID, rid, _token_at(engine, rid, retry_at), client_scan_id="scan-1", now=retry_at
        )
    # The winner's row is found by a locking re-read, not the transaction snapshot.
    assert engine.attendance_repo.locking_reads == 1

    engine.attendance_repo.hide_next_lookups = 1
    with pytest.raises(AlreadyRecorded):
        engine.recorder.record_scan(STUDENT_ID, rid, _token_at(engine, rid, retry_at), now=retry_at)


def test_lost_race_on_the_client_key_is_a_duplicate_replay(engine):
    started = _start(engine)
    rid = started.round.round_id
    engine.recorder.record_scan(
        STUDENT_ID, rid, started.token.raw_secret, client_scan_id="scan-1", now=T0 + timedelta(seconds=1)
    )
    engine.attendance_repo.client_key_first = True

    retry_at = T0 + timedelta(seconds=2)
    engine.attendance_repo.hide_next_lookups = 1
    with pytest.raises(DuplicateOfflineScan):
        engine.recorder.record_scan(
            STUDENT_ID, rid, _token_at(engine, rid, retry_at), client_scan_id="scan-1", now=retry_at
        )
    assert engine.attendance_repo.locking_reads == 0


def test_concurrent_scans_by_one_student_record_once(engine):
    started = _start(engine)
    rid = started.round.round_id
    now = T0 + timedelta(seconds=5)
    tokens = [_token_at(engine, rid, now) for _ in range(8)]

    barrier = threading.Barrier(len(tokens))
    outcomes = []

    def scan(token):
        barrier.wait()
        try:
            engine.recorder.record_scan(STUDENT_ID, rid, token, now=now)
            outcomes.append("ok")
        except AlreadyRecorded:
            outcomes.append("dup")

    threads = [threading.Thread(target=scan, args=(t,)) for t in tokens]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("dup") == len(tokens) - 1
    assert len([r for r in engine.attendance_repo.records.values() if r.student_id == STUDENT_ID]) == 1


def test_fraud_storage_failure_does_not_fail_the_scan(engine, caplog):
    engine.fraud_repo.fail = True
    started = _start(engine)
    edge = T0 + timedelta(minutes=20)

    result = engine.recorder.record_scan(
        STUDENT_ID, started.round.round_id, _token_at(engine, started.round.round_id, edge), now=edge
    )

    assert result.status == AttendanceStatus.ON_TIME
    assert "failed to emit fraud signal" in caplog.text


def test_edge_scan_is_flagged_but_still_recorded(engine):
    started = _start(engine)
    rid = started.round.round_id
    edge = T0 + timedelta(minutes=20, seconds=-10)

    engine.recorder.record_scan(STUDENT_ID, rid, _token_at(engine, rid, edge), now=edge)

    signals = engine.fraud.list_signals(started.session.session_id)
    assert [s.type for s in signals] == [FraudType.EDGE_SCAN]
    assert signals[0].details == {"deltaSeconds": 1190, "thresholdSeconds": 1200}


def test_rapid_burst_is_flagged_while_every_scan_succeeds(engine):
    started = _start(engine)
    sid = started.session.session_id
    results = [
        engine.recorder.record_scan(
            STUDENT_ID, started.round.round_id, started.token.raw_secret, now=T0 + timedelta(seconds=1)
        )
    ]
    for offset in (20, 40):
        at = T0 + timedelta(seconds=offset)
        opened = engine.sessions.start_round(PROFESSOR_ID, sid, now=at)
        results.append(
            engine.recorder.record_scan(
                STUDENT_ID, opened.round.round_id, opened.token.raw_secret, now=at + timedelta(seconds=1)
            )
        )

    assert [r.status for r in results] == [AttendanceStatus.ON_TIME] * 3
    signals = engine.fraud.list_signals(sid)
    assert [s.type for s in signals] == [FraudType.RAPID_BURST]
    assert signals[0].student_id == STUDENT_ID
    assert signals[0].details["priorCount"] == 3


def test_gps_cluster_flags_a_second_student_at_the_same_spot(engine):
    started = _start(engine)
    sid = started.session.session_id
    rid = started.round.round_id
    engine.recorder.record_scan(
        STUDENT_ID,
        rid,
        started.token.raw_secret,
        location=ScanLocation(latitude=CAMPUS[0], longitude=CAMPUS[1]),
        now=T0 + timedelta(seconds=5),
    )

    later = T0 + timedelta(seconds=65)
    engine.recorder.record_scan(
        CLASSMATE_ID,
        rid,
        _token_at(engine, rid, later),
        location=ScanLocation(latitude=CAMPUS[0] + 0.00002, longitude=CAMPUS[1] - 0.00002),
        now=later,
    )

    signals = engine.fraud.list_signals(sid)
    assert [(s.type, s.student_id) for s in signals] == [(FraudType.GPS_CLUSTER, CLASSMATE_ID)]
    assert signals[0].details["latitude"] == CAMPUS[0]

    # Outside the two-minute window the same spot is not suspicious.
    much_later = T0 + timedelta(seconds=200)
    engine.recorder.record_scan(
        THIRD_STUDENT_ID,
        rid,
        _token_at(engine, rid, much_later),
        location=ScanLocation(latitude=CAMPUS[0], longitude=CAMPUS[1]),
        now=much_later,
    )
    assert len(engine.fraud.list_signals(sid)) == 1


@pytest.mark.parametrize(
    "professor_id, group_id, expected",
    [
        (OTHER_PROFESSOR_ID, BOUND_GROUP_ID, [FraudType.MULTIPLE_DEVICE]),
        (PROFESSOR_ID, GROUP_ID, []),
    ],
)
def test_second_device_is_flagged_only_when_the_course_binds_devices(engine, professor_id, group_id, expected):
    started = engine.sessions.start_session(professor_id, group_id, now=T0)
    sid = started.session.session_id
    engine.recorder.record_scan(
        STUDENT_ID,
        started.round.round_id,
        started.token.raw_secret,
        device_fingerprint="phone-a",
        now=T0 + timedelta(seconds=1),
    )

    at = T0 + timedelta(minutes=50)
    second = engine.sessions.start_round(professor_id, sid, now=at)
    result = engine.recorder.record_scan(
        STUDENT_ID,
        second.round.round_id,
        second.token.raw_secret,
        device_fingerprint="phone-b",
        now=at + timedelta(seconds=1),
    )

    assert result.status == AttendanceStatus.ON_TIME
    assert [s.type for s in engine.fraud.list_signals(sid)] == expected


def test_rotation_failure_is_logged_after_commit(engine, caplog):
    started = _start(engine)
    engine.publisher.fail = True

    result = engine.recorder.record_scan(
        STUDENT_ID, started.round.round_id, started.token.raw_secret, now=T0 + timedelta(seconds=2)
    )

    assert result.status == AttendanceStatus.ON_TIME
    assert "token rotation failed" in caplog.text
    assert engine.uow.commits >= 1


def test_rejections_are_logged_with_their_code(engine, caplog):
    caplog.set_level(logging.WARNING, logger="classscan")
    started = _start(engine)

    with pytest.raises(NotEnrolled):
        engine.recorder.record_scan(OUTSIDER_ID, started.round.round_id, "x", now=T0)

    assert "scan rejected" in caplog.text
    assert "code=not_enrolled" in caplog.text


def test_my_attendance_and_history(engine):
    started = _start(engine)
    engine.recorder.record_scan(STUDENT_ID, started.round.round_id, started.token.raw_secret, now=T0 + timedelta(seconds=1))
    engine.sessions.start_round(PROFESSOR_ID, started.session.session_id, now=T0 + timedelta(minutes=50))

    summaries = {s.group_id: s for s in engine.recorder.my_attendance(STUDENT_ID)}
    assert summaries[GROUP_ID].total_rounds == 2
    assert summaries[GROUP_ID].attended_rounds == 1
    assert summaries[GROUP_ID].attendance_percentage == 50

    history = engine.recorder.attendance_history(STUDENT_ID)
    assert len(history) == 1
    assert history[0].course_name == "Algorithms"
    assert history[0].round_number == 1
