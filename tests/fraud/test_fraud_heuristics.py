from __future__ import annotations

import logging
from datetime import datetime

import pytest

from classscan.core.enums import FraudSeverity, FraudType
from classscan.fraud.dispatcher import FraudDispatcher, InlineFraudDispatcher
from classscan.fraud.heuristics import (
    ScanContext,
    detect_edge_scan,
    detect_gps_cluster,
    detect_multiple_device,
    detect_rapid_burst,
    round_coordinate,
)
from classscan.fraud.model import FraudSignal
from classscan.fraud.service import FraudService

NOW = datetime(2026, 3, 2, 9, 5, 0)


class StubActivity:
    def __init__(self, *, recent=0, nearby=0, fingerprints=0):
        self.recent = recent
        self.nearby = nearby
        self.fingerprints = fingerprints
        self.calls = []

    def count_student_records_since(self, *, session_id, student_id, since):
        self.calls.append(("recent", since))
        return self.recent

    def count_nearby_other_students(self, *, session_id, student_id, since, latitude, longitude, tolerance):
        self.calls.append(("nearby", latitude, longitude, tolerance))
        return self.nearby

    def count_other_fingerprints(self, *, session_id, student_id, fingerprint):
        self.calls.append(("fingerprints", fingerprint))
        return self.fingerprints


class MemorySignals:
    def __init__(self, fail=False):
        self.items = []
        self.fail = fail

    def insert(self, signal):
        if self.fail:
            raise RuntimeError("insert failed")
        self.items.append(signal)
        return len(self.items)

    def list_for_session(self, session_id):
        return [s for s in self.items if s.session_id == session_id]


def _ctx(**overrides):
    values = dict(
        session_id=1,
        round_id=2,
        student_id=100,
        course_id=10,
        recorded_at=NOW,
        delta_seconds=300,
        threshold_seconds=1200,
    )
    values.update(overrides)
    return ScanContext(**values)


def test_rapid_burst_needs_three_recent_records():
    assert detect_rapid_burst(_ctx(), StubActivity(recent=2)) is None

    signal = detect_rapid_burst(_ctx(), StubActivity(recent=3))
    assert signal.type == FraudType.RAPID_BURST
    assert signal.severity == FraudSeverity.MEDIUM
    assert signal.details == {"windowSeconds": 60, "priorCount": 3}


def test_gps_cluster_rounds_coordinates_before_lookup():
    activity = StubActivity(nearby=1)

    signal = detect_gps_cluster(_ctx(latitude=10.776912, longitude=106.700949), activity)

    assert signal.type == FraudType.GPS_CLUSTER
    assert signal.severity == FraudSeverity.LOW
    assert activity.calls == [("nearby", 10.7769, 106.7009, 0.0001)]
    assert detect_gps_cluster(_ctx(latitude=10.7769, longitude=106.7009), StubActivity(nearby=0)) is None


def test_gps_cluster_skips_scans_without_location():
    activity = StubActivity(nearby=5)
    assert detect_gps_cluster(_ctx(), activity) is None
    assert activity.calls == []


@pytest.mark.parametrize("delta, flagged", [(1185, True), (1200, True), (1215, True), (1184, False), (1216, False)])
def test_edge_scan_window(delta, flagged):
    signal = detect_edge_scan(_ctx(delta_seconds=delta), StubActivity())
    assert (signal is not None) is flagged


def test_multiple_device_only_when_binding_enabled():
    assert detect_multiple_device(_ctx(device_fingerprint="dev-a"), StubActivity(fingerprints=2)) is None
    assert detect_multiple_device(_ctx(device_binding_enabled=True), StubActivity(fingerprints=2)) is None

    signal = detect_multiple_device(
        _ctx(device_fingerprint="dev-a", device_binding_enabled=True), StubActivity(fingerprints=1)
    )
    assert signal.type == FraudType.MULTIPLE_DEVICE
    assert signal.details == {"fingerprintsSeen": 2}


def test_round_coordinate():
    assert round_coordinate(10.123456) == 10.1235


def test_run_checks_isolates_a_crashing_detector(caplog):
    def broken(ctx, activity):
        raise ValueError("boom")

    signals = MemorySignals()
    service = FraudService(signals, StubActivity(), detectors=(broken, detect_edge_scan))

    emitted = service.run_checks(_ctx(delta_seconds=1200))

    assert [s.type for s in emitted] == [FraudType.EDGE_SCAN]
    assert len(signals.items) == 1
    assert "fraud detector failed" in caplog.text


def test_emit_failure_is_swallowed(caplog):
    service = FraudService(MemorySignals(fail=True), StubActivity())

    ok = service.emit(FraudSignal(type=FraudType.EDGE_SCAN, severity=FraudSeverity.LOW, session_id=1))

    assert ok is False
    assert "failed to emit fraud signal" in caplog.text


def test_emitted_signals_are_logged_as_warnings(caplog):
    caplog.set_level(logging.WARNING, logger="classscan")
    service = FraudService(MemorySignals(), StubActivity())

    service.emit(FraudSignal(type=FraudType.GPS_CLUSTER, severity=FraudSeverity.LOW, session_id=1, student_id=100))

    assert "fraud signal: type=gps_cluster severity=low" in caplog.text


def test_pool_dispatcher_runs_checks_off_the_caller_thread():
    signals = MemorySignals()
    dispatcher = FraudDispatcher(FraudService(signals, StubActivity(recent=5)), max_workers=2)

    dispatcher.dispatch(_ctx())
    dispatcher.dispatch(_ctx(student_id=101))
    dispatcher.shutdown(wait=True)

    assert sorted(s.student_id for s in signals.items) == [100, 101]


def test_dispatch_after_shutdown_is_skipped(caplog):
    signals = MemorySignals()
    dispatcher = FraudDispatcher(FraudService(signals, StubActivity(recent=5)))
    dispatcher.shutdown()

    dispatcher.dispatch(_ctx())

    assert signals.items == []
    assert "fraud dispatcher is shut down" in caplog.text


def test_inline_dispatcher_contains_failures(caplog):
    class Exploding:
        def run_checks(self, context):
            raise RuntimeError("no db")

    InlineFraudDispatcher(Exploding()).dispatch(_ctx())

    assert "fraud checks crashed" in caplog.text


def test_signal_to_dict():
    data = FraudSignal(
        type=FraudType.RAPID_BURST,
        severity=FraudSeverity.MEDIUM,
        session_id=1,
        student_id=100,
        details={"priorCount": 3},
        signal_id=7,
        created_at=NOW,
    ).to_dict()

    assert data["id"] == 7
    assert data["type"] == "rapid_burst"
    assert data["createdAt"] == "2026-03-02T09:05:00.000Z"
