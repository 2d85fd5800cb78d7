"""Tests for the gpsd-backed LocationSource."""

import threading
import time

import pytest

from navtrack.gpsd import GpsdLocationSource
from navtrack.session import TrackingSession
from navtrack.types import (
    AuthorizationStatus,
    HeadingEvent,
    SensorErrorKind,
)
from tests.factories import FakeTimerFactory, make_fix

_JOIN_TIMEOUT = 2.0


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeReader:
    """Context-managed reader yielding scripted events, then EOFError."""

    def __init__(
        self,
        events,
        block: threading.Event | None = None,
        release_on_cancel: bool = True,
    ) -> None:
        self._events = list(events)
        self._block = block
        self._release_on_cancel = release_on_cancel
        self.cancelled = False
        self.entered = False
        self.exited = False

    def __enter__(self) -> "FakeReader":
        self.entered = True
        return self

    def __exit__(self, *exc) -> None:
        self.exited = True

    def cancel(self) -> None:
        self.cancelled = True
        if self._block is not None and self._release_on_cancel:
            self._block.set()

    def __iter__(self):
        yield from self._events
        if self._block is not None:
            self._block.wait(_JOIN_TIMEOUT)
        raise EOFError("gpsd stream ended.")


class RecordingSink:
    def __init__(self) -> None:
        self.fixes = []
        self.headings = []
        self.statuses = []
        self.errors = []

    def handle_fix(self, fix) -> None:
        self.fixes.append(fix)

    def handle_heading(self, event) -> None:
        self.headings.append(event)

    def handle_authorization_change(self, status) -> None:
        self.statuses.append(status)

    def handle_error(self, error) -> None:
        self.errors.append(error)


def _source(reader) -> tuple[GpsdLocationSource, RecordingSink, list]:
    calls: list = []

    def factory(host, port):
        calls.append((host, port))
        return reader

    source = GpsdLocationSource("gps.local", 4000, reader_factory=factory)
    sink = RecordingSink()
    source.bind(sink)
    return source, sink, calls


def _wait_until(condition) -> None:
    deadline = time.monotonic() + _JOIN_TIMEOUT
    while not condition():
        assert time.monotonic() < deadline, "condition not reached"
        time.sleep(0.005)


def _run_to_completion(source: GpsdLocationSource) -> None:
    source.start_location_updates()
    source._thread.join(_JOIN_TIMEOUT)
    assert not source.is_running


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    def test_starts_not_determined(self):
        source, _, _ = _source(FakeReader([]))
        assert source.authorization_status() is AuthorizationStatus.NOT_DETERMINED

    def test_request_grants_and_notifies_sink(self):
        source, sink, _ = _source(FakeReader([]))
        source.request_authorization()
        assert source.authorization_status() is AuthorizationStatus.AUTHORIZED
        assert sink.statuses == [AuthorizationStatus.AUTHORIZED]

    def test_request_without_sink(self):
        source = GpsdLocationSource(reader_factory=lambda host, port: FakeReader([]))
        source.request_authorization()
        assert source.authorization_status() is AuthorizationStatus.AUTHORIZED


# ---------------------------------------------------------------------------
# Event delivery
# ---------------------------------------------------------------------------


class TestDelivery:
    def test_reader_built_with_host_and_port(self):
        source, _, calls = _source(FakeReader([]))
        _run_to_completion(source)
        assert calls == [("gps.local", 4000)]

    def test_fixes_delivered_in_order(self):
        fixes = [make_fix(seconds=i) for i in range(3)]
        source, sink, _ = _source(FakeReader(fixes))
        _run_to_completion(source)
        assert sink.fixes == fixes

    def test_headings_dropped_until_enabled(self):
        source, sink, _ = _source(FakeReader([HeadingEvent(120.0, accuracy=0.0)]))
        _run_to_completion(source)
        assert sink.headings == []

    def test_headings_delivered_when_enabled(self):
        event = HeadingEvent(120.0, accuracy=0.0)
        source, sink, _ = _source(FakeReader([event]))
        source.start_heading_updates()
        _run_to_completion(source)
        assert sink.headings == [event]

    def test_stream_end_reported_as_transient(self):
        source, sink, _ = _source(FakeReader([make_fix()]))
        _run_to_completion(source)
        assert len(sink.errors) == 1
        assert sink.errors[0].kind is SensorErrorKind.TRANSIENT

    def test_connection_failure_reported_as_transient(self):
        def refuse(host, port):
            raise ConnectionRefusedError("refused")

        source = GpsdLocationSource(reader_factory=refuse)
        sink = RecordingSink()
        source.bind(sink)
        _run_to_completion(source)
        assert [e.kind for e in sink.errors] == [SensorErrorKind.TRANSIENT]
        assert sink.fixes == []

    def test_reader_closed_after_run(self):
        reader = FakeReader([make_fix()])
        source, _, _ = _source(reader)
        _run_to_completion(source)
        assert reader.entered and reader.exited


# ---------------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------------


class TestStop:
    def test_stop_cancels_reader_without_reporting_error(self):
        block = threading.Event()
        reader = FakeReader([make_fix()], block=block)
        source, sink, _ = _source(reader)
        source.start_location_updates()
        for _ in range(200):
            if sink.fixes:
                break
            block.wait(0.01)
        source.stop_location_updates()
        source._thread.join(_JOIN_TIMEOUT)
        assert reader.cancelled is True
        assert sink.errors == []
        assert len(sink.fixes) == 1

    def test_no_delivery_after_stop_requested(self):
        source, sink, _ = _source(FakeReader([make_fix()]))
        source.stop_location_updates()
        source._deliver(make_fix(), source._stop_requested)
        assert sink.fixes == []

    def test_stop_without_start_is_harmless(self):
        source, _, _ = _source(FakeReader([]))
        source.stop_location_updates()
        assert not source.is_running

    def test_start_while_running_does_not_spawn_second_thread(self):
        block = threading.Event()
        reader = FakeReader([], block=block)
        source, _, calls = _source(reader)
        source.start_location_updates()
        source.start_location_updates()
        source.stop_location_updates()
        block.set()
        source._thread.join(_JOIN_TIMEOUT)
        assert len(calls) == 1

    def test_restart_while_previous_run_winds_down(self):
        release = threading.Event()
        readers: list[FakeReader] = []

        def factory(host, port):
            reader = FakeReader([], block=release, release_on_cancel=False)
            readers.append(reader)
            return reader

        source = GpsdLocationSource(reader_factory=factory)
        source.bind(RecordingSink())
        source.start_location_updates()
        _wait_until(lambda: readers and source._reader is readers[0])
        first = source._thread

        source.stop_location_updates()
        source.start_location_updates()

        assert first.is_alive()
        assert source._thread is not first
        _wait_until(lambda: len(readers) == 2)
        assert source.is_running
        assert readers[0].cancelled is True
        release.set()
        first.join(_JOIN_TIMEOUT)
        source._thread.join(_JOIN_TIMEOUT)

    def test_session_reset_keeps_reader_running(self):
        release = threading.Event()
        readers: list[FakeReader] = []

        def factory(host, port):
            events = [] if not readers else [make_fix(speed=2.0)]
            reader = FakeReader(events, block=release, release_on_cancel=False)
            readers.append(reader)
            return reader

        source = GpsdLocationSource(reader_factory=factory)
        session = TrackingSession(source, timer_factory=FakeTimerFactory())
        source.bind(session)
        session.request_authorization()
        _wait_until(lambda: readers and source._reader is readers[0])

        session.reset_session()
        _wait_until(lambda: session.snapshot().point_count == 1)

        assert len(readers) == 2
        assert source.is_running
        assert session.is_tracking is True
        session.stop_tracking()
        release.set()
        source._thread.join(_JOIN_TIMEOUT)


# ---------------------------------------------------------------------------
# Background delivery
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("enabled", [True, False])
def test_background_flag_recorded(enabled):
    source, _, _ = _source(FakeReader([]))
    source.set_background_delivery(enabled)
    assert source.background_delivery is enabled
