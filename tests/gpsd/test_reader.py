"""Tests for the gpsd JSON client reader."""

import json
import socket
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from navtrack.gpsd import GpsdReader
from navtrack.types import HeadingEvent, RawFix

# ---------------------------------------------------------------------------
# gpsd JSON message dictionaries
# ---------------------------------------------------------------------------

# 3D fix with an eph error estimate
_TPV_FULL = {
    "class": "TPV",
    "mode": 3,
    "time": "2025-03-01T12:35:19.000Z",
    "lat": 48.1173,
    "lon": 11.5167,
    "altMSL": 545.4,
    "speed": 2.833,
    "track": 54.7,
    "eph": 4.0,
}

# Older daemon: alt instead of altMSL, epx/epy instead of eph
_TPV_LEGACY = {
    "class": "TPV",
    "mode": 3,
    "time": "2025-03-01T12:35:20.000Z",
    "lat": 48.1174,
    "lon": 11.5168,
    "alt": 540.0,
    "speed": 1.5,
    "track": 90.0,
    "epx": 3.0,
    "epy": 7.5,
}

# 2D fix without velocity, error estimate or time
_TPV_SPARSE = {
    "class": "TPV",
    "mode": 2,
    "lat": 48.1175,
    "lon": 11.5169,
}

# No fix -- no position fields
_TPV_NO_FIX = {"class": "TPV", "mode": 1}

_ATT_HEADING = {
    "class": "ATT",
    "time": "2025-03-01T12:35:21.000Z",
    "heading": 200.5,
}

_ATT_NO_HEADING = {"class": "ATT", "pitch": 1.0}

_WATCH_MSG = {"class": "WATCH", "enable": True}
_VERSION_MSG = {"class": "VERSION", "release": "3.25"}
_SKY_MSG = {"class": "SKY", "uSat": 9, "hdop": 0.8}

_GARBAGE = "not-json-at-all"

_FALLBACK_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _line(msg: dict) -> bytes:
    """Encode a dict as a newline-terminated JSON line."""
    return (json.dumps(msg) + "\n").encode()


def _reader() -> GpsdReader:
    return GpsdReader(clock=lambda: _FALLBACK_TIME)


# ---------------------------------------------------------------------------
# Fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_gpsd(monkeypatch):
    """Replace socket.create_connection with a mock for the duration of a test.

    Returns a SimpleNamespace with attributes:
        sock     -- the socket instance mock
        stream   -- the stream mock returned by sock.makefile()
        connect  -- the create_connection mock (to verify call args)

    Configure ``stream.readline.side_effect`` with a list of byte strings
    to control what the reader sees. A trailing ``OSError`` simulates a
    closed connection.
    """
    mock_stream = MagicMock()
    mock_sock = MagicMock()
    mock_sock.makefile.return_value = mock_stream
    mock_connect = MagicMock(return_value=mock_sock)
    monkeypatch.setattr(socket, "create_connection", mock_connect)
    return SimpleNamespace(sock=mock_sock, stream=mock_stream, connect=mock_connect)


# ---------------------------------------------------------------------------
# Connection handling
# ---------------------------------------------------------------------------


class TestConnection:
    def test_connects_to_default_address(self, mock_gpsd):
        with GpsdReader():
            pass
        mock_gpsd.connect.assert_called_once_with(("localhost", 2947))

    def test_connects_to_custom_address(self, mock_gpsd):
        with GpsdReader(host="boat.local", port=3000):
            pass
        mock_gpsd.connect.assert_called_once_with(("boat.local", 3000))

    def test_sends_watch_command(self, mock_gpsd):
        with GpsdReader():
            pass
        sent = mock_gpsd.sock.sendall.call_args[0][0]
        assert sent.startswith(b"?WATCH=")
        assert json.loads(sent[len(b"?WATCH=") :]) == {"enable": True, "json": True}

    def test_exit_closes_stream_and_socket(self, mock_gpsd):
        with GpsdReader():
            pass
        mock_gpsd.stream.close.assert_called_once()
        mock_gpsd.sock.close.assert_called_once()

    def test_socket_closed_when_watch_fails(self, mock_gpsd):
        mock_gpsd.sock.sendall.side_effect = OSError("broken pipe")
        with pytest.raises(OSError):
            with GpsdReader():
                pass
        mock_gpsd.sock.close.assert_called_once()

    def test_connection_refused_propagates(self, mock_gpsd):
        mock_gpsd.connect.side_effect = ConnectionRefusedError()
        with pytest.raises(ConnectionRefusedError):
            with GpsdReader():
                pass

    def test_read_outside_context_raises(self):
        with pytest.raises(RuntimeError):
            GpsdReader().read()


# ---------------------------------------------------------------------------
# TPV mapping
# ---------------------------------------------------------------------------


class TestTpvMapping:
    def test_full_tpv(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_TPV_FULL)]
        with _reader() as gpsd:
            fix = gpsd.read()
        assert isinstance(fix, RawFix)
        assert fix.latitude == pytest.approx(48.1173)
        assert fix.longitude == pytest.approx(11.5167)
        assert fix.speed == pytest.approx(2.833)
        assert fix.course == pytest.approx(54.7)
        assert fix.altitude == pytest.approx(545.4)
        assert fix.horizontal_accuracy == pytest.approx(4.0)
        assert fix.timestamp == datetime(2025, 3, 1, 12, 35, 19, tzinfo=timezone.utc)

    def test_legacy_fields(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_TPV_LEGACY)]
        with _reader() as gpsd:
            fix = gpsd.read()
        assert fix.altitude == pytest.approx(540.0)
        assert fix.horizontal_accuracy == pytest.approx(7.5)

    def test_missing_fields_map_to_sentinels(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_TPV_SPARSE)]
        with _reader() as gpsd:
            fix = gpsd.read()
        assert fix.speed == -1.0
        assert fix.course == -1.0
        assert fix.horizontal_accuracy == -1.0
        assert fix.altitude == 0.0
        assert fix.timestamp == _FALLBACK_TIME

    def test_tpv_without_position_skipped(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_TPV_NO_FIX), _line(_TPV_FULL)]
        with _reader() as gpsd:
            fix = gpsd.read()
        assert fix.latitude == pytest.approx(48.1173)

    def test_non_numeric_speed_treated_as_invalid(self, mock_gpsd):
        msg = {**_TPV_FULL, "speed": "fast"}
        mock_gpsd.stream.readline.side_effect = [_line(msg)]
        with _reader() as gpsd:
            assert gpsd.read().speed == -1.0

    def test_unparseable_time_uses_clock(self, mock_gpsd):
        msg = {**_TPV_FULL, "time": "yesterday"}
        mock_gpsd.stream.readline.side_effect = [_line(msg)]
        with _reader() as gpsd:
            assert gpsd.read().timestamp == _FALLBACK_TIME


# ---------------------------------------------------------------------------
# ATT mapping
# ---------------------------------------------------------------------------


class TestAttMapping:
    def test_heading_event(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_ATT_HEADING)]
        with _reader() as gpsd:
            event = gpsd.read()
        assert isinstance(event, HeadingEvent)
        assert event.magnetic_heading == pytest.approx(200.5)
        assert event.accuracy == 0.0
        assert event.timestamp == datetime(2025, 3, 1, 12, 35, 21, tzinfo=timezone.utc)

    def test_att_without_heading_skipped(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_ATT_NO_HEADING), _line(_ATT_HEADING)]
        with _reader() as gpsd:
            assert gpsd.read().magnetic_heading == pytest.approx(200.5)


# ---------------------------------------------------------------------------
# Stream handling
# ---------------------------------------------------------------------------


class TestStream:
    def test_ignores_other_classes_and_garbage(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [
            _line(_VERSION_MSG),
            _line(_WATCH_MSG),
            _line(_SKY_MSG),
            (_GARBAGE + "\n").encode(),
            b"[1, 2, 3]\n",
            _line(_TPV_FULL),
        ]
        with _reader() as gpsd:
            assert isinstance(gpsd.read(), RawFix)

    def test_timeout_is_retried(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [TimeoutError(), _line(_TPV_FULL)]
        with _reader() as gpsd:
            assert isinstance(gpsd.read(), RawFix)

    def test_end_of_stream_raises_eof(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [b""]
        with _reader() as gpsd:
            with pytest.raises(EOFError):
                gpsd.read()

    def test_closed_connection_raises_eof(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [OSError("reset")]
        with _reader() as gpsd:
            with pytest.raises(EOFError):
                gpsd.read()

    def test_iteration_yields_events_in_order(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [
            _line(_TPV_FULL),
            _line(_ATT_HEADING),
            _line(_TPV_LEGACY),
            OSError("closed"),
        ]
        events = []
        with _reader() as gpsd:
            with pytest.raises(EOFError):
                for event in gpsd:
                    events.append(event)
        assert [type(e) for e in events] == [RawFix, HeadingEvent, RawFix]

    def test_cancel_shuts_down_socket_and_stops_reads(self, mock_gpsd):
        mock_gpsd.stream.readline.side_effect = [_line(_TPV_FULL)]
        with _reader() as gpsd:
            gpsd.cancel()
            mock_gpsd.sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
            with pytest.raises(EOFError):
                gpsd.read()

    def test_cancel_tolerates_shutdown_error(self, mock_gpsd):
        mock_gpsd.sock.shutdown.side_effect = OSError("not connected")
        with _reader() as gpsd:
            gpsd.cancel()
