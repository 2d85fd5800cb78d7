"""GpsdReader: gpsd JSON client producing raw fixes and heading events.

Connects to a local gpsd instance over TCP (localhost:2947) and consumes its
newline-delimited JSON stream. This lets the tracker share the receiver with
other gpsd clients instead of owning the serial port.

Message mapping:
    TPV -> ``RawFix``. Position, speed, track, altitude and time come
        straight from the message. gpsd's ``eph`` (estimated horizontal
        position error, meters) is the horizontal accuracy; older daemons
        only report ``epx``/``epy``, in which case the larger of the two is
        used. Fields gpsd leaves out map to the negative "invalid"
        sentinels, so a TPV without an error estimate is later rejected by
        the reading filter. TPVs without a position (no fix) are skipped.
    ATT -> ``HeadingEvent`` from the ``heading`` field. gpsd publishes no
        heading error estimate, so a present heading is reported with
        accuracy 0.
    Anything else (VERSION, DEVICES, WATCH, SKY, malformed lines) is ignored.
"""

import contextlib
import json
import socket
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from types import TracebackType
from typing import IO, Any

from navtrack.types import HeadingEvent, RawFix

__all__ = ["GpsdReader", "SensorEvent"]

# --- gpsd connection defaults -------------------------------------------------

_HOST = "localhost"
_PORT = 2947
_TIMEOUT = 2.0  # socket read timeout; determines maximum cancel() latency

_WATCH_CMD = b'?WATCH={"enable":true,"json":true}\n'

_INVALID = -1.0

SensorEvent = RawFix | HeadingEvent


# --- helpers ------------------------------------------------------------------


def _float_or(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return float(value)


def _parse_time(iso: Any) -> datetime | None:
    """Parse gpsd's ISO 8601 UTC timestamp, e.g. ``"2025-03-01T12:35:19.000Z"``."""
    if not isinstance(iso, str):
        return None
    try:
        parsed = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _horizontal_accuracy(msg: dict[str, Any]) -> float:
    eph = msg.get("eph")
    if eph is not None:
        return _float_or(eph, _INVALID)
    epx, epy = msg.get("epx"), msg.get("epy")
    if epx is not None and epy is not None:
        return max(_float_or(epx, _INVALID), _float_or(epy, _INVALID))
    return _INVALID


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- public API ---------------------------------------------------------------


class GpsdReader:
    """Context manager for reading fixes and headings from a gpsd JSON stream.

    Two consumption patterns are supported:

    Continuous iteration (used by ``GpsdLocationSource``)::

        with GpsdReader() as gpsd:
            for event in gpsd:
                process(event)

    Single read::

        with GpsdReader() as gpsd:
            event = gpsd.read()

    Args:
        host: gpsd host (default: ``"localhost"``).
        port: gpsd TCP port (default: ``2947``).
        clock: Fallback time source for TPV messages without a ``time``.
    """

    def __init__(
        self,
        host: str = _HOST,
        port: int = _PORT,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Store connection parameters; the socket is opened in ``__enter__``."""
        self._host = host
        self._port = port
        self._clock = clock
        self._sock: socket.socket | None = None
        self._stream: IO[Any] | None = None
        self._cancelled: bool = False

    def __enter__(self) -> "GpsdReader":
        """Open the gpsd connection and enable JSON watching."""
        sock = socket.create_connection((self._host, self._port))
        try:
            sock.settimeout(_TIMEOUT)
            sock.sendall(_WATCH_CMD)
            self._stream = sock.makefile("rb")
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self._cancelled = False
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the gpsd connection."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def cancel(self) -> None:
        """Cancel pending blocking reads.

        Sets the cancellation flag and shuts down the socket so that any
        in-progress ``readline()`` unblocks immediately and ``read()``
        raises ``EOFError``.
        """
        self._cancelled = True
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.shutdown(socket.SHUT_RDWR)

    def _recv_raw(self, stream: IO[Any]) -> bytes | None:
        """Read one raw line from gpsd; returns ``None`` on timeout retry.

        Raises:
            EOFError: If the stream ended or the connection was closed.
        """
        try:
            raw: bytes = stream.readline()
            if not raw:
                raise EOFError("gpsd stream ended.")
            return raw
        except TimeoutError:
            return None
        except OSError as e:
            raise EOFError("gpsd connection closed.") from e

    def _read_line(self) -> str | None:
        if self._stream is None:
            raise RuntimeError("GpsdReader must be used as a context manager.")
        if self._cancelled:
            raise EOFError("gpsd read cancelled.")
        raw = self._recv_raw(self._stream)
        if raw is None:
            return None
        return raw.decode("utf-8", errors="ignore").strip()

    def _process_tpv(self, msg: dict[str, Any]) -> RawFix | None:
        lat, lon = msg.get("lat"), msg.get("lon")
        if lat is None or lon is None:
            return None
        # gpsd >= 3.25 renamed alt (MSL) to altMSL and added altHAE
        alt = msg.get("altMSL")
        if alt is None:
            alt = msg.get("alt")
        return RawFix(
            latitude=float(lat),
            longitude=float(lon),
            speed=_float_or(msg.get("speed"), _INVALID),
            course=_float_or(msg.get("track"), _INVALID),
            altitude=_float_or(alt, 0.0),
            horizontal_accuracy=_horizontal_accuracy(msg),
            timestamp=_parse_time(msg.get("time")) or self._clock(),
        )

    def _process_att(self, msg: dict[str, Any]) -> HeadingEvent | None:
        heading = msg.get("heading")
        if heading is None:
            return None
        return HeadingEvent(
            magnetic_heading=_float_or(heading, 0.0),
            accuracy=0.0,
            timestamp=_parse_time(msg.get("time")),
        )

    def _dispatch(self, line: str) -> SensorEvent | None:
        """Parse one JSON line and map it to an event, if it carries one."""
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            return None
        if not isinstance(msg, dict):
            return None
        cls = msg.get("class")
        try:
            if cls == "TPV":
                return self._process_tpv(msg)
            if cls == "ATT":
                return self._process_att(msg)
        except (TypeError, ValueError):
            return None
        return None

    def read(self) -> SensorEvent:
        """Block until the next fix or heading event.

        Raises:
            RuntimeError: If called outside a ``with`` block.
            EOFError: If the read is cancelled or the stream ends.
        """
        if self._sock is None:
            raise RuntimeError("GpsdReader must be used as a context manager.")
        while True:
            line = self._read_line()
            if line is None:
                continue
            event = self._dispatch(line)
            if event is not None:
                return event

    def __iter__(self) -> Iterator[SensorEvent]:
        """Yield events until cancelled or the stream ends.

        ``EOFError`` propagates to the caller; ``StopIteration`` is never
        raised.
        """
        while True:
            yield self.read()
