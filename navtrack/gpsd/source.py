"""LocationSource implementation backed by a gpsd connection."""

import logging
import threading
from collections.abc import Callable

from navtrack.gpsd.reader import GpsdReader, SensorEvent
from navtrack.session import SensorEventSink
from navtrack.types import (
    AuthorizationStatus,
    HeadingEvent,
    RawFix,
    SensorError,
    SensorErrorKind,
)

__all__ = ["GpsdLocationSource"]

logger = logging.getLogger(__name__)

ReaderFactory = Callable[[str, int], GpsdReader]


class GpsdLocationSource:
    """Feed a ``SensorEventSink`` from gpsd on a background thread.

    gpsd has no permission model: the first ``request_authorization()``
    reports ``AUTHORIZED`` through the sink, which starts tracking the same
    way an operating-system permission grant would. Connection failures are
    reported as transient sensor errors; the session keeps its state and a
    later ``start_location_updates()`` reconnects.

    Args:
        host: gpsd host.
        port: gpsd TCP port.
        reader_factory: Builds the reader from ``(host, port)``. Replaced
            in tests.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 2947,
        reader_factory: ReaderFactory = GpsdReader,
    ) -> None:
        self._host = host
        self._port = port
        self._reader_factory = reader_factory
        self._lock = threading.Lock()
        self._sink: SensorEventSink | None = None
        self._authorization = AuthorizationStatus.NOT_DETERMINED
        self._reader: GpsdReader | None = None
        self._thread: threading.Thread | None = None
        self._stop_requested = threading.Event()
        self._heading_enabled = False
        self._background = False

    def bind(self, sink: SensorEventSink) -> None:
        """Route subsequent events to *sink*."""
        self._sink = sink

    @property
    def background_delivery(self) -> bool:
        return self._background

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    # --- LocationSource -------------------------------------------------------

    def authorization_status(self) -> AuthorizationStatus:
        return self._authorization

    def request_authorization(self) -> None:
        self._authorization = AuthorizationStatus.AUTHORIZED
        if self._sink is not None:
            self._sink.handle_authorization_change(self._authorization)

    def start_location_updates(self) -> None:
        """Start a reader thread unless one is already running.

        A thread that is still winding down after ``stop_location_updates()``
        does not count as running; each run owns its stop event, so the old
        thread delivers nothing further while the new one starts reading.
        """
        with self._lock:
            if self.is_running and not self._stop_requested.is_set():
                return
            stop = threading.Event()
            self._stop_requested = stop
            self._reader = None
            self._thread = threading.Thread(
                target=self._run, args=(stop,), name="navtrack-gpsd", daemon=True
            )
            self._thread.start()

    def stop_location_updates(self) -> None:
        with self._lock:
            self._stop_requested.set()
            reader = self._reader
        if reader is not None:
            reader.cancel()

    def start_heading_updates(self) -> None:
        self._heading_enabled = True

    def stop_heading_updates(self) -> None:
        self._heading_enabled = False

    def set_background_delivery(self, enabled: bool) -> None:
        # gpsd keeps streaming regardless of foreground state
        self._background = enabled

    # --- reader thread --------------------------------------------------------

    def _deliver(self, event: SensorEvent, stop: threading.Event) -> None:
        sink = self._sink
        if sink is None or stop.is_set():
            return
        if isinstance(event, RawFix):
            sink.handle_fix(event)
        elif isinstance(event, HeadingEvent) and self._heading_enabled:
            sink.handle_heading(event)

    def _report(self, kind: SensorErrorKind, message: str, stop: threading.Event) -> None:
        if self._sink is not None and not stop.is_set():
            self._sink.handle_error(SensorError(kind=kind, message=message))

    def _run(self, stop: threading.Event) -> None:
        reader: GpsdReader | None = None
        try:
            with self._reader_factory(self._host, self._port) as reader:
                with self._lock:
                    if stop.is_set():
                        return
                    self._reader = reader
                for event in reader:
                    self._deliver(event, stop)
        except EOFError as e:
            if not stop.is_set():
                logger.warning("gpsd stream ended: %s", e)
                self._report(SensorErrorKind.TRANSIENT, str(e), stop)
        except OSError as e:
            logger.warning("Cannot reach gpsd at %s:%d: %s", self._host, self._port, e)
            self._report(SensorErrorKind.TRANSIENT, str(e), stop)
        finally:
            with self._lock:
                if reader is not None and self._reader is reader:
                    self._reader = None
