"""Pytest fixtures for server module testing."""

from collections.abc import Iterator
from unittest.mock import patch

import pytest

from navtrack.session import SensorEventSink
from navtrack.types import AuthorizationStatus, HeadingEvent, RawFix, SensorError


class ControlledLocationSource:
    """Stand-in for ``GpsdLocationSource`` driven directly by tests.

    Grants authorization on request, like the gpsd source, and forwards
    pushed events synchronously to the bound session.
    """

    def __init__(self) -> None:
        self.sink: SensorEventSink | None = None
        self.status = AuthorizationStatus.NOT_DETERMINED
        self.location_updates = False
        self.heading_updates = False
        self.background = False

    def bind(self, sink: SensorEventSink) -> None:
        self.sink = sink

    def authorization_status(self) -> AuthorizationStatus:
        return self.status

    def request_authorization(self) -> None:
        self.status = AuthorizationStatus.AUTHORIZED
        assert self.sink is not None
        self.sink.handle_authorization_change(self.status)

    def start_location_updates(self) -> None:
        self.location_updates = True

    def stop_location_updates(self) -> None:
        self.location_updates = False

    def start_heading_updates(self) -> None:
        self.heading_updates = True

    def stop_heading_updates(self) -> None:
        self.heading_updates = False

    def set_background_delivery(self, enabled: bool) -> None:
        self.background = enabled

    def push_fix(self, fix: RawFix) -> None:
        assert self.sink is not None
        self.sink.handle_fix(fix)

    def push_heading(self, event: HeadingEvent) -> None:
        assert self.sink is not None
        self.sink.handle_heading(event)

    def push_error(self, error: SensorError) -> None:
        assert self.sink is not None
        self.sink.handle_error(error)


@pytest.fixture(autouse=True)
def mock_location_source(monkeypatch: pytest.MonkeyPatch) -> Iterator[ControlledLocationSource]:
    for name in ("NAVTRACK_BACKGROUND", "NAVTRACK_SPEED_UNIT", "NAVTRACK_MIN_ACCURACY"):
        monkeypatch.delenv(name, raising=False)
    controller = ControlledLocationSource()
    with patch("server.main.GpsdLocationSource", return_value=controller):
        yield controller


@pytest.fixture
def location_source(mock_location_source: ControlledLocationSource) -> ControlledLocationSource:
    return mock_location_source
