"""FastAPI server exposing the live tracking session.

Start with::

    uvicorn server.main:app --host 0.0.0.0 --port 8000

The session is fed by gpsd (see ``NAVTRACK_GPSD_HOST``/``NAVTRACK_GPSD_PORT``)
and authorization is requested at startup, so tracking begins as soon as the
daemon delivers fixes. WebSocket clients connect to ``ws://<host>:8000/ws``
and receive one ``type="state"`` JSON message on connect, after every state
change, and once per second while tracking.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from navtrack.config import TrackingConfig, load_config
from navtrack.gpsd import GpsdLocationSource
from navtrack.session import TrackingSession
from navtrack.types import SessionSnapshot
from server.broadcaster import add_subscriber, broadcast_message, remove_subscriber
from server.formatters import format_state_message, format_track_points, snapshot_to_dict

logger = logging.getLogger(__name__)

_QUEUE_MAX_SIZE = 10
_TIMEOUT_SECONDS = 5.0


class BackgroundRequest(BaseModel):
    enabled: bool


def _create_session(config: TrackingConfig) -> TrackingSession:
    source = GpsdLocationSource(config.gpsd_host, config.gpsd_port)
    session = TrackingSession(source, config)
    source.bind(session)
    return session


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    loop = asyncio.get_running_loop()
    config = load_config()
    session = _create_session(config)

    def _publish(snapshot: SessionSnapshot) -> None:
        broadcast_message(format_state_message(snapshot, config), loop)

    unsubscribe = session.subscribe(_publish)
    application.state.config = config
    application.state.session = session
    session.request_authorization()
    try:
        yield
    finally:
        unsubscribe()
        session.stop_tracking()


app = FastAPI(lifespan=_lifespan)


def _session(request: Request) -> TrackingSession:
    return request.app.state.session


@app.get("/state")
def get_state(request: Request) -> dict:
    """Return the current session snapshot with display-formatted values."""
    return snapshot_to_dict(_session(request).snapshot(), request.app.state.config)


@app.get("/track")
def get_track(request: Request) -> list[dict]:
    return format_track_points(_session(request).track_points())


@app.get("/track/coordinates")
def get_coordinates(request: Request) -> list[list[float]]:
    return [[lat, lon] for lat, lon in _session(request).coordinates()]


@app.get("/export.gpx")
def export_gpx(request: Request) -> Response:
    return Response(
        content=_session(request).export_gpx(),
        media_type="application/gpx+xml",
        headers={"Content-Disposition": 'attachment; filename="session.gpx"'},
    )


@app.get("/export.csv")
def export_csv(request: Request) -> Response:
    return Response(
        content=_session(request).export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="session.csv"'},
    )


@app.post("/tracking/start")
def start_tracking(request: Request) -> dict:
    session = _session(request)
    session.start_tracking()
    return snapshot_to_dict(session.snapshot(), request.app.state.config)


@app.post("/tracking/stop")
def stop_tracking(request: Request) -> dict:
    session = _session(request)
    session.stop_tracking()
    return snapshot_to_dict(session.snapshot(), request.app.state.config)


@app.post("/tracking/reset")
def reset_session(request: Request) -> dict:
    session = _session(request)
    session.reset_session()
    return snapshot_to_dict(session.snapshot(), request.app.state.config)


@app.post("/authorization")
def request_authorization(request: Request) -> dict:
    session = _session(request)
    session.request_authorization()
    return snapshot_to_dict(session.snapshot(), request.app.state.config)


@app.put("/background")
def set_background(body: BackgroundRequest, request: Request) -> dict:
    session = _session(request)
    if body.enabled:
        session.enable_background_tracking()
    else:
        session.disable_background_tracking()
    return snapshot_to_dict(session.snapshot(), request.app.state.config)


async def _send_messages_until_disconnect(
    queue: asyncio.Queue[str],
    websocket: WebSocket,
) -> None:
    try:
        while True:
            message = await asyncio.wait_for(queue.get(), timeout=_TIMEOUT_SECONDS)
            await websocket.send_text(message)
    except TimeoutError:
        await websocket.close(code=1001)
    except WebSocketDisconnect:
        pass


async def _receive_until_disconnect(websocket: WebSocket) -> None:
    # client messages are ignored; reading is how a disconnect is noticed
    with contextlib.suppress(WebSocketDisconnect):
        while True:
            await websocket.receive_text()


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Stream session state messages to a connected WebSocket client.

    Each client gets its own bounded queue (max ``_QUEUE_MAX_SIZE``
    messages). The oldest message is dropped when the queue is full so slow
    clients never stall the sensor thread. The connection closes with code
    1001, and the client should reconnect, if no message arrives within
    ``_TIMEOUT_SECONDS``.

    Args:
        websocket: The incoming WebSocket connection.
    """
    await websocket.accept()
    session: TrackingSession = websocket.app.state.session
    config: TrackingConfig = websocket.app.state.config
    queue: asyncio.Queue[str] = asyncio.Queue(maxsize=_QUEUE_MAX_SIZE)
    queue.put_nowait(format_state_message(session.snapshot(), config))
    add_subscriber(queue)
    tasks = {
        asyncio.create_task(_send_messages_until_disconnect(queue, websocket)),
        asyncio.create_task(_receive_until_disconnect(websocket)),
    }
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        remove_subscriber(queue)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
