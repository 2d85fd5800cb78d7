"""Manages active WebSocket subscriber queues and message broadcasting."""

import asyncio

__all__ = [
    "add_subscriber",
    "broadcast_message",
    "remove_subscriber",
    "subscriber_count",
]

_subscriber_queues: list[asyncio.Queue[str]] = []


def add_subscriber(queue: asyncio.Queue[str]) -> None:
    """Add a new subscriber queue to the broadcast list."""
    _subscriber_queues.append(queue)


def remove_subscriber(queue: asyncio.Queue[str]) -> None:
    """Remove a subscriber queue from the broadcast list, if present."""
    if queue in _subscriber_queues:
        _subscriber_queues.remove(queue)


def subscriber_count() -> int:
    return len(_subscriber_queues)


def _enqueue_message(queue: asyncio.Queue[str], message: str) -> None:
    # Drop the oldest state message so slow clients always see the latest
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(message)


def broadcast_message(message: str, loop: asyncio.AbstractEventLoop) -> None:
    """Dispatch a message to every subscriber queue from any thread.

    Session observers run on the gpsd and timer threads; the queues belong
    to the event loop, so each put is scheduled with
    ``call_soon_threadsafe``.
    """
    if loop.is_closed():
        return
    for queue in list(_subscriber_queues):
        loop.call_soon_threadsafe(_enqueue_message, queue, message)
