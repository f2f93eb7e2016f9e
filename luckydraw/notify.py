"""Delivery of jackpot domain events to push channels.

:class:`EventDispatcher` is the only piece that knows about transports. The
engine hands it events after the corresponding state is committed; delivery
failures are logged and never propagate back into the draw or purchase.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

import requests

from .jackpot.events import JackpotEvent, WinnerAnnounced

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushMessage:
    """Transport-level message: event name, optional room and JSON-able data."""

    event: str
    data: dict[str, Any]
    room: Optional[str] = None


def to_message(event: JackpotEvent) -> PushMessage:
    return PushMessage(event=event.topic, data=event.payload(), room=event.room)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_message(message: PushMessage) -> str:
    return json.dumps(
        {"event": message.event, "room": message.room, "data": message.data},
        default=_json_default,
        ensure_ascii=False,
    )


class Transport(Protocol):
    def send(self, message: PushMessage) -> None: ...


class InMemoryTransport:
    """Keeps every message in a list. Used by tests and local tooling."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.messages: list[PushMessage] = []

    def send(self, message: PushMessage) -> None:
        with self._lock:
            self.messages.append(message)

    def events(self, name: Optional[str] = None) -> list[PushMessage]:
        with self._lock:
            if name is None:
                return list(self.messages)
            return [m for m in self.messages if m.event == name]

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()


class WebhookTransport:
    """POSTs each message as JSON to a push gateway (e.g. a Socket.IO bridge)."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url:
            raise ValueError("url must not be empty")
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.session = session or requests.Session()

    def send(self, message: PushMessage) -> None:
        response = self.session.post(
            self.url,
            data=encode_message(message).encode("utf-8"),
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()


class WinnerAnnouncer:
    """Background worker that emits winner announcements one at a time.

    Announcements are queued by the dispatcher and sent ``interval`` seconds
    apart from a daemon thread, so a draw request never waits for them.
    """

    def __init__(self, send, interval: float = 1.0) -> None:
        if interval < 0:
            raise ValueError("interval must not be negative")
        self._send = send
        self.interval = interval
        self._queue: "queue.Queue[Optional[WinnerAnnounced]]" = queue.Queue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._thread_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._thread_lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="winner-announcer", daemon=True
            )
            self._thread.start()

    def submit(self, announcements: Iterable[WinnerAnnounced]) -> int:
        count = 0
        for announcement in announcements:
            self._queue.put(announcement)
            count += 1
        if count:
            self.start()
        return count

    def join(self) -> None:
        """Block until every queued announcement has been sent."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the worker. Pending announcements are dropped."""
        self._stop.set()
        self._queue.put(None)
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        # Drain leftovers so join() callers are released.
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()

    def _run(self) -> None:
        first = True
        while not self._stop.is_set():
            item = self._queue.get()
            try:
                if item is None:
                    break
                if not first and self.interval:
                    # Wait returns early when stop() is requested.
                    if self._stop.wait(self.interval):
                        break
                first = False
                self._send(item)
            finally:
                self._queue.task_done()


class EventDispatcher:
    """Translate domain events into push messages and hand them to transports.

    Parameters
    ----------
    transports : Sequence[Transport]
        Destinations for every message.
    announce_interval : float, default: 1.0
        Spacing between ``winner_announced`` messages. With ``0`` the
        announcements are still sent from the background worker, back to back.
    """

    def __init__(
        self,
        transports: Sequence[Transport] = (),
        *,
        announce_interval: float = 1.0,
    ) -> None:
        self.transports: list[Transport] = list(transports)
        self.announcer = WinnerAnnouncer(self._deliver, interval=announce_interval)

    @classmethod
    def from_settings(cls, settings, extra: Sequence[Transport] = ()) -> "EventDispatcher":
        transports: list[Transport] = list(extra)
        if settings.notify_url:
            transports.append(
                WebhookTransport(settings.notify_url, timeout=settings.notify_timeout)
            )
        return cls(transports, announce_interval=settings.announce_interval)

    def add_transport(self, transport: Transport) -> None:
        self.transports.append(transport)

    def dispatch(self, events: Iterable[JackpotEvent]) -> None:
        announcements: list[WinnerAnnounced] = []
        for event in events:
            if isinstance(event, WinnerAnnounced):
                announcements.append(event)
            else:
                self._deliver(event)
        if announcements:
            self.announcer.submit(announcements)

    def close(self) -> None:
        self.announcer.stop(timeout=5)

    def _deliver(self, event: JackpotEvent) -> None:
        message = to_message(event)
        for transport in self.transports:
            try:
                transport.send(message)
            except Exception:
                logger.exception(
                    f"Failed to deliver {message.event} via {type(transport).__name__}"
                )


__all__ = [
    "PushMessage",
    "to_message",
    "encode_message",
    "Transport",
    "InMemoryTransport",
    "WebhookTransport",
    "WinnerAnnouncer",
    "EventDispatcher",
]
