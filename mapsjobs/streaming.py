"""Server-sent event streams of job progress, with a short replay history."""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .job import _format_time, _parse_time

log = logging.getLogger(__name__)

CLIENT_BUFFER_SIZE = 100
MAX_HISTORY_SIZE = 50


@dataclass
class StreamEvent:
    """One progress event of a job."""

    type: str
    job_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        """Return the compact JSON form of the event."""
        return json.dumps(
            {
                "type": self.type,
                "timestamp": _format_time(self.timestamp),
                "job_id": self.job_id,
                "data": self.data,
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> StreamEvent:
        """Build an event from its JSON form."""
        raw = json.loads(text)
        stamp = raw.get("timestamp")
        return cls(
            type=raw.get("type") or "",
            job_id=raw.get("job_id") or "",
            data=raw.get("data") or {},
            timestamp=_parse_time(stamp) if stamp else datetime.now(timezone.utc),
        )


def format_sse_event(event: StreamEvent) -> str:
    """Format an event as one server-sent event frame."""
    return f"id: {event.job_id}\nevent: {event.type}\ndata: {event.to_json()}\n\n"


class StreamHub:
    """Deliver events to the clients listening on each job."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: dict[str, list[queue.Queue]] = {}
        self._history: dict[str, list[StreamEvent]] = {}

    def register(self, job_id: str) -> queue.Queue:
        """Add a client for the job and return its event queue, pre-filled with history."""
        client: queue.Queue = queue.Queue(maxsize=CLIENT_BUFFER_SIZE)
        with self._lock:
            self._clients.setdefault(job_id, []).append(client)
            history = list(self._history.get(job_id, ()))
            total = len(self._clients[job_id])
        for event in history:
            try:
                client.put_nowait(event)
            except queue.Full:
                log.warning("client queue full during replay for job %s", job_id)
                break
        log.info("registered stream client for job %s (total clients: %d)", job_id, total)
        return client

    def unregister(self, job_id: str, client: queue.Queue) -> None:
        """Remove a client; the job's history goes when its last client leaves."""
        with self._lock:
            clients = self._clients.get(job_id)
            if clients is None:
                return
            if client in clients:
                clients.remove(client)
            if not clients:
                del self._clients[job_id]
                self._history.pop(job_id, None)
            remaining = len(self._clients.get(job_id, ()))
        log.info("unregistered stream client for job %s (remaining: %d)", job_id, remaining)

    def broadcast(self, job_id: str, event: StreamEvent) -> None:
        """Record the event and hand it to every client of the job, dropping it for full ones."""
        with self._lock:
            history = self._history.setdefault(job_id, [])
            if len(history) >= MAX_HISTORY_SIZE:
                del history[0]
            history.append(event)
            clients = list(self._clients.get(job_id, ()))
        for client in clients:
            try:
                client.put_nowait(event)
            except queue.Full:
                log.warning("stream client queue full for job %s, dropping event", job_id)

    def client_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._clients.get(job_id, ()))

    def history(self, job_id: str) -> list[StreamEvent]:
        with self._lock:
            return list(self._history.get(job_id, ()))