from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from apps.mcp_gateway.observability import log_event

from .frames import encode_comment, encode_event

__all__ = ["READY_MESSAGE", "StreamHandle", "StreamRegistry"]

LOGGER = logging.getLogger(__name__)

READY_MESSAGE = "SSE connected"

_END = None


@dataclass(frozen=True, slots=True)
class StreamHandle:
    id: str


@dataclass(eq=False, slots=True)
class _StreamConnection:
    id: str
    queue: asyncio.Queue[str | None]
    loop: asyncio.AbstractEventLoop
    keepalive: asyncio.Task[None] | None = None
    closed: bool = False
    frames_written: int = field(default=0)


class StreamRegistry:
    """Owns every open push stream.

    The connection map is guarded by a single lock and only ever iterated on a
    snapshot; writes go to per-connection bounded queues drained by
    :meth:`frames`. A write that cannot be delivered turns into a deferred
    close of that connection and never raises to the caller.
    """

    def __init__(self, *, keepalive_seconds: float = 15.0, queue_size: int = 256) -> None:
        if keepalive_seconds <= 0:
            raise ValueError("keepalive_seconds must be positive")
        if queue_size <= 0:
            raise ValueError("queue_size must be a positive integer")
        self._keepalive_seconds = keepalive_seconds
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._connections: dict[str, _StreamConnection] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, handle: object) -> bool:
        if not isinstance(handle, StreamHandle):
            return False
        with self._lock:
            return handle.id in self._connections

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._connections)

    def open(self, *, endpoint_url: str | None = None) -> StreamHandle:
        """Register a stream on the running loop and start its keepalive.

        With ``endpoint_url`` the stream first announces where to post
        messages, then signals readiness.
        """

        loop = asyncio.get_running_loop()
        conn = _StreamConnection(
            id=uuid4().hex,
            queue=asyncio.Queue(maxsize=self._queue_size),
            loop=loop,
        )
        with self._lock:
            self._connections[conn.id] = conn

        if endpoint_url is not None:
            self._write(conn, encode_event("endpoint", endpoint_url))
            ready = json.dumps({"ok": True, "message": READY_MESSAGE})
            self._write(conn, encode_event("ready", ready))
        conn.keepalive = loop.create_task(self._keepalive(conn), name=f"sse-keepalive-{conn.id}")
        log_event("stream.open", stream_id=conn.id, announced=endpoint_url is not None)
        return StreamHandle(conn.id)

    def close(self, handle: StreamHandle) -> bool:
        """Cancel the keepalive and deregister; returns ``False`` if already closed."""

        with self._lock:
            conn = self._connections.pop(handle.id, None)
        if conn is None:
            return False
        conn.closed = True
        if _on_loop(conn.loop):
            self._finish(conn)
        else:
            try:
                conn.loop.call_soon_threadsafe(self._finish, conn)
            except RuntimeError:  # loop already closed
                pass
        log_event("stream.close", stream_id=conn.id, frames=conn.frames_written)
        return True

    def close_all(self) -> int:
        closed = 0
        for stream_id in self.active_ids():
            if self.close(StreamHandle(stream_id)):
                closed += 1
        return closed

    def broadcast(self, event: str, payload: Any) -> int:
        """Write ``event`` to every open stream; returns how many accepted it.

        Off the owning loop a write is only scheduled, so the count includes
        frames that may still be dropped by a full queue.
        """

        frame = encode_event(event, _payload_text(payload))
        with self._lock:
            snapshot = list(self._connections.values())
        delivered = 0
        for conn in snapshot:
            if self._write(conn, frame):
                delivered += 1
        return delivered

    def send(self, handle: StreamHandle, event: str, payload: Any) -> bool:
        """Write ``event`` to a single stream."""

        with self._lock:
            conn = self._connections.get(handle.id)
        if conn is None:
            return False
        return self._write(conn, encode_event(event, _payload_text(payload)))

    async def frames(self, handle: StreamHandle) -> AsyncIterator[str]:
        """Yield queued frames until the stream closes; closing on exit."""

        with self._lock:
            conn = self._connections.get(handle.id)
        if conn is None:
            return
        try:
            while not conn.closed:
                frame = await conn.queue.get()
                if frame is _END or conn.closed:
                    break
                conn.frames_written += 1
                yield frame
        finally:
            self.close(handle)

    async def stream(self, *, endpoint_url: str | None = None) -> AsyncIterator[str]:
        """Open a stream on first iteration and close it when iteration stops.

        Used as a response body: a client that disconnects before the body is
        iterated never registers a connection.
        """

        handle = self.open(endpoint_url=endpoint_url)
        frames = self.frames(handle)
        try:
            async for frame in frames:
                yield frame
        finally:
            self.close(handle)
            await frames.aclose()

    async def _keepalive(self, conn: _StreamConnection) -> None:
        frame = encode_comment("keepalive")
        while not conn.closed:
            await asyncio.sleep(self._keepalive_seconds)
            if not self._write(conn, frame):
                break

    def _write(self, conn: _StreamConnection, frame: str) -> bool:
        if conn.closed:
            return False
        if _on_loop(conn.loop):
            return self._put(conn, frame)
        try:
            conn.loop.call_soon_threadsafe(self._put, conn, frame)
        except RuntimeError:
            self.close(StreamHandle(conn.id))
            return False
        return True

    def _put(self, conn: _StreamConnection, frame: str) -> bool:
        if conn.closed:
            return False
        try:
            conn.queue.put_nowait(frame)
        except asyncio.QueueFull:
            LOGGER.warning("Stream %s is not draining; closing it", conn.id)
            conn.loop.call_soon(self.close, StreamHandle(conn.id))
            return False
        return True

    def _finish(self, conn: _StreamConnection) -> None:
        if conn.keepalive is not None and not conn.keepalive.done():
            conn.keepalive.cancel()
        try:
            conn.queue.put_nowait(_END)
        except asyncio.QueueFull:
            # frames() re-checks ``closed`` after every dequeue
            pass


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def _payload_text(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    if isinstance(payload, Mapping):
        return json.dumps(dict(payload), ensure_ascii=False)
    return json.dumps(payload, ensure_ascii=False)
