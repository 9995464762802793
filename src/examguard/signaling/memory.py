"""In-memory signaling relay using asyncio queues."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from uuid import uuid4

from examguard.errors import SignalingError
from examguard.signaling.base import SignalCallback, SignalingTransport, SignalMessage

logger = logging.getLogger("examguard.signaling")


class InMemorySignalingRelay(SignalingTransport):
    """In-process signaling relay.

    Every registered endpoint gets its own queue and delivery task, so
    messages are delivered in send order per endpoint and a slow handler
    on one endpoint never blocks another.  Suitable for single-process
    deployments and tests; for real devices provide a transport backed by
    a WebSocket or socket.io server.
    """

    def __init__(self) -> None:
        self._endpoints: dict[str, _Endpoint] = {}
        self._closed = False

    async def register(self, callback: SignalCallback) -> str:
        if self._closed:
            raise SignalingError("Relay is closed")
        endpoint_id = uuid4().hex
        endpoint = _Endpoint(endpoint_id=endpoint_id, callback=callback)
        self._endpoints[endpoint_id] = endpoint
        endpoint.start()
        logger.debug("Registered signaling endpoint %s", endpoint_id)
        return endpoint_id

    async def send(self, message: SignalMessage) -> None:
        if self._closed:
            raise SignalingError("Relay is closed")
        endpoint = self._endpoints.get(message.to_peer)
        if endpoint is None:
            raise SignalingError(f"Unknown endpoint: {message.to_peer}")
        endpoint.enqueue(message)

    async def unregister(self, endpoint_id: str) -> bool:
        endpoint = self._endpoints.pop(endpoint_id, None)
        if endpoint is None:
            return False
        await endpoint.stop()
        return True

    async def close(self) -> None:
        """Stop all endpoints and clean up."""
        self._closed = True
        for endpoint in list(self._endpoints.values()):
            await endpoint.stop()
        self._endpoints.clear()

    @property
    def endpoint_count(self) -> int:
        """Return the number of registered endpoints."""
        return len(self._endpoints)


class _Endpoint:
    """Internal endpoint handler with queue and background task."""

    def __init__(self, endpoint_id: str, callback: SignalCallback) -> None:
        self.endpoint_id = endpoint_id
        self.callback = callback
        self._queue: asyncio.Queue[SignalMessage] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    def enqueue(self, message: SignalMessage) -> None:
        if self._stopped:
            return
        self._queue.put_nowait(message)

    def start(self) -> None:
        """Start the background task that drains the queue."""
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background task."""
        self._stopped = True
        if self._task is asyncio.current_task():
            # Stopped from inside our own callback; the loop exits on return.
            self._task = None
            return
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while not self._stopped:
            message = await self._queue.get()
            try:
                await self.callback(message)
            except Exception:
                logger.exception(
                    "Error in signaling callback for endpoint %s", self.endpoint_id
                )
