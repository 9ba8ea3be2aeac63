import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Fan-out of hello, config_changed and frame events to connected pages."""

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._revision = 0
        self.frame_source: Callable[[], dict[str, Any]] | None = None

    def _envelope(self, event_type: str, payload: dict[str, Any] | None) -> str:
        return json.dumps(
            {
                "type": event_type,
                "revision": self._revision,
                "payload": payload or {},
                "ts": datetime.now(timezone.utc).isoformat(),
            },
            ensure_ascii=False,
        )

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        hello: dict[str, Any] = {}
        if self.frame_source is not None:
            hello["frame"] = self.frame_source()
        await websocket.send_text(self._envelope("hello", hello))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)

    async def publish(self, event_type: str, payload: dict[str, Any] | None = None) -> int:
        self._revision += 1
        message = self._envelope(event_type, payload)
        async with self._lock:
            clients = list(self._clients)

        stale: list[WebSocket] = []
        for client in clients:
            try:
                await client.send_text(message)
            except Exception:
                stale.append(client)

        if stale:
            logger.debug("Dropping %s stale realtime client(s)", len(stale))
            async with self._lock:
                for client in stale:
                    self._clients.discard(client)
        return self._revision

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def client_count(self) -> int:
        return len(self._clients)


hub = RealtimeHub()
