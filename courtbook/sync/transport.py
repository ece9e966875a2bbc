"""Socket transport used by the realtime channel.

python-socketio reconnects on its own but only reports a second `connect`.
`SocketIOTransport` turns a `connect` that follows an unexpected
`disconnect` into a `reconnect(attempt)` signal, and keeps its own listener
registry so every `on` can be undone by exactly one `off`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any
from typing import Protocol

import socketio

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Transport(Protocol):
    @property
    def sid(self) -> str | None: ...

    def on(self, event: str, handler: Listener) -> None: ...

    def off(self, event: str, handler: Listener) -> bool: ...

    async def connect(self, auth: dict[str, Any] | None = None) -> None: ...

    async def disconnect(self) -> None: ...

    async def emit(self, event: str, data: Any = None) -> None: ...


class SocketIOTransport:
    def __init__(  # noqa: PLR0913
        self,
        url: str,
        *,
        socketio_path: str = "socket.io",
        client: socketio.AsyncClient | None = None,
        reconnection_attempts: int = 0,
        reconnection_delay: float = 1.0,
        reconnection_delay_max: float = 5.0,
    ):
        self.url = url
        self.socketio_path = socketio_path
        self.client = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
            reconnection_delay_max=reconnection_delay_max,
            logger=False,
            engineio_logger=False,
        )
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._bound: set[str] = set()
        self._dropped = False
        self._closing = False
        self._failed_attempts = 0

        for event in ("connect", "disconnect", "connect_error"):
            self._bind(event)

    @property
    def sid(self) -> str | None:
        return self.client.sid

    @property
    def connected(self) -> bool:
        return bool(self.client.connected)

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, ()))
        return sum(len(v) for v in self._listeners.values())

    def on(self, event: str, handler: Listener) -> None:
        if event != "reconnect":
            self._bind(event)
        self._listeners[event].append(handler)

    def off(self, event: str, handler: Listener) -> bool:
        listeners = self._listeners.get(event)
        if not listeners or handler not in listeners:
            return False
        listeners.remove(handler)
        return True

    async def connect(self, auth: dict[str, Any] | None = None) -> None:
        self._closing = False
        self._dropped = False
        self._failed_attempts = 0
        await self.client.connect(
            self.url,
            auth=auth,
            socketio_path=self.socketio_path,
        )

    async def disconnect(self) -> None:
        self._closing = True
        await self.client.disconnect()

    async def emit(self, event: str, data: Any = None) -> None:
        await self.client.emit(event, data)

    def _bind(self, event: str) -> None:
        if event in self._bound:
            return
        self._bound.add(event)

        def trampoline(*args: Any) -> None:
            self._deliver(event, *args)

        self.client.on(event, trampoline)

    def _deliver(self, event: str, *args: Any) -> None:
        if event == "connect":
            if self._dropped:
                self._dropped = False
                attempt = self._failed_attempts + 1
                self._failed_attempts = 0
                logger.debug("Socket reconnected on attempt %d", attempt)
                self._fire("reconnect", attempt)
            else:
                self._fire("connect")
            return

        if event == "disconnect":
            if not self._closing:
                self._dropped = True
            self._fire("disconnect", *args)
            return

        if event == "connect_error" and self._dropped:
            self._failed_attempts += 1

        self._fire(event, *args)

    def _fire(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, ())):
            handler(*args)
