from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from courtbook.sync.exceptions import ApiError

if TYPE_CHECKING:
    from courtbook.sync.http import ApiClient

logger = logging.getLogger(__name__)

SOCKET_TOKEN_PATH = "/api/socket/token"
UNAUTHORIZED_STATUSES = (401, 403)


class SocketTokenProvider:
    """Fetches and caches the short-lived token the socket handshake needs."""

    def __init__(self, api: ApiClient):
        self.api = api
        self.token: str | None = None
        self.error: str | None = None
        self._inflight: asyncio.Task | None = None
        self._generation = 0

    async def get_token(self, *, force: bool = False) -> str | None:
        if self.token and not force:
            return self.token

        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(self._fetch(self._generation))
            self._inflight = task
        return await asyncio.shield(task)

    async def _fetch(self, generation: int) -> str | None:
        me = asyncio.current_task()
        try:
            data = await self.api.get(
                SOCKET_TOKEN_PATH,
                error_message="Failed to get socket token",
            )
        except ApiError as exc:
            if generation != self._generation:
                return None
            if exc.status_code in UNAUTHORIZED_STATUSES:
                self.error = "Unauthorized"
            else:
                self.error = exc.message
            logger.warning("Socket token request failed: %s", self.error)
            self.token = None
            return None
        finally:
            if self._inflight is me:
                self._inflight = None

        if generation != self._generation:
            return None
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            self.error = "Socket token missing from response"
            return None
        self.token = str(token)
        self.error = None
        return self.token

    def clear(self) -> None:
        self._generation += 1
        self.token = None
        self.error = None
        self._inflight = None
