"""Thin async JSON client for the CRUD layer.

Non-2xx responses carry `{"error": "..."}`; that message becomes the
`ApiError` message when present.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from courtbook.sync.exceptions import ApiError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response, fallback: str | None) -> str:
    status = f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        # Empty or non-JSON body.
        return fallback or status
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return error
    return status


class ApiClient:
    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            msg = error_message or str(exc) or "Network error"
            raise ApiError(msg) from exc

        if response.is_error:
            message = _error_message(response, error_message)
            logger.info("%s %s -> %s: %s", method, path, response.status_code, message)
            raise ApiError(message, status_code=response.status_code)

        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            msg = f"Invalid JSON from {method} {path}"
            raise ApiError(msg, status_code=response.status_code) from exc

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, payload: Any, **kwargs: Any) -> Any:
        return await self.request("POST", path, json=payload, **kwargs)

    async def put(self, path: str, payload: Any, **kwargs: Any) -> Any:
        return await self.request("PUT", path, json=payload, **kwargs)

    async def patch(self, path: str, payload: Any, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, json=payload, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
