"""Keyed debouncing for bursts of realtime updates.

The window is an explicit parameter: a burst of calls for one key within
`window` seconds collapses into a single call carrying the last value.
A window of 0 disables coalescing and calls through immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Hashable
from typing import Any

logger = logging.getLogger(__name__)


class KeyedDebouncer:
    def __init__(
        self,
        callback: Callable[[Any], None],
        window: float,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        if window < 0:
            msg = "Debounce window must be >= 0"
            raise ValueError(msg)
        self.callback = callback
        self.window = window
        self._loop = loop
        self._pending: dict[Hashable, tuple[asyncio.TimerHandle, Any]] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def submit(self, key: Hashable, value: Any) -> None:
        if self.window == 0:
            self.callback(value)
            return

        previous = self._pending.pop(key, None)
        if previous is not None:
            previous[0].cancel()

        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(self.window, self._fire, key)
        self._pending[key] = (handle, value)

    def flush(self, key: Hashable) -> bool:
        """Apply the pending value for `key` now. Returns whether one existed."""

        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending[0].cancel()
        self.callback(pending[1])
        return True

    def flush_all(self) -> None:
        for key in list(self._pending):
            self.flush(key)

    def cancel_all(self) -> None:
        for handle, _ in self._pending.values():
            handle.cancel()
        if self._pending:
            logger.debug("Dropped %d pending debounced updates", len(self._pending))
        self._pending.clear()

    def _fire(self, key: Hashable) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        try:
            self.callback(pending[1])
        except Exception:
            # Timer callbacks have no caller to propagate to.
            logger.exception("Debounced update for %r failed", key)
