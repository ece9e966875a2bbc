"""Per-entity-type client cache with inflight de-duplication.

Reads are served from memory when warm. Concurrent reads of the same key
(a collection scope, or a single id) share one network request: the guard
task is installed synchronously before the first await and removed in the
task's own `finally`, so no caller can slip past the check while a request
is outstanding.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any

from courtbook.sync.exceptions import ApiError

if TYPE_CHECKING:
    from courtbook.sync.http import ApiClient

logger = logging.getLogger(__name__)

ScopeKey = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class Resource:
    """Where an entity type lives in the REST layer.

    `scope_param` names the scope entry that fills the parent path segment;
    any other scope entries are sent as query parameters.
    """

    name: str
    parent: str | None = None
    scope_param: str | None = None
    response_key: str | None = None

    @property
    def key(self) -> str:
        return self.response_key or self.name

    def collection_path(self, scope: dict[str, Any]) -> str:
        if self.parent is None:
            return f"/api/{self.name}"
        parent_id = scope.get(self.scope_param or "")
        if parent_id is None or parent_id == "":
            msg = f"Fetching {self.name} requires '{self.scope_param}'"
            raise ValueError(msg)
        return f"/api/{self.parent}/{parent_id}/{self.name}"

    def query_params(self, scope: dict[str, Any]) -> dict[str, Any]:
        return {
            k: v for k, v in scope.items() if k != self.scope_param and v is not None
        }

    def detail_path(self, entity_id: str) -> str:
        return f"/api/{self.name}/{entity_id}"

    def scope_key(self, scope: dict[str, Any]) -> ScopeKey:
        return tuple(sorted((str(k), str(v)) for k, v in scope.items() if v is not None))

    def records_from(self, data: Any) -> list[dict[str, Any]]:
        # Both `{"courts": [...]}` and a bare list are accepted.
        if isinstance(data, dict):
            data = data.get(self.key, [])
        if not isinstance(data, list):
            msg = f"Unexpected {self.name} collection payload"
            raise ApiError(msg)
        return [dict(r) for r in data]


COURTS = Resource("courts", parent="clubs", scope_param="club_id")
CLUBS = Resource("clubs", parent="orgs", scope_param="organization_id")
ORGANIZATIONS = Resource("organizations")


def entity_id_of(record: dict[str, Any]) -> str:
    try:
        return str(record["id"])
    except (KeyError, TypeError) as exc:
        msg = "Entity record has no id"
        raise ApiError(msg) from exc


class EntityCacheStore:
    """Cache of one entity type.

    `collection` is the list view for the current scope; `by_id` indexes
    every collection record plus detail records loaded with `ensure_by_id`.
    Writes keep both views consistent for the id they touch.
    """

    def __init__(
        self,
        api: ApiClient,
        resource: Resource,
        *,
        max_age: float | None = None,
        prepend: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.resource = resource
        self.max_age = max_age
        self.prepend = prepend
        self.clock = clock

        self.collection: list[dict[str, Any]] = []
        self.by_id: dict[str, dict[str, Any]] = {}
        self.last_fetched_at: float | None = None
        self.scope: dict[str, Any] | None = None
        self.loading = False
        self.error: str | None = None

        self._scope_key: ScopeKey | None = None
        self._requested_key: ScopeKey | None = None
        self._inflight_collection: dict[ScopeKey, asyncio.Task] = {}
        self._inflight_by_id: dict[str, asyncio.Task] = {}
        # Bumped by invalidate(); fetches started earlier must not write back.
        self._generation = 0

    def __len__(self) -> int:
        return len(self.collection)

    def __contains__(self, entity_id: object) -> bool:
        return str(entity_id) in self.by_id

    def get(self, entity_id: str) -> dict[str, Any] | None:
        return self.by_id.get(str(entity_id))

    @property
    def inflight_count(self) -> int:
        return len(self._inflight_collection) + len(self._inflight_by_id)

    def is_warm(self, scope: dict[str, Any] | None = None) -> bool:
        if self.last_fetched_at is None:
            return False
        if self._scope_key != self.resource.scope_key(scope or {}):
            return False
        if self.max_age is None:
            return True
        return self.clock() - self.last_fetched_at < self.max_age

    # Setters used by mutation flows

    def set_collection(self, records: list[dict[str, Any]]) -> None:
        old_ids = {entity_id_of(r) for r in self.collection}
        new = {entity_id_of(r): r for r in records}
        detail_only = {
            k: v for k, v in self.by_id.items() if k not in old_ids and k not in new
        }
        self.collection = list(records)
        self.by_id = {**detail_only, **new}

    def set_error(self, message: str | None) -> None:
        self.error = message

    def set_loading(self, loading: bool) -> None:  # noqa: FBT001
        self.loading = loading

    def invalidate(self) -> None:
        """Forget everything, including outstanding fetches."""

        self._generation += 1
        self.collection = []
        self.by_id = {}
        self.last_fetched_at = None
        self.scope = None
        self.error = None
        self._scope_key = None
        self._requested_key = None
        self._inflight_collection = {}
        self._inflight_by_id = {}
        self.loading = False
        logger.debug("Invalidated %s cache", self.resource.name)

    # Reads

    async def fetch_collection_if_needed(
        self,
        scope: dict[str, Any] | None = None,
        *,
        force: bool = False,
    ) -> list[dict[str, Any]]:
        scope = dict(scope or {})
        key = self.resource.scope_key(scope)
        self._requested_key = key

        if not force and self.is_warm(scope):
            return list(self.collection)

        task = self._inflight_collection.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._fetch_collection(scope, key, self._generation),
            )
            self._inflight_collection[key] = task
            self.loading = True
            self.error = None
        return await asyncio.shield(task)

    async def _fetch_collection(
        self,
        scope: dict[str, Any],
        key: ScopeKey,
        generation: int,
    ) -> list[dict[str, Any]]:
        me = asyncio.current_task()
        try:
            data = await self.api.get(
                self.resource.collection_path(scope),
                params=self.resource.query_params(scope) or None,
                error_message=f"Failed to fetch {self.resource.name}",
            )
            records = self.resource.records_from(data)
        except Exception as exc:
            if generation == self._generation:
                self.error = getattr(exc, "message", None) or str(exc)
            raise
        else:
            if generation == self._generation and key == self._requested_key:
                self.set_collection(records)
                self.scope = scope
                self._scope_key = key
                self.last_fetched_at = self.clock()
            else:
                logger.debug("Discarding superseded %s fetch", self.resource.name)
            return records
        finally:
            if self._inflight_collection.get(key) is me:
                del self._inflight_collection[key]
            self._recompute_loading()

    async def ensure_by_id(
        self,
        entity_id: str,
        *,
        force: bool = False,
    ) -> dict[str, Any]:
        entity_id = str(entity_id)
        if not force and entity_id in self.by_id:
            return self.by_id[entity_id]

        task = self._inflight_by_id.get(entity_id)
        if task is None:
            task = asyncio.ensure_future(
                self._fetch_by_id(entity_id, self._generation),
            )
            self._inflight_by_id[entity_id] = task
            self.loading = True
            self.error = None
        return await asyncio.shield(task)

    async def _fetch_by_id(self, entity_id: str, generation: int) -> dict[str, Any]:
        me = asyncio.current_task()
        try:
            record = await self.api.get(
                self.resource.detail_path(entity_id),
                error_message=f"Failed to fetch {self.resource.name}",
            )
            if not isinstance(record, dict):
                msg = f"Unexpected {self.resource.name} detail payload"
                raise ApiError(msg)
        except Exception as exc:
            if generation == self._generation:
                self.error = getattr(exc, "message", None) or str(exc)
            raise
        else:
            if generation == self._generation:
                self._replace(entity_id, record)
            return record
        finally:
            if self._inflight_by_id.get(entity_id) is me:
                del self._inflight_by_id[entity_id]
            self._recompute_loading()

    # Writes

    async def create_entity(
        self,
        scope: dict[str, Any],
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            record = await self.api.post(
                self.resource.collection_path(scope),
                payload,
                error_message=f"Failed to create {self.resource.name}",
            )
            entity_id = entity_id_of(record)
        except ApiError as exc:
            self.error = exc.message
            raise

        belongs_here = self._scope_key in (None, self.resource.scope_key(scope))
        if belongs_here and entity_id not in {entity_id_of(r) for r in self.collection}:
            if self.prepend:
                self.collection.insert(0, record)
            else:
                self.collection.append(record)
        self.by_id[entity_id] = record
        self.error = None
        return record

    async def update_entity(
        self,
        scope: dict[str, Any],
        entity_id: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        _ = scope
        entity_id = str(entity_id)
        try:
            updated = await self.api.put(
                self.resource.detail_path(entity_id),
                payload,
                error_message=f"Failed to update {self.resource.name}",
            )
        except ApiError as exc:
            self.error = exc.message
            raise

        current = self.by_id.get(entity_id, {})
        merged = {**current, **(updated or {}), "id": current.get("id", entity_id)}
        self._replace(entity_id, merged)
        self.error = None
        return merged

    async def delete_entity(self, scope: dict[str, Any], entity_id: str) -> None:
        _ = scope
        entity_id = str(entity_id)
        try:
            await self.api.delete(
                self.resource.detail_path(entity_id),
                error_message=f"Failed to delete {self.resource.name}",
            )
        except ApiError as exc:
            self.error = exc.message
            raise

        self.collection = [r for r in self.collection if entity_id_of(r) != entity_id]
        self.by_id.pop(entity_id, None)
        self.error = None

    def _replace(self, entity_id: str, record: dict[str, Any]) -> None:
        for index, existing in enumerate(self.collection):
            if entity_id_of(existing) == entity_id:
                self.collection[index] = record
                break
        self.by_id[entity_id] = record

    def _recompute_loading(self) -> None:
        self.loading = bool(self._inflight_collection or self._inflight_by_id)
