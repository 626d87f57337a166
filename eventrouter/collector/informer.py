"""List/watch/resync informer over ``v1/Event``.

Lifecycle: ``IDLE -> SYNCING -> WATCHING``.

* ``sync`` performs the initial list and primes the local store. It must
  complete within ``sync_timeout``; otherwise ``CacheSyncError`` is raised
  and the process must not continue against an empty cache.
* ``run`` delivers ``on_add`` for every listed object, then watches from the
  list's resourceVersion. The store is updated before each delivery.
* Every ``resync_interval`` the whole store is redelivered as
  ``on_update(obj, obj)``; watch streams are cut at the resync deadline.
* ``410 Gone`` re-lists and reconciles the store (add/update/delete).
* Other stream errors back off exponentially with jitter, capped at 30 s.

Deliveries are awaited one at a time on the task running ``run``.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from enum import StrEnum
from typing import Any, Protocol

import structlog

from eventrouter.observability.metrics import informer_resyncs_total, watch_errors_total

_log = structlog.get_logger(component="collector.informer")

_MAX_BACKOFF_SECONDS = 30.0
_DEFAULT_WATCH_WINDOW_SECONDS = 300


class InformerState(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    WATCHING = "watching"
    STOPPED = "stopped"


class CacheSyncError(Exception):
    """Raised when the initial list does not complete within the sync window."""


class ResourceVersionExpired(Exception):
    """Raised by an event source when the watch resourceVersion is gone (410)."""


class ResourceEventHandler(Protocol):
    async def on_add(self, obj: dict[str, Any]) -> None: ...

    async def on_update(self, old: dict[str, Any], new: dict[str, Any]) -> None: ...

    async def on_delete(self, obj: dict[str, Any]) -> None: ...


class EventSource(Protocol):
    """List and watch primitives over one resource kind."""

    async def list(self) -> tuple[list[dict[str, Any]], str]:
        """Return ``(items, resourceVersion)``."""
        ...

    def watch(self, resource_version: str, timeout_seconds: int) -> AsyncGenerator[tuple[str, dict[str, Any]], None]:
        """Yield ``(type, object)`` pairs until the server closes the stream."""
        ...


def object_key(obj: dict[str, Any]) -> str:
    metadata = obj.get("metadata") or {}
    name = metadata.get("name") or metadata.get("uid") or ""
    namespace = metadata.get("namespace") or ""
    return f"{namespace}/{name}" if namespace else str(name)


def _resource_version(obj: dict[str, Any]) -> str:
    return str((obj.get("metadata") or {}).get("resourceVersion") or "")


class EventInformer:
    """Local cache of events kept current by list + watch.

    Args:
        source:          List/watch primitives.
        handler:         Receives add/update/delete deliveries.
        resync_interval: Seconds between full redeliveries. 0 disables.
        sync_timeout:    Seconds allowed for the initial list.
        clock:           Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        source: EventSource,
        handler: ResourceEventHandler,
        resync_interval: float = 180.0,
        sync_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._handler = handler
        self._resync_interval = resync_interval
        self._sync_timeout = sync_timeout
        self._clock = clock
        self._store: dict[str, dict[str, Any]] = {}
        self._resource_version = ""
        self._synced = asyncio.Event()
        self._state = InformerState.IDLE
        self._initial: list[dict[str, Any]] = []

    @property
    def state(self) -> InformerState:
        return self._state

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: str) -> dict[str, Any] | None:
        return self._store.get(key)

    async def wait_for_sync(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def sync(self) -> None:
        """Run the initial list and prime the store.

        Raises:
            CacheSyncError: if the list does not complete in time or fails.
        """
        if self.has_synced:
            return
        self._state = InformerState.SYNCING
        try:
            items, resource_version = await asyncio.wait_for(self._source.list(), timeout=self._sync_timeout)
        except TimeoutError as exc:
            self._state = InformerState.STOPPED
            raise CacheSyncError(f"timed out waiting for caches to sync after {self._sync_timeout}s") from exc
        except Exception as exc:
            self._state = InformerState.STOPPED
            raise CacheSyncError(f"initial event list failed: {exc}") from exc

        for obj in items:
            self._store[object_key(obj)] = obj
        self._initial = items
        self._resource_version = resource_version
        self._synced.set()
        _log.info("informer_synced", objects=len(self._store), resource_version=resource_version)

    async def run(self) -> None:
        """Sync (if needed), deliver the initial objects, then watch until cancelled."""
        await self.sync()
        self._state = InformerState.WATCHING
        try:
            initial, self._initial = self._initial, []
            for obj in initial:
                await self._deliver("added", self._handler.on_add, obj)
            await self._watch_loop()
        finally:
            self._state = InformerState.STOPPED

    async def _watch_loop(self) -> None:
        next_resync = self._clock() + self._resync_interval
        backoff = 1.0
        needs_relist = False

        while True:
            try:
                if needs_relist:
                    await self._relist()
                    needs_relist = False

                if self._resync_interval > 0 and self._clock() >= next_resync:
                    await self._resync()
                    next_resync = self._clock() + self._resync_interval

                stream = self._source.watch(self._resource_version, self._watch_window(next_resync))
                async with aclosing(stream):
                    async for event_type, obj in stream:
                        await self._apply(event_type, obj)
                backoff = 1.0
            except ResourceVersionExpired:
                _log.warning("watch_resource_version_expired", resource_version=self._resource_version)
                needs_relist = True
            except Exception as exc:
                watch_errors_total.inc()
                _log.error("watch_failed", error=str(exc), retry_in=backoff)
                await asyncio.sleep(backoff * (0.5 + random.random()))  # noqa: S311
                backoff = min(backoff * 2, _MAX_BACKOFF_SECONDS)

    def _watch_window(self, next_resync: float) -> int:
        if self._resync_interval <= 0:
            return _DEFAULT_WATCH_WINDOW_SECONDS
        return max(1, int(next_resync - self._clock()))

    async def _apply(self, event_type: str, obj: dict[str, Any]) -> None:
        resource_version = _resource_version(obj)
        if resource_version:
            self._resource_version = resource_version
        if event_type == "BOOKMARK":
            return
        if event_type == "ERROR":
            if obj.get("code") == 410:
                raise ResourceVersionExpired(str(obj.get("message") or ""))
            raise RuntimeError(f"watch error: {obj.get('reason')}: {obj.get('message')}")

        key = object_key(obj)
        if event_type in ("ADDED", "MODIFIED"):
            old = self._store.get(key)
            self._store[key] = obj
            if old is None:
                await self._deliver("added", self._handler.on_add, obj)
            else:
                await self._deliver("updated", self._handler.on_update, old, obj)
        elif event_type == "DELETED":
            self._store.pop(key, None)
            await self._deliver("deleted", self._handler.on_delete, obj)

    async def _resync(self) -> None:
        informer_resyncs_total.labels(kind="resync").inc()
        _log.debug("informer_resync", objects=len(self._store))
        for obj in list(self._store.values()):
            await self._deliver("updated", self._handler.on_update, obj, obj)

    async def _relist(self) -> None:
        informer_resyncs_total.labels(kind="relist").inc()
        items, resource_version = await self._source.list()
        fresh = {object_key(obj): obj for obj in items}
        stale = [key for key in self._store if key not in fresh]
        self._resource_version = resource_version
        _log.info("informer_relisted", objects=len(fresh), removed=len(stale))

        for key, obj in fresh.items():
            old = self._store.get(key)
            self._store[key] = obj
            if old is None:
                await self._deliver("added", self._handler.on_add, obj)
            elif _resource_version(old) != _resource_version(obj):
                await self._deliver("updated", self._handler.on_update, old, obj)
        for key in stale:
            obj = self._store.pop(key)
            await self._deliver("deleted", self._handler.on_delete, obj)

    async def _deliver(self, delivery: str, callback: Callable[..., Any], *objs: dict[str, Any]) -> None:
        try:
            await callback(*objs)
        except Exception as exc:
            _log.error("informer_handler_failed", delivery=delivery, key=object_key(objs[-1]), error=str(exc))
