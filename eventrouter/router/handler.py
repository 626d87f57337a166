"""Enrichment and fan-out of an admitted event.

``NotificationPusher.handle`` runs, strictly in order:

1. composition id lookup (failure = no id, processing continues);
2. processed-marker patch (failure aborts: the marker must be on the event
   before any notification leaves, so a duplicate delivery cannot notify
   twice);
3. registration directory snapshot;
4. one NotificationJob per registration pushed to the dispatch queue.

Steps 1-3 talk to the API server and share one ``timeout``. Step 4 is not
bounded: once the marker is written every registration must be queued, so a
full queue blocks the caller.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from eventrouter.models.events import ClusterEvent
from eventrouter.models.notifications import NotificationJob, Registration
from eventrouter.notifications.payload import build_notification
from eventrouter.notifications.queue import QueueClosedError
from eventrouter.objects.resolver import ObjectResolver, ResolverError
from eventrouter.observability.metrics import composition_lookups_total, event_failures_total, events_patched_total
from eventrouter.registrations.directory import Directory
from eventrouter.router.labels import build_patch

_log = structlog.get_logger(component="router.handler")


class EventHandler(Protocol):
    async def handle(self, event: ClusterEvent) -> int: ...


class JobSink(Protocol):
    async def push(self, job: NotificationJob) -> None: ...


class NotificationPusher:
    """Default EventHandler: resolve, mark, fan out.

    Args:
        resolver:  Object resolver for the ownership walk and the patch.
        directory: Source of the current notification targets.
        queue:     Dispatch queue receiving one job per target.
        timeout:   Seconds allowed for lookup, patch and directory listing
                   together. 0 disables.
    """

    def __init__(
        self,
        resolver: ObjectResolver,
        directory: Directory,
        queue: JobSink,
        timeout: float = 60.0,
    ) -> None:
        self._resolver = resolver
        self._directory = directory
        self._queue = queue
        self._timeout = timeout

    async def handle(self, event: ClusterEvent) -> int:
        """Process *event*; return the number of notification jobs queued."""
        log = _log.bind(
            event_name=event.name,
            namespace=event.namespace,
            involved_object=event.involved_object.name,
            kind=event.involved_object.kind,
        )

        try:
            async with asyncio.timeout(self._timeout if self._timeout > 0 else None):
                prepared = await self._prepare(event, log)
        except TimeoutError:
            event_failures_total.labels(stage="timeout").inc()
            log.error("event_processing_timeout", timeout=self._timeout)
            return 0
        if prepared is None:
            return 0

        composition_id, registrations = prepared
        notification = build_notification(event, composition_id)
        queued = 0
        for registration in registrations.values():
            try:
                await self._queue.push(NotificationJob(registration=registration, payload=notification))
            except QueueClosedError:
                log.warning("dispatch_queue_closed", dropped=len(registrations) - queued)
                break
            queued += 1

        log.debug("event_fanned_out", jobs=queued)
        return queued

    async def _prepare(
        self,
        event: ClusterEvent,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[str | None, dict[str, Registration]] | None:
        ref = event.involved_object
        composition_id = await self._lookup(event, log)
        log.debug(
            "event_enriched",
            reason=event.reason,
            api_group=ref.gvk.group,
            deployment_id=composition_id or "",
            message=event.message,
        )

        try:
            await self._resolver.patch(event.reference, build_patch(composition_id))
        except ResolverError as exc:
            event_failures_total.labels(stage="patch").inc()
            log.error("event_patch_failed", deployment_id=composition_id or "", error=str(exc))
            return None
        events_patched_total.inc()

        try:
            registrations = await self._directory.list_registrations()
        except ResolverError as exc:
            event_failures_total.labels(stage="registrations").inc()
            log.error("registration_listing_failed", error=str(exc))
            return None
        return composition_id, registrations

    async def _lookup(self, event: ClusterEvent, log: structlog.stdlib.BoundLogger) -> str | None:
        try:
            composition_id = await self._resolver.resolve_composition_id(event.involved_object)
        except ResolverError as exc:
            composition_lookups_total.labels(outcome="error").inc()
            log.warning("composition_id_lookup_failed", error=str(exc))
            return None
        composition_lookups_total.labels(outcome="found" if composition_id else "absent").inc()
        return composition_id
