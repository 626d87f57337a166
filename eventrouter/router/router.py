"""Event router: turns informer deliveries into at most one enrichment.

Receives add/update/delete callbacks from the EventInformer. Adds and
updates go through three filters before reaching the event handler:

* loop check -- the processed-marker label is on this delivery. This is the
  only anti-loop mechanism and is evaluated on every delivery: our own
  patch comes back as an update and must be dropped here;
* throttle -- the event was last observed before ``now - throttle_period``
  (stale events replayed by a resync or relist);
* admission -- the involved object kind/group is not admitted.

The bound on network work per event lives in the handler, so that a
backpressured dispatch queue blocks the router instead of cutting the
fan-out short.

Deletions are TTL garbage collection and are only logged.

No exception escapes a delivery: the router is the failure containment
boundary for the ingestion loop.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from eventrouter.models.events import ClusterEvent
from eventrouter.objects.admission import AdmissionFilter
from eventrouter.observability.metrics import event_failures_total, events_received_total, events_skipped_total
from eventrouter.router.handler import EventHandler
from eventrouter.router.labels import was_processed

_log = structlog.get_logger(component="router")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class EventRouter:
    """Filters watch deliveries and hands admitted events to *handler*.

    Args:
        handler:         Enrichment and fan-out of one event.
        admission:       Admission predicate over the involved object.
        throttle_period: Seconds; events last seen earlier than
                         ``now - throttle_period`` are skipped. 0 disables.
        clock:           Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        handler: EventHandler,
        admission: AdmissionFilter,
        throttle_period: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._handler = handler
        self._admission = admission
        self._throttle = timedelta(seconds=throttle_period)
        self._clock = clock

    async def on_add(self, obj: dict[str, Any]) -> None:
        """Called when an event is created, and for every item of a (re)list."""
        events_received_total.labels(delivery="added").inc()
        await self._on_event(obj)

    async def on_update(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        """Called on every modification of an event, and on each resync."""
        events_received_total.labels(delivery="updated").inc()
        await self._on_event(new)

    async def on_delete(self, obj: dict[str, Any]) -> None:
        """Called when an event is garbage collected. Never notifies."""
        events_received_total.labels(delivery="deleted").inc()
        metadata = obj.get("metadata") or {}
        _log.debug("event_deleted", event_name=metadata.get("name"), namespace=metadata.get("namespace"))

    async def _on_event(self, obj: dict[str, Any]) -> bool:
        """Return True when the delivery reached the handler."""
        if was_processed(obj):
            events_skipped_total.labels(reason="already_processed").inc()
            return False

        event = ClusterEvent.from_dict(obj)

        if self._is_stale(event):
            events_skipped_total.labels(reason="throttled").inc()
            return False

        _log.debug(
            "event_received",
            event_name=event.name,
            namespace=event.namespace,
            reason=event.reason,
            involved_object=event.involved_object.name,
            message=event.message,
        )

        if not self._admission.accept(event.involved_object):
            events_skipped_total.labels(reason="not_admitted").inc()
            return False

        await self._dispatch(event)
        return True

    def _is_stale(self, event: ClusterEvent) -> bool:
        if self._throttle <= timedelta(0):
            return False
        if event.last_timestamp is None:
            return True
        return event.last_timestamp < self._clock() - self._throttle

    async def _dispatch(self, event: ClusterEvent) -> None:
        try:
            await self._handler.handle(event)
        except Exception as exc:
            event_failures_total.labels(stage="unexpected").inc()
            _log.error(
                "event_processing_failed",
                event_name=event.name,
                namespace=event.namespace,
                involved_object=event.involved_object.name,
                error=str(exc),
                exc_info=True,
            )
