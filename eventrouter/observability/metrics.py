"""Prometheus metrics for eventrouter.

All collectors register on the default registry so ``/metrics`` can expose
them with ``generate_latest()``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

events_received_total = Counter(
    "eventrouter_events_received_total",
    "Watch deliveries received by the event router.",
    ["delivery"],
)

events_skipped_total = Counter(
    "eventrouter_events_skipped_total",
    "Watch deliveries dropped before enrichment.",
    ["reason"],
)

events_patched_total = Counter(
    "eventrouter_events_patched_total",
    "Events labelled with the processed marker.",
)

event_failures_total = Counter(
    "eventrouter_event_failures_total",
    "Event processing aborted after admission.",
    ["stage"],
)

composition_lookups_total = Counter(
    "eventrouter_composition_lookups_total",
    "Composition id lookups by outcome.",
    ["outcome"],
)

notifications_total = Counter(
    "eventrouter_notifications_total",
    "Notification delivery attempts.",
    ["success"],
)

dispatch_queue_depth = Gauge(
    "eventrouter_dispatch_queue_depth",
    "Notification jobs waiting in the dispatch buffer.",
)

informer_resyncs_total = Counter(
    "eventrouter_informer_resyncs_total",
    "Periodic resyncs and relists performed by the event informer.",
    ["kind"],
)

watch_errors_total = Counter(
    "eventrouter_watch_errors_total",
    "Errors raised by the event watch stream.",
)
