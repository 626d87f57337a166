"""Notification fan-out for eventrouter.

Exports:
    DispatchQueue       -- Bounded job buffer drained by a fixed worker pool.
    QueueClosedError    -- Raised by ``DispatchQueue.push`` after termination.
    WebhookNotifier     -- Single JSON POST delivery of a NotificationJob.
    build_http_client   -- Shared httpx client factory (timeout, TLS, tracing).
    build_notification  -- ClusterEvent + composition id -> EventNotification.
    encode_notification -- EventNotification -> JSON bytes.
"""

from __future__ import annotations

from eventrouter.notifications.payload import build_notification, encode_notification
from eventrouter.notifications.queue import DispatchQueue, QueueClosedError
from eventrouter.notifications.webhook import WebhookNotifier, build_http_client

__all__ = [
    "DispatchQueue",
    "QueueClosedError",
    "WebhookNotifier",
    "build_http_client",
    "build_notification",
    "encode_notification",
]
