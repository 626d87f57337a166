"""Core data structures for eventrouter."""

from eventrouter.models.config import EventRouterConfig
from eventrouter.models.events import (
    EVENT_KIND,
    LABEL_COMPOSITION_ID,
    LABEL_PATCHED_BY,
    PATCHED_BY_VALUE,
    REGISTRATION_KIND,
    ClusterEvent,
    EventType,
    GroupVersionKind,
    ObjectReference,
    OwnerEdge,
)
from eventrouter.models.notifications import (
    EventMetadataInfo,
    EventNotification,
    InvolvedObjectInfo,
    NotificationJob,
    Registration,
)

__all__ = [
    "EVENT_KIND",
    "LABEL_COMPOSITION_ID",
    "LABEL_PATCHED_BY",
    "PATCHED_BY_VALUE",
    "REGISTRATION_KIND",
    "ClusterEvent",
    "EventMetadataInfo",
    "EventNotification",
    "EventRouterConfig",
    "EventType",
    "GroupVersionKind",
    "InvolvedObjectInfo",
    "NotificationJob",
    "ObjectReference",
    "OwnerEdge",
    "Registration",
]
