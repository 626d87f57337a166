"""Cluster event to notification payload encoding."""

from __future__ import annotations

import json

from eventrouter.models.events import ClusterEvent
from eventrouter.models.notifications import EventMetadataInfo, EventNotification, InvolvedObjectInfo


def build_notification(event: ClusterEvent, composition_id: str | None) -> EventNotification:
    """Project *event* and its composition id onto the wire payload."""
    ref = event.involved_object
    seen = event.last_timestamp
    return EventNotification(
        type=event.type,
        reason=event.reason,
        deployment_id=composition_id or "",
        time=int(seen.timestamp()) if seen is not None else 0,
        message=event.message,
        source=event.source_component,
        involved_object=InvolvedObjectInfo(
            api_version=ref.api_version,
            kind=ref.kind,
            name=ref.name,
            uid=ref.uid,
        ),
        metadata=EventMetadataInfo(
            creation_timestamp=event.creation_timestamp,
            name=event.name,
            namespace=event.namespace,
            uid=event.uid,
        ),
    )


def encode_notification(notification: EventNotification) -> bytes:
    return json.dumps(notification.to_dict(), separators=(",", ":")).encode("utf-8")
