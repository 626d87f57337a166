"""Notification payload, target and dispatch job data structures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InvolvedObjectInfo:
    api_version: str
    kind: str
    name: str
    uid: str


@dataclass(frozen=True)
class EventMetadataInfo:
    creation_timestamp: str
    name: str
    namespace: str
    uid: str


@dataclass(frozen=True)
class EventNotification:
    """Wire payload POSTed to every registered endpoint.

    ``deployment_id`` is the resolved composition id, empty when the event
    could not be attributed. ``time`` is the unix time (seconds) of the last
    observation of the event.
    """

    type: str
    reason: str
    deployment_id: str
    time: int
    message: str
    source: str
    involved_object: InvolvedObjectInfo
    metadata: EventMetadataInfo

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON field names expected by receivers."""
        return {
            "type": self.type,
            "reason": self.reason,
            "deploymentId": self.deployment_id,
            "time": self.time,
            "message": self.message,
            "source": self.source,
            "involvedObject": {
                "apiVersion": self.involved_object.api_version,
                "kind": self.involved_object.kind,
                "name": self.involved_object.name,
                "uid": self.involved_object.uid,
            },
            "metadata": {
                "creationTimestamp": self.metadata.creation_timestamp,
                "name": self.metadata.name,
                "namespace": self.metadata.namespace,
                "uid": self.metadata.uid,
            },
        }


@dataclass(frozen=True)
class Registration:
    """A notification target declared by a Registration resource."""

    service_name: str
    endpoint: str


@dataclass(frozen=True)
class NotificationJob:
    """One delivery of one payload to one registration. Immutable once queued."""

    registration: Registration
    payload: EventNotification
