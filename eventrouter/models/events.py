"""Core cluster event data structures.

Watch deliveries arrive as plain structural dicts (the JSON form of a
``v1/Event``). The dataclasses here are read-only views over those dicts:
they never mutate the underlying document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

# Label keys written onto processed events.
LABEL_COMPOSITION_ID = "krateo.io/composition-id"
LABEL_PATCHED_BY = "krateo.io/patched-by"
PATCHED_BY_VALUE = "krateo"


class EventType(StrEnum):
    """Kubernetes event type."""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass(frozen=True)
class GroupVersionKind:
    """Kind descriptor used to address any resource through the resolver."""

    api_version: str
    kind: str

    @property
    def group(self) -> str:
        if "/" not in self.api_version:
            return ""
        return self.api_version.split("/", 1)[0]

    @property
    def version(self) -> str:
        return self.api_version.rsplit("/", 1)[-1]

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


EVENT_KIND = GroupVersionKind(api_version="v1", kind="Event")
REGISTRATION_KIND = GroupVersionKind(api_version="eventrouter.krateo.io/v1alpha1", kind="Registration")


@dataclass(frozen=True)
class ObjectReference:
    """Identifies any resource: an event's involved object or an owner."""

    api_version: str
    kind: str
    name: str
    namespace: str = ""
    uid: str = ""

    @property
    def gvk(self) -> GroupVersionKind:
        return GroupVersionKind(api_version=self.api_version, kind=self.kind)

    @property
    def key(self) -> tuple[str, str, str]:
        """Return the identity used by the ownership cycle guard."""
        return (self.kind, self.namespace, self.name)

    @classmethod
    def from_dict(cls, raw: dict[str, Any], default_namespace: str = "") -> ObjectReference:
        return cls(
            api_version=str(raw.get("apiVersion") or ""),
            kind=str(raw.get("kind") or ""),
            name=str(raw.get("name") or ""),
            namespace=str(raw.get("namespace") or default_namespace),
            uid=str(raw.get("uid") or ""),
        )


@dataclass(frozen=True)
class OwnerEdge:
    """An ``ownerReferences`` entry of a resource."""

    reference: ObjectReference
    controller: bool = False


def owner_edges(obj: dict[str, Any]) -> list[OwnerEdge]:
    """Return the owner edges declared by *obj*.

    Owner references never carry a namespace: owners live in the namespace
    of the dependent (or are cluster scoped, in which case the namespace is
    ignored by the API server).
    """
    metadata = obj.get("metadata") or {}
    namespace = str(metadata.get("namespace") or "")
    edges: list[OwnerEdge] = []
    for raw in metadata.get("ownerReferences") or []:
        if not isinstance(raw, dict):
            continue
        edges.append(
            OwnerEdge(
                reference=ObjectReference.from_dict(raw, default_namespace=namespace),
                controller=bool(raw.get("controller", False)),
            )
        )
    return edges


def labels_of(obj: dict[str, Any]) -> dict[str, str]:
    metadata = obj.get("metadata") or {}
    labels = metadata.get("labels") or {}
    return labels if isinstance(labels, dict) else {}


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp as emitted by the API server."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class ClusterEvent:
    """Read-only view of a ``v1/Event`` document."""

    name: str
    namespace: str
    uid: str
    type: str
    reason: str
    message: str
    source_component: str
    involved_object: ObjectReference
    last_timestamp: datetime | None = None
    creation_timestamp: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def reference(self) -> ObjectReference:
        """Reference to the event resource itself (the patch target)."""
        return ObjectReference(
            api_version=EVENT_KIND.api_version,
            kind=EVENT_KIND.kind,
            name=self.name,
            namespace=self.namespace,
            uid=self.uid,
        )

    @property
    def was_processed(self) -> bool:
        """True when the processed-marker label is present on this delivery."""
        return LABEL_PATCHED_BY in self.labels

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ClusterEvent:
        metadata = raw.get("metadata") or {}
        source = raw.get("source") or {}
        last_seen = (
            parse_timestamp(raw.get("lastTimestamp"))
            or parse_timestamp(raw.get("eventTime"))
            or parse_timestamp(metadata.get("creationTimestamp"))
        )
        creation = metadata.get("creationTimestamp") or ""
        if isinstance(creation, datetime):
            creation = creation.isoformat()
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            uid=str(metadata.get("uid") or ""),
            type=str(raw.get("type") or ""),
            reason=str(raw.get("reason") or ""),
            message=str(raw.get("message") or ""),
            source_component=str(source.get("component") or raw.get("reportingComponent") or ""),
            involved_object=ObjectReference.from_dict(raw.get("involvedObject") or {}),
            last_timestamp=last_seen,
            creation_timestamp=str(creation),
            labels=dict(labels_of(raw)),
            raw=raw,
        )
