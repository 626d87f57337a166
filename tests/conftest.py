"""Shared fakes and factories for eventrouter tests.

Provides an in-memory cluster (``FakeClusterClient``), a scriptable event
source for the informer, and recording handlers so the pipeline can be
exercised end to end without a Kubernetes API server.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from eventrouter.models.events import REGISTRATION_KIND, GroupVersionKind
from eventrouter.models.notifications import NotificationJob
from eventrouter.objects.resolver import ObjectResolver
from eventrouter.objects.transport import KindNotServedError

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

NOW = datetime(2024, 1, 15, 10, 30, 0, tzinfo=UTC)


def rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Object factory helpers
# ---------------------------------------------------------------------------


def make_object(
    kind: str,
    name: str,
    api_version: str = "v1",
    namespace: str = "demo",
    labels: dict[str, str] | None = None,
    owner: tuple[str, str, str] | None = None,
    controller: bool = True,
    resource_version: str = "1",
) -> dict[str, Any]:
    """Create a structural resource dict.

    ``owner`` is ``(api_version, kind, name)`` of a single owner reference.
    """
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "uid": f"uid-{kind.lower()}-{name}",
        "resourceVersion": resource_version,
    }
    if labels:
        metadata["labels"] = dict(labels)
    if owner is not None:
        owner_api, owner_kind, owner_name = owner
        metadata["ownerReferences"] = [
            {
                "apiVersion": owner_api,
                "kind": owner_kind,
                "name": owner_name,
                "uid": f"uid-{owner_kind.lower()}-{owner_name}",
                "controller": controller,
            }
        ]
    return {"apiVersion": api_version, "kind": kind, "metadata": metadata}


def make_event(
    name: str = "my-app-7b4f8c6d-x2kj.17a8b",
    namespace: str = "demo",
    involved: tuple[str, str, str] = ("v1", "Pod", "my-app-7b4f8c6d-x2kj"),
    reason: str = "BackOff",
    message: str = "Back-off restarting failed container",
    event_type: str = "Warning",
    last_timestamp: datetime | None = None,
    labels: dict[str, str] | None = None,
    resource_version: str = "1",
) -> dict[str, Any]:
    """Create a ``v1/Event`` document as delivered by the watch."""
    obj = make_object(
        "Event",
        name,
        namespace=namespace,
        labels=labels,
        resource_version=resource_version,
    )
    api_version, kind, involved_name = involved
    obj["metadata"]["creationTimestamp"] = rfc3339(NOW - timedelta(minutes=5))
    obj.update(
        {
            "type": event_type,
            "reason": reason,
            "message": message,
            "source": {"component": "kubelet"},
            "involvedObject": {
                "apiVersion": api_version,
                "kind": kind,
                "name": involved_name,
                "namespace": namespace,
                "uid": f"uid-{kind.lower()}-{involved_name}",
            },
            "lastTimestamp": rfc3339(last_timestamp or NOW),
        }
    )
    return obj


def make_registration(name: str, service_name: str | None, endpoint: str | None, namespace: str = "krateo-system"):
    obj = make_object(
        REGISTRATION_KIND.kind,
        name,
        api_version=REGISTRATION_KIND.api_version,
        namespace=namespace,
    )
    spec: dict[str, Any] = {}
    if service_name is not None:
        spec["serviceName"] = service_name
    if endpoint is not None:
        spec["endpoint"] = endpoint
    obj["spec"] = spec
    return obj


# ---------------------------------------------------------------------------
# In-memory cluster
# ---------------------------------------------------------------------------


class FakeClusterClient:
    """ClusterClient over a dict of objects keyed by (apiVersion, kind, namespace, name).

    Set ``fail_get`` / ``fail_list`` / ``fail_patch`` to an exception to
    inject transport failures; kinds in ``unserved`` raise KindNotServedError
    on list.
    """

    def __init__(self, *objects: dict[str, Any]) -> None:
        self.objects: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self.get_calls: list[tuple[str, str, str]] = []
        self.patches: list[tuple[str, str, str, dict[str, Any]]] = []
        self.unserved: set[str] = set()
        self.fail_get: Exception | None = None
        self.fail_list: Exception | None = None
        self.fail_patch: Exception | None = None
        for obj in objects:
            self.add(obj)

    def add(self, obj: dict[str, Any]) -> None:
        metadata = obj["metadata"]
        key = (obj["apiVersion"], obj["kind"], metadata.get("namespace", ""), metadata["name"])
        self.objects[key] = copy.deepcopy(obj)

    def find(self, kind: str, name: str, namespace: str = "demo") -> dict[str, Any] | None:
        for (_, obj_kind, obj_ns, obj_name), obj in self.objects.items():
            if (obj_kind, obj_ns, obj_name) == (kind, namespace, name):
                return obj
        return None

    async def get(self, gvk: GroupVersionKind, name: str, namespace: str = "") -> dict[str, Any] | None:
        self.get_calls.append((gvk.kind, namespace, name))
        if self.fail_get is not None:
            raise self.fail_get
        obj = self.objects.get((gvk.api_version, gvk.kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    async def list(self, gvk: GroupVersionKind, namespace: str = "") -> list[dict[str, Any]]:
        if gvk.kind in self.unserved:
            raise KindNotServedError(str(gvk))
        if self.fail_list is not None:
            raise self.fail_list
        return [
            copy.deepcopy(obj)
            for (api_version, kind, obj_ns, _), obj in self.objects.items()
            if (api_version, kind) == (gvk.api_version, gvk.kind) and (not namespace or obj_ns == namespace)
        ]

    async def patch(self, gvk: GroupVersionKind, name: str, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        if self.fail_patch is not None:
            raise self.fail_patch
        obj = self.objects.get((gvk.api_version, gvk.kind, namespace, name))
        if obj is None:
            raise LookupError(f"{gvk.kind} {namespace}/{name} not found")
        self.patches.append((gvk.kind, namespace, name, copy.deepcopy(body)))
        labels = obj["metadata"].setdefault("labels", {})
        labels.update((body.get("metadata") or {}).get("labels") or {})
        return copy.deepcopy(obj)


def ownership_chain(composition_id: str = "abc123") -> list[dict[str, Any]]:
    """Pod -> ReplicaSet -> Deployment, the Deployment carrying the composition id."""
    return [
        make_object("Pod", "my-app-7b4f8c6d-x2kj", owner=("apps/v1", "ReplicaSet", "my-app-7b4f8c6d")),
        make_object(
            "ReplicaSet",
            "my-app-7b4f8c6d",
            api_version="apps/v1",
            owner=("apps/v1", "Deployment", "my-app"),
        ),
        make_object(
            "Deployment",
            "my-app",
            api_version="apps/v1",
            labels={"krateo.io/composition-id": composition_id},
        ),
    ]


# ---------------------------------------------------------------------------
# Informer fakes
# ---------------------------------------------------------------------------


class FakeEventSource:
    """EventSource with scripted watch streams.

    Each ``watch`` call consumes the next entry of ``streams``: a list of
    ``(type, object)`` pairs (callables in the list are invoked instead of
    yielded) or an exception to raise. Once the script is exhausted
    ``idle`` is set and the stream blocks until cancelled.
    """

    def __init__(self, items: list[dict[str, Any]] | None = None, resource_version: str = "1") -> None:
        self.items = list(items or [])
        self.resource_version = resource_version
        self.streams: list[list[Any] | Exception] = []
        self.list_calls = 0
        self.list_delay = 0.0
        self.list_error: Exception | None = None
        self.watch_calls: list[tuple[str, int]] = []
        self.idle = asyncio.Event()

    async def list(self) -> tuple[list[dict[str, Any]], str]:
        self.list_calls += 1
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error is not None:
            raise self.list_error
        return list(self.items), self.resource_version

    async def watch(self, resource_version: str, timeout_seconds: int):
        self.watch_calls.append((resource_version, timeout_seconds))
        if not self.streams:
            self.idle.set()
            await asyncio.Event().wait()
            return
        script = self.streams.pop(0)
        if isinstance(script, Exception):
            raise script
        for entry in script:
            if callable(entry):
                entry()
                continue
            yield entry


class RecordingHandler:
    """ResourceEventHandler that records (delivery, old, new) tuples."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any] | None, dict[str, Any]]] = []

    async def on_add(self, obj: dict[str, Any]) -> None:
        self.calls.append(("add", None, obj))

    async def on_update(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        self.calls.append(("update", old, new))

    async def on_delete(self, obj: dict[str, Any]) -> None:
        self.calls.append(("delete", None, obj))

    def names(self, delivery: str) -> list[str]:
        return [new["metadata"]["name"] for kind, _, new in self.calls if kind == delivery]


class ListSink:
    """JobSink collecting pushed jobs."""

    def __init__(self) -> None:
        self.jobs: list[NotificationJob] = []

    async def push(self, job: NotificationJob) -> None:
        self.jobs.append(job)


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll *predicate* until it holds or *timeout* elapses."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def cluster() -> FakeClusterClient:
    return FakeClusterClient(*ownership_chain())


@pytest.fixture()
def resolver(cluster: FakeClusterClient) -> ObjectResolver:
    return ObjectResolver(cluster)
