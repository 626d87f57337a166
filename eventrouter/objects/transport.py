"""Cluster transport over arbitrary resource kinds.

``ClusterClient`` is the narrow interface the resolver depends on: every
operation takes a kind descriptor and returns plain structural dicts, so
arbitrary owner kinds can be traversed without generated model classes.

``KubeClusterClient`` implements it on top of the kubernetes-asyncio
dynamic client, which discovers the REST mapping (plural name, scope) for
any group/version/kind served by the cluster.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic.exceptions import ResourceNotFoundError  # type: ignore[import-untyped]

from eventrouter.models.events import GroupVersionKind
from eventrouter.observability.logging import get_logger

_log = get_logger("objects.transport")

MERGE_PATCH = "application/merge-patch+json"


class KindNotServedError(LookupError):
    """Raised when the cluster does not serve the requested kind."""


class ClusterClient(Protocol):
    """Generic get/list/patch over any kind. Missing objects yield ``None``."""

    async def get(self, gvk: GroupVersionKind, name: str, namespace: str = "") -> dict[str, Any] | None: ...

    async def list(self, gvk: GroupVersionKind, namespace: str = "") -> list[dict[str, Any]]: ...

    async def patch(
        self,
        gvk: GroupVersionKind,
        name: str,
        namespace: str,
        body: dict[str, Any],
    ) -> dict[str, Any]: ...


class KubeClusterClient:
    """``ClusterClient`` backed by ``kubernetes_asyncio.dynamic.DynamicClient``.

    Discovery is lazy and runs once; the client is safe to share between the
    router task and the dispatch workers.
    """

    def __init__(self, api_client: k8s_client.ApiClient) -> None:
        self._api_client = api_client
        self._dynamic: DynamicClient | None = None
        self._lock = asyncio.Lock()

    async def _client(self) -> DynamicClient:
        async with self._lock:
            if self._dynamic is None:
                self._dynamic = await DynamicClient(self._api_client)
            return self._dynamic

    async def _resource(self, gvk: GroupVersionKind) -> Any:
        dyn = await self._client()
        try:
            return await dyn.resources.get(api_version=gvk.api_version, kind=gvk.kind)
        except ResourceNotFoundError as exc:
            raise KindNotServedError(str(gvk)) from exc

    async def get(self, gvk: GroupVersionKind, name: str, namespace: str = "") -> dict[str, Any] | None:
        try:
            resource = await self._resource(gvk)
        except KindNotServedError:
            _log.debug("kind_not_served", gvk=str(gvk), name=name)
            return None
        dyn = await self._client()
        kwargs: dict[str, Any] = {"name": name}
        if resource.namespaced and namespace:
            kwargs["namespace"] = namespace
        try:
            obj = await dyn.get(resource, **kwargs)
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise
        return obj.to_dict()  # type: ignore[no-any-return]

    async def list(self, gvk: GroupVersionKind, namespace: str = "") -> list[dict[str, Any]]:
        resource = await self._resource(gvk)
        dyn = await self._client()
        kwargs: dict[str, Any] = {}
        if resource.namespaced and namespace:
            kwargs["namespace"] = namespace
        result = await dyn.get(resource, **kwargs)
        return list(result.to_dict().get("items") or [])

    async def patch(
        self,
        gvk: GroupVersionKind,
        name: str,
        namespace: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        resource = await self._resource(gvk)
        dyn = await self._client()
        kwargs: dict[str, Any] = {"name": name, "body": body, "content_type": MERGE_PATCH}
        if resource.namespaced and namespace:
            kwargs["namespace"] = namespace
        obj = await dyn.patch(resource, **kwargs)
        return obj.to_dict()  # type: ignore[no-any-return]
