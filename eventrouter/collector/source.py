"""``v1/Event`` list/watch over kubernetes-asyncio.

Objects are handed to the informer as plain dicts: watch deliveries use the
``raw_object`` of each stream event, listed items are converted with
``ApiClient.sanitize_for_serialization`` so both carry the same JSON keys.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]

from eventrouter.collector.informer import ResourceVersionExpired


class KubeEventSource:
    """Lists and watches events cluster wide, or in one namespace.

    Args:
        core_api:  CoreV1Api bound to the shared ApiClient.
        namespace: Namespace to watch; ``""`` watches all namespaces.
    """

    def __init__(self, core_api: k8s_client.CoreV1Api, namespace: str = "") -> None:
        self._api = core_api
        self._namespace = namespace

    def _list_call(self) -> tuple[Any, dict[str, Any]]:
        if self._namespace:
            return self._api.list_namespaced_event, {"namespace": self._namespace}
        return self._api.list_event_for_all_namespaces, {}

    async def list(self) -> tuple[list[dict[str, Any]], str]:
        func, kwargs = self._list_call()
        result = await func(**kwargs)
        serialize = self._api.api_client.sanitize_for_serialization
        items = [serialize(item) for item in result.items or []]
        resource_version = result.metadata.resource_version if result.metadata else ""
        return items, resource_version or ""

    async def watch(
        self,
        resource_version: str,
        timeout_seconds: int,
    ) -> AsyncGenerator[tuple[str, dict[str, Any]], None]:
        func, kwargs = self._list_call()
        if resource_version:
            kwargs["resource_version"] = resource_version
        watcher = watch.Watch()
        try:
            async with watcher.stream(func, timeout_seconds=timeout_seconds, **kwargs) as stream:
                async for event in stream:
                    yield str(event.get("type", "")), event.get("raw_object") or {}
        except ApiException as exc:
            if exc.status == 410:
                raise ResourceVersionExpired(str(exc.reason)) from exc
            raise
        finally:
            watcher.stop()
