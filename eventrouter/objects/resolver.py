"""Kind-agnostic object resolution and ownership walking.

``ObjectResolver`` wraps a ``ClusterClient`` and adds:

* uniform error handling: transport failures surface as ``ResolverError``,
  a missing object is ``None`` (never an error);
* ``resolve_composition_id``: walks the controlling-owner chain of a
  resource until a resource carrying the composition id label is found.

Owner metadata is written by users and controllers and is not validated by
the API server, so the walk is bounded by a depth budget and guarded by a
visited set keyed by ``(kind, namespace, name)``.
"""

from __future__ import annotations

from typing import Any

from eventrouter.models.events import (
    LABEL_COMPOSITION_ID,
    GroupVersionKind,
    ObjectReference,
    labels_of,
    owner_edges,
)
from eventrouter.objects.transport import ClusterClient, KindNotServedError
from eventrouter.observability.logging import get_logger

_log = get_logger("objects.resolver")

DEFAULT_MAX_DEPTH = 10


class ResolverError(Exception):
    """Raised when the cluster cannot be queried for a resource."""

    def __init__(self, operation: str, target: str, cause: Exception) -> None:
        super().__init__(f"{operation} {target}: {cause}")
        self.operation = operation
        self.target = target
        self.cause = cause


def _describe(gvk: GroupVersionKind, name: str = "", namespace: str = "") -> str:
    if not name:
        return f"{gvk.kind}.{gvk.api_version}"
    path = f"{namespace}/{name}" if namespace else name
    return f"{gvk.kind}.{gvk.api_version} {path}"


class ObjectResolver:
    """Generic list/get/patch plus composition id lookup.

    Args:
        client:    Transport used for every call; shared, stateless.
        max_depth: Number of resources the ownership walk may visit,
                   the involved object included.
    """

    def __init__(self, client: ClusterClient, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self._client = client
        self._max_depth = max_depth

    async def list(self, gvk: GroupVersionKind, namespace: str = "") -> list[dict[str, Any]]:
        """List every instance of *gvk*; ``KindNotServedError`` passes through."""
        try:
            return await self._client.list(gvk, namespace)
        except KindNotServedError:
            raise
        except Exception as exc:
            raise ResolverError("listing", _describe(gvk, namespace=namespace), exc) from exc

    async def get(self, ref: ObjectReference) -> dict[str, Any] | None:
        try:
            return await self._client.get(ref.gvk, ref.name, ref.namespace)
        except Exception as exc:
            raise ResolverError("getting", _describe(ref.gvk, ref.name, ref.namespace), exc) from exc

    async def patch(self, ref: ObjectReference, document: dict[str, Any]) -> dict[str, Any]:
        """Apply *document* to the referenced resource as a JSON merge patch."""
        try:
            return await self._client.patch(ref.gvk, ref.name, ref.namespace, document)
        except Exception as exc:
            raise ResolverError("patching", _describe(ref.gvk, ref.name, ref.namespace), exc) from exc

    async def resolve_composition_id(self, ref: ObjectReference) -> str | None:
        """Return the composition id attributed to *ref*, or ``None``.

        Starting at *ref*, returns the ``krateo.io/composition-id`` label of
        the first resource that carries it, following the controlling owner
        at each step. Returns ``None`` when a resource has no controlling
        owner, when an owner does not exist, on a cycle, or once the depth
        budget is spent.

        Raises:
            ResolverError: if the cluster cannot be queried.
        """
        visited: set[tuple[str, str, str]] = set()
        current: ObjectReference | None = ref

        for depth in range(self._max_depth):
            if current is None:
                return None
            if current.key in visited:
                _log.warning("ownership_cycle_detected", kind=current.kind, name=current.name, depth=depth)
                return None
            visited.add(current.key)

            obj = await self.get(current)
            if obj is None:
                _log.debug("owner_not_found", kind=current.kind, namespace=current.namespace, name=current.name)
                return None

            composition_id = labels_of(obj).get(LABEL_COMPOSITION_ID)
            if composition_id:
                return str(composition_id)

            current = _controlling_owner(obj)

        _log.debug("ownership_depth_exhausted", kind=ref.kind, name=ref.name, max_depth=self._max_depth)
        return None


def _controlling_owner(obj: dict[str, Any]) -> ObjectReference | None:
    for edge in owner_edges(obj):
        if edge.controller:
            return edge.reference
    return None
