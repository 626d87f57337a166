"""Generic access to cluster resources.

Exports:
    ClusterClient      -- Transport protocol (get/list/patch over any kind).
    KubeClusterClient  -- kubernetes-asyncio dynamic client implementation.
    ObjectResolver     -- Error handling plus composition id ownership walk.
    ResolverError      -- Raised when the cluster cannot be queried.
    AdmissionFilter    -- Kind/API group allow-list over involved objects.
"""

from eventrouter.objects.admission import AdmissionFilter
from eventrouter.objects.resolver import ObjectResolver, ResolverError
from eventrouter.objects.transport import ClusterClient, KindNotServedError, KubeClusterClient

__all__ = [
    "AdmissionFilter",
    "ClusterClient",
    "KindNotServedError",
    "KubeClusterClient",
    "ObjectResolver",
    "ResolverError",
]
