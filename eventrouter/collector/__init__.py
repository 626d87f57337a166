"""Collector package for eventrouter.

Keeps a local cache of cluster events current and feeds every change to the
event router.

Submodules
----------
informer -- EventInformer: initial sync barrier, watch, resync, relist on 410.
source   -- KubeEventSource: v1.Event list/watch over kubernetes-asyncio.
"""

from eventrouter.collector.informer import (
    CacheSyncError,
    EventInformer,
    EventSource,
    InformerState,
    ResourceEventHandler,
    ResourceVersionExpired,
)
from eventrouter.collector.source import KubeEventSource

__all__ = [
    "CacheSyncError",
    "EventInformer",
    "EventSource",
    "InformerState",
    "KubeEventSource",
    "ResourceEventHandler",
    "ResourceVersionExpired",
]
