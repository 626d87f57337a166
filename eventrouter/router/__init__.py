"""Event routing: filtering, enrichment, marker patching and fan-out.

Submodules
----------
router  -- EventRouter: informer callbacks, loop/throttle/admission filters.
handler -- NotificationPusher: composition id lookup, patch, fan-out.
labels  -- processed-marker merge patch and detection.
"""

from eventrouter.router.handler import EventHandler, NotificationPusher
from eventrouter.router.labels import build_patch, was_processed
from eventrouter.router.router import EventRouter

__all__ = ["EventHandler", "EventRouter", "NotificationPusher", "build_patch", "was_processed"]
