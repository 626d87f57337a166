"""Probe and metrics HTTP layer for eventrouter.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by eventrouter.app bootstrap).
"""

from eventrouter.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
