"""Entry point for `python -m eventrouter`.

Usage:
    python -m eventrouter
    python -m eventrouter --namespace demo --throttle-period 5m
"""

from __future__ import annotations

from eventrouter.cli import cli

cli()
