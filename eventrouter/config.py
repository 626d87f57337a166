"""Configuration loading from environment variables.

Every setting can be provided as an ``EVENT_ROUTER_*`` environment variable.
Explicit overrides (the CLI flags) take precedence over the environment.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Any

from eventrouter.models.config import (
    DEFAULT_REJECT_KINDS,
    AdmissionConfig,
    APIConfig,
    EventRouterConfig,
    KubeConfig,
    LogConfig,
    NotificationConfig,
    ResolverConfig,
    WatchConfig,
)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class _Settings:
    """Resolves a setting from overrides first, then the environment."""

    def __init__(self, overrides: Mapping[str, Any] | None) -> None:
        self._overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    def raw(self, key: str, default: str = "") -> Any:
        name = key.lower()
        if name in self._overrides:
            return self._overrides[name]
        return os.environ.get(f"EVENT_ROUTER_{key}", default)

    def text(self, key: str, default: str = "") -> str:
        return str(self.raw(key, default))

    def flag(self, key: str, default: bool = False) -> bool:
        val = self.raw(key, str(default).lower())
        if isinstance(val, bool):
            return val
        return str(val).lower() in ("true", "1", "yes")

    def number(self, key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
        val = int(self.raw(key, str(default)))
        if min_val is not None:
            val = max(val, min_val)
        if max_val is not None:
            val = min(val, max_val)
        return val

    def duration(self, key: str, default: str) -> float:
        val = self.raw(key, default)
        if isinstance(val, int | float):
            return float(val)
        return parse_duration(str(val))

    def items(self, key: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
        val = self.raw(key, ",".join(default))
        if isinstance(val, list | tuple):
            return tuple(str(v) for v in val)
        return tuple(item.strip() for item in str(val).split(",") if item.strip())


def parse_duration(value: str) -> float:
    """Parse a Go-style duration (``90s``, ``3m``, ``1h30m``, ``0``) into seconds."""
    value = value.strip()
    if value in ("", "0"):
        return 0.0
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_url(value: str) -> str:
    if value and not re.match(r"^https?://[^\s/]+", value):
        raise ValueError(f"Invalid notification url: {value!r}")
    return value


def load_config(overrides: Mapping[str, Any] | None = None) -> EventRouterConfig:
    """Load configuration from EVENT_ROUTER_* environment variables.

    Args:
        overrides: Values keyed by lower-case setting name (e.g.
            ``{"throttle_period": "5m"}``). ``None`` values are ignored so
            unset CLI flags fall through to the environment.
    """
    env = _Settings(overrides)
    debug = env.flag("DEBUG", False)
    level = "debug" if debug else _validate_log_level(env.text("LOG_LEVEL", "info"))

    return EventRouterConfig(
        debug=debug,
        kube=KubeConfig(
            kubeconfig=env.text("KUBECONFIG", os.environ.get("KUBECONFIG", "")),
            insecure=env.flag("INSECURE", False),
        ),
        watch=WatchConfig(
            namespace=env.text("NAMESPACE", ""),
            resync_interval=env.duration("RESYNC_INTERVAL", "3m"),
            throttle_period=env.duration("THROTTLE_PERIOD", "0"),
            sync_timeout=env.duration("SYNC_TIMEOUT", "60s"),
            event_timeout=env.duration("EVENT_TIMEOUT", "60s"),
        ),
        admission=AdmissionConfig(
            accept_groups=env.items("ACCEPT_GROUPS"),
            accept_kinds=env.items("ACCEPT_KINDS"),
            reject_kinds=env.items("REJECT_KINDS", DEFAULT_REJECT_KINDS),
        ),
        resolver=ResolverConfig(
            max_owner_depth=env.number("MAX_OWNER_DEPTH", 10, min_val=1, max_val=64),
        ),
        notifications=NotificationConfig(
            queue_max_capacity=env.number("QUEUE_MAX_CAPACITY", 10, min_val=1),
            queue_worker_threads=env.number("QUEUE_WORKER_THREADS", 50, min_val=1),
            delivery_timeout=env.duration("DELIVERY_TIMEOUT", "40s"),
            notification_url=_validate_url(env.text("NOTIFICATION_URL", "")),
            registration_namespace=env.text("REGISTRATION_NAMESPACE", ""),
        ),
        api=APIConfig(
            port=env.number("API_PORT", 8080, min_val=0, max_val=65535),
        ),
        log=LogConfig(level=level),
    )
