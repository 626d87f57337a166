"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_REJECT_KINDS = ("Node", "Namespace", "Lease", "Endpoints", "EndpointSlice")


@dataclass
class KubeConfig:
    """Kubernetes client configuration."""

    kubeconfig: str = ""
    insecure: bool = False


@dataclass
class WatchConfig:
    """Event informer configuration. Durations are in seconds."""

    namespace: str = ""
    resync_interval: float = 180.0
    throttle_period: float = 0.0
    sync_timeout: float = 60.0
    event_timeout: float = 60.0


@dataclass
class AdmissionConfig:
    """Allow/deny lists applied to the involved object of each event."""

    accept_groups: tuple[str, ...] = ()
    accept_kinds: tuple[str, ...] = ()
    reject_kinds: tuple[str, ...] = DEFAULT_REJECT_KINDS


@dataclass
class ResolverConfig:
    """Ownership walk configuration."""

    max_owner_depth: int = 10


@dataclass
class NotificationConfig:
    """Notification fan-out configuration."""

    queue_max_capacity: int = 10
    queue_worker_threads: int = 50
    delivery_timeout: float = 40.0
    notification_url: str = ""
    registration_namespace: str = ""


@dataclass
class APIConfig:
    """Health/metrics HTTP endpoint configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class EventRouterConfig:
    """Top-level eventrouter configuration."""

    debug: bool = False
    kube: KubeConfig = field(default_factory=KubeConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
