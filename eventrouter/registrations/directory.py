"""Notification target discovery.

``RegistrationDirectory`` reads ``Registration`` custom resources on every
call. It deliberately keeps no cache: a registration created or deleted
between two events must be honoured by the second one.
"""

from __future__ import annotations

from typing import Any, Protocol

from eventrouter.models.events import REGISTRATION_KIND, GroupVersionKind
from eventrouter.models.notifications import Registration
from eventrouter.objects.resolver import ObjectResolver
from eventrouter.objects.transport import KindNotServedError
from eventrouter.observability.logging import get_logger

_log = get_logger("registrations.directory")

_REQUIRED_FIELDS = (("serviceName", "service_name"), ("endpoint", "endpoint"))


class Directory(Protocol):
    async def list_registrations(self) -> dict[str, Registration]: ...


class RegistrationDirectory:
    """Snapshot of the ``Registration`` resources currently in the cluster.

    Args:
        resolver:  Object resolver used to list the custom resources.
        namespace: Restrict the listing to one namespace (``""`` = all).
        kind:      Kind descriptor of the registration resource.
    """

    def __init__(
        self,
        resolver: ObjectResolver,
        namespace: str = "",
        kind: GroupVersionKind = REGISTRATION_KIND,
    ) -> None:
        self._resolver = resolver
        self._namespace = namespace
        self._kind = kind

    async def list_registrations(self) -> dict[str, Registration]:
        """Return valid registrations keyed by resource name.

        Instances missing ``spec.serviceName`` or ``spec.endpoint`` (or
        holding a non-string or empty value) are logged and left out.

        Raises:
            ResolverError: if the registrations cannot be listed.
        """
        try:
            items = await self._resolver.list(self._kind, self._namespace)
        except KindNotServedError:
            _log.warning("registration_kind_not_served", kind=str(self._kind))
            return {}

        result: dict[str, Registration] = {}
        for item in items:
            name = str((item.get("metadata") or {}).get("name") or "")
            registration = _parse_registration(name, item)
            if registration is not None:
                result[name] = registration
        return result


def _parse_registration(name: str, item: dict[str, Any]) -> Registration | None:
    if not name:
        _log.error("registration_without_name")
        return None
    spec = item.get("spec")
    if not isinstance(spec, dict):
        _log.error("registration_missing_spec", registration=name)
        return None

    values: dict[str, str] = {}
    for key, attr in _REQUIRED_FIELDS:
        value = spec.get(key)
        if not isinstance(value, str) or not value:
            _log.error("registration_invalid_field", registration=name, field=f"spec.{key}")
            return None
        values[attr] = value
    return Registration(**values)


class StaticRegistrationDirectory:
    """Single fixed endpoint, used instead of the cluster-backed directory
    when a notification URL is configured."""

    def __init__(self, url: str, service_name: str = "notification-url") -> None:
        if not url:
            raise ValueError("Notification url must not be empty")
        self._registration = Registration(service_name=service_name, endpoint=url)

    async def list_registrations(self) -> dict[str, Registration]:
        return {self._registration.service_name: self._registration}
