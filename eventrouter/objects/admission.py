"""Admission predicate over an event's involved object.

Bounds resolution cost by refusing kinds that are never attributable to a
composition (cluster infrastructure such as nodes and leases).
"""

from __future__ import annotations

from collections.abc import Iterable

from eventrouter.models.config import DEFAULT_REJECT_KINDS, AdmissionConfig
from eventrouter.models.events import ObjectReference


class AdmissionFilter:
    """Allow-list of kinds and API groups, plus an explicit kind deny-list.

    * a kind in ``reject_kinds`` is always refused;
    * with no allow-list configured, everything else is accepted;
    * otherwise the reference must match ``accept_kinds`` or
      ``accept_groups`` (``""`` denotes the core group).
    """

    def __init__(
        self,
        accept_groups: Iterable[str] = (),
        accept_kinds: Iterable[str] = (),
        reject_kinds: Iterable[str] = DEFAULT_REJECT_KINDS,
    ) -> None:
        self._accept_groups = frozenset(accept_groups)
        self._accept_kinds = frozenset(accept_kinds)
        self._reject_kinds = frozenset(reject_kinds)

    @classmethod
    def from_config(cls, config: AdmissionConfig) -> AdmissionFilter:
        return cls(
            accept_groups=config.accept_groups,
            accept_kinds=config.accept_kinds,
            reject_kinds=config.reject_kinds,
        )

    def accept(self, ref: ObjectReference) -> bool:
        if not ref.kind or not ref.name:
            return False
        if ref.kind in self._reject_kinds:
            return False
        if not self._accept_groups and not self._accept_kinds:
            return True
        return ref.kind in self._accept_kinds or ref.gvk.group in self._accept_groups
