"""Processed-marker labels applied to handled events."""

from __future__ import annotations

from typing import Any

from eventrouter.models.events import LABEL_COMPOSITION_ID, LABEL_PATCHED_BY, PATCHED_BY_VALUE


def build_patch(composition_id: str | None) -> dict[str, Any]:
    """Return the merge patch marking an event as processed.

    Only non-empty values are written, so an unattributed event still gets
    the processed marker but no composition id label.
    """
    labels = {
        LABEL_COMPOSITION_ID: composition_id or "",
        LABEL_PATCHED_BY: PATCHED_BY_VALUE,
    }
    return {"metadata": {"labels": {k: v for k, v in labels.items() if v}}}


def was_processed(obj: dict[str, Any]) -> bool:
    """True when the raw event document carries the processed marker."""
    labels = (obj.get("metadata") or {}).get("labels") or {}
    return isinstance(labels, dict) and LABEL_PATCHED_BY in labels
