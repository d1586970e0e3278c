"""Field visibility and download decisions for product pages.

Every surface that renders a product (merchant preview, public page, API
payloads) goes through these functions so preview and live behavior match.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from app.services.access.levels import AccessLevel, access_rank, coerce_access_level


UPLOADED_FILES_FIELD = "uploaded_files"

# Listed at every level; the binaries behind them are gated by can_download().
ALWAYS_VISIBLE_FIELDS = frozenset({UPLOADED_FILES_FIELD})

_REQUIREMENT_HINTS = {
    AccessLevel.public: "Visible to everyone",
    AccessLevel.after_click: "Open your channel link to view this field",
    AccessLevel.after_rfq: "Submit an RFQ to view this field",
}


def resolve_effective_level(permissions: Optional[Mapping[str, Any]], field_name: str) -> AccessLevel:
    configured = (permissions or {}).get(field_name)
    if configured is None:
        return AccessLevel.public
    return coerce_access_level(configured)


def is_field_visible(permissions: Optional[Mapping[str, Any]], field_name: str, view_mode: Any) -> bool:
    viewer_rank = access_rank(view_mode)
    if field_name in ALWAYS_VISIBLE_FIELDS:
        return True
    required = resolve_effective_level(permissions, field_name)
    return viewer_rank >= access_rank(required)


def can_download(view_mode: Any) -> bool:
    return coerce_access_level(view_mode) is AccessLevel.after_rfq


def describe_requirement(level: Any) -> str:
    return _REQUIREMENT_HINTS[coerce_access_level(level)]
