"""Server-side filtering of product payloads by viewer access level.

Restricted values never leave the server: hidden fields are replaced with
lock metadata (required level plus a short preview) so pages can render a
locked placeholder.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.services.access.levels import AccessLevel, coerce_access_level
from app.services.access.resolver import (
    UPLOADED_FILES_FIELD,
    can_download,
    is_field_visible,
    resolve_effective_level,
)


PREVIEW_MASK = "•••"
PREVIEW_PREFIX_CHARS = 8
PREVIEW_MIN_HIDDEN_CHARS = 24


def is_empty_value(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def field_preview(value: Any) -> str:
    """Placeholder text for a locked field. Never contains the whole value.

    Only long strings show a short prefix; everything else is masked or summarized.
    """
    if is_empty_value(value):
        return ""
    if isinstance(value, str):
        if len(value) >= PREVIEW_MIN_HIDDEN_CHARS:
            return value[:PREVIEW_PREFIX_CHARS] + "..."
        return PREVIEW_MASK
    if isinstance(value, (bool, int, float)):
        return PREVIEW_MASK
    if isinstance(value, (list, tuple)):
        count = len(value)
        return f"{count} item{'s' if count != 1 else ''}"
    if isinstance(value, dict):
        return "[Hidden]"
    return ""


def filter_product_fields(
    product_data: Optional[Mapping[str, Any]],
    permissions: Optional[Mapping[str, Any]],
    view_mode: Any,
    include_locked: bool = True,
) -> Dict[str, Any]:
    level = coerce_access_level(view_mode)
    data = dict(product_data or {})
    if level is AccessLevel.after_rfq:
        return data

    filtered: Dict[str, Any] = {}
    for field_name, value in data.items():
        if is_field_visible(permissions, field_name, level):
            filtered[field_name] = value
        elif include_locked:
            filtered[field_name] = {
                "_locked": True,
                "_required_level": resolve_effective_level(permissions, field_name).value,
                "_preview": field_preview(value),
            }
        else:
            filtered[field_name] = None
    return filtered


def get_hidden_fields(
    permissions: Optional[Mapping[str, Any]],
    view_mode: Any,
    product_data: Optional[Mapping[str, Any]] = None,
) -> List[str]:
    """Restricted fields for ``view_mode``. With ``product_data``, only fields that hold a value."""
    return [
        field_name
        for field_name in (permissions or {})
        if not is_field_visible(permissions, field_name, view_mode)
        and (product_data is None or not is_empty_value(product_data.get(field_name)))
    ]


def build_file_listing(files: Optional[Iterable[Mapping[str, Any]]], view_mode: Any) -> List[Dict[str, Any]]:
    downloadable = can_download(view_mode)
    listing: List[Dict[str, Any]] = []
    for item in files or []:
        if not isinstance(item, Mapping):
            continue
        row = {
            "file_id": item.get("file_id"),
            "filename": item.get("filename"),
            "document_type": item.get("document_type"),
            "mime_type": item.get("mime_type"),
            "downloadable": downloadable,
        }
        listing.append(row)
    return listing


def filter_product_payload(
    product: Mapping[str, Any],
    view_mode: Any,
    include_locked: bool = True,
) -> Dict[str, Any]:
    """Filter a serialized product (``product_data`` + ``field_permissions``) for a viewer."""
    level = coerce_access_level(view_mode)
    permissions = dict(product.get("field_permissions") or {})
    product_data = dict(product.get("product_data") or {})
    files = product_data.get(UPLOADED_FILES_FIELD)

    filtered_data = filter_product_fields(product_data, permissions, level, include_locked=include_locked)
    if isinstance(files, list):
        filtered_data[UPLOADED_FILES_FIELD] = build_file_listing(files, level)

    locked_fields = get_hidden_fields(permissions, level, product_data)
    payload = {key: value for key, value in product.items() if key != "field_permissions"}
    payload["product_data"] = filtered_data
    payload["_access_level"] = level.value
    payload["_filtered"] = level is not AccessLevel.after_rfq
    payload["_locked_fields"] = locked_fields
    payload["_locked_count"] = len(locked_fields)
    payload["_can_download"] = can_download(level)
    return payload
