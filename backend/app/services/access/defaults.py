"""Default field access policy and FieldPermission helpers (seeding, validation, counts)."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.services.access.levels import ACCESS_LEVEL_ORDER, AccessLevel, coerce_access_level


DEFAULT_FIELD_ACCESS_POLICY: Dict[str, Any] = {
    "version": "field_access_policy_v1",
    "default_level": AccessLevel.public.value,
    "field_levels": {
        # Commercial terms stay behind an RFQ.
        "price_lead_time": AccessLevel.after_rfq.value,
        "samples": AccessLevel.after_rfq.value,
        "moq": AccessLevel.after_rfq.value,
        "price": AccessLevel.after_rfq.value,
        # Identity and purity data for engaged visitors.
        "cas_number": AccessLevel.after_click.value,
        "assay": AccessLevel.after_click.value,
        "assay_min": AccessLevel.after_click.value,
        "assay_max": AccessLevel.after_click.value,
        "certificates": AccessLevel.after_click.value,
    },
    "required_public_fields": ["product_name", "category"],
}


class UnknownFieldError(ValueError):
    def __init__(self, field_names: Iterable[str]) -> None:
        names = sorted(set(field_names))
        super().__init__(f"Unknown product field(s): {', '.join(names)}")
        self.field_names = names


def normalize_policy(raw_policy: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    merged = dict(DEFAULT_FIELD_ACCESS_POLICY)
    candidate = raw_policy if isinstance(raw_policy, dict) else {}
    for key, value in candidate.items():
        if key == "field_levels" and isinstance(value, dict):
            merged[key] = {**merged.get(key, {}), **value}
        else:
            merged[key] = value
    return merged


def default_level_for_field(field_name: str, policy: Optional[Dict[str, Any]] = None) -> AccessLevel:
    cfg = policy or DEFAULT_FIELD_ACCESS_POLICY
    level = cfg.get("field_levels", {}).get(field_name, cfg.get("default_level", AccessLevel.public.value))
    return coerce_access_level(level)


def seed_field_permissions(field_names: Iterable[str], policy: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    return {name: default_level_for_field(name, policy).value for name in field_names}


def normalize_field_permissions(
    raw_permissions: Optional[Mapping[str, Any]],
    known_fields: Optional[Iterable[str]] = None,
) -> Dict[str, str]:
    permissions = dict(raw_permissions or {})
    if known_fields is not None:
        known = set(known_fields)
        unknown = [name for name in permissions if name not in known]
        if unknown:
            raise UnknownFieldError(unknown)
    return {str(name): coerce_access_level(level).value for name, level in permissions.items()}


def validate_public_fields(
    permissions: Mapping[str, Any],
    required_public_fields: Optional[Iterable[str]] = None,
) -> List[str]:
    required = (
        list(required_public_fields)
        if required_public_fields is not None
        else DEFAULT_FIELD_ACCESS_POLICY["required_public_fields"]
    )
    violations: List[str] = []
    for field_name in required:
        level = permissions.get(field_name)
        if level is not None and coerce_access_level(level) is not AccessLevel.public:
            violations.append(f"{field_name} must be public")
    return violations


def get_field_counts(permissions: Mapping[str, Any]) -> Dict[str, int]:
    counts = {level.value: 0 for level in ACCESS_LEVEL_ORDER}
    for level in permissions.values():
        counts[coerce_access_level(level).value] += 1
    return counts


def apply_uniform_level(
    permissions: Mapping[str, Any],
    level: Any,
    required_public_fields: Optional[Iterable[str]] = None,
) -> Dict[str, str]:
    """Set every field to ``level``, keeping required public fields public."""
    target = coerce_access_level(level).value
    pinned = set(
        required_public_fields
        if required_public_fields is not None
        else DEFAULT_FIELD_ACCESS_POLICY["required_public_fields"]
    )
    return {
        name: (AccessLevel.public.value if name in pinned else target)
        for name in permissions
    }
