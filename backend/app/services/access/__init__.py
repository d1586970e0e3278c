"""Tiered field access: levels, visibility/download decisions, defaults and filtering.

Token handling lives in ``app.services.access.tokens`` and is imported
explicitly since it needs the database layer.
"""

from .levels import (
    ACCESS_LEVEL_ORDER,
    AccessLevel,
    InvalidAccessLevelError,
    access_rank,
    coerce_access_level,
    promote,
)
from .resolver import (
    ALWAYS_VISIBLE_FIELDS,
    UPLOADED_FILES_FIELD,
    can_download,
    describe_requirement,
    is_field_visible,
    resolve_effective_level,
)
from .defaults import (
    DEFAULT_FIELD_ACCESS_POLICY,
    UnknownFieldError,
    apply_uniform_level,
    get_field_counts,
    normalize_field_permissions,
    seed_field_permissions,
    validate_public_fields,
)
from .filtering import (
    build_file_listing,
    filter_product_fields,
    filter_product_payload,
    get_hidden_fields,
)

__all__ = [
    # Levels
    "ACCESS_LEVEL_ORDER",
    "AccessLevel",
    "InvalidAccessLevelError",
    "access_rank",
    "coerce_access_level",
    "promote",

    # Decisions
    "ALWAYS_VISIBLE_FIELDS",
    "UPLOADED_FILES_FIELD",
    "can_download",
    "describe_requirement",
    "is_field_visible",
    "resolve_effective_level",

    # Permission mappings
    "DEFAULT_FIELD_ACCESS_POLICY",
    "UnknownFieldError",
    "apply_uniform_level",
    "get_field_counts",
    "normalize_field_permissions",
    "seed_field_permissions",
    "validate_public_fields",

    # Payload filtering
    "build_file_listing",
    "filter_product_fields",
    "filter_product_payload",
    "get_hidden_fields",
]
