import pytest

from app.services.access.catalog import (
    CHANNEL_PRESETS,
    get_access_level_label,
    get_catalog_payload,
    get_channel_preset,
)
from app.services.access.defaults import (
    DEFAULT_FIELD_ACCESS_POLICY,
    UnknownFieldError,
    apply_uniform_level,
    default_level_for_field,
    get_field_counts,
    normalize_field_permissions,
    normalize_policy,
    seed_field_permissions,
    validate_public_fields,
)
from app.services.access.levels import AccessLevel, InvalidAccessLevelError


def test_seed_uses_policy_table_and_public_default():
    seeded = seed_field_permissions(["product_name", "price", "moq", "cas_number", "description"])
    assert seeded == {
        "product_name": "public",
        "price": "after_rfq",
        "moq": "after_rfq",
        "cas_number": "after_click",
        "description": "public",
    }


def test_normalize_policy_merges_field_levels():
    policy = normalize_policy({"field_levels": {"description": "after_click"}, "default_level": "after_click"})
    assert policy["field_levels"]["price"] == "after_rfq"
    assert policy["field_levels"]["description"] == "after_click"
    assert default_level_for_field("unlisted", policy) is AccessLevel.after_click
    assert DEFAULT_FIELD_ACCESS_POLICY["default_level"] == "public"


def test_normalize_field_permissions_rejects_unknown_fields():
    with pytest.raises(UnknownFieldError) as excinfo:
        normalize_field_permissions({"price": "after_rfq", "bogus": "public"}, known_fields={"price"})
    assert excinfo.value.field_names == ["bogus"]


def test_normalize_field_permissions_rejects_invalid_levels():
    with pytest.raises(InvalidAccessLevelError):
        normalize_field_permissions({"price": "vip"}, known_fields={"price"})


def test_normalize_field_permissions_accepts_enum_values():
    assert normalize_field_permissions({"price": AccessLevel.after_rfq}) == {"price": "after_rfq"}


def test_required_public_fields():
    assert validate_public_fields({"product_name": "public", "category": "public"}) == []
    assert validate_public_fields({"product_name": "after_click"}) == ["product_name must be public"]
    assert validate_public_fields({}) == []


def test_field_counts_cover_every_level():
    counts = get_field_counts({"a": "public", "b": "after_rfq", "c": "after_rfq"})
    assert counts == {"public": 1, "after_click": 0, "after_rfq": 2}


def test_uniform_level_keeps_required_fields_public():
    updated = apply_uniform_level(
        {"product_name": "public", "price": "public", "description": "public"},
        "after_click",
    )
    assert updated == {"product_name": "public", "price": "after_click", "description": "after_click"}


def test_catalog_payload_lists_levels_in_order_and_presets():
    payload = get_catalog_payload()
    assert [row["id"] for row in payload["levels"]] == ["public", "after_click", "after_rfq"]
    assert len(payload["channel_presets"]) == len(CHANNEL_PRESETS)
    assert get_access_level_label(AccessLevel.after_rfq) == "Full Access"
    assert get_access_level_label(AccessLevel.public, short=True) == "Public"


def test_channel_preset_lookup():
    preset = get_channel_preset("trade_show_qr")
    assert preset is not None
    assert preset.access_level is AccessLevel.after_click
    assert preset.expires_in_days == 14
    assert get_channel_preset("unknown") is None
    assert get_channel_preset(None) is None
