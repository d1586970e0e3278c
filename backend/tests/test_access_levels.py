import pytest

from app.services.access.levels import (
    ACCESS_LEVEL_ORDER,
    AccessLevel,
    InvalidAccessLevelError,
    access_rank,
    coerce_access_level,
    promote,
)


def test_levels_are_ordered_public_click_rfq():
    assert [level.value for level in ACCESS_LEVEL_ORDER] == ["public", "after_click", "after_rfq"]
    assert access_rank("public") < access_rank("after_click") < access_rank("after_rfq")


def test_coerce_accepts_strings_and_enum_members():
    assert coerce_access_level("after_click") is AccessLevel.after_click
    assert coerce_access_level(AccessLevel.after_rfq) is AccessLevel.after_rfq


@pytest.mark.parametrize("value", ["", "PUBLIC", "after-rfq", "admin", None, 1, ["public"]])
def test_coerce_rejects_out_of_domain_values(value):
    with pytest.raises(InvalidAccessLevelError) as excinfo:
        coerce_access_level(value)
    assert excinfo.value.value == value
    assert isinstance(excinfo.value, ValueError)


def test_promote_moves_forward_only():
    assert promote("public", "after_click") is AccessLevel.after_click
    assert promote("after_click", "after_rfq") is AccessLevel.after_rfq
    assert promote("public", "after_rfq") is AccessLevel.after_rfq

    assert promote("after_rfq", "public") is AccessLevel.after_rfq
    assert promote("after_rfq", "after_click") is AccessLevel.after_rfq
    assert promote("after_click", "public") is AccessLevel.after_click


def test_promote_never_lowers_any_level():
    for current in ACCESS_LEVEL_ORDER:
        for candidate in ACCESS_LEVEL_ORDER:
            result = promote(current, candidate)
            assert access_rank(result) >= access_rank(current)
            assert access_rank(result) == max(access_rank(current), access_rank(candidate))


def test_promote_validates_both_levels():
    with pytest.raises(InvalidAccessLevelError):
        promote("public", "vip")
    with pytest.raises(InvalidAccessLevelError):
        promote("vip", "public")
