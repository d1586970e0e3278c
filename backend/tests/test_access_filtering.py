from app.services.access.filtering import (
    field_preview,
    filter_product_fields,
    filter_product_payload,
    get_hidden_fields,
)


def _product():
    return {
        "id": 7,
        "product_name": "Vitamin C",
        "product_data": {
            "product_name": "Vitamin C",
            "description": "Ascorbic acid powder, food grade",
            "price": 12.5,
            "cas_number": "50-81-7",
            "certificates": ["ISO 22000", "Halal"],
            "uploaded_files": [
                {"file_id": 3, "filename": "coa.pdf", "document_type": "COA", "mime_type": "application/pdf"},
            ],
        },
        "field_permissions": {
            "product_name": "public",
            "description": "public",
            "price": "after_rfq",
            "cas_number": "after_click",
            "certificates": "after_click",
            "uploaded_files": "after_rfq",
        },
    }


def test_preview_never_leaks_numbers():
    assert field_preview(12.5) == "•••"
    assert field_preview(True) == "•••"
    assert field_preview(["a", "b"]) == "2 items"
    assert field_preview(["a"]) == "1 item"
    assert field_preview({"a": 1}) == "[Hidden]"
    assert field_preview("short") == "•••"
    assert field_preview("x" * 30) == "x" * 8 + "..."
    assert field_preview(None) == ""


def test_public_viewer_gets_lock_metadata_instead_of_values():
    product = _product()
    filtered = filter_product_fields(product["product_data"], product["field_permissions"], "public")

    assert filtered["description"] == "Ascorbic acid powder, food grade"
    assert filtered["price"] == {"_locked": True, "_required_level": "after_rfq", "_preview": "•••"}
    assert filtered["cas_number"]["_required_level"] == "after_click"
    assert filtered["certificates"]["_preview"] == "2 items"
    assert filtered["uploaded_files"] == product["product_data"]["uploaded_files"]


def test_locked_fields_can_be_nulled():
    product = _product()
    filtered = filter_product_fields(
        product["product_data"], product["field_permissions"], "after_click", include_locked=False
    )
    assert filtered["price"] is None
    assert filtered["cas_number"] == "50-81-7"


def test_after_rfq_returns_data_unchanged():
    product = _product()
    assert filter_product_fields(product["product_data"], product["field_permissions"], "after_rfq") == product["product_data"]


def test_hidden_fields_listing():
    product = _product()
    assert sorted(get_hidden_fields(product["field_permissions"], "public")) == ["cas_number", "certificates", "price"]
    assert get_hidden_fields(product["field_permissions"], "after_click") == ["price"]
    assert get_hidden_fields(product["field_permissions"], "after_rfq") == []


def test_payload_lists_files_at_every_level_but_downloads_only_after_rfq():
    product = _product()

    public = filter_product_payload(product, "public")
    assert "field_permissions" not in public
    assert public["_access_level"] == "public"
    assert public["_filtered"] is True
    assert public["_can_download"] is False
    assert public["_locked_count"] == 3
    files = public["product_data"]["uploaded_files"]
    assert files == [
        {"file_id": 3, "filename": "coa.pdf", "document_type": "COA", "mime_type": "application/pdf", "downloadable": False}
    ]

    full = filter_product_payload(product, "after_rfq")
    assert full["_filtered"] is False
    assert full["_can_download"] is True
    assert full["product_data"]["price"] == 12.5
    assert full["product_data"]["uploaded_files"][0]["downloadable"] is True


def test_payload_does_not_mutate_input():
    product = _product()
    filter_product_payload(product, "public")
    assert product["product_data"]["price"] == 12.5
    assert "field_permissions" in product


def test_short_hidden_strings_never_reach_the_client():
    filtered = filter_product_fields(
        {"price": "USD 12.50/kg", "cas_number": "50-81-7"},
        {"price": "after_rfq", "cas_number": "after_click"},
        "public",
    )
    assert "USD 12.50/kg" not in repr(filtered)
    assert "50-81-7" not in repr(filtered)
    assert filtered["price"]["_preview"] == "•••"


def test_long_hidden_string_preview_is_a_strict_prefix():
    value = "Ascorbic acid, fine granular, 99.5% assay"
    preview = field_preview(value)
    assert preview == "Ascorbic..."
    assert value not in preview


def test_locked_count_ignores_fields_without_data():
    product = _product()
    product["field_permissions"]["price_lead_time"] = "after_rfq"
    product["product_data"]["moq"] = ""
    product["field_permissions"]["moq"] = "after_click"

    assert "price_lead_time" in get_hidden_fields(product["field_permissions"], "public")
    payload = filter_product_payload(product, "public")
    assert sorted(payload["_locked_fields"]) == ["cas_number", "certificates", "price"]
    assert payload["_locked_count"] == 3
