import pytest

from app.services.extraction.parsing import (
    GROUPED_KEY,
    ExtractionParseError,
    coerce_extracted_values,
    fallback_merge,
    flatten_extracted_values,
    parse_model_json,
    product_values,
    strip_code_fences,
)
from app.services.industries import load_industry_schema


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_parse_model_json_handles_fences_and_prose():
    assert parse_model_json('```json\n{"document_type": "COA"}\n```') == {"document_type": "COA"}
    assert parse_model_json('Here is the result: {"document_type": "TDS"} Thanks.') == {"document_type": "TDS"}


@pytest.mark.parametrize("text", ["", "not json", "[1, 2]", "{broken"])
def test_parse_model_json_rejects_non_objects(text):
    with pytest.raises(ExtractionParseError) as excinfo:
        parse_model_json(text)
    assert excinfo.value.raw_text == text


def test_flatten_keeps_grouped_and_top_level_values():
    data = {
        "document_type": "COA",
        "confidence_score": 0.92,
        "assay_min": 99,
        "description": "",
        GROUPED_KEY: {
            "chemical": {"assay_min": 99, "lead_max": None},
            "basic": {"product_name": "Vitamin C"},
            "broken": "not a dict",
        },
    }
    flat = flatten_extracted_values(data)
    assert flat["chemical.assay_min"] == 99
    assert flat["basic.product_name"] == "Vitamin C"
    assert "chemical.lead_max" not in flat
    assert flat["assay_min"] == 99
    assert "description" not in flat
    assert flat[GROUPED_KEY] is data[GROUPED_KEY]


def test_coerce_follows_field_catalog():
    schema = load_industry_schema("food_supplement")
    values = {
        "document_type": "COA",
        "confidence_score": 1.7,
        "assay_min": "99.5%",
        "chemical.lead_max": "0,5 ppm",
        "moisture_max": "unknown",
        "application": "Beverages; Tablets, Capsules",
        "is_gmo": False,
        "contains_soy": "may contain",
        "salmonella": "maybe",
        "product_name": {"nested": True},
        "custom_note": "kept as-is",
        GROUPED_KEY: {"chemical": {"assay_min": "98", "moisture_max": "n/a"}},
    }
    coerced = coerce_extracted_values(values, schema)

    assert coerced["document_type"] == "COA"
    assert coerced["confidence_score"] == 1.0
    assert coerced["assay_min"] == 99.5
    assert coerced["chemical.lead_max"] == 0.5
    assert "moisture_max" not in coerced
    assert coerced["application"] == ["Beverages", "Tablets", "Capsules"]
    assert coerced["is_gmo"] == "No"
    assert coerced["contains_soy"] == "May Contain"
    assert "salmonella" not in coerced
    assert "product_name" not in coerced
    assert coerced["custom_note"] == "kept as-is"
    assert coerced[GROUPED_KEY] == {"chemical": {"assay_min": 98}}


def test_fallback_merge_fills_gaps_and_unions_lists():
    current = {
        "product_name": "Vitamin C",
        "description": "",
        "moq": 0,
        "certificates": ["ISO 22000"],
        "specs": {"assay": "99%", "lead": None},
    }
    new = {
        "product_name": "Ascorbic Acid",
        "description": "Food grade powder",
        "moq": 25,
        "certificates": ["Halal", "ISO 22000"],
        "specs": {"lead": "<0.5 ppm"},
        "origin_country": "China",
        "empty": None,
    }
    merged = fallback_merge(current, new)
    assert merged["product_name"] == "Vitamin C"
    assert merged["description"] == "Food grade powder"
    assert merged["moq"] == 25
    assert merged["certificates"] == ["ISO 22000", "Halal"]
    assert merged["specs"] == {"assay": "99%", "lead": "<0.5 ppm"}
    assert merged["origin_country"] == "China"
    assert "empty" not in merged
    assert current["description"] == ""


def test_product_values_drop_grouped_and_dotted_keys():
    values = {
        "product_name": "Vitamin C",
        "price": 12,
        "commercial.price": 12,
        GROUPED_KEY: {"commercial": {"price": 12}},
        "uploaded_files": [],
    }
    assert product_values(values) == {"product_name": "Vitamin C", "price": 12, "uploaded_files": []}
