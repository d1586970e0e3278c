"""Industry registry: per-industry field catalogs, document types and prompts."""
from __future__ import annotations

from typing import Dict, List

from .schema import (
    PRODUCT_LEVEL_FIELDS,
    DocumentType,
    FieldSpec,
    IndustrySchema,
    UnsupportedIndustryError,
)
from . import food_supplement

DEFAULT_INDUSTRY = food_supplement.INDUSTRY_CODE

_REGISTRY: Dict[str, IndustrySchema] = {
    food_supplement.INDUSTRY_CODE: food_supplement.SCHEMA,
}


def get_supported_industries() -> List[str]:
    return list(_REGISTRY)


def _normalize_code(industry_code: str) -> str:
    # Accept kebab-case codes as used in URLs.
    return str(industry_code or "").strip().lower().replace("-", "_")


def is_industry_supported(industry_code: str) -> bool:
    return _normalize_code(industry_code) in _REGISTRY


def get_default_industry() -> str:
    return DEFAULT_INDUSTRY


def load_industry_schema(industry_code: str) -> IndustrySchema:
    schema = _REGISTRY.get(_normalize_code(industry_code))
    if schema is None:
        raise UnsupportedIndustryError(industry_code)
    return schema


__all__ = [
    "DEFAULT_INDUSTRY",
    "PRODUCT_LEVEL_FIELDS",
    "DocumentType",
    "FieldSpec",
    "IndustrySchema",
    "UnsupportedIndustryError",
    "get_default_industry",
    "get_supported_industries",
    "is_industry_supported",
    "load_industry_schema",
]
