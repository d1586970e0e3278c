"""Industry schema types shared by every industry module."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from app.services.access.resolver import UPLOADED_FILES_FIELD

YES_NO_VALUES: Tuple[str, ...] = ("Yes", "No")
ALLERGEN_VALUES: Tuple[str, ...] = ("Yes", "No", "May Contain")
PRESENCE_VALUES: Tuple[str, ...] = ("Absent", "Present", "Unknown")

# Fields of the merchant product form that are not part of the extraction catalog.
PRODUCT_LEVEL_FIELDS: Tuple[str, ...] = (
    "product_name",
    "category",
    "description",
    "price_lead_time",
    "samples",
    "moq",
    "certificates",
    "assay",
)


class UnsupportedIndustryError(ValueError):
    def __init__(self, industry_code: str) -> None:
        super().__init__(f"Industry '{industry_code}' is not supported")
        self.industry_code = industry_code


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str  # string|number|list|choice
    choices: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentType:
    code: str
    name: str
    category: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "description": self.description,
        }


@dataclass(frozen=True)
class IndustrySchema:
    code: str
    name: str
    field_groups: Dict[str, List[FieldSpec]]
    document_types: List[DocumentType]
    extraction_prompt_builder: Callable[[], str]
    merge_prompt_builder: Callable[[], str]
    default_field_access: Dict[str, Any] = field(default_factory=dict)
    _specs_by_name: Dict[str, FieldSpec] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        specs = {spec.name: spec for specs in self.field_groups.values() for spec in specs}
        object.__setattr__(self, "_specs_by_name", specs)

    def extraction_prompt(self) -> str:
        return self.extraction_prompt_builder()

    def merge_prompt(self) -> str:
        return self.merge_prompt_builder()

    def field_spec(self, name: str) -> Optional[FieldSpec]:
        """Spec for a flat (``assay_min``) or grouped (``chemical.assay_min``) key."""
        if name in self._specs_by_name:
            return self._specs_by_name[name]
        group, _, field_name = name.partition(".")
        if field_name and any(spec.name == field_name for spec in self.field_groups.get(group, [])):
            return self._specs_by_name[field_name]
        return None

    @property
    def known_fields(self) -> FrozenSet[str]:
        return frozenset(self._specs_by_name) | frozenset(PRODUCT_LEVEL_FIELDS) | {UPLOADED_FILES_FIELD}

    def document_type_codes(self) -> List[str]:
        return [row.code for row in self.document_types]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "field_groups": {
                group: [
                    {"name": spec.name, "kind": spec.kind, "choices": list(spec.choices)}
                    for spec in specs
                ]
                for group, specs in self.field_groups.items()
            },
            "document_types": [row.to_dict() for row in self.document_types],
        }
