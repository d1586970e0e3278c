"""Food supplement and ingredient industry: field catalog, document types and prompts."""
from __future__ import annotations

import json
from typing import Dict, List

from app.services.access.defaults import DEFAULT_FIELD_ACCESS_POLICY
from app.services.industries.schema import (
    ALLERGEN_VALUES,
    PRESENCE_VALUES,
    YES_NO_VALUES,
    DocumentType,
    FieldSpec,
    IndustrySchema,
)

INDUSTRY_CODE = "food_supplement"
INDUSTRY_NAME = "Food Supplements & Ingredients"


def _fields(kind: str, *names: str) -> List[FieldSpec]:
    return [FieldSpec(name, kind) for name in names]


def _allergens(*names: str) -> List[FieldSpec]:
    return [FieldSpec(name, "choice", ALLERGEN_VALUES) for name in names]


def _presence(*names: str) -> List[FieldSpec]:
    return [FieldSpec(name, "choice", PRESENCE_VALUES) for name in names]


def _yes_no(*names: str) -> List[FieldSpec]:
    return [FieldSpec(name, "choice", YES_NO_VALUES) for name in names]


FIELD_GROUPS: Dict[str, List[FieldSpec]] = {
    "basic": [
        *_fields("string", "product_name", "product_aliases", "category", "description"),
        *_fields("list", "application"),
        *_fields(
            "string",
            "brand_name",
            "origin_country",
            "hs_code",
            "cas_number",
            "einecs_number",
            "appearance",
        ),
    ],
    "origin": _fields(
        "string",
        "source_type",
        "origin_material",
        "botanical_name",
        "plant_part_used",
        "wild_crafted_vs_cultivated",
        "processing_method",
        "extraction_solvent",
        "extraction_ratio",
        "standardization_marker",
        "carrier_material",
        "probiotic_strain",
    ),
    "physical": [
        *_fields("string", "form", "color", "odor", "taste", "particle_size_range", "mesh_size"),
        *_fields("number", "bulk_density"),
        *_fields("string", "solubility_water", "solubility_ethanol", "dispersion_properties", "viscosity"),
    ],
    "chemical": [
        *_fields("number", "assay_min", "assay_max"),
        *_fields("string", "main_component", "chemical_formula"),
        *_fields("number", "molecular_weight"),
        *_fields("string", "ph_value"),
        *_fields("number", "moisture_max", "ash_max"),
        *_fields("string", "residual_solvents"),
        *_fields("number", "heavy_metals_max", "lead_max", "arsenic_max", "cadmium_max", "mercury_max"),
        *_fields("string", "pesticide_residue"),
        *_fields("number", "aflatoxins_max", "ochratoxin_a_max", "pahs_max"),
        *_fields("string", "ethylene_oxide"),
        *_fields("number", "glyphosate_max"),
        *_yes_no("radiation_treatment"),
        *_fields("number", "sulfite_content"),
        *_fields("string", "amino_acid_profile"),
    ],
    "microbial": [
        *_fields("number", "total_plate_count_max", "yeast_mold_max"),
        *_fields("string", "coliforms"),
        *_presence("e_coli", "salmonella", "staphylococcus_aureus", "listeria"),
        *_fields("number", "probiotic_cfu_guarantee"),
        *_fields("string", "probiotic_viability_method"),
    ],
    "nutrition": [
        *_fields("number", "energy", "protein"),
        *_fields("string", "protein_digestibility_score"),
        *_fields("number", "carbohydrates", "sugars", "fiber", "fat", "saturated_fat", "sodium"),
    ],
    "allergen": [
        *_allergens(
            "contains_peanuts",
            "contains_tree_nuts",
            "contains_milk",
            "contains_eggs",
            "contains_fish",
            "contains_shellfish",
            "contains_soy",
            "contains_wheat",
            "contains_sesame",
            "contains_sulfites",
            "contains_celery",
            "contains_mustard",
            "contains_lupin",
        ),
        *_fields("string", "allergen_statement"),
    ],
    "health_usage": _fields(
        "string",
        "health_benefits",
        "recommended_dosage",
        "contraindications",
        "warnings",
        "gras_status",
        "gras_number",
        "ndi_status",
        "novel_food_status_eu",
        "health_claims_approved",
    ),
    "formulation": _fields(
        "string",
        "recommended_usage_level_formulation",
        "compatibility",
        "stability_data",
        "ph_stability_range",
        "heat_stability",
        "light_stability",
        "moisture_sensitivity",
        "technical_support_available",
    ),
    "quality": [
        *_fields("list", "specification_standard"),
        *_fields("string", "test_methods_used", "batch_testing_frequency", "coa_per_batch", "third_party_testing"),
    ],
    "compliance": [
        *_yes_no("is_gmo", "is_organic"),
        *_fields("string", "organic_certification_body"),
        *_fields("list", "regulatory_compliance"),
        *_fields("string", "prop65_compliance", "regulatory_restrictions"),
        *_yes_no(
            "halal_certified",
            "kosher_certified",
            "vegan_certified",
            "non_gmo_certified",
            "gluten_free_certified",
        ),
    ],
    "packaging": [
        *_fields("list", "packaging_type"),
        *_fields(
            "string",
            "inner_packaging",
            "net_weight_per_package",
            "gross_weight_per_package",
            "package_dimensions",
        ),
        *_fields("number", "packages_per_pallet"),
        *_fields("string", "container_20ft_capacity", "container_40ft_capacity"),
        *_yes_no("food_grade_packaging"),
        *_fields("string", "custom_packaging_available", "private_label_available"),
    ],
    "supplier": [
        *_fields("string", "manufacturer_name", "factory_address", "production_capacity_annual"),
        *_fields("number", "established_year"),
        *_fields("string", "traceability_system", "batch_coding_system", "customer_audit_accepted"),
        *_fields("list", "main_export_markets"),
    ],
    "sustainability": [
        *_yes_no("fair_trade_certified", "rainforest_alliance"),
        *_fields("string", "sustainable_sourcing"),
        *_fields("list", "social_responsibility"),
    ],
    "commercial": [
        *_fields("number", "price"),
        *_fields("string", "currency", "price_validity"),
        *_fields("number", "moq", "lead_time_days", "shelf_life_months"),
        *_fields(
            "string",
            "remaining_shelf_life_guarantee",
            "spot_contract",
            "incoterm",
            "delivery_port",
            "delivery_from_country",
            "payment_terms",
            "sample_availability",
            "sample_quantity",
            "sample_lead_time",
            "storage_temperature",
            "storage_conditions",
            "volume_discount_available",
            "warranty_policy",
            "issue_date",
            "expiration_date",
        ),
    ],
}

DOCUMENT_TYPES: List[DocumentType] = [
    DocumentType("COA", "Certificate of Analysis", "technical_quality", "Lab test results with analytical data"),
    DocumentType("TDS", "Technical Data Sheet", "technical_quality", "Technical specifications and properties"),
    DocumentType("MSDS", "Material Safety Data Sheet", "technical_quality", "Safety and handling information"),
    DocumentType("SDS", "Safety Data Sheet", "technical_quality", "Safety and handling information"),
    DocumentType("Specification_Sheet", "Specification Sheet", "technical_quality", "Product specifications and standards"),
    DocumentType("COO", "Certificate of Origin", "technical_quality", "Product origin certification"),
    DocumentType("Quality_Certificate", "Quality Certificate", "technical_quality", "Quality assurance certification"),
    DocumentType("Allergen_Statement", "Allergen Statement", "compliance_regulatory", "Allergen information and declarations"),
    DocumentType("Nutritional_Info", "Nutritional Information", "compliance_regulatory", "Nutritional facts and analysis"),
    DocumentType("Organic_Certificate", "Organic Certificate", "compliance_regulatory", "Organic certification documents"),
    DocumentType("Halal_Certificate", "Halal Certificate", "compliance_regulatory", "Halal certification"),
    DocumentType("Kosher_Certificate", "Kosher Certificate", "compliance_regulatory", "Kosher certification"),
    DocumentType("GMP_Certificate", "GMP Certificate", "compliance_regulatory", "Good Manufacturing Practice certification"),
    DocumentType("ISO_Certificate", "ISO Certificate", "compliance_regulatory", "ISO standard certifications"),
    DocumentType("FDA_Letter", "FDA Letter", "compliance_regulatory", "FDA notifications or approvals"),
    DocumentType("GRAS_Notice", "GRAS Notice", "compliance_regulatory", "Generally Recognized as Safe notices"),
    DocumentType("Product_Specification", "Product Specification", "product_information", "Detailed product specifications"),
    DocumentType("Product_Label", "Product Label", "product_information", "Product packaging and labeling information"),
    DocumentType("Product_Catalog", "Product Catalog", "product_information", "Product catalog or brochure"),
    DocumentType("Ingredient_List", "Ingredient List", "product_information", "Ingredient declarations and compositions"),
    DocumentType("Quote", "Quote", "business", "Price quotation"),
    DocumentType("Product_Offer", "Product Offer", "business", "Product offering sheet"),
    DocumentType("Sample_Information", "Sample Information", "business", "Sample details and conditions"),
    DocumentType("Certificate", "Certificate", "generic", "General certificate"),
]

CATEGORY_TITLES = {
    "technical_quality": "TECHNICAL & QUALITY DOCUMENTS",
    "compliance_regulatory": "COMPLIANCE & REGULATORY",
    "product_information": "PRODUCT INFORMATION",
    "business": "BUSINESS DOCUMENTS",
    "generic": "GENERIC",
}


def _field_hint(spec: FieldSpec) -> str:
    if spec.kind == "choice":
        return " | ".join(f'"{choice}"' for choice in spec.choices)
    if spec.kind == "list":
        return "string[]"
    return spec.kind


def _schema_block() -> str:
    skeleton: Dict[str, Dict[str, str]] = {
        group: {spec.name: _field_hint(spec) for spec in specs}
        for group, specs in FIELD_GROUPS.items()
    }
    return json.dumps(
        {"document_type": "string", "confidence_score": "number (0-1)", "_grouped": skeleton},
        indent=2,
    )


def _document_type_block() -> str:
    lines: List[str] = []
    for category, title in CATEGORY_TITLES.items():
        lines.append(f"{title}:")
        for row in DOCUMENT_TYPES:
            if row.category == category:
                lines.append(f"- {row.code} ({row.name}) - {row.description}")
        lines.append("")
    return "\n".join(lines).strip()


def get_extraction_system_prompt() -> str:
    return f"""You are an AI assistant specialized in extracting structured data from B2B food supplement and ingredient industry documents.

CRITICAL: Return ONLY valid JSON. No markdown, no explanation, no code blocks.

STEP 1: Identify the document type from its content, structure and purpose:

{_document_type_block()}

If the document does not fit any of these categories or is not relevant to B2B food/supplement trading, classify it as "Other".

STEP 2: Extract data.
For product-related documents extract every available field using the schema below.
For "Other" documents only extract basic information and leave product-specific fields empty.

Schema (field types shown as values):
{_schema_block()}

GUIDELINES:
1. Group extracted fields under "_grouped" by category, and ALSO repeat each extracted field at the top level.
2. For list fields extract ALL values mentioned.
3. confidence_score rates your confidence in the document type (0-1).
4. Leave fields null when they are not present in the document. Never guess.
"""


def get_merge_system_prompt() -> str:
    return """You are an intelligent data merger for a B2B food supplement product information system. Merge existing product form data with newly extracted fields from a document.

MERGE RULES:
1. Text fields: if the current value is empty use the new value. For descriptions combine both without duplicates. For single-value fields keep the current value when similar, otherwise prefer the more complete one. For technical specs prefer the newer, more specific value.
2. Arrays: merge and remove duplicates, keeping every unique item.
3. Numbers: if the current value is null or 0 use the new value. Keep the current value when the new one is null or 0.
4. Grouped fields ("_grouped"): apply the same rules per nested field and preserve the grouped structure.
5. Preserve field types. Do not convert numbers to strings.

OUTPUT: return ONLY a valid JSON object with the merged data, including BOTH flat fields and a "_grouped" property when grouped data exists. No explanations, no markdown.
"""


SCHEMA = IndustrySchema(
    code=INDUSTRY_CODE,
    name=INDUSTRY_NAME,
    field_groups=FIELD_GROUPS,
    document_types=DOCUMENT_TYPES,
    extraction_prompt_builder=get_extraction_system_prompt,
    merge_prompt_builder=get_merge_system_prompt,
    default_field_access=DEFAULT_FIELD_ACCESS_POLICY,
)
