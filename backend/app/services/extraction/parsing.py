"""Parsing and normalization of model output. Model output is untrusted."""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional

from app.services.industries.schema import FieldSpec, IndustrySchema

GROUPED_KEY = "_grouped"
META_KEYS = {"document_type", "confidence_score"}

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)
_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


class ExtractionParseError(ValueError):
    def __init__(self, message: str, *, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


def strip_code_fences(text: str) -> str:
    cleaned = str(text or "").strip()
    match = _FENCE_RE.match(cleaned)
    return match.group(1).strip() if match else cleaned


def parse_model_json(text: str) -> Dict[str, Any]:
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        # Some models wrap the object in prose.
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start < 0 or end <= start:
            raise ExtractionParseError("Model response is not valid JSON", raw_text=text)
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ExtractionParseError(f"Model response is not valid JSON: {exc}", raw_text=text) from exc
    if not isinstance(parsed, dict):
        raise ExtractionParseError("Model response is not a JSON object", raw_text=text)
    return parsed


def is_empty_value(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def flatten_extracted_values(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten ``_grouped`` into ``group.field`` keys alongside the flat fields.

    The grouped structure is kept under ``_grouped``.
    """
    flattened: Dict[str, Any] = {}
    grouped = data.get(GROUPED_KEY) if isinstance(data.get(GROUPED_KEY), dict) else {}
    for group_key, group_data in grouped.items():
        if not isinstance(group_data, dict):
            continue
        for field_key, field_value in group_data.items():
            if not is_empty_value(field_value):
                flattened[f"{group_key}.{field_key}"] = field_value

    for key, value in data.items():
        if key == GROUPED_KEY or is_empty_value(value):
            continue
        flattened[key] = value

    flattened[GROUPED_KEY] = grouped
    return flattened


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    match = _NUMBER_RE.search(str(value))
    if not match:
        return None
    number = float(match.group(0).replace(",", "."))
    return int(number) if number.is_integer() else number


def _coerce_list(value: Any) -> Optional[List[Any]]:
    if isinstance(value, (list, tuple)):
        items = [item for item in value if not is_empty_value(item)]
    elif isinstance(value, str):
        items = [part.strip() for part in re.split(r"[,;\n]", value) if part.strip()]
    else:
        return None
    return items or None


def _coerce_choice(value: Any, choices: tuple) -> Optional[str]:
    if isinstance(value, bool):
        value = "Yes" if value else "No"
    text = str(value).strip().lower()
    for choice in choices:
        if choice.lower() == text:
            return choice
    return None


def coerce_value(spec: FieldSpec, value: Any) -> Any:
    if spec.kind == "number":
        return _coerce_number(value)
    if spec.kind == "list":
        return _coerce_list(value)
    if spec.kind == "choice":
        return _coerce_choice(value, spec.choices)
    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def coerce_extracted_values(values: Mapping[str, Any], schema: IndustrySchema) -> Dict[str, Any]:
    """Drop empty values and coerce catalog fields to their declared kind.

    Values that cannot be coerced are discarded. Keys outside the catalog are
    kept as-is so document-specific data is not lost.
    """
    result: Dict[str, Any] = {}
    for key, value in values.items():
        if key == GROUPED_KEY:
            continue
        if is_empty_value(value):
            continue
        if key == "confidence_score":
            score = _coerce_number(value)
            if score is not None:
                result[key] = max(0.0, min(1.0, float(score)))
            continue
        spec = schema.field_spec(key)
        if spec is None:
            result[key] = value
            continue
        coerced = coerce_value(spec, value)
        if coerced is not None:
            result[key] = coerced

    grouped: Dict[str, Dict[str, Any]] = {}
    raw_grouped = values.get(GROUPED_KEY) if isinstance(values.get(GROUPED_KEY), dict) else {}
    for group_key, group_data in raw_grouped.items():
        if not isinstance(group_data, dict):
            continue
        clean_group: Dict[str, Any] = {}
        for field_key, field_value in group_data.items():
            if is_empty_value(field_value):
                continue
            spec = schema.field_spec(f"{group_key}.{field_key}")
            coerced = coerce_value(spec, field_value) if spec else field_value
            if coerced is not None:
                clean_group[field_key] = coerced
        if clean_group:
            grouped[group_key] = clean_group
    result[GROUPED_KEY] = grouped
    return result


def _dedupe(items: List[Any]) -> List[Any]:
    seen: List[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def fallback_merge(current: Mapping[str, Any], new_fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Deterministic merge: new values fill empty current values, lists are unioned."""
    merged = dict(current or {})
    for key, value in (new_fields or {}).items():
        if is_empty_value(value):
            continue
        existing = merged.get(key)
        if isinstance(value, list) and isinstance(existing, list):
            merged[key] = _dedupe([*existing, *value])
        elif isinstance(value, dict) and isinstance(existing, dict):
            merged[key] = fallback_merge(existing, value)
        elif is_empty_value(existing) or existing == 0:
            merged[key] = value
    return merged


def product_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Plain product fields from extracted or merged values.

    Grouped (``_grouped``) and dotted (``group.field``) keys are dropped: product
    permissions are keyed by plain field names, so nested copies would bypass them.
    """
    return {
        key: value
        for key, value in (values or {}).items()
        if not str(key).startswith("_") and "." not in str(key)
    }
