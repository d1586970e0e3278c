"""Document extraction: content preparation, model output parsing and the extraction pipeline."""

from .documents import (
    DocumentContent,
    DocumentContentError,
    detect_document_type,
    extract_document_content,
)
from .parsing import (
    ExtractionParseError,
    coerce_extracted_values,
    fallback_merge,
    flatten_extracted_values,
    parse_model_json,
    product_values,
    strip_code_fences,
)

__all__ = [
    "DocumentContent",
    "DocumentContentError",
    "detect_document_type",
    "extract_document_content",
    "ExtractionParseError",
    "coerce_extracted_values",
    "fallback_merge",
    "flatten_extracted_values",
    "parse_model_json",
    "product_values",
    "strip_code_fences",
]
