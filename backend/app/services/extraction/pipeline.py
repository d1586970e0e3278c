"""Document extraction pipeline and AI-assisted product data merge."""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from app.config import get_settings
from app.models.document import AnalysisStatus, DocumentExtraction
from app.services.access.resolver import UPLOADED_FILES_FIELD
from app.services.extraction.cache import ExtractionCache
from app.services.extraction.documents import (
    DocumentContent,
    DocumentContentError,
    extract_document_content,
)
from app.services.extraction.parsing import (
    GROUPED_KEY,
    ExtractionParseError,
    coerce_extracted_values,
    fallback_merge,
    flatten_extracted_values,
    parse_model_json,
)
from app.services.industries import IndustrySchema, load_industry_schema
from app.services.llm.orchestrator import LLMOrchestrator
from app.services.llm.types import (
    LLMAttachment,
    LLMOrchestrationError,
    LLMRequest,
    LLMStage,
)
from app.services.storage import DocumentStorage, StorageError

logger = logging.getLogger(__name__)

VISION_ONLY_PROMPT = "Please extract all relevant information from this document."
USER_FACING_FAILURE = "Unable to analyze document. The file may be corrupted or in an unsupported format."


class DocumentExtractionPipeline:
    """Runs one document through download, preparation, the model and persistence.

    Collaborators are injectable so workers share one orchestrator and
    tests can substitute fakes.
    """

    def __init__(
        self,
        storage: Optional[DocumentStorage] = None,
        orchestrator: Optional[LLMOrchestrator] = None,
        cache: Optional[ExtractionCache] = None,
    ) -> None:
        self._settings = get_settings()
        self.storage = storage or DocumentStorage()
        self.orchestrator = orchestrator or LLMOrchestrator()
        self.cache = cache

    def build_request(
        self,
        schema: IndustrySchema,
        content: DocumentContent,
        data: bytes,
        mime_type: str,
        filename: str,
    ) -> LLMRequest:
        prompt_parts: List[str] = []
        attachments: List[LLMAttachment] = []
        if content.text:
            prompt_parts.append(f"Document content (extracted text):\n\n{content.text}")
        if content.needs_vision:
            attachments.append(LLMAttachment(data=data, mime_type=mime_type, filename=filename))
        if not prompt_parts:
            prompt_parts.append(VISION_ONLY_PROMPT)
        return LLMRequest(
            stage=LLMStage.document_extraction,
            prompt="\n\n".join(prompt_parts),
            system_prompt=schema.extraction_prompt(),
            attachments=attachments,
            timeout_seconds=self._settings.stage_extraction_timeout_seconds,
            temperature=self._settings.extraction_temperature,
            max_tokens=self._settings.extraction_max_tokens,
            expect_json=True,
            metadata={"filename": filename, "document_type": content.document_type},
        )

    def run_model(self, schema: IndustrySchema, data: bytes, mime_type: str, filename: str) -> Dict[str, Any]:
        """Prepare content, call the model and return normalized values (no persistence)."""
        content = extract_document_content(data, mime_type, filename)
        request = self.build_request(schema, content, data, mime_type, filename)
        response = self.orchestrator.run_stage(request)
        parsed = parse_model_json(response.text)
        values = coerce_extracted_values(flatten_extracted_values(parsed), schema)
        return {
            "values": values,
            "raw_text": response.text,
            "provider": response.provider,
            "model": response.model,
            "attempts": [row.to_dict() for row in response.attempts],
            "content_metadata": content.metadata,
        }

    def extract(self, db, document: DocumentExtraction) -> DocumentExtraction:
        """Analyze ``document`` and persist the outcome on it.

        Failures are recorded as ``failed`` with an error message rather than raised.
        """
        document.analysis_status = AnalysisStatus.analyzing
        document.error_message = None
        db.commit()

        try:
            schema = load_industry_schema(document.industry_code)
            data = self.storage.download_bytes(document.storage_path)
            content_hash = document.content_sha256 or hashlib.sha256(data).hexdigest()

            result = self.cache.get_json(content_hash, schema.code) if self.cache else None
            if result is None:
                result = self.run_model(schema, data, document.mime_type, document.filename)
                if self.cache:
                    self.cache.set_json(content_hash, schema.code, result)
            else:
                logger.info("Extraction cache hit for document %s", document.id)
        except (
            DocumentContentError,
            ExtractionParseError,
            LLMOrchestrationError,
            StorageError,
            ValueError,
        ) as exc:
            logger.error("Extraction failed for document %s: %s", document.id, exc)
            document.analysis_status = AnalysisStatus.failed
            document.error_message = str(exc)[:1000] or USER_FACING_FAILURE
            if isinstance(exc, ExtractionParseError):
                document.raw_extracted_data = exc.raw_text
            db.commit()
            return document

        values = result["values"]
        document.extracted_values = values
        document.raw_extracted_data = result["raw_text"]
        document.document_type = values.get("document_type")
        document.confidence_score = values.get("confidence_score")
        document.file_summary = {
            "document_type": values.get("document_type"),
            "confidence_score": values.get("confidence_score"),
            "provider": result.get("provider"),
            "model": result.get("model"),
            "content": result.get("content_metadata") or {},
            "attempts": result.get("attempts") or [],
        }
        document.analysis_status = AnalysisStatus.completed
        document.error_message = None
        document.updated_at = datetime.utcnow()
        db.commit()
        logger.info(
            "Extracted %s fields from document %s (%s)",
            len(values) - 1,
            document.id,
            document.document_type,
        )
        return document


def merge_product_data(
    current: Mapping[str, Any],
    new_fields: Mapping[str, Any],
    schema: IndustrySchema,
    orchestrator: Optional[LLMOrchestrator] = None,
) -> Dict[str, Any]:
    """Merge newly extracted fields into existing form data.

    Uses the merge model when it returns a usable object, otherwise the
    deterministic ``fallback_merge``. Model output is coerced against the
    industry catalog and may not touch ``uploaded_files``.
    """
    settings = get_settings()
    orchestrator = orchestrator or LLMOrchestrator()
    prompt = (
        f"CURRENT FORM DATA:\n{json.dumps(dict(current or {}), indent=2, default=str)}\n\n"
        f"NEW EXTRACTED FIELDS:\n{json.dumps(dict(new_fields or {}), indent=2, default=str)}\n\n"
        "Now merge the data:"
    )
    request = LLMRequest(
        stage=LLMStage.data_merge,
        prompt=prompt,
        system_prompt=schema.merge_prompt(),
        timeout_seconds=settings.stage_merge_timeout_seconds,
        temperature=settings.extraction_temperature,
        max_tokens=settings.extraction_max_tokens,
        expect_json=True,
    )
    try:
        response = orchestrator.run_stage(request)
        merged = parse_model_json(response.text)
    except (LLMOrchestrationError, ExtractionParseError) as exc:
        logger.warning("Merge model output unusable, using fallback merge: %s", exc)
        return fallback_merge(current, new_fields)
    merged = coerce_extracted_values(merged, schema)
    if not merged.get(GROUPED_KEY):
        merged.pop(GROUPED_KEY, None)
    merged.pop(UPLOADED_FILES_FIELD, None)
    if UPLOADED_FILES_FIELD in (current or {}):
        merged[UPLOADED_FILES_FIELD] = current[UPLOADED_FILES_FIELD]
    logger.info("Merged %s new fields via %s:%s", len(new_fields or {}), response.provider, response.model)
    return merged
