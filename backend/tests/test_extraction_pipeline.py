import json

from app.models.document import AnalysisStatus, DocumentExtraction
from app.services.extraction.cache import ExtractionCache
from app.services.extraction.parsing import GROUPED_KEY
from app.services.extraction.pipeline import DocumentExtractionPipeline, merge_product_data
from app.services.industries import load_industry_schema
from app.services.llm.types import LLMOrchestrationError, LLMResponse, LLMStage
from app.services.storage import StorageError


class _FakeStorage:
    def __init__(self, data=b"", error=None):
        self.data = data
        self.error = error

    def download_bytes(self, key):
        if self.error:
            raise self.error
        return self.data


class _FakeOrchestrator:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.requests = []

    def run_stage(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return LLMResponse(text=self.text, provider="openai", model="gpt-4o")


class _FakeDb:
    def __init__(self):
        self.commits = 0

    def commit(self):
        self.commits += 1


class _FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value


MODEL_OUTPUT = json.dumps(
    {
        "document_type": "COA",
        "confidence_score": 0.93,
        "assay_min": "99.5%",
        "product_name": "Vitamin C",
        GROUPED_KEY: {"chemical": {"assay_min": 99.5}, "basic": {"product_name": "Vitamin C"}},
    }
)


def _document(mime_type="text/plain", filename="coa.txt"):
    return DocumentExtraction(
        id=1,
        organization_id=1,
        filename=filename,
        mime_type=mime_type,
        storage_path="1/abc.txt",
        industry_code="food_supplement",
        analysis_status=AnalysisStatus.pending,
    )


def test_extract_persists_normalized_values():
    orchestrator = _FakeOrchestrator(text=f"```json\n{MODEL_OUTPUT}\n```")
    pipeline = DocumentExtractionPipeline(storage=_FakeStorage(b"Assay: 99.5%"), orchestrator=orchestrator)
    db = _FakeDb()

    document = pipeline.extract(db, _document())

    assert document.analysis_status == AnalysisStatus.completed
    assert document.document_type == "COA"
    assert document.confidence_score == 0.93
    assert document.extracted_values["assay_min"] == 99.5
    assert document.extracted_values["chemical.assay_min"] == 99.5
    assert document.file_summary["provider"] == "openai"
    assert document.error_message is None
    assert db.commits == 2

    request = orchestrator.requests[0]
    assert request.stage == LLMStage.document_extraction
    assert "Assay: 99.5%" in request.prompt
    assert request.attachments == []
    assert request.expect_json is True


def test_vision_documents_are_sent_as_attachments():
    orchestrator = _FakeOrchestrator(text=MODEL_OUTPUT)
    pipeline = DocumentExtractionPipeline(storage=_FakeStorage(b"%PDF-1.4"), orchestrator=orchestrator)
    pipeline.extract(_FakeDb(), _document("application/pdf", "coa.pdf"))

    request = orchestrator.requests[0]
    assert len(request.attachments) == 1
    assert request.attachments[0].mime_type == "application/pdf"
    assert request.prompt == "Please extract all relevant information from this document."


def test_unparseable_output_marks_document_failed():
    pipeline = DocumentExtractionPipeline(
        storage=_FakeStorage(b"text"),
        orchestrator=_FakeOrchestrator(text="I could not read this file."),
    )
    document = pipeline.extract(_FakeDb(), _document())
    assert document.analysis_status == AnalysisStatus.failed
    assert "not valid JSON" in document.error_message
    assert document.raw_extracted_data == "I could not read this file."


def test_model_and_storage_failures_mark_document_failed():
    failing_model = DocumentExtractionPipeline(
        storage=_FakeStorage(b"text"),
        orchestrator=_FakeOrchestrator(error=LLMOrchestrationError("All model routes failed")),
    )
    assert failing_model.extract(_FakeDb(), _document()).analysis_status == AnalysisStatus.failed

    failing_storage = DocumentExtractionPipeline(
        storage=_FakeStorage(error=StorageError("missing object")),
        orchestrator=_FakeOrchestrator(text=MODEL_OUTPUT),
    )
    document = failing_storage.extract(_FakeDb(), _document())
    assert document.analysis_status == AnalysisStatus.failed
    assert document.error_message == "missing object"


def test_cache_hit_skips_the_model():
    cache = ExtractionCache(client=_FakeRedis())
    first = _FakeOrchestrator(text=MODEL_OUTPUT)
    DocumentExtractionPipeline(storage=_FakeStorage(b"same bytes"), orchestrator=first, cache=cache).extract(
        _FakeDb(), _document()
    )
    assert len(first.requests) == 1

    second = _FakeOrchestrator(error=AssertionError("model should not be called"))
    document = DocumentExtractionPipeline(
        storage=_FakeStorage(b"same bytes"), orchestrator=second, cache=cache
    ).extract(_FakeDb(), _document())
    assert second.requests == []
    assert document.analysis_status == AnalysisStatus.completed
    assert document.document_type == "COA"


def test_merge_uses_model_output():
    schema = load_industry_schema("food_supplement")
    orchestrator = _FakeOrchestrator(text='{"product_name": "Vitamin C", "assay_min": 99.5}')
    merged = merge_product_data({"product_name": "Vitamin C"}, {"assay_min": 99.5}, schema, orchestrator=orchestrator)
    assert merged == {"product_name": "Vitamin C", "assay_min": 99.5}
    assert orchestrator.requests[0].stage == LLMStage.data_merge


def test_merge_falls_back_when_model_fails():
    schema = load_industry_schema("food_supplement")
    merged = merge_product_data(
        {"product_name": "Vitamin C", "certificates": ["ISO"]},
        {"certificates": ["Halal"], "origin_country": "China"},
        schema,
        orchestrator=_FakeOrchestrator(error=LLMOrchestrationError("down")),
    )
    assert merged == {"product_name": "Vitamin C", "certificates": ["ISO", "Halal"], "origin_country": "China"}


def test_merge_coerces_model_output_and_keeps_file_rows():
    schema = load_industry_schema("food_supplement")
    current = {"product_name": "Vitamin C", "uploaded_files": [{"file_id": 3, "filename": "coa.pdf"}]}
    orchestrator = _FakeOrchestrator(
        text=json.dumps(
            {
                "product_name": {"nested": True},
                "assay_min": "99.5%",
                "moisture_max": "unknown",
                "uploaded_files": [{"file_id": 999, "filename": "other-org.pdf"}],
            }
        )
    )
    merged = merge_product_data(current, {"assay_min": 99.5}, schema, orchestrator=orchestrator)
    assert merged == {"assay_min": 99.5, "uploaded_files": [{"file_id": 3, "filename": "coa.pdf"}]}


def test_merge_drops_invented_file_rows_when_product_has_none():
    schema = load_industry_schema("food_supplement")
    orchestrator = _FakeOrchestrator(text='{"product_name": "Vitamin C", "uploaded_files": [{"file_id": 42}]}')
    merged = merge_product_data({"product_name": "Vitamin C"}, {}, schema, orchestrator=orchestrator)
    assert merged == {"product_name": "Vitamin C"}
