from app.services.llm.orchestrator import LLMOrchestrator
from app.services.llm.types import (
    LLMAttachment,
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMStage,
    classify_retryable_error,
)


class _FakeProvider:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        timeout_seconds: int,
        system_prompt=None,
        attachments=(),
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ):
        self.calls.append(
            {
                "model": model,
                "system_prompt": system_prompt,
                "attachments": list(attachments),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if not self._responses:
            return ""
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return str(nxt)


def test_orchestrator_falls_back_to_next_provider(monkeypatch):
    orchestrator = LLMOrchestrator()
    orchestrator._settings.stage_retry_backoff_seconds = 0
    routes = [("gemini", "gemini-2.0-flash"), ("openai", "gpt-4o")]
    monkeypatch.setattr(orchestrator, "_routes_for_stage", lambda _stage: routes)
    providers = {
        "gemini": _FakeProvider([LLMProviderError("schema invalid", retryable=False)]),
        "openai": _FakeProvider(['{"document_type": "COA", "confidence_score": 0.9}']),
    }
    monkeypatch.setattr(orchestrator, "_provider", lambda name: providers[name])

    response = orchestrator.run_stage(
        LLMRequest(
            stage=LLMStage.document_extraction,
            prompt="Extract.",
            system_prompt="You are an expert.",
            attachments=[LLMAttachment(data=b"%PDF-1.4", mime_type="application/pdf", filename="coa.pdf")],
            timeout_seconds=30,
            temperature=0.2,
            max_tokens=2000,
            expect_json=True,
        )
    )
    assert response.provider == "openai"
    assert response.model == "gpt-4o"
    assert len(response.attempts) == 2
    assert response.attempts[0].provider == "gemini"
    assert response.attempts[0].status == "terminal_error"
    assert response.attempts[1].provider == "openai"

    call = providers["openai"].calls[0]
    assert call["system_prompt"] == "You are an expert."
    assert call["attachments"][0].filename == "coa.pdf"
    assert call["temperature"] == 0.2
    assert call["max_tokens"] == 2000


def test_orchestrator_retries_retryable_provider_errors(monkeypatch):
    orchestrator = LLMOrchestrator()
    orchestrator._settings.stage_retry_backoff_seconds = 0
    orchestrator._settings.stage_retry_max_attempts = 2
    monkeypatch.setattr(orchestrator, "_routes_for_stage", lambda _stage: [("anthropic", "claude-sonnet")])
    provider = _FakeProvider(
        [
            LLMProviderError("timeout", retryable=True),
            '{"product_name": "Vitamin C"}',
        ]
    )
    monkeypatch.setattr(orchestrator, "_provider", lambda _name: provider)

    response = orchestrator.run_stage(
        LLMRequest(
            stage=LLMStage.data_merge,
            prompt="Merge.",
            timeout_seconds=20,
            expect_json=True,
        )
    )
    assert response.provider == "anthropic"
    assert len(response.attempts) == 2
    assert response.attempts[0].status == "retryable_error"
    assert response.attempts[1].status == "success"
    assert response.attempts[1].retry_count == 1


def test_orchestrator_raises_when_all_routes_fail(monkeypatch):
    orchestrator = LLMOrchestrator()
    orchestrator._settings.stage_retry_backoff_seconds = 0
    monkeypatch.setattr(orchestrator, "_routes_for_stage", lambda _stage: [("gemini", "gemini-2.0-flash")])
    monkeypatch.setattr(
        orchestrator,
        "_provider",
        lambda _name: _FakeProvider([LLMProviderError("schema invalid", retryable=False)]),
    )

    try:
        orchestrator.run_stage(
            LLMRequest(
                stage=LLMStage.document_extraction,
                prompt="Extract.",
                timeout_seconds=20,
            )
        )
    except LLMOrchestrationError as exc:
        assert exc.attempts
        assert exc.attempts[0].status in {"terminal_error", "retryable_error"}
        assert exc.attempts[0].to_dict()["provider"] == "gemini"
    else:  # pragma: no cover - defensive
        raise AssertionError("Expected LLMOrchestrationError")


def test_unknown_provider_is_terminal():
    orchestrator = LLMOrchestrator()
    try:
        orchestrator._provider("mistral")
    except LLMProviderError as exc:
        assert exc.retryable is False
    else:  # pragma: no cover - defensive
        raise AssertionError("Expected LLMProviderError")


def test_retryable_classification():
    assert classify_retryable_error(TimeoutError("read timeout"))
    assert classify_retryable_error(RuntimeError("429 Too Many Requests"))
    assert not classify_retryable_error(ValueError("invalid schema"))
