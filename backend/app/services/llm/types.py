from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class LLMStage(str, Enum):
    document_extraction = "document_extraction"
    data_merge = "data_merge"


@dataclass
class LLMAttachment:
    """Binary document passed to vision-capable models (images, PDFs)."""

    data: bytes
    mime_type: str
    filename: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64()}"


@dataclass
class LLMRequest:
    stage: LLMStage
    prompt: str
    system_prompt: Optional[str] = None
    attachments: List[LLMAttachment] = field(default_factory=list)
    timeout_seconds: int = 60
    temperature: float = 0.1
    max_tokens: int = 4000
    expect_json: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelAttemptTrace:
    stage: str
    provider: str
    model: str
    latency_ms: int
    status: str
    retry_count: int
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "provider": self.provider,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "status": self.status,
            "retry_count": self.retry_count,
            "error_class": self.error_class,
            "error_message": self.error_message,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }


@dataclass
class LLMResponse:
    text: str
    provider: str
    model: str
    attempts: List[ModelAttemptTrace] = field(default_factory=list)


class LLMOrchestrationError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        attempts: Optional[List[ModelAttemptTrace]] = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts or []


class LLMProviderError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def classify_retryable_error(exc: Exception) -> bool:
    text = str(exc).lower()
    if "rate limit" in text or "429" in text:
        return True
    if "timeout" in text or "timed out" in text:
        return True
    if "connection reset" in text or "connection aborted" in text:
        return True
    if "502" in text or "503" in text or "504" in text:
        return True
    return False


def now_iso() -> str:
    return datetime.utcnow().isoformat()
