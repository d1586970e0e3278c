from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from google import genai
from google.genai import types

from app.config import get_settings
from app.services.llm.types import LLMAttachment, LLMProviderError, classify_retryable_error

logger = logging.getLogger(__name__)


class GeminiProvider:
    name = "gemini"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.gemini_api_key:
            raise LLMProviderError("GEMINI_API_KEY not configured", retryable=False)
        self._client = genai.Client(api_key=settings.gemini_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        timeout_seconds: int,
        system_prompt: Optional[str] = None,
        attachments: Sequence[LLMAttachment] = (),
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        contents: List[Any] = [
            types.Part.from_bytes(data=item.data, mime_type=item.mime_type) for item in attachments
        ]
        contents.append(prompt)
        cfg = types.GenerateContentConfig(
            system_instruction=system_prompt or None,
            temperature=temperature,
            max_output_tokens=max_tokens,
            http_options=types.HttpOptions(timeout=int(timeout_seconds) * 1000),
        )
        try:
            response = self._client.models.generate_content(
                model=model,
                contents=contents,
                config=cfg,
            )
            return str(response.text or "").strip()
        except Exception as exc:
            logger.warning("Gemini call failed (model=%s): %s", model, exc)
            raise LLMProviderError(str(exc), retryable=classify_retryable_error(exc)) from exc
