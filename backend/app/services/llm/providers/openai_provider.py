from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import AzureOpenAI, OpenAI

from app.config import get_settings
from app.services.llm.types import LLMAttachment, LLMProviderError, classify_retryable_error

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """OpenAI chat completions; uses Azure OpenAI when an endpoint is configured.

    With Azure the route's model name is the deployment name.
    """

    name = "openai"

    def __init__(self) -> None:
        settings = get_settings()
        if settings.azure_openai_endpoint:
            if not settings.azure_openai_api_key:
                raise LLMProviderError("AZURE_OPENAI_API_KEY not configured", retryable=False)
            self._client = AzureOpenAI(
                api_key=settings.azure_openai_api_key,
                api_version=settings.azure_openai_api_version,
                azure_endpoint=settings.azure_openai_endpoint,
            )
        else:
            if not settings.openai_api_key:
                raise LLMProviderError("OPENAI_API_KEY not configured", retryable=False)
            self._client = OpenAI(api_key=settings.openai_api_key)

    @staticmethod
    def _user_content(prompt: str, attachments: Sequence[LLMAttachment]) -> Any:
        if not attachments:
            return prompt
        parts: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for item in attachments:
            if item.is_image:
                parts.append({"type": "image_url", "image_url": {"url": item.data_url(), "detail": "high"}})
            else:
                parts.append(
                    {
                        "type": "file",
                        "file": {"filename": item.filename or "document.pdf", "file_data": item.data_url()},
                    }
                )
        return parts

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
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": self._user_content(prompt, attachments)})
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout_seconds,
            )
            content = response.choices[0].message.content if response.choices else ""
            return str(content or "").strip()
        except Exception as exc:
            logger.warning("OpenAI call failed (model=%s): %s", model, exc)
            raise LLMProviderError(str(exc), retryable=classify_retryable_error(exc)) from exc
