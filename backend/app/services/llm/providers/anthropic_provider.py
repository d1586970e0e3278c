from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from anthropic import Anthropic

from app.config import get_settings
from app.services.llm.types import LLMAttachment, LLMProviderError, classify_retryable_error

logger = logging.getLogger(__name__)


class AnthropicProvider:
    name = "anthropic"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.anthropic_api_key:
            raise LLMProviderError("ANTHROPIC_API_KEY not configured", retryable=False)
        self._client = Anthropic(api_key=settings.anthropic_api_key)

    @staticmethod
    def _content_blocks(prompt: str, attachments: Sequence[LLMAttachment]) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []
        for item in attachments:
            block_type = "image" if item.is_image else "document"
            blocks.append(
                {
                    "type": block_type,
                    "source": {"type": "base64", "media_type": item.mime_type, "data": item.b64()},
                }
            )
        blocks.append({"type": "text", "text": prompt})
        return blocks

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
        kwargs: Dict[str, Any] = {}
        if system_prompt:
            kwargs["system"] = system_prompt
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": self._content_blocks(prompt, attachments)}],
                timeout=timeout_seconds,
                **kwargs,
            )
            text_parts = []
            for block in getattr(response, "content", []) or []:
                value = getattr(block, "text", None)
                if value:
                    text_parts.append(str(value))
            return "\n".join(text_parts).strip()
        except Exception as exc:
            logger.warning("Anthropic call failed (model=%s): %s", model, exc)
            raise LLMProviderError(str(exc), retryable=classify_retryable_error(exc)) from exc
