from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis

from app.config import get_settings

logger = logging.getLogger(__name__)


class ExtractionCache:
    """Redis cache of parsed extraction results keyed by content hash and industry."""

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        settings = get_settings()
        self._client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self._ttl_seconds = settings.extraction_cache_ttl_seconds

    @staticmethod
    def _key(content_sha256: str, industry_code: str) -> str:
        return f"extraction:{industry_code}:{content_sha256}"

    def get_json(self, content_sha256: str, industry_code: str) -> Optional[Any]:
        key = self._key(content_sha256, industry_code)
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning("Extraction cache read failed for %s: %s", key, exc)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed cache entry %s", key)
            return None

    def set_json(self, content_sha256: str, industry_code: str, value: Any) -> None:
        key = self._key(content_sha256, industry_code)
        try:
            self._client.setex(key, max(1, int(self._ttl_seconds)), json.dumps(value))
        except redis.RedisError as exc:
            logger.warning("Extraction cache write failed for %s: %s", key, exc)
