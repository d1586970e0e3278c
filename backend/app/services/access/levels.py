"""Access levels: the ordered disclosure tiers and the viewer ratchet."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List


class AccessLevel(str, Enum):
    public = "public"
    after_click = "after_click"
    after_rfq = "after_rfq"


ACCESS_LEVEL_ORDER: List[AccessLevel] = [
    AccessLevel.public,
    AccessLevel.after_click,
    AccessLevel.after_rfq,
]

_RANK: Dict[AccessLevel, int] = {level: index for index, level in enumerate(ACCESS_LEVEL_ORDER)}


class InvalidAccessLevelError(ValueError):
    def __init__(self, value: Any) -> None:
        allowed = ", ".join(level.value for level in ACCESS_LEVEL_ORDER)
        super().__init__(f"Invalid access level {value!r}. Must be one of: {allowed}")
        self.value = value


def coerce_access_level(value: Any) -> AccessLevel:
    """Strictly map a string or AccessLevel to AccessLevel.

    Out-of-domain input raises instead of falling back to ``public``.
    """
    if isinstance(value, AccessLevel):
        return value
    if isinstance(value, str):
        try:
            return AccessLevel(value)
        except ValueError:
            pass
    raise InvalidAccessLevelError(value)


def access_rank(value: Any) -> int:
    return _RANK[coerce_access_level(value)]


def promote(current: Any, candidate: Any) -> AccessLevel:
    """Advance a viewer to ``candidate`` unless that would move them backward."""
    current_level = coerce_access_level(current)
    candidate_level = coerce_access_level(candidate)
    if _RANK[candidate_level] > _RANK[current_level]:
        return candidate_level
    return current_level
