"""Viewer-facing access level labels and channel link presets."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.services.access.levels import ACCESS_LEVEL_ORDER, AccessLevel


@dataclass(frozen=True)
class AccessLevelInfo:
    level: AccessLevel
    user_label: str
    short_label: str
    description: str
    tooltip: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.level.value,
            "user_label": self.user_label,
            "short_label": self.short_label,
            "description": self.description,
            "tooltip": self.tooltip,
        }


@dataclass(frozen=True)
class ChannelPreset:
    id: str
    name: str
    access_level: AccessLevel
    expires_in_days: int
    description: str
    category: str  # marketing|event|social

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "access_level": self.access_level.value,
            "expires_in_days": self.expires_in_days,
            "description": self.description,
            "category": self.category,
        }


ACCESS_LEVEL_CONFIG: Dict[AccessLevel, AccessLevelInfo] = {
    AccessLevel.public: AccessLevelInfo(
        AccessLevel.public,
        "Browse Mode",
        "Public",
        "Anyone can view basic product information",
        "Visible to all visitors browsing your product catalog",
    ),
    AccessLevel.after_click: AccessLevelInfo(
        AccessLevel.after_click,
        "Link Access",
        "Link",
        "People with your marketing links see more details",
        "Visible to recipients of your email campaigns, social posts, QR codes, etc.",
    ),
    AccessLevel.after_rfq: AccessLevelInfo(
        AccessLevel.after_rfq,
        "Full Access",
        "Full",
        "Complete information + downloads after requesting quote",
        "Automatically granted after submitting an RFQ (Request for Quote)",
    ),
}

CHANNEL_PRESETS: List[ChannelPreset] = [
    ChannelPreset("email_campaign", "Email Campaign", AccessLevel.after_click, 90, "For email marketing campaigns", "marketing"),
    ChannelPreset("linkedin_post", "LinkedIn Post", AccessLevel.after_click, 90, "Share on LinkedIn", "social"),
    ChannelPreset("trade_show_qr", "Trade Show QR", AccessLevel.after_click, 14, "QR code for events/expos", "event"),
    ChannelPreset("twitter_post", "Twitter/X Post", AccessLevel.after_click, 90, "Share on Twitter/X", "social"),
    ChannelPreset("facebook_post", "Facebook Post", AccessLevel.after_click, 90, "Share on Facebook", "social"),
    ChannelPreset("partner_link", "Partner/Distributor", AccessLevel.after_click, 365, "Long-term partner access", "marketing"),
]

CHANNEL_PRESETS_BY_ID = {row.id: row for row in CHANNEL_PRESETS}


def get_access_level_label(level: AccessLevel, short: bool = False) -> str:
    info = ACCESS_LEVEL_CONFIG[AccessLevel(level)]
    return info.short_label if short else info.user_label


def get_channel_preset(preset_id: Optional[str]) -> Optional[ChannelPreset]:
    return CHANNEL_PRESETS_BY_ID.get(str(preset_id or ""))


def get_catalog_payload() -> Dict[str, Any]:
    return {
        "version": "access_catalog_v1",
        "levels": [ACCESS_LEVEL_CONFIG[level].to_dict() for level in ACCESS_LEVEL_ORDER],
        "channel_presets": [row.to_dict() for row in CHANNEL_PRESETS],
    }
