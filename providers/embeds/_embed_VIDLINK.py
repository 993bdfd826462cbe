# providers/embeds/_embed_VIDLINK.py
# CineStream - VidLink player
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from ._base import Capabilities, EmbedParams, EmbedProvider

SECONDARY_COLOR = "a2a2a2"
ICON_COLOR = "eefdec"


class VidLinkEmbed(EmbedProvider):
    name = "vidlink"
    label = "Source 2"
    base_url = "https://vidlink.pro"
    capabilities = Capabilities(
        supports_progress=True,
        supports_subtitles=True,
        supports_quality_select=True,
        supports_events=True,
    )

    def build_embed_url(self, params: EmbedParams) -> str:
        query: dict[str, Any] = {
            "primaryColor": params.color,
            "secondaryColor": SECONDARY_COLOR,
            "iconColor": ICON_COLOR,
            "icons": "default",
            "player": "default",
            "title": "true",
            "poster": "true",
            "autoplay": "true" if params.autoplay else "false",
            "muted": "false",
        }
        if params.start_at > 0:
            query["startAt"] = params.start_at
        return self._url(self.base_url, params.path, query)


PROVIDER = VidLinkEmbed()
