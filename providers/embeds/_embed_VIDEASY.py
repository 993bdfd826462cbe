# providers/embeds/_embed_VIDEASY.py
# CineStream - Videasy player
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from ._base import Capabilities, EmbedParams, EmbedProvider


class VideasyEmbed(EmbedProvider):
    name = "videasy"
    label = "Source 1"
    base_url = "https://player.videasy.net"
    capabilities = Capabilities(
        supports_progress=True,
        supports_subtitles=True,
        supports_quality_select=True,
        supports_events=True,
    )

    def build_embed_url(self, params: EmbedParams) -> str:
        query: dict[str, Any] = {"color": params.color, "overlay": "true", "autoplay": "true" if params.autoplay else "false"}
        if params.start_at > 0:
            query["progress"] = params.start_at
        return self._url(self.base_url, params.path, query)


PROVIDER = VideasyEmbed()
