# providers/embeds/_embed_VIDSRC.py
# CineStream - VidSrc player (legacy)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from ._base import Capabilities, EmbedParams, EmbedProvider


class VidSrcEmbed(EmbedProvider):
    name = "vidsrc"
    label = "Source 4"
    base_url = "https://vidsrc.icu/embed"
    # no resume parameter
    capabilities = Capabilities(supports_progress=False, supports_subtitles=True, supports_quality_select=False)

    def build_embed_url(self, params: EmbedParams) -> str:
        return self._url(self.base_url, params.path)


PROVIDER = VidSrcEmbed()
