# providers/embeds/_embed_VIDNEST.py
# CineStream - VidNest player
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from ._base import Capabilities, EmbedParams, EmbedProvider


class VidNestEmbed(EmbedProvider):
    name = "vidnest"
    label = "Source 3"
    base_url = "https://vidnest.fun"
    capabilities = Capabilities(supports_progress=False, supports_subtitles=True)

    def build_embed_url(self, params: EmbedParams) -> str:
        return self._url(self.base_url, params.path)


PROVIDER = VidNestEmbed()
