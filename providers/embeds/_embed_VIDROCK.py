# providers/embeds/_embed_VIDROCK.py
# CineStream - VidRock player (legacy)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from ._base import Capabilities, EmbedParams, EmbedProvider


class VidRockEmbed(EmbedProvider):
    name = "vidrock"
    label = "Source 5"
    base_url = "https://vidrock.net"
    capabilities = Capabilities(supports_progress=False, supports_subtitles=True)

    def build_embed_url(self, params: EmbedParams) -> str:
        return self._url(self.base_url, params.path)


PROVIDER = VidRockEmbed()
