# providers/embeds/_base.py
# CineStream - Embed provider contract
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Mapping
from urllib.parse import urlencode

from cs_platform.errors import ValidationError
from cs_platform.sources import name_to_id

MEDIA_TYPES = ("movie", "tv")
DEFAULT_COLOR = "E50914"


@dataclass(frozen=True)
class Capabilities:
    supports_progress: bool = False
    supports_subtitles: bool = True
    supports_quality_select: bool = False
    supports_events: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "supportsProgress": self.supports_progress,
            "supportsSubtitles": self.supports_subtitles,
            "supportsQualitySelect": self.supports_quality_select,
            "supportsEvents": self.supports_events,
        }


@dataclass(frozen=True)
class EmbedParams:
    media_type: str
    media_id: int
    season: int | None = None
    episode: int | None = None
    start_at: int = 0
    autoplay: bool = True
    color: str = DEFAULT_COLOR

    @classmethod
    def build(
        cls,
        media_type: Any,
        media_id: Any,
        season: Any = None,
        episode: Any = None,
        start_at: Any = 0,
        color: str | None = None,
        autoplay: bool = True,
    ) -> "EmbedParams":
        mt = str(media_type or "").strip().lower()
        if mt not in MEDIA_TYPES:
            raise ValidationError("mediaType must be 'movie' or 'tv'")
        try:
            mid = int(media_id)
            s = int(season) if season not in (None, "") else None
            e = int(episode) if episode not in (None, "") else None
            start = max(0, int(float(start_at or 0)))
        except (TypeError, ValueError):
            raise ValidationError("mediaId, season, episode and startAt must be numbers") from None
        if mid <= 0:
            raise ValidationError("mediaId must be positive")
        if mt == "tv" and (not s or not e):
            raise ValidationError("season and episode are required for tv")
        if mt == "movie":
            s = e = None
        return cls(mt, mid, s, e, start, bool(autoplay), (color or DEFAULT_COLOR).lstrip("#"))

    @property
    def path(self) -> str:
        if self.media_type == "tv":
            return f"tv/{self.media_id}/{self.season}/{self.episode}"
        return f"movie/{self.media_id}"


class EmbedProvider:
    """One third-party player. Subclasses set `name`, `base_url`, `capabilities` and build the URL."""

    name: ClassVar[str] = ""
    label: ClassVar[str] = ""
    base_url: ClassVar[str] = ""
    capabilities: ClassVar[Capabilities] = Capabilities()

    def build_embed_url(self, params: EmbedParams) -> str:
        raise NotImplementedError

    @staticmethod
    def _url(base: str, path: str, query: Mapping[str, Any] | None = None) -> str:
        url = f"{base.rstrip('/')}/{path}"
        if query:
            url += "?" + urlencode(query)
        return url

    def manifest(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label or self.name,
            "id": name_to_id(self.name),
            "capabilities": self.capabilities.to_dict(),
        }

    def describe(self, params: EmbedParams) -> dict[str, Any]:
        return {"source": self.name, "embedUrl": self.build_embed_url(params), "features": self.capabilities.to_dict()}
