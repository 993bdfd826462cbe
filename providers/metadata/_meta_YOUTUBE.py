# providers/metadata/_meta_YOUTUBE.py
# CineStream - YouTube Data API check for age-restricted trailers
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any, Callable

import requests

from _logging import log

API_URL = "https://www.googleapis.com/youtube/v3/videos"


class YouTubeProvider:
    name = "YOUTUBE"

    def __init__(self, load_cfg: Callable[[], dict[str, Any]]) -> None:
        self.load_cfg = load_cfg

    def _apikey(self) -> str:
        cfg = self.load_cfg() or {}
        return str((cfg.get("youtube") or {}).get("api_key") or "").strip()

    def is_age_restricted(self, video_id: str) -> bool:
        """True only when YouTube says so; without a key or on errors the trailer is allowed."""
        key = self._apikey()
        if not key or not video_id:
            return False
        try:
            r = requests.get(API_URL, params={"id": video_id, "key": key, "part": "contentDetails"}, timeout=10)
            if not r.ok:
                log(f"Age check returned {r.status_code} for {video_id}", level="DEBUG", module="YOUTUBE")
                return False
            items = (r.json() or {}).get("items") or []
        except (requests.exceptions.RequestException, ValueError) as e:
            log(f"Age check failed for {video_id}: {e}", level="DEBUG", module="YOUTUBE")
            return False
        if not items:
            return False
        rating = ((items[0].get("contentDetails") or {}).get("contentRating") or {}).get("ytRating")
        return rating == "ytAgeRestricted"
