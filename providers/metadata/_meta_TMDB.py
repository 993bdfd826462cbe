# providers/metadata/_meta_TMDB.py
# CineStream - TMDb metadata client (search, details, seasons, videos, recommendations)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import hashlib
import random
import threading
import time
from collections import OrderedDict
from email.utils import parsedate_to_datetime
from typing import Any, Callable

import requests

from _logging import log as _real_log
from cs_platform.errors import UpstreamFailure, ValidationError


def log(msg: str, level: str = "INFO") -> None:
    _real_log(msg, level=level, module="TMDB")


API_BASE = "https://api.themoviedb.org/3"
MEDIA_TYPES = ("movie", "tv")
CACHE_MAX_ENTRIES = 512

# Trailer preference on YouTube: first type found wins
TRAILER_TYPES = ("Trailer", "Teaser", "Clip")


class TmdbProvider:
    name = "TMDB"
    UA = "CineStream/1.0"

    def __init__(self, load_cfg: Callable[[], dict[str, Any]], *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.load_cfg = load_cfg
        self._sleep = sleep
        self._cache: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def _section(self) -> dict[str, Any]:
        cfg = self.load_cfg() or {}
        return dict(cfg.get("tmdb") or {})

    def _apikey(self) -> str:
        api_key = str(self._section().get("api_key") or "").strip()
        if not api_key:
            raise UpstreamFailure.unavailable("TMDb API key is missing")
        return api_key

    def _language(self) -> str:
        return str(self._section().get("language") or "en-US")

    def _ttl_seconds(self) -> int:
        try:
            hours = int(self._section().get("ttl_hours", 6))
        except (TypeError, ValueError):
            hours = 6
        return max(1, hours) * 3600

    def _backoff_params(self) -> tuple[int, float, float]:
        md = self._section()
        max_retries = int(md.get("backoff_max_retries", 4))
        base_ms = int(md.get("backoff_base_ms", 500))
        max_ms = int(md.get("backoff_max_ms", 4000))
        return max(0, max_retries), max(0.05, base_ms / 1000.0), max(0.1, max_ms / 1000.0)

    def _retry_delay(self, attempt: int, base_s: float, max_s: float) -> float:
        delay = min(max_s, base_s * (2**attempt))
        return delay + random.uniform(0.0, 0.25)

    def _seconds_from_retry_after(self, header: str | None) -> float | None:
        if not header:
            return None
        header = header.strip()
        if header.isdigit():
            return float(header)
        try:
            dt = parsedate_to_datetime(header)
            return max(0.0, dt.timestamp() - time.time())
        except (TypeError, ValueError):
            return None

    def _cache_put(self, key: str, data: Any) -> None:
        # drop expired entries, then evict oldest beyond the cap
        now = time.time()
        ttl = self._ttl_seconds()
        try:
            cap = max(1, int(self._section().get("cache_max_entries", CACHE_MAX_ENTRIES)))
        except (TypeError, ValueError):
            cap = CACHE_MAX_ENTRIES
        with self._lock:
            self._cache.pop(key, None)
            self._cache[key] = (now, data)
            while self._cache:
                oldest_key, (ts, _) = next(iter(self._cache.items()))
                if len(self._cache) <= cap and (now - ts) < ttl:
                    break
                del self._cache[oldest_key]

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any | None:
        """GET {API_BASE}/{path}; None on 404, UpstreamFailure on anything else that fails."""
        url = f"{API_BASE}/{path.lstrip('/')}"
        q = {"language": self._language(), **(params or {})}
        q["api_key"] = self._apikey()
        ck = url + "?" + "&".join(sorted(f"{k}={v}" for k, v in q.items()))
        h = hashlib.sha1(ck.encode("utf-8")).hexdigest()

        now = time.time()
        with self._lock:
            hit = self._cache.get(h)
        if hit and (now - hit[0]) < self._ttl_seconds():
            return hit[1]

        max_retries, base_s, max_s = self._backoff_params()
        timeout = float(self._section().get("timeout") or 15)
        attempt = 0
        while True:
            try:
                r = requests.get(
                    url,
                    params=q,
                    headers={"User-Agent": self.UA, "Accept": "application/json"},
                    timeout=timeout,
                )
            except requests.exceptions.RequestException as e:
                if attempt >= max_retries:
                    log(f"TMDb request failed (n/a) at /{path}: {e}", level="WARNING")
                    raise UpstreamFailure(f"TMDb request failed: {e}") from e
                self._sleep(self._retry_delay(attempt, base_s, max_s))
                attempt += 1
                continue

            status = r.status_code
            if status == 404:
                log(f"TMDb 404 at /{path}", level="DEBUG")
                return None

            if status == 429:
                if attempt >= max_retries:
                    raise UpstreamFailure.quota("TMDb rate limit exceeded")
                retry_after = self._seconds_from_retry_after(r.headers.get("Retry-After", ""))
                delay = retry_after if retry_after is not None else self._retry_delay(attempt, base_s, max_s)
                self._sleep(min(delay, max_s))
                attempt += 1
                continue

            if 500 <= status < 600:
                if attempt >= max_retries:
                    log(f"TMDb request failed ({status}) at /{path}", level="WARNING")
                    raise UpstreamFailure.unavailable(f"TMDb unavailable ({status})")
                self._sleep(self._retry_delay(attempt, base_s, max_s))
                attempt += 1
                continue

            if status >= 400:
                log(f"TMDb request failed ({status}) at /{path}", level="WARNING")
                raise UpstreamFailure(f"TMDb request failed ({status})")

            try:
                data = r.json()
            except ValueError as e:
                raise UpstreamFailure("TMDb returned invalid JSON") from e
            self._cache_put(h, data)
            return data

    @staticmethod
    def _media_type(media_type: Any) -> str:
        mt = str(media_type or "").strip().lower()
        if mt not in MEDIA_TYPES:
            raise ValidationError("Invalid mediaType")
        return mt

    # search
    def search(self, query: str, page: int = 1, *, limit: int = 20) -> dict[str, Any]:
        q = (query or "").strip()
        if len(q) < 2:
            raise ValidationError("Query must be at least 2 characters")
        data = self._get("search/multi", {"query": q, "page": max(1, int(page)), "include_adult": "false"}) or {}
        results = [
            {
                "id": it.get("id"),
                "title": it.get("title") or it.get("name"),
                "name": it.get("name"),
                "poster_path": it.get("poster_path"),
                "media_type": it.get("media_type"),
            }
            for it in (data.get("results") or [])
            if it.get("poster_path")
        ][:limit]
        return {"query": q, "results": results, "total": data.get("total_results", 0)}

    # details
    def movie(self, movie_id: int) -> dict[str, Any] | None:
        return self._get(f"movie/{int(movie_id)}", {"append_to_response": "external_ids"})

    def tv(self, tv_id: int) -> dict[str, Any] | None:
        return self._get(f"tv/{int(tv_id)}", {"append_to_response": "external_ids"})

    def details(self, media_type: str, media_id: int) -> dict[str, Any] | None:
        return self.movie(media_id) if self._media_type(media_type) == "movie" else self.tv(media_id)

    def season(self, tv_id: int, season_number: int) -> dict[str, Any] | None:
        return self._get(f"tv/{int(tv_id)}/season/{int(season_number)}")

    def seasons(self, tv_id: int) -> list[dict[str, Any]] | None:
        """Every regular season with its episodes; season 0 (specials) is skipped."""
        show = self.tv(tv_id)
        if show is None:
            return None
        out: list[dict[str, Any]] = []
        for s in show.get("seasons") or []:
            num = s.get("season_number")
            if not num:
                continue
            detail = self.season(tv_id, num) or {}
            out.append(
                {
                    "season_number": num,
                    "name": s.get("name"),
                    "episodes": [
                        {
                            "episode_number": ep.get("episode_number"),
                            "name": ep.get("name"),
                            "overview": ep.get("overview"),
                            "still_path": ep.get("still_path"),
                            "vote_average": ep.get("vote_average"),
                            "air_date": ep.get("air_date"),
                        }
                        for ep in (detail.get("episodes") or [])
                    ],
                }
            )
        return out

    # lists
    def recommendations(self, media_type: str, media_id: int, page: int = 1) -> dict[str, Any]:
        mt = self._media_type(media_type)
        data = self._get(f"{mt}/{int(media_id)}/recommendations", {"page": max(1, int(page))})
        return data or {"results": []}

    def videos(self, media_type: str, media_id: int) -> list[dict[str, Any]] | None:
        mt = self._media_type(media_type)
        data = self._get(f"{mt}/{int(media_id)}/videos")
        if data is None:
            return None
        return list(data.get("results") or [])

    def trailer_key(self, media_type: str, media_id: int) -> str | None:
        vids = [v for v in (self.videos(media_type, media_id) or []) if v.get("site") == "YouTube" and v.get("key")]
        for kind in TRAILER_TYPES:
            for v in vids:
                if v.get("type") == kind:
                    return str(v["key"])
        return str(vids[0]["key"]) if vids else None
