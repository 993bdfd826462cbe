# CineStream test scripts
from __future__ import annotations

import pytest

from cs_platform.errors import ValidationError
from cs_platform.sources import SOURCE_IDS
from providers.embeds import EmbedParams, build_embed_url, embed_manifests, get_provider, providers


def test_every_known_source_has_a_player() -> None:
    assert set(providers()) == set(SOURCE_IDS)


def test_movie_and_tv_paths() -> None:
    movie = EmbedParams.build("movie", 550)
    tv = EmbedParams.build("tv", "1399", 2, "3")
    assert build_embed_url("vidnest", movie) == "https://vidnest.fun/movie/550"
    assert build_embed_url("3", tv) == "https://vidnest.fun/tv/1399/2/3"
    assert build_embed_url("vidrock", tv) == "https://vidrock.net/tv/1399/2/3"
    assert build_embed_url("vidsrc", movie) == "https://vidsrc.icu/embed/movie/550"


def test_resume_parameter_only_where_supported() -> None:
    p = EmbedParams.build("movie", 550, start_at=754.6, color="#00ff00")
    videasy = build_embed_url("videasy", p)
    assert videasy.startswith("https://player.videasy.net/movie/550?")
    assert "progress=754" in videasy and "color=00ff00" in videasy

    vidlink = build_embed_url("vidlink", p)
    assert "startAt=754" in vidlink and "primaryColor=00ff00" in vidlink
    assert "?" not in build_embed_url("vidnest", p)
    assert "autoplay=false" in build_embed_url("videasy", EmbedParams.build("movie", 1, autoplay=False))


def test_params_validation() -> None:
    with pytest.raises(ValidationError):
        EmbedParams.build("tv", 1399)
    with pytest.raises(ValidationError):
        EmbedParams.build("anime", 1)
    with pytest.raises(ValidationError):
        EmbedParams.build("movie", 0)
    movie = EmbedParams.build("movie", 1, season=4, episode=2)
    assert movie.season is None and movie.episode is None


def test_unknown_source_is_rejected() -> None:
    with pytest.raises(ValidationError):
        get_provider("vidking")


def test_manifests_are_ordered_and_describe_capabilities() -> None:
    rows = embed_manifests()
    assert [r["label"] for r in rows] == [f"Source {i}" for i in range(1, 6)]
    by_name = {r["name"]: r for r in rows}
    assert by_name["vidlink"]["id"] == "2"
    assert by_name["vidlink"]["capabilities"]["supportsProgress"] is True
    assert by_name["vidnest"]["capabilities"]["supportsProgress"] is False
