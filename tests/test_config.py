# CineStream test scripts
from __future__ import annotations

import json
from pathlib import Path

import pytest

from _logging import mask_source
from cs_platform import config_base as cb


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for _, _, env in cb.ENV_OVERRIDES:
        monkeypatch.delenv(env, raising=False)


def test_defaults_without_config_file(config_base: Path) -> None:
    cfg = cb.load_config()
    assert cb.config_path() == config_base / "config.json"
    assert cfg["database"]["backend"] == "auto"
    assert cfg["playtime"]["history_keep"] == 20
    assert cfg["rate_limits"]["auth"] == {"max": 5, "window_ms": 900_000}


def test_file_is_deep_merged_over_defaults(config_base: Path) -> None:
    (config_base / "config.json").write_text(json.dumps({"tmdb": {"language": "nl-NL"}, "extra": 1}), encoding="utf-8")
    cfg = cb.load_config()
    assert cfg["tmdb"]["language"] == "nl-NL"
    assert cfg["tmdb"]["ttl_hours"] == 6
    assert cfg["extra"] == 1
    assert cb.DEFAULT_CFG["tmdb"]["language"] == "en-US"


def test_broken_config_file_falls_back_to_defaults(config_base: Path) -> None:
    (config_base / "config.json").write_text("{not json", encoding="utf-8")
    assert cb.load_config()["embeds"]["default_source"] == "videasy"


def test_env_fills_only_empty_secrets(config_base: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (config_base / "config.json").write_text(json.dumps({"chat": {"api_key": "from-file"}}), encoding="utf-8")
    monkeypatch.setenv("GROQ_API_KEY", "from-env")
    monkeypatch.setenv("TMDB_API_KEY", " tmdb-env ")
    cfg = cb.load_config()
    assert cfg["chat"]["api_key"] == "from-file"
    assert cfg["tmdb"]["api_key"] == "tmdb-env"


def test_save_round_trips_and_leaves_no_temp_files(config_base: Path) -> None:
    cfg = cb.load_config()
    cfg["runtime"]["debug"] = True
    cb.save_config(cfg)
    assert cb.load_config()["runtime"]["debug"] is True
    assert [p.name for p in config_base.iterdir()] == ["config.json"]


def test_sources_are_masked_in_logs() -> None:
    assert mask_source("vidlink") == "Source 2"
    assert mask_source("5") == "Source 5"
    assert mask_source(None) == "Source ?"
