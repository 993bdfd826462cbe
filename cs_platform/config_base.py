# cs_platform/config_base.py
# CineStream - Configuration loading and persistence
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import copy
import json
import os
import secrets
import threading
import time
from pathlib import Path
from typing import Any, Dict

# ------------------------------------------------------------
# Base dir resolution
# ------------------------------------------------------------
def CONFIG_BASE() -> Path:
    """
    Determine the base directory for config and local data files.

    Priority:
      1) $CONFIG_BASE if set
      2) /config (when running in a container that mounts /config)
      3) Project root (one level up from this file)
    """
    env = os.getenv("CONFIG_BASE")
    if env:
        return Path(env)

    if Path("/app").exists():
        return Path("/config")

    return Path(__file__).resolve().parents[1]


# Default config structure
DEFAULT_CFG: Dict[str, Any] = {
    # --- Storage -------------------------------------------------------------
    "database": {
        "backend": "auto",                              # "auto" | "mongo" | "json". auto = mongo when uri is set.
        "uri": "",                                      # mongodb://host:27017 (env: MONGODB_URI)
        "name": "cinestream",                           # Database name (env: MONGODB_DB)
        "json_dir": "data",                             # Relative to CONFIG_BASE when backend is json
        "timeout_ms": 5000,                             # Server selection timeout for Mongo
    },

    # --- External services ---------------------------------------------------
    "tmdb": {
        "api_key": "",                                  # TMDb v3 key (env: TMDB_API_KEY)
        "language": "en-US",                            # Default response language
        "ttl_hours": 6,                                 # Response cache TTL
        "cache_max_entries": 512,                       # Response cache size cap
        "backoff_max_retries": 4,                       # Retry budget for 429/5xx
        "backoff_base_ms": 500,                         # First backoff step
        "backoff_max_ms": 4000,                         # Backoff ceiling
        "timeout": 15,                                  # HTTP timeout (seconds)
    },

    "chat": {
        "api_key": "",                                  # OpenAI-compatible key (env: GROQ_API_KEY)
        "base_url": "https://api.groq.com/openai/v1",   # Chat completions endpoint root
        "model": "llama-3.3-70b-versatile",             # Model id
        "max_tokens": 1024,                             # Completion budget
        "temperature": 0.7,                             # Sampling temperature
        "timeout": 30,                                  # HTTP timeout (seconds)
    },

    "youtube": {
        "api_key": "",                                  # Optional, enables trailer age-restriction checks (env: YOUTUBE_API_KEY)
    },

    # --- Accounts ------------------------------------------------------------
    "auth": {
        "admin_email": "",                              # Seeded admin account (env: ADMIN_EMAIL)
        "admin_password": "",                           # Seeded admin password (env: ADMIN_PASSWORD)
        "admin_name": "Admin",
        "session_ttl_days": 30,                         # Login cookie lifetime
        "pbkdf2_iterations": 260_000,                   # Password hashing cost
        "cookie_name": "cs_session",
    },

    # --- Rate limits (max requests per window) ------------------------------
    "rate_limits": {
        "search": {"max": 30, "window_ms": 60_000},
        "chat":   {"max": 20, "window_ms": 60_000},
        "auth":   {"max": 5,  "window_ms": 15 * 60_000},
        "api":    {"max": 100, "window_ms": 60_000},
        "video":  {"max": 10, "window_ms": 60_000},
        "sweep_seconds": 60,                            # Expired-entry cleanup interval
    },

    # --- Playback ------------------------------------------------------------
    "playtime": {
        "batch_size": 10,                               # Flush immediately at this queue depth
        "batch_timeout_s": 10.0,                        # Otherwise flush this long after first enqueue
        "unload_timeout_s": 3.0,                        # Bounded wait for page-hide flushes
        "history_keep": 20,                             # Newest watch-history entries kept per user
    },

    "visitor_log": {
        "batch_size": 20,                               # insert_many at this queue depth
        "batch_timeout_s": 30.0,                        # Otherwise flush this long after first enqueue
        "ttl_days": 30,                                 # Logs older than this are pruned
        "page_size": 50,                                # Admin list default page size
    },

    "embeds": {
        "default_source": "videasy",                    # Used when settings hold no valid source
        "color": "E50914",                              # Player accent color (hex, no #)
    },

    # --- Runtime -------------------------------------------------------------
    "runtime": {
        "debug": False,                                 # Emit DEBUG log lines
        "debug_http": False,                            # Log every HTTP request, not just failures/slow ones
        "log_json": "",                                 # Optional JSON log file path
        "slow_request_ms": 1500,                        # Requests slower than this are logged
    },
}

# Secrets accepted from the environment: (section, key, env var)
ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ("database", "uri", "MONGODB_URI"),
    ("database", "name", "MONGODB_DB"),
    ("tmdb", "api_key", "TMDB_API_KEY"),
    ("chat", "api_key", "GROQ_API_KEY"),
    ("youtube", "api_key", "YOUTUBE_API_KEY"),
    ("auth", "admin_email", "ADMIN_EMAIL"),
    ("auth", "admin_password", "ADMIN_PASSWORD"),
)


# ------------------------------------------------------------
# Helpers: paths, IO, merging
# ------------------------------------------------------------
def _cfg_file() -> Path:
    return CONFIG_BASE() / "config.json"

def config_path() -> Path:
    return _cfg_file()


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(p: Path, data: Any) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    suffix = f".{time.time_ns()}.{os.getpid()}.{threading.get_ident()}.{secrets.token_hex(4)}.tmp"
    tmp = p.with_suffix(suffix)

    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(p)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)  # type: ignore[assignment]
        else:
            out[k] = v
    return out


def _apply_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for section, key, env in ENV_OVERRIDES:
        val = (os.getenv(env) or "").strip()
        if not val:
            continue
        sec = cfg.setdefault(section, {})
        if isinstance(sec, dict) and not str(sec.get(key) or "").strip():
            sec[key] = val
    return cfg


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def load_config() -> Dict[str, Any]:
    """
    Read config.json, merge it over DEFAULT_CFG and fill empty secrets from the environment.
    """
    p = _cfg_file()
    user_cfg: Dict[str, Any] = {}
    if p.exists():
        try:
            user_cfg = _read_json(p)
        except (OSError, ValueError):
            user_cfg = {}

    cfg = _deep_merge(DEFAULT_CFG, user_cfg)
    return _apply_env(cfg)


def save_config(cfg: Dict[str, Any]) -> None:
    """
    Write to config.json
    """
    _write_json_atomic(_cfg_file(), dict(cfg or {}))
