# providers/embeds/registry.py
# CineStream - Embed providers registry
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import importlib
import inspect
import pkgutil
from functools import lru_cache
from types import ModuleType
from typing import Any

from _logging import log
from cs_platform.errors import ValidationError
from cs_platform.sources import id_to_name

from ._base import EmbedParams, EmbedProvider

PKG_NAME: str = __package__ or "providers.embeds"


def _iter_embed_modules() -> list[ModuleType]:
    pkg = importlib.import_module(PKG_NAME)
    mods: list[ModuleType] = []
    for _, name, ispkg in pkgutil.iter_modules(list(getattr(pkg, "__path__", []))):
        if ispkg or not name.startswith("_embed_"):
            continue
        try:
            mods.append(importlib.import_module(f"{PKG_NAME}.{name}"))
        except ImportError as e:
            log(f"Skipping embed module {name}: {e}", level="WARN", module="EMBEDS")
    return mods


def _provider_from_module(mod: ModuleType) -> EmbedProvider | None:
    prov = getattr(mod, "PROVIDER", None)
    if isinstance(prov, EmbedProvider):
        return prov
    for _, obj in inspect.getmembers(mod, inspect.isclass):
        if issubclass(obj, EmbedProvider) and obj is not EmbedProvider and obj.name:
            return obj()
    return None


@lru_cache(maxsize=1)
def providers() -> dict[str, EmbedProvider]:
    out: dict[str, EmbedProvider] = {}
    for mod in _iter_embed_modules():
        prov = _provider_from_module(mod)
        if prov is not None:
            out[prov.name] = prov
    return out


def get_provider(source: Any) -> EmbedProvider:
    name = id_to_name(source)
    prov = providers().get(name or "")
    if prov is None:
        raise ValidationError(f"Unsupported video source: {source!r}")
    return prov


def build_embed_url(source: Any, params: EmbedParams) -> str:
    return get_provider(source).build_embed_url(params)


def embed_manifests() -> list[dict[str, Any]]:
    return [p.manifest() for _, p in sorted(providers().items(), key=lambda kv: kv[1].label)]
