# providers/embeds/__init__.py
from ._base import Capabilities, EmbedParams, EmbedProvider
from .registry import build_embed_url, embed_manifests, get_provider, providers

__all__ = [
    "Capabilities",
    "EmbedParams",
    "EmbedProvider",
    "build_embed_url",
    "embed_manifests",
    "get_provider",
    "providers",
]
