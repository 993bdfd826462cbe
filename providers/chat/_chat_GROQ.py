# providers/chat/_chat_GROQ.py
# CineStream - OpenAI-compatible chat completions client (Groq by default)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

import requests

from _logging import log as _real_log
from cs_platform.errors import UpstreamFailure

ROLES = ("system", "user", "assistant")


def log(msg: str, level: str = "INFO") -> None:
    _real_log(msg, level=level, module="CHAT")


class GroqChatClient:
    name = "GROQ"
    UA = "CineStream/1.0"

    def __init__(self, load_cfg: Callable[[], dict[str, Any]]) -> None:
        self.load_cfg = load_cfg

    def _section(self) -> dict[str, Any]:
        cfg = self.load_cfg() or {}
        return dict(cfg.get("chat") or {})

    def configured(self) -> bool:
        return bool(str(self._section().get("api_key") or "").strip())

    def complete(self, messages: Sequence[Mapping[str, str]], *, max_tokens: int | None = None) -> str:
        """One stateless completion; returns the assistant text (may be empty)."""
        sec = self._section()
        api_key = str(sec.get("api_key") or "").strip()
        if not api_key:
            raise UpstreamFailure.unavailable("AI assistant is not configured")

        url = str(sec.get("base_url") or "https://api.groq.com/openai/v1").rstrip("/") + "/chat/completions"
        body = {
            "model": sec.get("model") or "llama-3.3-70b-versatile",
            "messages": [
                {"role": m.get("role") if m.get("role") in ROLES else "user", "content": str(m.get("content") or "")}
                for m in messages
            ],
            "max_tokens": int(max_tokens or sec.get("max_tokens") or 1024),
            "temperature": float(sec.get("temperature") or 0.7),
            "stream": False,
        }
        try:
            r = requests.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "User-Agent": self.UA,
                    "Accept": "application/json",
                },
                timeout=float(sec.get("timeout") or 30),
            )
        except requests.exceptions.RequestException as e:
            log(f"Chat request failed: {e}", level="WARNING")
            raise UpstreamFailure("Something went wrong with the AI. Please try again.") from e

        quota_text = r.status_code >= 400 and "quota" in (r.text or "")[:500].lower()
        if r.status_code == 429 or quota_text:
            log("Chat quota exceeded", level="WARNING")
            raise UpstreamFailure.quota("AI quota exceeded. Please try again in a minute.")
        if r.status_code == 404:
            log("Chat model not found", level="WARNING")
            raise UpstreamFailure.unavailable("AI model unavailable. Please try again later.")
        if r.status_code >= 400:
            log(f"Chat request failed ({r.status_code})", level="WARNING")
            raise UpstreamFailure("Something went wrong with the AI. Please try again.")

        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamFailure("AI returned an invalid response") from e
        choices = data.get("choices") or []
        msg = (choices[0] or {}).get("message") if choices else None
        return str((msg or {}).get("content") or "")
