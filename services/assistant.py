# services/assistant.py
# CineStream - Chat assistant (general chat and media-aware video assistant)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from cs_platform.errors import ValidationError

ASSISTANT_NAME = "Cine"
SITE_NAME = "CineStream"

IDENTITY_PATTERNS = (
    "who created you", "who made you", "who built you", "who trained you",
    "what ai are you", "what model are you", "are you gemini", "are you gpt",
    "are you deepseek", "are you groq", "are you llama", "are you chatgpt",
    "are you openai", "are you google", "trained by", "what llm",
    "what language model", "are you a bot", "are you an ai", "are you artificial",
)

GENERAL_PROMPT = f"You are a helpful assistant for {SITE_NAME}, a movie and TV streaming platform. Keep answers concise."


class ChatClient(Protocol):
    def complete(self, messages: Sequence[Mapping[str, str]], *, max_tokens: int | None = None) -> str: ...


def is_identity_question(text: str) -> bool:
    low = (text or "").lower()
    return any(p in low for p in IDENTITY_PATTERNS)


def history_messages(messages: Any) -> list[dict[str, str]]:
    """Client transcript [{sender, text}] -> chat roles."""
    out: list[dict[str, str]] = []
    for m in messages or []:
        if not isinstance(m, Mapping):
            continue
        text = str(m.get("text") or m.get("content") or "")
        if not text:
            continue
        sender = m.get("sender") or m.get("role")
        out.append({"role": "user" if sender == "user" else "assistant", "content": text})
    return out


def build_system_prompt(ctx: Mapping[str, Any] | None) -> str:
    if not ctx:
        return GENERAL_PROMPT
    kind = "TV Show" if ctx.get("mediaType") == "tv" else "Movie"
    parts = [
        "# YOUR IDENTITY",
        f'You are "{ASSISTANT_NAME}", the friendly movie and TV assistant for {SITE_NAME}. '
        f'If anyone asks who you are or who made you, only say you are {ASSISTANT_NAME}, the {SITE_NAME} assistant. '
        "Never name an AI company or model.",
        "",
        "# YOUR PERSONALITY",
        "- Casual and conversational, like a movie-buff friend",
        "- Use bold (**text**) for key names, titles and facts",
        "- Keep answers to 2-4 sentences unless asked for more",
        "",
        "# WHAT THE USER IS WATCHING",
        f'The user is currently watching: "{ctx.get("title") or "this title"}" ({kind}).',
    ]
    if ctx.get("overview"):
        parts.append(f"Synopsis: {ctx['overview']}")
    if ctx.get("genres"):
        parts.append(f"Genres: {', '.join(str(g) for g in ctx['genres'])}")
    if ctx.get("releaseDate"):
        parts.append(f"Release date: {ctx['releaseDate']}")
    if ctx.get("rating"):
        parts.append(f"Rating: {ctx['rating']}/10")
    if ctx.get("runtime"):
        parts.append(f"Runtime: {ctx['runtime']} minutes")
    if ctx.get("cast"):
        parts.append(f"Cast: {', '.join(str(c) for c in ctx['cast'])}")
    if ctx.get("tagline"):
        parts.append(f'Tagline: "{ctx["tagline"]}"')
    if ctx.get("seasonNumber"):
        ep = f"They are on Season {ctx['seasonNumber']}, Episode {ctx.get('episodeNumber')}."
        if ctx.get("episodeName"):
            ep += f' Episode title: "{ctx["episodeName"]}".'
        if ctx.get("episodeOverview"):
            ep += f" Episode synopsis: {ctx['episodeOverview']}"
        ep += " Do not spoil anything past this episode unless asked."
        parts.append(ep)
    parts += [
        "",
        "# RULES",
        "1. Anything about what the user is watching is in scope: plot, characters, cast, crew, trivia, similar titles.",
        "2. Treat questions as being about this title unless clearly unrelated.",
        "3. For clearly unrelated questions, steer back to the title politely.",
        "4. No download links or piracy.",
        "5. No major spoilers unless explicitly requested.",
    ]
    return "\n".join(parts)


class Assistant:
    def __init__(self, client: ChatClient, *, max_tokens: int = 1024) -> None:
        self.client = client
        self.max_tokens = int(max_tokens)

    def chat(self, messages: Any, current: Any) -> str:
        text = str(current or "").strip()
        if not text:
            raise ValidationError("Current message is required")
        convo = [{"role": "system", "content": GENERAL_PROMPT}, *history_messages(messages), {"role": "user", "content": text}]
        return self.client.complete(convo, max_tokens=self.max_tokens)

    def video_chat(self, messages: Any, current: Any, media_context: Mapping[str, Any] | None) -> str:
        text = str(current or "").strip()
        if not text:
            raise ValidationError("Message is required")
        ctx = media_context if isinstance(media_context, Mapping) else None
        if is_identity_question(text):
            title = (ctx or {}).get("title") or "this title"
            return (
                f"I'm **{ASSISTANT_NAME}**, the {SITE_NAME} assistant! I'm here to help with everything about "
                f'**"{title}"**. Want to know about the cast, the plot, or get recommendations?'
            )
        convo = [
            {"role": "system", "content": build_system_prompt(ctx)},
            *history_messages(messages),
            {"role": "user", "content": text},
        ]
        return self.client.complete(convo, max_tokens=self.max_tokens)
