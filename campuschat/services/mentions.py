"""Mention detection for chat message text."""
from __future__ import annotations

import re

EVERYONE_TAGS: tuple[str, ...] = ("@everyone", "@all")

_HANDLE_PATTERN = re.compile(r"(?<![\w@])@([A-Za-z0-9_.\-]{2,64})")


def check_for_everyone_mention(text: str | None) -> bool:
    """Return True when ``text`` contains a broadcast tag, case-insensitively.

    Matching is by substring, so ``"email@all.com"`` counts as a mention.
    """

    if not text:
        return False
    lowered = text.lower()
    return any(tag in lowered for tag in EVERYONE_TAGS)


def extract_user_mentions(text: str | None) -> list[str]:
    """Return ``@handle`` tokens in order of appearance, without broadcast tags."""

    if not text:
        return []
    handles: list[str] = []
    for match in _HANDLE_PATTERN.finditer(text):
        handle = match.group(1).rstrip(".-")
        if not handle or f"@{handle.lower()}" in EVERYONE_TAGS:
            continue
        if handle not in handles:
            handles.append(handle)
    return handles


__all__ = ["EVERYONE_TAGS", "check_for_everyone_mention", "extract_user_mentions"]
