"""Loading of signing secrets shared with the hosted auth service."""
from __future__ import annotations

import os
from typing import Final

__all__ = ["MissingSecretError", "require_secret", "is_placeholder"]


class MissingSecretError(RuntimeError):
    """Raised when a secret such as ``JWT_SECRET_KEY`` is absent or left at a placeholder."""


_PLACEHOLDER_VALUES: Final[frozenset[str]] = frozenset(
    {
        "changeme",
        "change-me",
        "placeholder",
        "secret",
        "your-key-here",
        "your-jwt-secret",
    }
)


def is_placeholder(value: str | None) -> bool:
    if value is None:
        return True
    return value.strip().lower() in _PLACEHOLDER_VALUES | {""}


def require_secret(name: str, *, environ: dict[str, str] | None = None) -> str:
    """Return the trimmed value of ``name`` or raise :class:`MissingSecretError`."""

    source = os.environ if environ is None else environ
    value = source.get(name)
    if is_placeholder(value):
        raise MissingSecretError(f"{name} must be set to the token signing secret of the auth provider")
    return value.strip()
