"""Filename helpers for cached audio blobs."""

from __future__ import annotations

import re
from uuid import uuid4

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def slugify_label(label: str | None, *, max_length: int = 24) -> str:
    """Return a lowercase ASCII slug for a filename prefix.

    Empty when no reasonable slug can be produced.
    """

    if not label:
        return ""
    slug = _NON_ALNUM.sub("-", label).strip("-").lower()
    if max_length > 0 and len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def build_audio_filename(label: str | None = None, extension: str = ".mp3") -> str:
    """Construct a unique audio filename.

    The name always carries a fresh random id so two syntheses of the same
    text never collide; the optional label is prepended for readability.
    """

    ext = extension if extension.startswith(".") or not extension else f".{extension}"
    slug = slugify_label(label)
    unique = uuid4().hex
    if slug:
        return f"{slug}-{unique}{ext}"
    return f"{unique}{ext}"


def is_safe_filename(name: str) -> bool:
    """Reject names that could address anything but a flat cache key."""

    if ".." in name:
        return False
    return bool(_SAFE_NAME.match(name))


__all__ = ["build_audio_filename", "is_safe_filename", "slugify_label"]
