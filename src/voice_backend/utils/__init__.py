"""Utility helpers for backend services."""

from .filenames import build_audio_filename, is_safe_filename, slugify_label

__all__ = ["build_audio_filename", "is_safe_filename", "slugify_label"]
