"""Runtime version metadata for ChatFeed.

This module is import-safe and exposes version identifiers for entrypoints
and packaging without executing side effects on import.
"""

from __future__ import annotations

PROJECT_NAME = "ChatFeed Runtime"
VERSION = "v0.1.0"
BUILD = "2026.10"

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "as_dict",
    "as_string",
]


def as_dict() -> dict[str, str]:
    """Return version metadata as a dictionary."""

    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
    }


def as_string() -> str:
    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"
