from __future__ import annotations

from .types import (
    ClassificationError,
    ClassificationOutcome,
    ErrorKind,
    ImageClassifier,
    Label,
)

__all__ = [
    "ClassificationError",
    "ClassificationOutcome",
    "ErrorKind",
    "ImageClassifier",
    "Label",
    "ExhaustedRetries",
    "fetch_with_backoff",
    "GeminiImageClassifier",
]


def __getattr__(name: str):
    if name in {"ExhaustedRetries", "fetch_with_backoff"}:
        from . import backoff

        return getattr(backoff, name)
    if name == "GeminiImageClassifier":
        from .gemini_client import GeminiImageClassifier

        return GeminiImageClassifier
    raise AttributeError(f"module 'classifier' has no attribute {name!r}")
