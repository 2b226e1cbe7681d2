from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .image import UploadCandidate

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class Accepted:
    pass


@dataclass(frozen=True)
class Rejected:
    reason: str


ValidationResult = Union[Accepted, Rejected]


def validate(
    candidate: UploadCandidate | None, max_bytes: int = MAX_UPLOAD_BYTES
) -> ValidationResult:
    """Check upload metadata against the acceptance rules; first failure wins."""
    if candidate is None:
        return Rejected("No file selected.")
    media_type = candidate.content_type or ""
    if not media_type.startswith("image/"):
        return Rejected("Please select an image file.")
    if candidate.size is not None and candidate.size > max_bytes:
        return Rejected(f"File too large (max {max_bytes // (1024 * 1024)}MB).")
    return Accepted()


__all__ = ["Accepted", "Rejected", "ValidationResult", "validate", "MAX_UPLOAD_BYTES"]
