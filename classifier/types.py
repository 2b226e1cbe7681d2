from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union

from acquisition.image import EncodedImage


class ErrorKind(str, Enum):
    API_ERROR = "api_error"
    EMPTY_RESULT = "empty_result"
    EXHAUSTED_RETRIES = "exhausted_retries"
    TRANSPORT = "transport"
    MISSING_CREDENTIAL = "missing_credential"


@dataclass(frozen=True)
class Label:
    text: str


@dataclass(frozen=True)
class ClassificationError:
    kind: ErrorKind
    message: str


ClassificationOutcome = Union[Label, ClassificationError]


class ImageClassifier(Protocol):
    async def classify(self, image: EncodedImage) -> ClassificationOutcome: ...


__all__ = [
    "ClassificationError",
    "ClassificationOutcome",
    "ErrorKind",
    "ImageClassifier",
    "Label",
]
