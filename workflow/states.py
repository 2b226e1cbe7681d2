from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from acquisition.image import EncodedImage


class Event(str, Enum):
    UPLOAD = "upload"
    START_CAMERA = "start_camera"
    CAPTURE = "capture"
    STOP_CAMERA = "stop_camera"
    CLASSIFY = "classify"
    RESET = "reset"


# States compare by identity so a suspended transition can tell whether the
# state it started from is still current.
@dataclass(frozen=True, eq=False)
class Idle:
    name: ClassVar[str] = "idle"


@dataclass(frozen=True, eq=False)
class CameraLive:
    name: ClassVar[str] = "camera_live"


@dataclass(frozen=True, eq=False)
class PreviewReady:
    image: EncodedImage
    name: ClassVar[str] = "preview_ready"


@dataclass(frozen=True, eq=False)
class Classifying:
    image: EncodedImage
    name: ClassVar[str] = "classifying"


@dataclass(frozen=True, eq=False)
class Result:
    label: str
    name: ClassVar[str] = "result"


@dataclass(frozen=True, eq=False)
class Failed:
    message: str
    name: ClassVar[str] = "failed"


WorkflowState = Union[Idle, CameraLive, PreviewReady, Classifying, Result, Failed]

_ALWAYS = frozenset({Event.RESET, Event.STOP_CAMERA})

_TRANSITIONS: dict[type, frozenset[Event]] = {
    Idle: _ALWAYS | {Event.UPLOAD, Event.START_CAMERA},
    CameraLive: _ALWAYS | {Event.CAPTURE},
    PreviewReady: _ALWAYS | {Event.CLASSIFY},
    Classifying: _ALWAYS,
    Result: _ALWAYS,
    Failed: _ALWAYS,
}


def allowed_events(state: WorkflowState) -> frozenset[Event]:
    return _TRANSITIONS[type(state)]


def state_image(state: WorkflowState) -> EncodedImage | None:
    if isinstance(state, (PreviewReady, Classifying)):
        return state.image
    return None


def describe_state(state: WorkflowState) -> dict[str, Any]:
    image = state_image(state)
    return {
        "state": state.name,
        "label": state.label if isinstance(state, Result) else None,
        "message": state.message if isinstance(state, Failed) else None,
        "image_media_type": image.media_type if image is not None else None,
        "image_bytes": image.size if image is not None else None,
    }


__all__ = [
    "describe_state",
    "CameraLive",
    "Classifying",
    "Event",
    "Failed",
    "Idle",
    "PreviewReady",
    "Result",
    "WorkflowState",
    "allowed_events",
    "state_image",
]
