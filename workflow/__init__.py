from __future__ import annotations

from .machine import StateRenderer, WorkflowStateMachine
from .states import (
    CameraLive,
    Classifying,
    Event,
    Failed,
    Idle,
    PreviewReady,
    Result,
    WorkflowState,
    allowed_events,
    describe_state,
)

__all__ = [
    "CameraLive",
    "Classifying",
    "Event",
    "Failed",
    "Idle",
    "PreviewReady",
    "Result",
    "StateRenderer",
    "WorkflowState",
    "WorkflowStateMachine",
    "allowed_events",
    "describe_state",
]
