from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from workflow.states import WorkflowState, allowed_events, describe_state


class UploadRequest(BaseModel):
    media_type: str = Field(default="", description="Declared MIME type of the image")
    image_base64: str = Field(default="", description="Base64 encoded image; empty means no file")
    filename: Optional[str] = None


class WorkflowStateResponse(BaseModel):
    state: str
    label: Optional[str] = None
    message: Optional[str] = None
    image_media_type: Optional[str] = None
    image_bytes: Optional[int] = None
    camera_active: bool = False
    allowed_events: List[str] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: WorkflowState, camera_active: bool) -> "WorkflowStateResponse":
        return cls(
            **describe_state(state),
            camera_active=camera_active,
            allowed_events=sorted(event.value for event in allowed_events(state)),
        )


__all__ = ["UploadRequest", "WorkflowStateResponse"]
