from __future__ import annotations

import base64
import binascii
import logging

from fastapi import APIRouter, HTTPException, Request, Response

from acquisition.uploads import InMemoryUpload
from workflow.machine import WorkflowStateMachine
from workflow.states import Event, state_image

from .schemas import UploadRequest, WorkflowStateResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow", tags=["workflow"])


def _machine(request: Request) -> WorkflowStateMachine:
    return request.app.state.workflow


def _current(machine: WorkflowStateMachine) -> WorkflowStateResponse:
    return WorkflowStateResponse.from_state(machine.state, machine.camera_active)


def _require(machine: WorkflowStateMachine, event: Event) -> None:
    if not machine.allows(event):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot {event.value.replace('_', ' ')} while {machine.state.name}",
        )


@router.get("/state", response_model=WorkflowStateResponse)
async def workflow_state(request: Request) -> WorkflowStateResponse:
    return _current(_machine(request))


@router.post("/upload", response_model=WorkflowStateResponse)
async def upload_image(payload: UploadRequest, request: Request) -> WorkflowStateResponse:
    machine = _machine(request)
    _require(machine, Event.UPLOAD)
    candidate = None
    if payload.image_base64:
        try:
            data = base64.b64decode(payload.image_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(status_code=400, detail="image_base64 is not valid base64") from exc
        candidate = InMemoryUpload(
            data=data, content_type=payload.media_type or None, filename=payload.filename
        )
        logger.info(
            "Upload received type=%s bytes=%d", payload.media_type or "unknown", len(data)
        )
    await machine.upload(candidate)
    return _current(machine)


@router.post("/camera/start", response_model=WorkflowStateResponse)
async def start_camera(request: Request) -> WorkflowStateResponse:
    machine = _machine(request)
    _require(machine, Event.START_CAMERA)
    await machine.start_camera()
    return _current(machine)


@router.post("/camera/capture", response_model=WorkflowStateResponse)
async def capture_photo(request: Request) -> WorkflowStateResponse:
    machine = _machine(request)
    _require(machine, Event.CAPTURE)
    machine.capture()
    return _current(machine)


@router.post("/camera/stop", response_model=WorkflowStateResponse)
async def stop_camera(request: Request) -> WorkflowStateResponse:
    machine = _machine(request)
    machine.stop_camera()
    return _current(machine)


@router.post("/classify", response_model=WorkflowStateResponse)
async def classify_image(request: Request) -> WorkflowStateResponse:
    machine = _machine(request)
    _require(machine, Event.CLASSIFY)
    await machine.classify()
    return _current(machine)


@router.post("/reset", response_model=WorkflowStateResponse)
async def reset_workflow(request: Request) -> WorkflowStateResponse:
    machine = _machine(request)
    machine.reset()
    return _current(machine)


@router.get("/preview")
async def preview_image(request: Request) -> Response:
    image = state_image(_machine(request).state)
    if image is None:
        raise HTTPException(status_code=404, detail="No image to preview")
    return Response(content=image.data, media_type=image.media_type)


__all__ = ["router"]
