from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse

from acquisition.camera import Camera, CameraConstraints, CameraSession, StubCamera
from classifier.types import ImageClassifier
from workflow.machine import WorkflowStateMachine
from workflow.states import WorkflowState

from .routes import router as workflow_router
from .schemas import WorkflowStateResponse

logger = logging.getLogger(__name__)

_QUEUE_SHUTDOWN = "__shutdown__"


class StateHub:
    """Fan rendered workflow states out to Server-Sent Event subscribers."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._subscribers: set[asyncio.Queue[str]] = set()
        self._closing = False

    async def subscribe(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        async with self._lock:
            if self._closing:
                queue.put_nowait(_QUEUE_SHUTDOWN)
                return queue
            self._subscribers.add(queue)
        logger.debug("StateHub subscribed total=%d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)
        logger.debug("StateHub unsubscribed remaining=%d", len(self._subscribers))

    def publish(self, message: dict[str, Any]) -> None:
        # Called synchronously from the state machine's renderer.
        if self._closing:
            return
        payload = json.dumps(message)
        for queue in list(self._subscribers):
            queue.put_nowait(payload)

    async def close(self) -> None:
        async with self._lock:
            self._closing = True
            queues = list(self._subscribers)
            self._subscribers.clear()
        logger.info("StateHub closing queues=%d", len(queues))
        for queue in queues:
            queue.put_nowait(_QUEUE_SHUTDOWN)


def create_app(
    classifier: ImageClassifier | None = None,
    camera: Camera | None = None,
    constraints: CameraConstraints | None = None,
) -> FastAPI:
    if classifier is None:
        from classifier.gemini_client import GeminiImageClassifier

        logger.warning("No classifier configured; identification will report a missing key")
        classifier = GeminiImageClassifier(api_key="")
    selected_camera = camera or StubCamera()

    app = FastAPI(title="Fruit Identifier", version="0.1.0")
    hub = StateHub()

    # Set before the machine exists: its constructor renders the initial state.
    machine: WorkflowStateMachine | None = None

    def _render(state: WorkflowState) -> None:
        camera_active = machine.camera_active if machine is not None else False
        hub.publish(WorkflowStateResponse.from_state(state, camera_active).model_dump())

    machine = WorkflowStateMachine(
        classifier,
        CameraSession(selected_camera),
        renderer=_render,
        constraints=constraints,
    )

    app.state.workflow = machine
    app.state.state_hub = hub
    app.state.classifier = classifier

    logger.info(
        "Workflow server initialised classifier=%s camera=%s",
        classifier.__class__.__name__,
        selected_camera.__class__.__name__,
    )

    @app.get("/health", response_model=dict[str, str])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/workflow/events")
    async def workflow_events(request: Request) -> StreamingResponse:
        queue = await hub.subscribe()
        logger.info("State stream connected")
        initial = json.dumps(
            WorkflowStateResponse.from_state(machine.state, machine.camera_active).model_dump()
        )

        async def event_generator():
            shutdown_event: asyncio.Event | None = getattr(
                app.state, "shutdown_event", None
            )
            try:
                yield f"data: {initial}\n\n"
                while True:
                    try:
                        message = (
                            await asyncio.wait_for(queue.get(), timeout=0.1)
                            if shutdown_event is not None
                            else await queue.get()
                        )
                    except asyncio.TimeoutError:
                        if shutdown_event is not None and shutdown_event.is_set():
                            break
                        if await request.is_disconnected():
                            break
                        continue
                    if message == _QUEUE_SHUTDOWN:
                        break
                    yield f"data: {message}\n\n"
            except asyncio.CancelledError:
                logger.debug("State stream task cancelled")
            finally:
                await hub.unsubscribe(queue)
                logger.info("State stream disconnected")

        return StreamingResponse(event_generator(), media_type="text/event-stream")

    @app.on_event("startup")
    async def _init_shutdown_event() -> None:
        if getattr(app.state, "shutdown_event", None) is None:
            app.state.shutdown_event = asyncio.Event()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        shutdown_event: asyncio.Event | None = getattr(app.state, "shutdown_event", None)
        if shutdown_event is not None:
            shutdown_event.set()
        machine.stop_camera()
        await hub.close()

    app.include_router(workflow_router)

    return app


__all__ = ["create_app", "StateHub"]
