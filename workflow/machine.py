from __future__ import annotations

import logging
from typing import Callable

from acquisition.camera import CameraConstraints, CameraSession, CameraSessionHandle
from acquisition.errors import CameraError, CaptureError, ReadError
from acquisition.image import ImageSource, UploadCandidate
from acquisition.validator import MAX_UPLOAD_BYTES, Rejected, validate
from classifier.types import ImageClassifier, Label

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
)

logger = logging.getLogger(__name__)

StateRenderer = Callable[[WorkflowState], None]


class WorkflowStateMachine:
    """Owns the acquisition/classification state and the live camera handle.

    Every operation either lands in its intended next state or in ``Failed``.
    Operations that suspend re-check that the state they started from is still
    current before applying their result, so a ``reset`` issued meanwhile wins.
    """

    def __init__(
        self,
        classifier: ImageClassifier,
        camera: CameraSession,
        *,
        image_source: ImageSource | None = None,
        renderer: StateRenderer | None = None,
        constraints: CameraConstraints | None = None,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self._classifier = classifier
        self._camera = camera
        self._image_source = image_source or ImageSource()
        self._renderer = renderer
        self._constraints = constraints or CameraConstraints()
        self._max_upload_bytes = max_upload_bytes
        self._handle: CameraSessionHandle | None = None
        self._camera_pending = False
        self._state: WorkflowState = Idle()
        self._render()

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def camera_active(self) -> bool:
        return self._handle is not None

    @property
    def camera_ready(self) -> bool:
        return self._handle is not None and self._handle.ready

    def allows(self, event: Event) -> bool:
        if event is Event.START_CAMERA and (self._handle is not None or self._camera_pending):
            return False
        return event in allowed_events(self._state)

    async def upload(self, candidate: UploadCandidate | None) -> WorkflowState:
        if not self.allows(Event.UPLOAD):
            return self._ignore(Event.UPLOAD)

        verdict = validate(candidate, self._max_upload_bytes)
        if isinstance(verdict, Rejected):
            return self._fail(verdict.reason)

        origin = self._state
        try:
            image = await self._image_source.from_upload(candidate)
        except ReadError as exc:
            if self._is_stale(origin, Event.UPLOAD):
                return self._state
            return self._fail(exc.message)
        if self._is_stale(origin, Event.UPLOAD):
            return self._state
        return self._enter(PreviewReady(image))

    async def start_camera(self) -> WorkflowState:
        if not self.allows(Event.START_CAMERA):
            return self._ignore(Event.START_CAMERA)

        origin = self._state
        self._camera_pending = True
        try:
            handle = await self._camera.start(self._constraints)
        except CameraError as exc:
            logger.warning("Camera start failed: %s", exc)
            if self._is_stale(origin, Event.START_CAMERA):
                return self._state
            return self._fail(exc.message)
        finally:
            self._camera_pending = False

        if self._is_stale(origin, Event.START_CAMERA):
            self._camera.stop(handle)
            return self._state
        self._handle = handle
        return self._enter(CameraLive())

    def capture(self) -> WorkflowState:
        if not self.allows(Event.CAPTURE) or self._handle is None:
            return self._ignore(Event.CAPTURE)
        try:
            image = self._camera.capture_frame(self._handle)
        except CaptureError as exc:
            # The stream stays live; reset or stop_camera releases it.
            return self._fail(exc.message)
        self._handle = None
        return self._enter(PreviewReady(image))

    def stop_camera(self) -> WorkflowState:
        if self._handle is None:
            return self._state
        self._camera.stop(self._handle)
        self._handle = None
        if isinstance(self._state, CameraLive):
            return self._enter(Idle())
        return self._state

    async def classify(self) -> WorkflowState:
        current = self._state
        if not self.allows(Event.CLASSIFY) or not isinstance(current, PreviewReady):
            return self._ignore(Event.CLASSIFY)
        classifying = Classifying(current.image)
        self._enter(classifying)
        try:
            outcome = await self._classifier.classify(classifying.image)
        except Exception as exc:
            logger.exception("Classifier raised unexpectedly")
            if self._is_stale(classifying, Event.CLASSIFY):
                return self._state
            return self._fail(f"AI analysis failed: {str(exc) or type(exc).__name__}")

        if self._is_stale(classifying, Event.CLASSIFY):
            return self._state
        if isinstance(outcome, Label):
            return self._enter(Result(outcome.text))
        return self._fail(f"AI analysis failed: {outcome.message}")

    def reset(self) -> WorkflowState:
        if self._handle is not None:
            self._camera.stop(self._handle)
            self._handle = None
        return self._enter(Idle())

    def _enter(self, state: WorkflowState) -> WorkflowState:
        previous = self._state
        self._state = state
        logger.info("Workflow %s -> %s", previous.name, state.name)
        self._render()
        return state

    def _fail(self, message: str) -> WorkflowState:
        logger.warning("Workflow failed in %s: %s", self._state.name, message)
        return self._enter(Failed(message))

    def _ignore(self, event: Event) -> WorkflowState:
        logger.warning("Ignoring %s while %s", event.value, self._state.name)
        return self._state

    def _is_stale(self, origin: WorkflowState, event: Event) -> bool:
        if self._state is origin:
            return False
        logger.info(
            "Discarding %s result; workflow moved on to %s", event.value, self._state.name
        )
        return True

    def _render(self) -> None:
        if self._renderer is not None:
            self._renderer(self._state)


__all__ = ["WorkflowStateMachine", "StateRenderer"]
