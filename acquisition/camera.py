from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import (
    CameraError,
    CameraUnsupported,
    CaptureError,
    DeviceNotFound,
    PermissionDenied,
)
from .image import EncodedImage, ImageSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraConstraints:
    """Preferred stream settings. Resolution values are hints, not requirements."""

    facing_mode: str = "environment"
    width: int | None = 1280
    height: int | None = 720


class CameraStream(Protocol):
    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def snapshot(self) -> bytes: ...

    def stop(self) -> None: ...


class Camera(Protocol):
    def request_stream(self, constraints: CameraConstraints) -> CameraStream: ...


@dataclass
class CameraSessionHandle:
    """Ownership of one live stream, valid until stopped or captured."""

    stream: CameraStream
    constraints: CameraConstraints
    active: bool = True

    @property
    def ready(self) -> bool:
        return bool(self.stream.width) and bool(self.stream.height)


class CameraSession:
    """Lifecycle of a single-shot capture stream."""

    def __init__(self, camera: Camera, image_source: ImageSource | None = None) -> None:
        self._camera = camera
        self._image_source = image_source or ImageSource()

    async def start(self, constraints: CameraConstraints | None = None) -> CameraSessionHandle:
        constraints = constraints or CameraConstraints()
        try:
            stream = await asyncio.to_thread(self._camera.request_stream, constraints)
        except CameraError:
            raise
        except Exception as exc:
            raise CameraError(f"Could not access the camera: {exc}") from exc
        logger.info(
            "Camera stream started backend=%s facing=%s hint=%sx%s",
            self._camera.__class__.__name__,
            constraints.facing_mode,
            constraints.width,
            constraints.height,
        )
        return CameraSessionHandle(stream=stream, constraints=constraints)

    def stop(self, handle: CameraSessionHandle | None) -> None:
        if handle is None or not handle.active:
            return
        handle.active = False
        try:
            handle.stream.stop()
        except Exception as exc:  # pragma: no cover - best effort release
            logger.warning("Camera stream did not stop cleanly: %s", exc)
        else:
            logger.info("Camera stream stopped")

    def capture_frame(self, handle: CameraSessionHandle) -> EncodedImage:
        if not handle.active:
            raise CaptureError("Camera session is not active.")
        if not handle.ready:
            raise CaptureError()
        try:
            buffer = handle.stream.snapshot()
        except CaptureError:
            raise
        except Exception as exc:
            raise CaptureError(f"Could not capture photo: {exc}") from exc
        image = self._image_source.from_camera_frame(
            buffer, handle.stream.width, handle.stream.height
        )
        self.stop(handle)
        return image


class StubStream:
    """In-memory stream producing a solid-colour frame."""

    def __init__(
        self, width: int, height: int, color: tuple[int, int, int], ready: bool = True
    ) -> None:
        self._width = width
        self._height = height
        self._color = color
        self._ready = ready
        self.stopped = False

    @property
    def width(self) -> int:
        return self._width if self._ready else 0

    @property
    def height(self) -> int:
        return self._height if self._ready else 0

    def mark_ready(self) -> None:
        self._ready = True

    def snapshot(self) -> bytes:
        return bytes(self._color) * (self._width * self._height)

    def stop(self) -> None:
        self.stopped = True


class StubCamera:
    """Camera stand-in used by tests and the ``stub`` backend."""

    def __init__(
        self,
        width: int = 64,
        height: int = 48,
        *,
        color: tuple[int, int, int] = (200, 40, 40),
        ready: bool = True,
        failure: CameraError | None = None,
    ) -> None:
        self._width = width
        self._height = height
        self._color = color
        self._ready = ready
        self._failure = failure
        self.streams: list[StubStream] = []

    def request_stream(self, constraints: CameraConstraints) -> StubStream:
        if self._failure is not None:
            raise self._failure
        stream = StubStream(self._width, self._height, self._color, ready=self._ready)
        self.streams.append(stream)
        return stream


class OpenCVStream:
    """Live stream over an opened ``cv2.VideoCapture``."""

    def __init__(self, cv2_module, capture) -> None:
        self._cv2 = cv2_module
        self._cap = capture
        self._width = 0
        self._height = 0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def read(self):
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        self._height, self._width = frame.shape[:2]
        return frame

    def snapshot(self) -> bytes:
        frame = self.read()
        if frame is None:
            raise CaptureError("Failed to capture frame from camera.")
        rgb = self._cv2.cvtColor(frame, self._cv2.COLOR_BGR2RGB)
        return rgb.tobytes()

    def stop(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class OpenCVCamera:
    """Open USB/V4L devices through OpenCV."""

    _BACKEND_ALIASES = {
        "any": "CAP_ANY",
        "auto": "CAP_ANY",
        "v4l2": "CAP_V4L2",
        "dshow": "CAP_DSHOW",
        "directshow": "CAP_DSHOW",
        "msmf": "CAP_MSMF",
        "avfoundation": "CAP_AVFOUNDATION",
    }

    def __init__(
        self,
        source: int | str = 0,
        *,
        backend: str | int | None = None,
        warmup_frames: int = 2,
    ) -> None:
        self._source = source
        self._backend = backend
        self._warmup_frames = warmup_frames

    def request_stream(self, constraints: CameraConstraints) -> OpenCVStream:
        try:
            import cv2  # type: ignore
        except ImportError as exc:
            raise CameraUnsupported() from exc

        self._check_device_node()
        cap = cv2.VideoCapture(self._source, self._resolve_backend(self._backend, cv2))
        if not cap.isOpened():
            cap.release()
            raise CameraError(f"Unable to open camera source {self._source!r}")
        if constraints.width and constraints.height:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, float(constraints.width))
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, float(constraints.height))
        logger.debug("OpenCV ignores facing mode %r", constraints.facing_mode)

        stream = OpenCVStream(cv2, cap)
        for _ in range(self._warmup_frames):
            if stream.read() is None:
                break
        return stream

    def _check_device_node(self) -> None:
        if not isinstance(self._source, int) or not sys.platform.startswith("linux"):
            return
        node = Path(f"/dev/video{self._source}")
        if not node.exists():
            raise DeviceNotFound()
        if not os.access(node, os.R_OK | os.W_OK):
            raise PermissionDenied()

    def _resolve_backend(self, backend: str | int | None, cv2_module) -> int:
        if backend is None:
            return cv2_module.CAP_ANY
        if isinstance(backend, int):
            return backend
        key = backend.strip().lower()
        attr_name = self._BACKEND_ALIASES.get(key)
        if attr_name is None:
            raise CameraError(f"Unknown OpenCV backend alias: {backend!r}")
        return getattr(cv2_module, attr_name, cv2_module.CAP_ANY)


__all__ = [
    "Camera",
    "CameraConstraints",
    "CameraSession",
    "CameraSessionHandle",
    "CameraStream",
    "OpenCVCamera",
    "StubCamera",
    "StubStream",
]
