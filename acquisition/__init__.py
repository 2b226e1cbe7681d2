from __future__ import annotations

from .camera import CameraConstraints, CameraSession, CameraSessionHandle, StubCamera
from .errors import (
    AcquisitionError,
    CameraError,
    CameraUnsupported,
    CaptureError,
    DeviceNotFound,
    PermissionDenied,
    ReadError,
)
from .image import EncodedImage, ImageSource
from .validator import MAX_UPLOAD_BYTES, Accepted, Rejected, validate

__all__ = [
    "AcquisitionError",
    "Accepted",
    "CameraConstraints",
    "CameraError",
    "CameraSession",
    "CameraSessionHandle",
    "CameraUnsupported",
    "CaptureError",
    "DeviceNotFound",
    "EncodedImage",
    "ImageSource",
    "MAX_UPLOAD_BYTES",
    "PermissionDenied",
    "ReadError",
    "Rejected",
    "StubCamera",
    "validate",
]
