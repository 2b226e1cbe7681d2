from __future__ import annotations


class AcquisitionError(Exception):
    """Base class for failures on the upload and camera paths.

    ``message`` is always user-facing; each subclass supplies a default.
    """

    default_message = "Could not acquire the image."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ReadError(AcquisitionError):
    default_message = "Error reading file."


class CaptureError(AcquisitionError):
    default_message = "Could not capture photo. Camera not ready."


class CameraError(AcquisitionError):
    default_message = "Could not access the camera."


class CameraUnsupported(CameraError):
    default_message = "Camera not supported on this device."


class PermissionDenied(CameraError):
    default_message = "Camera permission denied. Please allow camera access in your settings."


class DeviceNotFound(CameraError):
    default_message = "No camera found on this device."


__all__ = [
    "AcquisitionError",
    "ReadError",
    "CaptureError",
    "CameraError",
    "CameraUnsupported",
    "PermissionDenied",
    "DeviceNotFound",
]
