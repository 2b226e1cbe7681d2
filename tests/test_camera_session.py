import io
import sys
import types
import unittest
from unittest.mock import patch

from PIL import Image

from acquisition.camera import CameraConstraints, CameraSession, OpenCVCamera, StubCamera
from acquisition.errors import (
    CameraError,
    CameraUnsupported,
    CaptureError,
    DeviceNotFound,
    PermissionDenied,
)


class _ExplodingCamera:
    def request_stream(self, constraints):
        raise RuntimeError("driver crashed")


class CameraSessionTests(unittest.IsolatedAsyncioTestCase):
    async def test_start_returns_active_handle(self) -> None:
        camera = StubCamera()
        session = CameraSession(camera)
        handle = await session.start(CameraConstraints())
        self.assertTrue(handle.active)
        self.assertTrue(handle.ready)
        self.assertEqual(len(camera.streams), 1)

    async def test_capture_encodes_frame_and_stops_stream(self) -> None:
        camera = StubCamera(width=16, height=12)
        session = CameraSession(camera)
        handle = await session.start()

        image = session.capture_frame(handle)

        self.assertEqual(image.media_type, "image/jpeg")
        with Image.open(io.BytesIO(image.data)) as decoded:
            self.assertEqual(decoded.size, (16, 12))
        self.assertFalse(handle.active)
        self.assertTrue(camera.streams[0].stopped)

    async def test_capture_before_ready_keeps_session_live(self) -> None:
        camera = StubCamera(ready=False)
        session = CameraSession(camera)
        handle = await session.start()

        with self.assertRaises(CaptureError):
            session.capture_frame(handle)

        self.assertTrue(handle.active)
        self.assertFalse(camera.streams[0].stopped)

        camera.streams[0].mark_ready()
        session.capture_frame(handle)
        self.assertTrue(camera.streams[0].stopped)

    async def test_stop_is_idempotent(self) -> None:
        camera = StubCamera()
        session = CameraSession(camera)
        session.stop(None)
        handle = await session.start()
        session.stop(handle)
        session.stop(handle)
        self.assertFalse(handle.active)
        self.assertTrue(camera.streams[0].stopped)

    async def test_capture_after_stop_is_rejected(self) -> None:
        session = CameraSession(StubCamera())
        handle = await session.start()
        session.stop(handle)
        with self.assertRaises(CaptureError):
            session.capture_frame(handle)

    async def test_start_propagates_typed_failures(self) -> None:
        session = CameraSession(StubCamera(failure=DeviceNotFound()))
        with self.assertRaises(DeviceNotFound) as ctx:
            await session.start()
        self.assertEqual(ctx.exception.message, "No camera found on this device.")

    async def test_start_wraps_unexpected_failures(self) -> None:
        session = CameraSession(_ExplodingCamera())
        with self.assertRaises(CameraError) as ctx:
            await session.start()
        self.assertIn("driver crashed", ctx.exception.message)


class _FakeFrame:
    def __init__(self, width: int, height: int) -> None:
        self.shape = (height, width, 3)
        self._data = bytes(range(width * height * 3))

    def tobytes(self) -> bytes:
        return self._data


class _FakeCapture:
    def __init__(self, source, backend, opened: bool = True) -> None:
        self.source = source
        self.backend = backend
        self.opened = opened
        self.props: dict[int, float] = {}
        self.reads = 0
        self.released = False

    def isOpened(self) -> bool:
        return self.opened

    def set(self, prop: int, value: float) -> None:
        self.props[prop] = value

    def read(self):
        self.reads += 1
        return True, _FakeFrame(4, 3)

    def release(self) -> None:
        self.released = True


def _fake_cv2(opened: bool = True) -> types.ModuleType:
    module = types.ModuleType("cv2")
    module.CAP_ANY = 0
    module.CAP_V4L2 = 200
    module.CAP_PROP_FRAME_WIDTH = 3
    module.CAP_PROP_FRAME_HEIGHT = 4
    module.COLOR_BGR2RGB = 4
    module.captures = []

    def video_capture(source, backend):
        capture = _FakeCapture(source, backend, opened=opened)
        module.captures.append(capture)
        return capture

    module.VideoCapture = video_capture
    module.cvtColor = lambda frame, code: frame
    return module


class OpenCVCameraTests(unittest.TestCase):
    def test_missing_opencv_is_unsupported(self) -> None:
        with patch.dict(sys.modules, {"cv2": None}):
            with self.assertRaises(CameraUnsupported) as ctx:
                OpenCVCamera(source=0).request_stream(CameraConstraints())
        self.assertEqual(ctx.exception.message, "Camera not supported on this device.")

    @unittest.skipUnless(sys.platform.startswith("linux"), "device nodes are Linux specific")
    def test_missing_device_node_is_device_not_found(self) -> None:
        fake = _fake_cv2()
        with patch.dict(sys.modules, {"cv2": fake}), patch(
            "acquisition.camera.Path.exists", return_value=False
        ):
            with self.assertRaises(DeviceNotFound):
                OpenCVCamera(source=97).request_stream(CameraConstraints())
        self.assertEqual(fake.captures, [])

    @unittest.skipUnless(sys.platform.startswith("linux"), "device nodes are Linux specific")
    def test_unreadable_device_node_is_permission_denied(self) -> None:
        fake = _fake_cv2()
        with patch.dict(sys.modules, {"cv2": fake}), patch(
            "acquisition.camera.Path.exists", return_value=True
        ), patch("acquisition.camera.os.access", return_value=False):
            with self.assertRaises(PermissionDenied) as ctx:
                OpenCVCamera(source=0).request_stream(CameraConstraints())
        self.assertIn("permission denied", ctx.exception.message)
        self.assertEqual(fake.captures, [])

    def test_unopened_capture_is_released_and_reported(self) -> None:
        fake = _fake_cv2(opened=False)
        with patch.dict(sys.modules, {"cv2": fake}):
            with self.assertRaises(CameraError):
                OpenCVCamera(source="rtsp://camera.local/stream").request_stream(
                    CameraConstraints()
                )
        self.assertTrue(fake.captures[0].released)

    def test_opened_stream_warms_up_and_snapshots(self) -> None:
        fake = _fake_cv2()
        camera = OpenCVCamera(
            source="rtsp://camera.local/stream", backend="v4l2", warmup_frames=3
        )
        with patch.dict(sys.modules, {"cv2": fake}):
            stream = camera.request_stream(CameraConstraints(width=640, height=480))

        capture = fake.captures[0]
        self.assertEqual(capture.backend, 200)
        self.assertEqual(capture.props, {3: 640.0, 4: 480.0})
        self.assertEqual(capture.reads, 3)
        self.assertEqual((stream.width, stream.height), (4, 3))
        self.assertEqual(len(stream.snapshot()), 4 * 3 * 3)

        stream.stop()
        stream.stop()
        self.assertTrue(capture.released)
        with self.assertRaises(CaptureError):
            stream.snapshot()

    def test_unknown_backend_alias_is_rejected(self) -> None:
        with patch.dict(sys.modules, {"cv2": _fake_cv2()}):
            with self.assertRaises(CameraError):
                OpenCVCamera(source="rtsp://camera.local/stream", backend="quicktime").request_stream(
                    CameraConstraints()
                )


class OpenCVSessionTests(unittest.IsolatedAsyncioTestCase):
    async def test_session_captures_jpeg_from_opencv_stream(self) -> None:
        fake = _fake_cv2()
        session = CameraSession(OpenCVCamera(source="rtsp://camera.local/stream"))
        with patch.dict(sys.modules, {"cv2": fake}):
            handle = await session.start()
            image = session.capture_frame(handle)

        with Image.open(io.BytesIO(image.data)) as decoded:
            self.assertEqual(decoded.size, (4, 3))
        self.assertTrue(fake.captures[0].released)



if __name__ == "__main__":
    unittest.main()
