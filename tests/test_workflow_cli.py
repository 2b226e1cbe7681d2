import argparse
import base64
import contextlib
import io
import tempfile
import unittest
from pathlib import Path

from PIL import Image

from acquisition.camera import StubCamera
from classifier.types import ClassificationError, ErrorKind, Label
from workflow.main import build_parser, parse_resolution, run


class _StaticClassifier:
    def __init__(self, outcome) -> None:
        self.outcome = outcome

    async def classify(self, image):
        return self.outcome


class ParseResolutionTests(unittest.TestCase):
    def test_parses_width_and_height(self) -> None:
        self.assertEqual(parse_resolution("640x480"), (640, 480))
        self.assertIsNone(parse_resolution(None))

    def test_rejects_malformed_values(self) -> None:
        for value in ("640", "axb", "1x2x3"):
            with self.subTest(value=value):
                with self.assertRaises(argparse.ArgumentTypeError):
                    parse_resolution(value)


class WorkflowCliTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _write_png(self) -> Path:
        path = self.tmp_path / "fruit.png"
        buffer = io.BytesIO()
        Image.new("RGB", (10, 10), (255, 140, 0)).save(buffer, format="PNG")
        path.write_bytes(buffer.getvalue())
        return path

    async def test_upload_flow_exits_zero_on_label(self) -> None:
        path = self._write_png()
        preview = self.tmp_path / "out" / "preview.jpg"
        args = build_parser().parse_args([str(path), "--save-preview", str(preview)])

        code = await run(args, classifier=_StaticClassifier(Label("Orange")))

        self.assertEqual(code, 0)
        self.assertTrue(preview.exists())
        self.assertEqual(preview.read_bytes()[:2], b"\xff\xd8")

    async def test_print_data_url_emits_preview_image(self) -> None:
        path = self._write_png()
        args = build_parser().parse_args([str(path), "--print-data-url"])
        output = io.StringIO()

        with contextlib.redirect_stdout(output):
            code = await run(args, classifier=_StaticClassifier(Label("Orange")))

        self.assertEqual(code, 0)
        urls = [line for line in output.getvalue().splitlines() if line.startswith("data:")]
        self.assertEqual(len(urls), 1)
        prefix, encoded = urls[0].split(",", 1)
        self.assertEqual(prefix, "data:image/jpeg;base64")
        self.assertEqual(base64.b64decode(encoded)[:2], b"\xff\xd8")

    async def test_missing_file_exits_one(self) -> None:
        args = build_parser().parse_args([str(self.tmp_path / "missing.jpg")])
        code = await run(args, classifier=_StaticClassifier(Label("Orange")))
        self.assertEqual(code, 1)

    async def test_camera_flow_uses_capture(self) -> None:
        camera = StubCamera()
        args = build_parser().parse_args(["--camera", "stub", "--camera-timeout", "0.2"])
        code = await run(args, classifier=_StaticClassifier(Label("Kiwi")), camera=camera)
        self.assertEqual(code, 0)
        self.assertTrue(camera.streams[0].stopped)

    async def test_camera_never_ready_exits_one_and_releases_stream(self) -> None:
        camera = StubCamera(ready=False)
        args = build_parser().parse_args(["--camera", "stub", "--camera-timeout", "0.1"])
        code = await run(args, classifier=_StaticClassifier(Label("Kiwi")), camera=camera)
        self.assertEqual(code, 1)
        self.assertTrue(camera.streams[0].stopped)

    async def test_classification_error_exits_one(self) -> None:
        path = self._write_png()
        args = build_parser().parse_args([str(path)])
        outcome = ClassificationError(ErrorKind.EMPTY_RESULT, "Could not identify the fruit in the image.")
        code = await run(args, classifier=_StaticClassifier(outcome))
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
