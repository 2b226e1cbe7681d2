from __future__ import annotations

import argparse
import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from acquisition.camera import (
    Camera,
    CameraConstraints,
    CameraSession,
    OpenCVCamera,
    StubCamera,
)
from acquisition.uploads import FileUpload
from classifier.gemini_client import GeminiImageClassifier

from .machine import WorkflowStateMachine
from .states import CameraLive, PreviewReady, Result, WorkflowState, describe_state

logger = logging.getLogger(__name__)


def parse_resolution(value: str | None) -> tuple[int, int] | None:
    if value is None:
        return None
    parts = value.lower().split("x")
    if len(parts) != 2:
        raise argparse.ArgumentTypeError("resolution must be WIDTHxHEIGHT")
    width, height = parts
    try:
        return int(width), int(height)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("resolution must be numeric") from exc


def build_camera(kind: str, source: str, backend: str | None, warmup_frames: int) -> Camera:
    if kind == "opencv":
        try:
            converted: int | str = int(source)
        except ValueError:
            converted = source
        return OpenCVCamera(source=converted, backend=backend, warmup_frames=warmup_frames)
    return StubCamera()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Identify the fruit in a photo using the Gemini vision API"
    )
    parser.add_argument("image", nargs="?", default=None, help="image file to upload")
    parser.add_argument(
        "--camera",
        choices=["stub", "opencv"],
        default=None,
        help="capture from a camera instead of uploading a file",
    )
    parser.add_argument(
        "--camera-source", default="0", help="camera index or device path (OpenCV)"
    )
    parser.add_argument(
        "--camera-backend", default=None, help="preferred OpenCV backend (e.g. v4l2, dshow)"
    )
    parser.add_argument(
        "--camera-resolution",
        type=parse_resolution,
        default=(1280, 720),
        help="preferred resolution WIDTHxHEIGHT (hint only)",
    )
    parser.add_argument(
        "--camera-warmup",
        type=int,
        default=2,
        help="number of frames to discard after opening the camera",
    )
    parser.add_argument(
        "--camera-timeout",
        type=float,
        default=5.0,
        help="seconds to wait for the camera to deliver frames",
    )
    parser.add_argument("--api-key", default=None, help="Gemini API key (overrides env)")
    parser.add_argument(
        "--api-key-env",
        default="GEMINI_API_KEY",
        help="environment variable holding the Gemini API key",
    )
    parser.add_argument("--model", default="models/gemini-2.5-flash", help="Gemini model name")
    parser.add_argument(
        "--api-timeout", type=float, default=30.0, help="HTTP timeout in seconds"
    )
    parser.add_argument(
        "--save-preview",
        type=Path,
        default=None,
        help="write the image sent for identification to this path",
    )
    parser.add_argument(
        "--print-data-url",
        action="store_true",
        help="print the image sent for identification as a data: URL",
    )
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def print_state(state: WorkflowState) -> None:
    info = describe_state(state)
    details = ", ".join(f"{key}={value}" for key, value in info.items() if key != "state" and value)
    print(f"[workflow] {info['state']}" + (f" ({details})" if details else ""))


async def wait_for_camera(machine: WorkflowStateMachine, timeout: float) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if machine.camera_ready:
            return True
        await asyncio.sleep(0.05)
    return machine.camera_ready


async def run(args: argparse.Namespace, classifier=None, camera: Camera | None = None) -> int:
    if classifier is None:
        api_key = args.api_key or os.environ.get(args.api_key_env, "")
        if not api_key:
            logger.error("Environment variable %s must be set to identify fruit", args.api_key_env)
        classifier = GeminiImageClassifier(
            api_key=api_key, model=args.model, timeout=args.api_timeout
        )
    if camera is None:
        camera = build_camera(
            args.camera or "stub", args.camera_source, args.camera_backend, args.camera_warmup
        )
    width, height = args.camera_resolution or (None, None)
    machine = WorkflowStateMachine(
        classifier,
        CameraSession(camera),
        renderer=print_state,
        constraints=CameraConstraints(width=width, height=height),
    )

    try:
        if args.camera:
            state = await machine.start_camera()
            if isinstance(state, CameraLive):
                await wait_for_camera(machine, args.camera_timeout)
                machine.capture()
        else:
            await machine.upload(FileUpload(Path(args.image)) if args.image else None)

        state = machine.state
        if not isinstance(state, PreviewReady):
            return 1
        if args.save_preview is not None:
            args.save_preview.parent.mkdir(parents=True, exist_ok=True)
            args.save_preview.write_bytes(state.image.data)
            logger.info("Saved preview to %s", args.save_preview)
        if args.print_data_url:
            print(state.image.data_url())

        state = await machine.classify()
        return 0 if isinstance(state, Result) else 1
    finally:
        machine.stop_camera()


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(levelname)s [%(name)s] %(message)s",
        )
    if not args.image and not args.camera:
        parser.error("provide an image path or --camera")
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
