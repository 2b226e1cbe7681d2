from __future__ import annotations

import argparse
import logging
import os
from typing import Sequence

import uvicorn
from dotenv import load_dotenv

from acquisition.camera import CameraConstraints
from classifier.gemini_client import GeminiImageClassifier
from workflow.main import build_camera, parse_resolution

from .server import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the fruit identifier web workflow")
    parser.add_argument("--host", default="127.0.0.1", help="bind address")
    parser.add_argument("--port", type=int, default=8000, help="bind port")
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
        "--camera", choices=["stub", "opencv"], default="stub", help="camera backend to use"
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
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    load_dotenv()
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s"
        )
    args = build_parser().parse_args(argv)

    api_key = os.environ.get(args.api_key_env, "")
    if not api_key:
        logger.error(
            "Environment variable %s must be set for the Gemini classifier", args.api_key_env
        )
    classifier = GeminiImageClassifier(
        api_key=api_key, model=args.model, timeout=args.api_timeout
    )
    camera = build_camera(
        args.camera, args.camera_source, args.camera_backend, args.camera_warmup
    )
    width, height = args.camera_resolution or (None, None)

    app = create_app(
        classifier=classifier,
        camera=camera,
        constraints=CameraConstraints(width=width, height=height),
    )
    logger.info("Server configuration: %s:%d camera=%s", args.host, args.port, args.camera)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
