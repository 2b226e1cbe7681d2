from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from typing import Protocol

from PIL import Image

from .errors import CaptureError, ReadError

logger = logging.getLogger(__name__)

JPEG_MEDIA_TYPE = "image/jpeg"
_JPEG_ALIASES = {"image/jpeg", "image/jpg", "image/pjpeg"}


@dataclass(frozen=True)
class EncodedImage:
    """Encoded image payload paired with its declared media type."""

    data: bytes
    media_type: str = JPEG_MEDIA_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


class UploadCandidate(Protocol):
    content_type: str | None
    size: int | None

    async def read(self) -> bytes: ...


@dataclass
class ImageSource:
    """Normalise uploads and camera frames into JPEG ``EncodedImage`` values."""

    jpeg_quality: int = 85

    async def from_upload(self, upload: UploadCandidate) -> EncodedImage:
        try:
            raw = await upload.read()
        except Exception as exc:
            logger.warning("Upload read failed: %s", exc)
            raise ReadError() from exc

        media_type = (upload.content_type or "").lower()
        if media_type in _JPEG_ALIASES:
            return EncodedImage(data=bytes(raw))

        try:
            with Image.open(io.BytesIO(raw)) as image:
                data = self._encode_jpeg(image)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Upload of type %s could not be decoded: %s", media_type, exc)
            raise ReadError() from exc
        logger.debug("Transcoded %s upload to JPEG bytes=%d", media_type, len(data))
        return EncodedImage(data=data)

    def from_camera_frame(
        self, frame_buffer: bytes, width: int | None, height: int | None
    ) -> EncodedImage:
        if not width or not height:
            raise CaptureError()
        try:
            image = Image.frombytes("RGB", (int(width), int(height)), bytes(frame_buffer))
        except ValueError as exc:
            raise CaptureError(f"Camera frame did not match {width}x{height}.") from exc
        return EncodedImage(data=self._encode_jpeg(image))

    def _encode_jpeg(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.convert("RGB").save(buffer, format="JPEG", quality=self.jpeg_quality)
        return buffer.getvalue()


__all__ = ["EncodedImage", "ImageSource", "UploadCandidate", "JPEG_MEDIA_TYPE"]
