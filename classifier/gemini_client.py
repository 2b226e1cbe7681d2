from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import requests

from acquisition.image import JPEG_MEDIA_TYPE, EncodedImage

from .backoff import DEFAULT_BASE_DELAY, DEFAULT_RETRIES, ExhaustedRetries, fetch_with_backoff
from .types import ClassificationError, ClassificationOutcome, ErrorKind, Label

logger = logging.getLogger(__name__)

FRUIT_PROMPT = (
    "Identify the single predominant fruit depicted in this image. "
    "Respond with only its common name."
)
EMPTY_RESULT_MESSAGE = "Could not identify the fruit in the image."


@dataclass
class GeminiImageClassifier:
    """Identify fruit by delegating to the Google Gemini multimodal API."""

    api_key: str
    model: str = "models/gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 30.0
    retries: int = DEFAULT_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    session: requests.Session = field(default_factory=requests.Session)
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.model}:generateContent"

    async def classify(self, image: EncodedImage) -> ClassificationOutcome:
        if not self.api_key:
            return ClassificationError(
                ErrorKind.MISSING_CREDENTIAL,
                "A Gemini API key is required to identify fruit.",
            )

        payload = self._build_payload(image)
        logger.info("Sending image to %s bytes=%d", self.model, image.size)
        try:
            response = await fetch_with_backoff(
                lambda: self._post(payload),
                retries=self.retries,
                base_delay=self.base_delay,
                sleep=self.sleep,
            )
        except ExhaustedRetries as exc:
            return ClassificationError(ErrorKind.EXHAUSTED_RETRIES, exc.message)
        except requests.RequestException as exc:
            logger.error("Failed to reach Gemini API: %s", exc)
            return ClassificationError(ErrorKind.TRANSPORT, f"Failed to reach Gemini API: {exc}")
        return self._parse_response(response)

    async def _post(self, payload: dict[str, Any]) -> requests.Response:
        return await asyncio.to_thread(
            self.session.post,
            self.url,
            params={"key": self.api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )

    def _build_payload(self, image: EncodedImage) -> dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": FRUIT_PROMPT},
                        {
                            "inlineData": {
                                "mimeType": JPEG_MEDIA_TYPE,
                                "data": image.to_base64(),
                            }
                        },
                    ]
                }
            ]
        }

    def _parse_response(self, response: requests.Response) -> ClassificationOutcome:
        body = self._json_body(response)
        if not response.ok:
            message = self._extract_error_message(body)
            logger.warning("Gemini API returned status %d: %s", response.status_code, message)
            return ClassificationError(
                ErrorKind.API_ERROR,
                message or f"API request failed with status {response.status_code}",
            )

        text = self._extract_text(body)
        if not text:
            logger.warning("Gemini API response carried no label text")
            return ClassificationError(ErrorKind.EMPTY_RESULT, EMPTY_RESULT_MESSAGE)
        return Label(text)

    def _json_body(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def _extract_error_message(self, body: Any) -> str | None:
        if not isinstance(body, dict):
            return None
        error = body.get("error")
        if not isinstance(error, dict):
            return None
        message = error.get("message")
        return message if isinstance(message, str) and message else None

    def _extract_text(self, body: Any) -> str | None:
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(text, str):
            return None
        return text.strip() or None


__all__ = ["GeminiImageClassifier", "FRUIT_PROMPT", "EMPTY_RESULT_MESSAGE"]
