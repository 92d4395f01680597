"""
generator.py — Gemini mockup client.

One call to generate() = one generate_content request:

  [inline JPEG of the user's logo]  +  [category prompt]
        → first inline image in the response, as a data URI

Failures are translated into the errors.py taxonomy here; nothing else in
the package ever sees a google-genai or httpx exception.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Tuple, Union

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .codec import DEFAULT_MAX_DIMENSION, encode_for_upload, split_data_uri, to_data_uri
from .errors import (
    ConnectivityError,
    GenerationError,
    MalformedResponseError,
    RateLimitedError,
    SafetyBlockedError,
    UnauthorizedError,
    UnconfiguredError,
    UnknownGenerationError,
)
from .prompts import MockupCategory, build_prompt

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image"

_CREDENTIAL_REASONS = {"API_KEY_INVALID", "API_KEY_SERVICE_BLOCKED"}
_CREDENTIAL_STATUSES = {"PERMISSION_DENIED", "UNAUTHENTICATED"}


class MockupGenerator(Protocol):
    async def generate(
        self,
        source_image: str,
        category: MockupCategory,
        description: str = "",
    ) -> str:
        """Return a data URI of the generated mockup or raise GenerationError."""


# ── Response parts ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImagePart:
    mime_type: Optional[str]
    data: Union[bytes, str]


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class UnknownPart:
    pass


ResponsePart = Union[ImagePart, TextPart, UnknownPart]


def _classify_part(part: Any) -> ResponsePart:
    inline = getattr(part, "inline_data", None)
    if inline is not None and getattr(inline, "data", None):
        return ImagePart(mime_type=getattr(inline, "mime_type", None), data=inline.data)
    text = getattr(part, "text", None)
    if text:
        return TextPart(text=text)
    return UnknownPart()


def parse_response_parts(response: Any) -> Tuple[ResponsePart, ...]:
    """Tag every part of the first candidate. Missing structure → empty tuple."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ()
    content = getattr(candidates[0], "content", None)
    parts: Iterable[Any] = getattr(content, "parts", None) or []
    return tuple(_classify_part(p) for p in parts)


def _block_reason(response: Any) -> Optional[str]:
    feedback = getattr(response, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None)
    return str(reason) if reason else None


def image_from_response(response: Any) -> str:
    """Pick the generated image out of a response, or raise the matching error."""
    parts = parse_response_parts(response)
    text_parts = []
    for part in parts:
        if isinstance(part, ImagePart):
            return to_data_uri(part.data, part.mime_type or "image/png")
        if isinstance(part, TextPart):
            text_parts.append(part.text)
        elif isinstance(part, UnknownPart):
            continue

    if text_parts:
        model_text = "\n".join(text_parts)
        logger.warning("Model answered with text instead of an image: %s", model_text[:300])
        raise SafetyBlockedError(model_text[:300], model_text=model_text)

    reason = _block_reason(response)
    if reason:
        raise SafetyBlockedError(f"prompt blocked: {reason}")

    raise MalformedResponseError("response has no image or text part")


# ── Error mapping ─────────────────────────────────────────────────────────────

def _error_reasons(details: Any) -> set:
    if not isinstance(details, dict):
        return set()
    error = details.get("error", details)
    if not isinstance(error, dict):
        return set()
    reasons = set()
    for item in error.get("details") or []:
        if isinstance(item, dict) and item.get("reason"):
            reasons.add(str(item["reason"]))
    return reasons


def classify_error(exc: BaseException) -> GenerationError:
    """Translate an SDK / transport exception into the user-facing taxonomy."""
    if isinstance(exc, GenerationError):
        return exc

    if isinstance(exc, genai_errors.APIError):
        code = getattr(exc, "code", None)
        status = getattr(exc, "status", None)
        detail = f"{code} {status}: {getattr(exc, 'message', None) or exc}"
        if code == 429:
            return RateLimitedError(detail)
        if (
            code in (401, 403)
            or status in _CREDENTIAL_STATUSES
            or _error_reasons(getattr(exc, "details", None)) & _CREDENTIAL_REASONS
        ):
            return UnauthorizedError(detail)
        return UnknownGenerationError(detail)

    # aiohttp connector errors are OSError subclasses
    if isinstance(exc, (httpx.TransportError, OSError, asyncio.TimeoutError)):
        return ConnectivityError(f"{type(exc).__name__}: {exc}")

    return UnknownGenerationError(f"{type(exc).__name__}: {exc}")


# ── Client ────────────────────────────────────────────────────────────────────

class GeminiMockupGenerator:
    """Owns the credential and model; construct once and inject where needed."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        max_upload_dimension: int = DEFAULT_MAX_DIMENSION,
        client: Optional[genai.Client] = None,
    ) -> None:
        self.api_key = api_key or ""
        self.model = model
        self.max_upload_dimension = max_upload_dimension
        self._client = client
        logger.info(
            "Gemini mockup client init — API key %s, model %s",
            f"present (length {len(self.api_key)})" if self.api_key else "missing",
            model,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _build_contents(self, source_image: str, prompt: str) -> list:
        optimized = encode_for_upload(source_image, max_dimension=self.max_upload_dimension)
        mime, payload = split_data_uri(optimized)
        try:
            image_bytes = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UnknownGenerationError(f"source image is not valid base64: {exc}") from exc
        return [
            types.Part.from_bytes(data=image_bytes, mime_type=mime or "image/jpeg"),
            types.Part.from_text(text=prompt),
        ]

    async def generate(
        self,
        source_image: str,
        category: MockupCategory,
        description: str = "",
    ) -> str:
        if not self.is_configured:
            raise UnconfiguredError()

        prompt = build_prompt(category, description)
        loop = asyncio.get_running_loop()
        contents = await loop.run_in_executor(None, self._build_contents, source_image, prompt)
        logger.info("Generating mockup for %s…", category.value)

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                ),
            )
        except Exception as exc:
            mapped = classify_error(exc)
            logger.error("Gemini API error (%s): %s", mapped.kind.value, exc)
            raise mapped from exc

        return image_from_response(response)
