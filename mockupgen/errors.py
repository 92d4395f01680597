"""
errors.py — User-facing failure taxonomy for mockup generation.

The Gemini client translates every low-level failure into one of these
before it leaves its boundary; callers never see raw SDK/transport errors.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNCONFIGURED       = "unconfigured"
    RATE_LIMITED       = "rate_limited"
    UNAUTHORIZED       = "unauthorized"
    SAFETY_BLOCKED     = "safety_blocked"
    MALFORMED_RESPONSE = "malformed_response"
    CONNECTIVITY       = "connectivity"
    UNKNOWN            = "unknown"


class GenerationError(Exception):
    """Base class — carries a short message that is safe to show the user."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    user_message: str = "Generation failed."

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail
        super().__init__(detail or self.user_message)


class UnconfiguredError(GenerationError):
    kind = ErrorKind.UNCONFIGURED
    user_message = "API key not configured (GEMINI_API_KEY missing)."


class RateLimitedError(GenerationError):
    kind = ErrorKind.RATE_LIMITED
    user_message = "Too many requests. Wait a moment and retry."


class UnauthorizedError(GenerationError):
    kind = ErrorKind.UNAUTHORIZED
    user_message = "Invalid API key."


class SafetyBlockedError(GenerationError):
    kind = ErrorKind.SAFETY_BLOCKED
    user_message = "The model did not return an image (blocked by safety or context)."

    def __init__(self, detail: Optional[str] = None, model_text: str = "") -> None:
        super().__init__(detail)
        self.model_text = model_text


class MalformedResponseError(GenerationError):
    kind = ErrorKind.MALFORMED_RESPONSE
    user_message = "Invalid response format from the model."


class ConnectivityError(GenerationError):
    kind = ErrorKind.CONNECTIVITY
    user_message = "Could not reach the image service. Check your connection."


class UnknownGenerationError(GenerationError):
    kind = ErrorKind.UNKNOWN
    user_message = "Generation failed."


class ExportError(Exception):
    """Download/export failed — shown to the user, slot state untouched."""
