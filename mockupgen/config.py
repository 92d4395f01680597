"""
config.py — Runtime settings from the environment / .env.

Required:
    GEMINI_API_KEY=...            (API_KEY is accepted as a fallback)

Optional:
    MOCKUP_MODEL=gemini-2.5-flash-image
    MOCKUP_PACING_SECONDS=1.0     # sleep between the 4 batch requests
    MOCKUP_MAX_UPLOAD_DIMENSION=1024
    MOCKUP_OUTPUT_DIR=outputs
    TELEGRAM_BOT_TOKEN=...        # bot only
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .codec import DEFAULT_MAX_DIMENSION
from .generator import DEFAULT_MODEL, GeminiMockupGenerator
from .orchestrator import DEFAULT_PACING_SECONDS, SlotOrchestrator


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    pacing_seconds: float = DEFAULT_PACING_SECONDS
    max_upload_dimension: int = DEFAULT_MAX_DIMENSION
    output_dir: Path = Path("outputs")
    telegram_token: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def api_key_status(self) -> str:
        """Safe-to-log description of the credential."""
        return f"present (length {len(self.api_key)})" if self.api_key else "missing"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ
        return cls(
            api_key=(env.get("GEMINI_API_KEY") or env.get("API_KEY") or "").strip(),
            model=(env.get("MOCKUP_MODEL") or DEFAULT_MODEL).strip(),
            pacing_seconds=_float(env, "MOCKUP_PACING_SECONDS", DEFAULT_PACING_SECONDS),
            max_upload_dimension=_int(env, "MOCKUP_MAX_UPLOAD_DIMENSION", DEFAULT_MAX_DIMENSION),
            output_dir=Path(env.get("MOCKUP_OUTPUT_DIR") or "outputs"),
            telegram_token=(env.get("TELEGRAM_BOT_TOKEN") or "").strip(),
        )

    def build_generator(self) -> GeminiMockupGenerator:
        return GeminiMockupGenerator(
            api_key=self.api_key,
            model=self.model,
            max_upload_dimension=self.max_upload_dimension,
        )

    def build_orchestrator(self, generator: Optional[GeminiMockupGenerator] = None) -> SlotOrchestrator:
        return SlotOrchestrator(
            generator or self.build_generator(),
            pacing_seconds=self.pacing_seconds,
        )
