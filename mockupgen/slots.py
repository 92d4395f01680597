"""
slots.py — Result slot data model.

Slots are immutable: the orchestrator replaces a slot (and the whole slot
tuple) on every change, so renderers never observe a half-updated batch.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ErrorKind
from .prompts import MockupCategory


class SlotStatus(str, Enum):
    PENDING   = "pending"      # queued in a batch, request not sent yet
    LOADING   = "loading"      # request in flight
    SUCCEEDED = "succeeded"
    FAILED    = "failed"


class ResultSlot(BaseModel):
    """One of the four generation attempts shown side by side."""

    model_config = ConfigDict(frozen=True)

    identity: int = Field(description="Generation tag — new on every (re)start")
    position: int = Field(ge=0)
    status: SlotStatus = SlotStatus.PENDING
    image: Optional[str] = Field(default=None, description="data URI of the generated mockup")
    error: Optional[str] = Field(default=None, description="User-facing failure message")
    error_kind: Optional[ErrorKind] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "ResultSlot":
        if self.image is not None and self.error is not None:
            raise ValueError("a slot cannot carry both an image and an error")
        if self.status is SlotStatus.SUCCEEDED and self.image is None:
            raise ValueError("succeeded slot requires an image")
        if self.status is SlotStatus.FAILED and self.error is None:
            raise ValueError("failed slot requires an error message")
        if self.status in (SlotStatus.PENDING, SlotStatus.LOADING) and (
            self.image is not None or self.error is not None
        ):
            raise ValueError(f"{self.status.value} slot cannot carry a result")
        return self

    @property
    def is_busy(self) -> bool:
        return self.status in (SlotStatus.PENDING, SlotStatus.LOADING)

    @property
    def succeeded(self) -> bool:
        return self.status is SlotStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status is SlotStatus.FAILED

    def loading(self) -> "ResultSlot":
        return self.model_copy(update={"status": SlotStatus.LOADING})

    def with_image(self, image: str) -> "ResultSlot":
        return ResultSlot(
            identity=self.identity,
            position=self.position,
            status=SlotStatus.SUCCEEDED,
            image=image,
        )

    def with_error(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> "ResultSlot":
        return ResultSlot(
            identity=self.identity,
            position=self.position,
            status=SlotStatus.FAILED,
            error=message,
            error_kind=kind,
        )


class GenerationRequest(BaseModel):
    """What one dispatch sends to the generator; fixed once issued."""

    model_config = ConfigDict(frozen=True)

    source_image: str
    category: MockupCategory
    description: str = ""
