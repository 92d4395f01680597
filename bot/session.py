"""
session.py — Per-chat mockup session.

Collects the three inputs as the user answers bot questions (logo, category,
optional description) and owns the chat's SlotOrchestrator once the first
batch is requested.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from mockupgen.orchestrator import SlotOrchestrator
from mockupgen.prompts import DEFAULT_STYLE, MockupCategory
from mockupgen.slots import SlotStatus


# ── Rendered message bookkeeping ──────────────────────────────────────────────

@dataclass
class SlotMessage:
    """The Telegram message currently showing one slot."""

    message_id: int
    is_photo: bool = False
    identity: Optional[int] = None
    status: Optional[SlotStatus] = None


# ── Conversation data model ───────────────────────────────────────────────────

@dataclass
class ChatSession:
    """Accumulates mockup inputs during a Telegram conversation."""

    source_image: Optional[str] = None      # data URI of the uploaded logo
    source_name: str = ""
    category: Optional[MockupCategory] = None
    description: str = ""

    orchestrator: Optional[SlotOrchestrator] = None
    slot_messages: Dict[int, SlotMessage] = field(default_factory=dict)
    slot_locks: Dict[int, asyncio.Lock] = field(default_factory=dict)
    unsubscribe: Optional[Callable[[], None]] = None

    def is_ready(self) -> bool:
        return bool(self.source_image and self.category)

    @property
    def is_generating(self) -> bool:
        return self.orchestrator is not None and self.orchestrator.is_generating

    def lock_for(self, position: int) -> asyncio.Lock:
        """Serialises message edits for one slot."""
        return self.slot_locks.setdefault(position, asyncio.Lock())

    def attach(self, orchestrator: SlotOrchestrator, listener) -> None:
        self.detach()
        self.orchestrator = orchestrator
        self.unsubscribe = orchestrator.subscribe(listener)

    def detach(self) -> None:
        """Stop re-rendering; in-flight requests finish unobserved."""
        if self.unsubscribe is not None:
            self.unsubscribe()
        self.unsubscribe = None

    def summary_lines(self) -> list:
        """Plain-text summary lines for the confirmation message."""
        lines = [
            f"🖼 Logo: {self.source_name or 'uploaded image'}",
            f"📦 Category: {self.category.value if self.category else '—'}",
            f"🎨 Style: {self.description or DEFAULT_STYLE}",
        ]
        return lines
