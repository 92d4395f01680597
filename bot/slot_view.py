"""
slot_view.py — What a slot message should look like.

render_slot() is pure: it turns a ResultSlot into text + buttons (+ the
photo bytes once the slot succeeded). telegram_bot.py decides whether that
means editing the existing message or replacing it.

Callback data layout (64 byte Telegram limit):
  slot:redo:<position>:<identity>
  slot:open:<position>:<identity>
  slot:dl:<position>:<identity>:<quality>
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from mockupgen.codec import EXPORT_WIDTHS, decode_image_bytes
from mockupgen.prompts import MockupCategory
from mockupgen.slots import ResultSlot, SlotStatus

SLOT_PREFIX = "slot"


def escape_md(text: str) -> str:
    """Escape special chars for Telegram MarkdownV2."""
    special = r"\_*[]()~`>#+-=|{}.!"
    return "".join(f"\\{c}" if c in special else c for c in text)


@dataclass(frozen=True)
class SlotView:
    text: str
    keyboard: Optional[InlineKeyboardMarkup] = None
    photo: Optional[bytes] = None

    @property
    def is_photo(self) -> bool:
        return self.photo is not None


# ── Callback data ─────────────────────────────────────────────────────────────

def slot_callback(action: str, slot: ResultSlot, quality: Optional[str] = None) -> str:
    parts = [SLOT_PREFIX, action, str(slot.position), str(slot.identity)]
    if quality:
        parts.append(quality)
    return ":".join(parts)


def parse_slot_callback(data: str) -> Optional[Tuple[str, int, int, Optional[str]]]:
    """'slot:dl:2:17:4K' → ('dl', 2, 17, '4K'). Anything malformed → None."""
    parts = (data or "").split(":")
    if len(parts) not in (4, 5) or parts[0] != SLOT_PREFIX:
        return None
    action, position, identity = parts[1], parts[2], parts[3]
    if action not in {"redo", "open", "dl"} or not (position.isdigit() and identity.isdigit()):
        return None
    quality = parts[4] if len(parts) == 5 else None
    if action == "dl" and quality not in EXPORT_WIDTHS:
        return None
    return (action, int(position), int(identity), quality)


# ── Rendering ─────────────────────────────────────────────────────────────────

def _header(slot: ResultSlot, category: Optional[MockupCategory]) -> str:
    label = f"Mockup {slot.position + 1}"
    if category is not None:
        label += f" · {category.value}"
    return f"*{escape_md(label)}*"


def _success_keyboard(slot: ResultSlot) -> InlineKeyboardMarkup:
    downloads: List[InlineKeyboardButton] = [
        InlineKeyboardButton(f"⬇️ {label}", callback_data=slot_callback("dl", slot, label))
        for label in EXPORT_WIDTHS
    ]
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("🔁 Redo", callback_data=slot_callback("redo", slot)),
            InlineKeyboardButton("🔍 Open", callback_data=slot_callback("open", slot)),
        ],
        downloads,
    ])


def render_slot(slot: ResultSlot, category: Optional[MockupCategory] = None) -> SlotView:
    header = _header(slot, category)

    if slot.status is SlotStatus.PENDING:
        return SlotView(text=f"{header}\n⏳ _Queued\\.\\.\\._")

    if slot.status is SlotStatus.LOADING:
        return SlotView(text=f"{header}\n🎨 _Creating…_")

    if slot.status is SlotStatus.FAILED:
        return SlotView(
            text=f"{header}\n❌ {escape_md(slot.error or 'Generation failed.')}",
            keyboard=InlineKeyboardMarkup([
                [InlineKeyboardButton("🔄 Retry", callback_data=slot_callback("redo", slot))],
            ]),
        )

    return SlotView(
        text=header,
        keyboard=_success_keyboard(slot),
        photo=decode_image_bytes(slot.image),
    )
