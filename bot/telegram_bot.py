"""
telegram_bot.py — MockupGen Telegram Bot

Logo upload → category → optional style → 4 live mockup slots.

Conversation flow:
  /start or /new
    → IMAGE        (photo or image file, PNG preferred)
    → CATEGORY     (inline keyboard, 11 categories)
    → DESCRIPTION  (free text, or /skip)
    → CONFIRM      (inline keyboard: Generate 4 mockups / Start over)
    → slot messages re-render as the batch progresses

Slot buttons (handled outside the conversation, valid until the slot is
replaced):
  🔄 Retry / 🔁 Redo   — regenerate that slot only, immediately
  🔍 Open              — send the original image as a file
  ⬇️ HD / FullHD / 4K  — send a PNG rescaled to 1280 / 1920 / 3840 px wide

Commands:
  /start  — start a new mockup session
  /new    — alias for /start
  /skip   — skip the style description
  /cancel — cancel current conversation
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional, Set

from telegram import (
    Document,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    PhotoSize,
    Update,
)
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
    ContextTypes,
)

from mockupgen.codec import to_data_uri
from mockupgen.config import Settings
from mockupgen.errors import ExportError
from mockupgen.exporter import export_slot, save_original
from mockupgen.generator import GeminiMockupGenerator
from mockupgen.prompts import MockupCategory

from .session import ChatSession, SlotMessage
from .slot_view import escape_md, parse_slot_callback, render_slot

# ── Logging ───────────────────────────────────────────────────────────────────

logging.basicConfig(
    format="%(asctime)s — %(name)s — %(levelname)s — %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

# ── Conversation states ───────────────────────────────────────────────────────

(
    IMAGE,
    CATEGORY,
    DESCRIPTION,
    CONFIRM,
) = range(4)

# ── Keyboards ─────────────────────────────────────────────────────────────────

def _category_keyboard() -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(c.value, callback_data=f"cat_{c.slug}")
        for c in MockupCategory
    ]
    return InlineKeyboardMarkup([buttons[i:i + 2] for i in range(0, len(buttons), 2)])


CATEGORY_KEYBOARD = _category_keyboard()

DESCRIPTION_KEYBOARD = InlineKeyboardMarkup([
    [InlineKeyboardButton("⏭ Skip — default style", callback_data="desc_skip")],
])

CONFIRM_KEYBOARD = InlineKeyboardMarkup([
    [InlineKeyboardButton("✨ Generate 4 mockups", callback_data="confirm_go")],
    [InlineKeyboardButton("🔄 Start over", callback_data="confirm_restart")],
])


# ── Context keys ──────────────────────────────────────────────────────────────

SESSION_KEY = "session"
SETTINGS_KEY = "settings"
GENERATOR_KEY = "generator"
SYNC_TASKS_KEY = "sync_tasks"

IMAGE_MIME_BY_EXT = {
    ".png":  "image/png",
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

CONFIG_WARNING = (
    "⚠️ *Gemini API key not configured\\.*\n"
    "Set `GEMINI_API_KEY` in `.env` and restart the bot\\. "
    "Generation is disabled until then\\."
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def get_session(context: ContextTypes.DEFAULT_TYPE) -> ChatSession:
    if SESSION_KEY not in context.chat_data:
        context.chat_data[SESSION_KEY] = ChatSession()
    return context.chat_data[SESSION_KEY]


def reset_session(context: ContextTypes.DEFAULT_TYPE) -> ChatSession:
    old = context.chat_data.get(SESSION_KEY)
    if old is not None:
        old.detach()
    context.chat_data[SESSION_KEY] = ChatSession()
    return context.chat_data[SESSION_KEY]


def get_settings(context: ContextTypes.DEFAULT_TYPE) -> Settings:
    return context.bot_data[SETTINGS_KEY]


def get_generator(context: ContextTypes.DEFAULT_TYPE) -> GeminiMockupGenerator:
    return context.bot_data[GENERATOR_KEY]


async def send_typing(update: Update) -> None:
    await update.effective_chat.send_action(ChatAction.TYPING)


def _summary_text(session: ChatSession) -> str:
    body = "\n".join(escape_md(line) for line in session.summary_lines())
    return f"📋 *Ready to generate:*\n\n{body}"


def _keep_task(context: ContextTypes.DEFAULT_TYPE, coro) -> asyncio.Task:
    """Schedule a coroutine and hold a reference until it finishes."""
    tasks: Set[asyncio.Task] = context.bot_data.setdefault(SYNC_TASKS_KEY, set())
    task = asyncio.create_task(coro)
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    task.add_done_callback(_log_task_failure)
    return task


def _log_task_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Background task failed", exc_info=task.exception())


# ── Image helpers ─────────────────────────────────────────────────────────────

async def _download_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[tuple]:
    """
    Download a photo or document-image from the current message.
    Returns (data URI, display name), or None if no image found.
    """
    if update.message.photo:
        photo: PhotoSize = update.message.photo[-1]
        file = await context.bot.get_file(photo.file_id)
        data = await file.download_as_bytearray()
        return to_data_uri(bytes(data), "image/jpeg"), "photo.jpg"

    if update.message.document:
        doc: Document = update.message.document
        name = doc.file_name or "image.png"
        mime = doc.mime_type or IMAGE_MIME_BY_EXT.get(Path(name).suffix.lower())
        if not mime or not mime.startswith("image/"):
            return None
        file = await context.bot.get_file(doc.file_id)
        data = await file.download_as_bytearray()
        return to_data_uri(bytes(data), mime), name

    return None


# ── Slot message sync ─────────────────────────────────────────────────────────

async def _sync_slot(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    session: ChatSession,
    position: int,
) -> None:
    """
    Bring the message for one slot in line with the slot's latest state.

    Runs under a per-slot lock so edits never interleave. A failed Telegram
    call is logged; the next change to the slot tries again.
    """
    async with session.lock_for(position):
        try:
            await _push_slot_message(context, chat_id, session, position)
        except TelegramError as exc:
            logger.warning("Slot %d message sync failed (chat %s): %s", position, chat_id, exc)


async def _push_slot_message(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    session: ChatSession,
    position: int,
) -> None:
    """Text states are edited in place; a change to or from a photo replaces the message."""
    if session.orchestrator is None:
        return
    slot = session.orchestrator.slot(position)
    if slot is None:
        return
    shown = session.slot_messages.get(position)
    if shown is not None and shown.identity == slot.identity and shown.status is slot.status:
        return

    view = render_slot(slot, session.category)

    if shown is not None and not shown.is_photo and not view.is_photo:
        try:
            await context.bot.edit_message_text(
                chat_id=chat_id,
                message_id=shown.message_id,
                text=view.text,
                parse_mode=ParseMode.MARKDOWN_V2,
                reply_markup=view.keyboard,
            )
        except BadRequest as exc:
            logger.debug("Slot %d edit skipped: %s", position, exc)
        shown.identity, shown.status = slot.identity, slot.status
        return

    if shown is not None:
        session.slot_messages.pop(position, None)
        try:
            await context.bot.delete_message(chat_id=chat_id, message_id=shown.message_id)
        except BadRequest as exc:
            logger.debug("Slot %d delete skipped: %s", position, exc)

    if view.is_photo:
        msg = await context.bot.send_photo(
            chat_id=chat_id,
            photo=view.photo,
            caption=view.text,
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=view.keyboard,
        )
    else:
        msg = await context.bot.send_message(
            chat_id=chat_id,
            text=view.text,
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=view.keyboard,
        )
    session.slot_messages[position] = SlotMessage(
        message_id=msg.message_id,
        is_photo=view.is_photo,
        identity=slot.identity,
        status=slot.status,
    )


def _slot_listener(context: ContextTypes.DEFAULT_TYPE, chat_id: int, session: ChatSession):
    """Orchestrator listener: schedule a sync for every slot that changed."""
    previous: Dict[int, tuple] = {}

    def _on_change(slots) -> None:
        for slot in slots:
            key = (slot.identity, slot.status)
            if previous.get(slot.position) == key:
                continue
            previous[slot.position] = key
            _keep_task(context, _sync_slot(context, chat_id, session, slot.position))

    return _on_change


def _ensure_orchestrator(context: ContextTypes.DEFAULT_TYPE, chat_id: int, session: ChatSession) -> None:
    if session.orchestrator is None:
        orchestrator = get_settings(context).build_orchestrator(get_generator(context))
        session.attach(orchestrator, _slot_listener(context, chat_id, session))


# ── /start ────────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_session(context)
    await update.message.reply_text(
        "👋 Welcome to *MockupGen*\\!\n\n"
        "Send me your logo and I'll place it on 4 photorealistic product mockups\\.\n\n"
        "*Upload your logo* 👇\n"
        "_PNG sent as a file keeps transparency; photos work too\\._",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    if not get_settings(context).is_configured:
        await update.message.reply_text(CONFIG_WARNING, parse_mode=ParseMode.MARKDOWN_V2)
    return IMAGE


# ── /cancel ───────────────────────────────────────────────────────────────────

async def cmd_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_session(context)
    await update.message.reply_text(
        "👋 Cancelled\\. Send /start to begin again\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return ConversationHandler.END


# ── Step 1: Image ─────────────────────────────────────────────────────────────

async def step_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    session = get_session(context)
    await send_typing(update)
    downloaded = await _download_image(update, context)
    if downloaded is None:
        await update.message.reply_text(
            "⚠️ That file isn't an image\\. Please send a PNG or JPG\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return IMAGE

    session.source_image, session.source_name = downloaded
    logger.info("Chat %s uploaded %s", update.effective_chat.id, session.source_name)
    await update.message.reply_text(
        "✅ Logo received\\.\n\n*Which product should it go on?*",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=CATEGORY_KEYBOARD,
    )
    return CATEGORY


async def step_image_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text(
        "📎 Please upload an image first \\(photo or PNG file\\)\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return IMAGE


# ── Step 2: Category ──────────────────────────────────────────────────────────

async def step_category_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    session = get_session(context)

    try:
        session.category = MockupCategory.parse(query.data.removeprefix("cat_"))
    except ValueError:
        logger.warning("Unknown category callback %r", query.data)
        return CATEGORY

    await query.edit_message_text(
        f"📦 Category: *{escape_md(session.category.value)}*\n\n"
        "*Any style or details?* \\(optional\\)\n"
        "_e\\.g\\. \"dark background, minimal\", \"morning light, marble table\"_\n\n"
        "Type it, or /skip for the default style\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=DESCRIPTION_KEYBOARD,
    )
    return DESCRIPTION


# ── Step 3: Description ───────────────────────────────────────────────────────

async def _ask_confirm(message, session: ChatSession, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = _summary_text(session)
    if not get_settings(context).is_configured:
        text += f"\n\n{CONFIG_WARNING}"
    await message.reply_text(
        text,
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=CONFIRM_KEYBOARD,
    )
    return CONFIRM


async def step_description(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    session = get_session(context)
    text = (update.message.text or "").strip()
    session.description = "" if text.startswith("/skip") else text
    return await _ask_confirm(update.message, session, context)


async def step_description_skip(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    session = get_session(context)
    session.description = ""
    return await _ask_confirm(query.message, session, context)


# ── Step 4: Confirm ───────────────────────────────────────────────────────────

async def step_confirm_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    session = get_session(context)

    if query.data == "confirm_restart":
        await query.answer()
        reset_session(context)
        await query.edit_message_text(
            "🔄 Starting over\\. *Upload your logo* 👇",
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return IMAGE

    # confirm_go
    if not get_settings(context).is_configured:
        await query.answer("Gemini API key not configured.", show_alert=True)
        return CONFIRM
    if session.is_generating:
        await query.answer("Still generating — wait for the current mockups.", show_alert=True)
        return CONFIRM
    if not session.is_ready():
        await query.answer("Upload a logo and pick a category first.", show_alert=True)
        return CONFIRM

    await query.answer("Generating…")
    chat_id = update.effective_chat.id
    _ensure_orchestrator(context, chat_id, session)
    session.orchestrator.start_batch(session.source_image, session.category, session.description)
    logger.info("Chat %s — batch started (%s)", chat_id, session.category.value)

    # Stay in CONFIRM so the same inputs can be regenerated
    return CONFIRM


# ── Slot actions ──────────────────────────────────────────────────────────────

async def slot_action_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    parsed = parse_slot_callback(query.data)
    session = context.chat_data.get(SESSION_KEY)

    if parsed is None or session is None or session.orchestrator is None:
        await query.answer("This mockup session has ended. Send /start.", show_alert=True)
        return

    action, position, identity, quality = parsed
    slot = session.orchestrator.slot(position)
    if slot is None or slot.identity != identity:
        await query.answer("This mockup has been replaced.")
        return

    chat_id = update.effective_chat.id

    if action == "redo":
        if not get_settings(context).is_configured:
            await query.answer("Gemini API key not configured.", show_alert=True)
            return
        await query.answer("Regenerating…")
        session.orchestrator.redo_slot(position, session.source_image, session.category, session.description)
        return

    if not slot.succeeded:
        await query.answer("Nothing to download yet.")
        return

    await query.answer("Preparing file…")
    await update.effective_chat.send_action(ChatAction.UPLOAD_DOCUMENT)
    output_dir = get_settings(context).output_dir / str(chat_id)
    loop = asyncio.get_running_loop()
    try:
        if action == "open":
            path = await loop.run_in_executor(None, save_original, slot, output_dir)
            caption = f"Mockup {position + 1} — original"
        else:
            path = await loop.run_in_executor(None, export_slot, slot, quality, output_dir)
            caption = f"Mockup {position + 1} — {quality}"
    except ExportError as exc:
        logger.warning("Export failed for chat %s slot %d: %s", chat_id, position, exc)
        await context.bot.send_message(chat_id=chat_id, text=f"⚠️ {exc}")
        return

    await context.bot.send_document(chat_id=chat_id, document=path, filename=path.name, caption=caption)


# ── Error handler ─────────────────────────────────────────────────────────────

async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Exception while handling update:", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text(
                "⚠️ Something went wrong\\. Send /cancel then /start to try again\\.",
                parse_mode=ParseMode.MARKDOWN_V2,
            )
        except TelegramError:
            logger.exception("Could not notify chat about the error")


# ── App builder ───────────────────────────────────────────────────────────────

def build_app(settings: Settings, generator: Optional[GeminiMockupGenerator] = None) -> Application:
    app = Application.builder().token(settings.telegram_token).build()
    app.bot_data[SETTINGS_KEY] = settings
    app.bot_data[GENERATOR_KEY] = generator or settings.build_generator()

    conv = ConversationHandler(
        entry_points=[
            CommandHandler("start", cmd_start),
            CommandHandler("new", cmd_start),
        ],
        states={
            IMAGE: [
                # Accept compressed photos AND images sent as files
                MessageHandler(filters.PHOTO, step_image),
                MessageHandler(filters.Document.IMAGE, step_image),
                MessageHandler(filters.TEXT & ~filters.COMMAND, step_image_text),
            ],
            CATEGORY: [CallbackQueryHandler(step_category_callback, pattern="^cat_")],
            DESCRIPTION: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, step_description),
                CommandHandler("skip", step_description),
                CallbackQueryHandler(step_description_skip, pattern="^desc_skip$"),
            ],
            CONFIRM: [CallbackQueryHandler(step_confirm_callback, pattern="^confirm_")],
        },
        fallbacks=[
            CommandHandler("cancel", cmd_cancel),
            CommandHandler("new", cmd_start),
        ],
        allow_reentry=True,
        conversation_timeout=3600,
    )

    app.add_handler(conv)
    app.add_handler(CallbackQueryHandler(slot_action_callback, pattern="^slot:"))
    app.add_error_handler(error_handler)
    return app
