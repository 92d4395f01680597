"""Telegram handlers driven with fake updates and a fake bot."""

import itertools
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from telegram.error import NetworkError

from bot import telegram_bot as tb
from bot.session import ChatSession
from bot.slot_view import slot_callback
from conftest import settle
from mockupgen.codec import to_data_uri
from mockupgen.config import Settings
from mockupgen.errors import ErrorKind
from mockupgen.orchestrator import SlotOrchestrator
from mockupgen.prompts import MockupCategory
from mockupgen.slots import ResultSlot, SlotStatus

SOURCE = to_data_uri(b"logo-bytes", "image/png")
IMG = to_data_uri(b"mockup-bytes", "image/png")
CHAT_ID = 42


@pytest.fixture
def fake_bot():
    """Bot whose send_* calls hand out increasing message ids."""
    ids = itertools.count(100)
    bot = Mock()
    bot.send_message = AsyncMock(side_effect=lambda **kw: Mock(message_id=next(ids)))
    bot.send_photo = AsyncMock(side_effect=lambda **kw: Mock(message_id=next(ids)))
    bot.edit_message_text = AsyncMock()
    bot.delete_message = AsyncMock()
    bot.send_document = AsyncMock()
    return bot


def make_context(fake_bot, generator, settings, session=None):
    chat_data = {}
    if session is not None:
        chat_data[tb.SESSION_KEY] = session
    return SimpleNamespace(
        bot=fake_bot,
        bot_data={tb.SETTINGS_KEY: settings, tb.GENERATOR_KEY: generator},
        chat_data=chat_data,
    )


def callback_update(data):
    query = Mock(data=data)
    query.answer = AsyncMock()
    query.edit_message_text = AsyncMock()
    chat = SimpleNamespace(id=CHAT_ID, send_action=AsyncMock())
    return SimpleNamespace(callback_query=query, effective_chat=chat)


def ready_session():
    return ChatSession(source_image=SOURCE, category=MockupCategory.MUG)


async def resolve_all(generator, result=IMG):
    """Keep resolving requests until nothing new is dispatched."""
    while True:
        await settle()
        pending = [c for c in generator.calls if not c.future.done()]
        if not pending:
            return
        for call in pending:
            call.future.set_result(result)


# ── Generate button ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_generate_is_refused_without_credential(fake_bot, generator):
    session = ready_session()
    context = make_context(fake_bot, generator, Settings(), session)
    update = callback_update("confirm_go")

    state = await tb.step_confirm_callback(update, context)

    assert state == tb.CONFIRM
    update.callback_query.answer.assert_awaited_once_with(
        "Gemini API key not configured.", show_alert=True
    )
    assert session.orchestrator is None
    assert generator.calls == []
    fake_bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_generate_starts_batch_and_renders_four_slots(fake_bot, generator):
    session = ready_session()
    context = make_context(fake_bot, generator, Settings(api_key="k", pacing_seconds=0.0), session)

    state = await tb.step_confirm_callback(callback_update("confirm_go"), context)
    await settle()

    assert state == tb.CONFIRM
    assert session.is_generating
    assert len(generator.calls) == 1
    assert fake_bot.send_message.await_count == 4
    assert set(session.slot_messages) == {0, 1, 2, 3}

    # a second press while the batch runs is refused
    again = callback_update("confirm_go")
    await tb.step_confirm_callback(again, context)
    again.callback_query.answer.assert_awaited_once_with(
        "Still generating — wait for the current mockups.", show_alert=True
    )
    assert len(generator.calls) == 1

    await resolve_all(generator)
    await session.orchestrator.wait_idle()
    await settle()

    assert all(s.succeeded for s in session.orchestrator.slots)
    assert fake_bot.send_photo.await_count == 4
    assert all(m.is_photo for m in session.slot_messages.values())


@pytest.mark.asyncio
async def test_generate_requires_image_and_category(fake_bot, generator):
    session = ChatSession(category=MockupCategory.MUG)
    context = make_context(fake_bot, generator, Settings(api_key="k"), session)
    update = callback_update("confirm_go")

    await tb.step_confirm_callback(update, context)

    update.callback_query.answer.assert_awaited_once_with(
        "Upload a logo and pick a category first.", show_alert=True
    )
    assert generator.calls == []


# ── Slot buttons ──────────────────────────────────────────────────────────────

async def finished_session(generator):
    session = ready_session()
    session.orchestrator = SlotOrchestrator(generator, pacing_seconds=0.0)
    session.orchestrator.start_batch(SOURCE, MockupCategory.MUG)
    await resolve_all(generator)
    await session.orchestrator.wait_idle()
    return session


@pytest.mark.asyncio
async def test_stale_slot_button_is_refused(fake_bot, generator):
    session = await finished_session(generator)
    old = session.orchestrator.slot(1)
    session.orchestrator.redo_slot(1, SOURCE, MockupCategory.MUG)
    await resolve_all(generator)
    await session.orchestrator.wait_idle()
    calls_before = len(generator.calls)
    context = make_context(fake_bot, generator, Settings(api_key="k"), session)
    update = callback_update(slot_callback("redo", old))

    await tb.slot_action_callback(update, context)

    update.callback_query.answer.assert_awaited_once_with("This mockup has been replaced.")
    assert len(generator.calls) == calls_before
    assert session.orchestrator.slot(1).identity != old.identity


@pytest.mark.asyncio
async def test_current_redo_button_regenerates_only_that_slot(fake_bot, generator):
    session = await finished_session(generator)
    target = session.orchestrator.slot(2)
    context = make_context(fake_bot, generator, Settings(api_key="k"), session)

    await tb.slot_action_callback(callback_update(slot_callback("redo", target)), context)

    assert session.orchestrator.slot(2).status is SlotStatus.LOADING
    assert session.orchestrator.slot(2).identity != target.identity
    assert [session.orchestrator.slot(i).succeeded for i in (0, 1, 3)] == [True] * 3
    await resolve_all(generator)
    await session.orchestrator.wait_idle()


@pytest.mark.asyncio
async def test_download_button_sends_exported_document(fake_bot, generator, tmp_path, png_data_uri):
    slot = ResultSlot(identity=77, position=0, status=SlotStatus.SUCCEEDED, image=png_data_uri)
    session = ready_session()
    session.orchestrator = SimpleNamespace(slot=lambda p: slot if p == 0 else None)
    context = make_context(fake_bot, generator, Settings(api_key="k", output_dir=tmp_path), session)

    await tb.slot_action_callback(callback_update(slot_callback("dl", slot, "HD")), context)

    sent = fake_bot.send_document.await_args.kwargs
    expected = tmp_path / str(CHAT_ID) / "mockup-77-HD.png"
    assert sent["filename"] == expected.name
    assert sent["document"] == expected
    assert expected.exists()


# ── Slot message sync ─────────────────────────────────────────────────────────

def scripted_session(state):
    session = ready_session()
    session.orchestrator = SimpleNamespace(slot=lambda position: state["slot"])
    return session


@pytest.mark.asyncio
async def test_sync_edits_text_and_replaces_on_photo_changes(fake_bot, generator):
    state = {"slot": ResultSlot(identity=1, position=0, status=SlotStatus.LOADING)}
    session = scripted_session(state)
    context = make_context(fake_bot, generator, Settings(api_key="k"), session)

    await tb._sync_slot(context, CHAT_ID, session, 0)
    assert fake_bot.send_message.await_count == 1
    assert not session.slot_messages[0].is_photo

    # text → text: edited in place
    state["slot"] = state["slot"].with_error("Generation failed.", ErrorKind.UNKNOWN)
    await tb._sync_slot(context, CHAT_ID, session, 0)
    assert fake_bot.edit_message_text.await_count == 1
    assert fake_bot.send_message.await_count == 1

    # text → photo: old message deleted, photo sent
    text_id = session.slot_messages[0].message_id
    state["slot"] = ResultSlot(identity=2, position=0, status=SlotStatus.SUCCEEDED, image=IMG)
    await tb._sync_slot(context, CHAT_ID, session, 0)
    fake_bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=text_id)
    assert fake_bot.send_photo.await_args.kwargs["photo"] == b"mockup-bytes"
    assert session.slot_messages[0].is_photo

    # unchanged slot: nothing sent
    await tb._sync_slot(context, CHAT_ID, session, 0)
    assert fake_bot.send_photo.await_count == 1

    # photo → text (redo): replaced again
    state["slot"] = ResultSlot(identity=3, position=0, status=SlotStatus.LOADING)
    await tb._sync_slot(context, CHAT_ID, session, 0)
    assert fake_bot.delete_message.await_count == 2
    assert fake_bot.send_message.await_count == 2
    assert not session.slot_messages[0].is_photo


@pytest.mark.asyncio
async def test_sync_failure_is_logged_and_retried_on_next_change(fake_bot, generator, caplog):
    state = {"slot": ResultSlot(identity=1, position=0, status=SlotStatus.LOADING)}
    session = scripted_session(state)
    context = make_context(fake_bot, generator, Settings(api_key="k"), session)
    await tb._sync_slot(context, CHAT_ID, session, 0)

    fake_bot.send_photo.side_effect = NetworkError("connection reset")
    state["slot"] = ResultSlot(identity=1, position=0, status=SlotStatus.SUCCEEDED, image=IMG)
    with caplog.at_level(logging.WARNING, logger="bot.telegram_bot"):
        await tb._sync_slot(context, CHAT_ID, session, 0)

    assert "message sync failed" in caplog.text
    assert 0 not in session.slot_messages

    fake_bot.send_photo.side_effect = lambda **kw: Mock(message_id=999)
    await tb._sync_slot(context, CHAT_ID, session, 0)
    assert session.slot_messages[0].message_id == 999
    assert session.slot_messages[0].is_photo


@pytest.mark.asyncio
async def test_background_task_failure_is_logged(fake_bot, generator, caplog):
    context = make_context(fake_bot, generator, Settings(api_key="k"))

    async def broken():
        raise RuntimeError("render crashed")

    with caplog.at_level(logging.ERROR, logger="bot.telegram_bot"):
        task = tb._keep_task(context, broken())
        await settle()

    assert task.done()
    assert "Background task failed" in caplog.text
    assert "render crashed" in caplog.text
    assert context.bot_data[tb.SYNC_TASKS_KEY] == set()
